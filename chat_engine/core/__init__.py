"""Core data shapes and errors shared by every chat_engine component."""

from .errors import (
    BackendError,
    CatalogError,
    EngineError,
    GenerationError,
    MetadataError,
    SelectionPersistError,
)
from .models import (
    STREAM_COMPLETE_EVENT,
    STREAM_DELTA_EVENT,
    ConversationTurn,
    ModelDescriptor,
    ModelMeta,
    StreamComplete,
    StreamDelta,
)

__all__ = [
    "STREAM_COMPLETE_EVENT",
    "STREAM_DELTA_EVENT",
    "BackendError",
    "CatalogError",
    "ConversationTurn",
    "EngineError",
    "GenerationError",
    "MetadataError",
    "ModelDescriptor",
    "ModelMeta",
    "SelectionPersistError",
    "StreamComplete",
    "StreamDelta",
]
