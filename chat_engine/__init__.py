"""
chat_engine

Client-side engine for local LLM chat:
- store: model catalog, active-model resolution, persisted recent list
- client: generation lifecycle, delta reconciliation, reasoning-tag parsing
- backend: Ollama, generation gateway and in-memory adapters
- config / utils: environment settings and logging

Usage:
    from chat_engine import GenerationController, SessionStore, create_backend

    backend = create_backend()
    store = SessionStore(backend, RecentModels(JsonKeyValueStore(STATE_PATH)))
    await store.refresh()

    controller = GenerationController(backend)
    await controller.send("Hello", model_id=store.selected.id)
    await controller.wait_idle()
"""

from .backend import Backend, GatewayBackend, InMemoryBackend, OllamaBackend, create_backend
from .client import (
    ControllerState,
    DeltaReconciler,
    EventBus,
    GenerationController,
    TagParseResult,
    parse,
    reconcile,
)
from .config import BACKEND, BACKENDS, STATE_PATH, get_backend_config
from .core import (
    BackendError,
    CatalogError,
    ConversationTurn,
    EngineError,
    GenerationError,
    MetadataError,
    ModelDescriptor,
    ModelMeta,
    SelectionPersistError,
)
from .store import JsonKeyValueStore, MemoryKeyValueStore, RecentModels, SessionStore, resolve_active
from .utils import setup_logging

__all__ = [
    "BACKEND",
    "BACKENDS",
    "STATE_PATH",
    "Backend",
    "BackendError",
    "CatalogError",
    "ControllerState",
    "ConversationTurn",
    "DeltaReconciler",
    "EngineError",
    "EventBus",
    "GatewayBackend",
    "GenerationController",
    "GenerationError",
    "InMemoryBackend",
    "JsonKeyValueStore",
    "MemoryKeyValueStore",
    "MetadataError",
    "ModelDescriptor",
    "ModelMeta",
    "OllamaBackend",
    "RecentModels",
    "SelectionPersistError",
    "SessionStore",
    "TagParseResult",
    "create_backend",
    "get_backend_config",
    "parse",
    "reconcile",
    "resolve_active",
    "setup_logging",
]

__version__ = "0.1.0"
