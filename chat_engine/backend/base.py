"""
Backend Interface

Command surface shared by the gateway, Ollama and in-memory backends:

    list_models / get_active_model / set_active_model
    import_model / get_model_metadata
    generate / generate_stream / cancel_generation

Also holds the model file checks that importing backends run before touching
a file (extension whitelist and family directory).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from chat_engine.client.events import EventBus
from chat_engine.config import ALLOWED_MODEL_EXTS
from chat_engine.core.errors import BackendError
from chat_engine.core.models import (
    STREAM_COMPLETE_EVENT,
    STREAM_DELTA_EVENT,
    ModelDescriptor,
    ModelMeta,
)


def infer_backend_hint(ext: str) -> str:
    ext = ext.lower().lstrip(".")
    if ext in ("gguf", "bin"):
        return "llama"
    if ext == "safetensors":
        return "transformers"
    if ext == "onnx":
        return "onnx"
    return "unknown"


def check_model_file(path: str | Path) -> tuple[Path, str]:
    """Validate a model file before import. Returns (resolved path, extension)."""
    src = Path(path).expanduser()
    if not src.is_file():
        raise BackendError(f"Source is not a file: {src}", code="not_a_file")
    ext = src.suffix.lower().lstrip(".")
    if not ext:
        raise BackendError(f"File has no extension: {src}", code="no_extension")
    if ext not in ALLOWED_MODEL_EXTS:
        raise BackendError(f"Unsupported extension .{ext}", code="unsupported_extension")
    return src.resolve(), ext


def family_for(src: Path, family: str | None) -> str:
    """Explicit family, else the parent directory name, else "Library"."""
    if family and family.strip():
        return family.strip()
    return src.parent.name or "Library"


class Backend(ABC):
    """Command surface of a generation backend.

    Streaming results are not returned from ``generate_stream``; they are pushed
    onto ``self.events`` as "stream-delta" events followed by exactly one
    "stream-complete". Every method raises ``BackendError`` on failure.
    """

    name = "backend"

    def __init__(self, events: EventBus | None = None):
        self.events = events or EventBus()

    @abstractmethod
    async def list_models(self) -> list[ModelDescriptor]: ...

    @abstractmethod
    async def get_active_model(self) -> str | None: ...

    @abstractmethod
    async def set_active_model(self, model_id: str) -> None: ...

    @abstractmethod
    async def import_model(self, path: str | Path, family: str | None = None) -> ModelDescriptor: ...

    @abstractmethod
    async def get_model_metadata(self, model_id: str) -> ModelMeta: ...

    @abstractmethod
    async def generate(self, prompt: str, model_id: str | None = None) -> str: ...

    @abstractmethod
    async def generate_stream(
        self, prompt: str, model_id: str | None = None, session_id: str | None = None
    ) -> None: ...

    @abstractmethod
    async def cancel_generation(self) -> None: ...

    async def close(self) -> None:
        """Release transport resources."""

    def emit_delta(self, delta: str, session_id: str | None = None) -> None:
        payload = {"delta": delta}
        if session_id is not None:
            payload["session_id"] = session_id
        self.events.emit(STREAM_DELTA_EVENT, payload)

    def emit_complete(self, text: str, session_id: str | None = None) -> None:
        payload = {"text": text}
        if session_id is not None:
            payload["session_id"] = session_id
        self.events.emit(STREAM_COMPLETE_EVENT, payload)

    async def __aenter__(self) -> Backend:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
