"""
Shared Models for chat_engine

Typed shapes for everything that crosses the backend boundary. Backend
payloads are loosely typed (JSON from HTTP, WebSocket frames or in-process
dicts), so every model has a ``from_payload`` constructor that ignores
unknown fields and treats missing or mistyped ones as absent.

Push-event protocol:
- "stream-delta":    {"delta": "...", "session_id": "..."}   zero or more per session
- "stream-complete": {"text": "...",  "session_id": "..."}   exactly one, terminal
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

STREAM_DELTA_EVENT = "stream-delta"
STREAM_COMPLETE_EVENT = "stream-complete"


def _opt_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _opt_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


class ModelDescriptor(BaseModel):
    """A model the backend can run. Identity is ``id``."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    name: str
    backend_hint: str = "unknown"  # llama, transformers, onnx, ollama ...
    file_type: str = "unknown"  # gguf, safetensors ...
    family: str | None = None
    path: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> ModelDescriptor | None:
        """Build a descriptor from a backend payload, or None without an id."""
        if not isinstance(payload, dict):
            return None
        model_id = _opt_str(payload.get("id"))
        if model_id is None:
            return None
        return cls(
            id=model_id,
            name=_opt_str(payload.get("name")) or model_id,
            backend_hint=_opt_str(payload.get("backend_hint")) or "unknown",
            file_type=_opt_str(payload.get("file_type")) or "unknown",
            family=_opt_str(payload.get("family")),
            path=_opt_str(payload.get("path")),
        )


class ModelMeta(BaseModel):
    """Per-model metadata as reported by the backend."""

    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    family: str | None = None
    backend: str = "unknown"
    file_type: str = "unknown"
    quantization: str | None = None
    parameter_size: str | None = None
    context_length: int | None = None
    has_chat_template: bool = False
    raw: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any) -> ModelMeta:
        if not isinstance(payload, dict):
            return cls()
        raw = payload.get("raw")
        return cls(
            name=_opt_str(payload.get("name")),
            family=_opt_str(payload.get("family")),
            backend=_opt_str(payload.get("backend")) or "unknown",
            file_type=_opt_str(payload.get("file_type")) or "unknown",
            quantization=_opt_str(payload.get("quantization")),
            parameter_size=_opt_str(payload.get("parameter_size")),
            context_length=_opt_int(payload.get("context_length")),
            has_chat_template=payload.get("has_chat_template") is True,
            raw={str(k): str(v) for k, v in raw.items()} if isinstance(raw, dict) else {},
        )


class StreamDelta(BaseModel):
    """Payload of a "stream-delta" event."""

    delta: str = ""
    session_id: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> StreamDelta:
        if not isinstance(payload, dict):
            return cls()
        delta = payload.get("delta")
        return cls(
            delta=delta if isinstance(delta, str) else "",
            session_id=_opt_str(payload.get("session_id")),
        )


class StreamComplete(BaseModel):
    """Payload of the terminal "stream-complete" event."""

    text: str = ""
    session_id: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> StreamComplete:
        if not isinstance(payload, dict):
            return cls()
        text = payload.get("text")
        return cls(
            text=text if isinstance(text, str) else "",
            session_id=_opt_str(payload.get("session_id")),
        )


class ConversationTurn:
    """One prompt and the assistant text produced for it.

    ``user`` is fixed at creation; ``assistant`` grows while a session streams
    into it and is overwritten once by the completion text.
    """

    __slots__ = ("_user", "assistant")

    def __init__(self, user: str, assistant: str = ""):
        self._user = user
        self.assistant = assistant

    @property
    def user(self) -> str:
        return self._user

    def to_dict(self) -> dict[str, str]:
        return {"user": self._user, "assistant": self.assistant}

    def __repr__(self) -> str:
        preview = self.assistant if len(self.assistant) <= 40 else self.assistant[:40] + "..."
        return f"ConversationTurn(user={self._user!r}, assistant={preview!r})"
