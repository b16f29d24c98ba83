"""
Backend Adapters

Usage:
    from chat_engine.backend import create_backend

    backend = create_backend()  # Uses CHAT_BACKEND
    models = await backend.list_models()
"""

from chat_engine.client.events import EventBus
from chat_engine.config import BACKEND, get_backend_config

from .base import Backend, check_model_file, infer_backend_hint
from .gateway import GatewayBackend
from .memory import InMemoryBackend
from .ollama import OllamaBackend


def create_backend(backend: str | None = None, events: EventBus | None = None) -> Backend:
    """
    Build the adapter for a configured backend.

    Raises:
        KeyError: If backend name is not found.
    """
    key = backend or BACKEND
    cfg = get_backend_config(key)
    if key == "ollama":
        return OllamaBackend(url=cfg["url"], events=events)
    if key == "gateway":
        return GatewayBackend.from_backend_config(cfg, events=events)
    return InMemoryBackend(events=events)


__all__ = [
    "Backend",
    "GatewayBackend",
    "InMemoryBackend",
    "OllamaBackend",
    "check_model_file",
    "create_backend",
    "infer_backend_hint",
]
