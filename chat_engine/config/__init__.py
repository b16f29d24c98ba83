"""
Configuration Module

Usage:
    from chat_engine.config import BACKEND, get_backend_config

    cfg = get_backend_config()  # Uses CHAT_BACKEND
    print(cfg["url"])
"""

from .settings import (
    ALLOWED_MODEL_EXTS,
    BACKEND,
    BACKENDS,
    GATEWAY_EVENTS_URL,
    GATEWAY_URL,
    MAX_RECENT,
    OLLAMA_URL,
    OVERLAP_WINDOW,
    REASONING_CLOSE_TAG,
    REASONING_OPEN_TAG,
    RECENT_MODELS_KEY,
    REQUEST_TIMEOUT,
    STATE_PATH,
    STREAMING_ENABLED,
    SYSTEM_PROMPT,
    get_backend_config,
    list_backends,
)

__all__ = [
    "ALLOWED_MODEL_EXTS",
    "BACKEND",
    "BACKENDS",
    "GATEWAY_EVENTS_URL",
    "GATEWAY_URL",
    "MAX_RECENT",
    "OLLAMA_URL",
    "OVERLAP_WINDOW",
    "REASONING_CLOSE_TAG",
    "REASONING_OPEN_TAG",
    "RECENT_MODELS_KEY",
    "REQUEST_TIMEOUT",
    "STATE_PATH",
    "STREAMING_ENABLED",
    "SYSTEM_PROMPT",
    "get_backend_config",
    "list_backends",
]
