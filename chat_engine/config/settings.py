"""
Engine Settings

Single source of truth for chat_engine configuration. Values come from the
environment so the same code runs against a local Ollama, a generation
gateway, or the in-memory backend used in tests.
"""

import os
from pathlib import Path
from typing import Any


def _getenv_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


# ============== Service URLs ==============
OLLAMA_URL = os.getenv("OLLAMA_URL", "http://localhost:11434")
GATEWAY_URL = os.getenv("GATEWAY_URL", "http://localhost:8090")
GATEWAY_EVENTS_URL = os.getenv("GATEWAY_EVENTS_URL", "ws://localhost:8090/events")
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "300"))

# ============== Client state ==============
STATE_PATH = Path(
    os.getenv("CHAT_ENGINE_STATE", str(Path.home() / ".config" / "chat_engine" / "state.json"))
).expanduser()
RECENT_MODELS_KEY = "chat_engine.recentModels.v1"
MAX_RECENT = 5

# ============== Streaming ==============
OVERLAP_WINDOW = int(os.getenv("OVERLAP_WINDOW", "200"))
REASONING_OPEN_TAG = os.getenv("REASONING_OPEN_TAG", "<think>")
REASONING_CLOSE_TAG = os.getenv("REASONING_CLOSE_TAG", "</think>")
STREAMING_ENABLED = _getenv_bool("STREAMING_ENABLED", True)
SYSTEM_PROMPT = os.getenv("SYSTEM_PROMPT", "")

# Extensions a backend can import as a model file
ALLOWED_MODEL_EXTS = ("gguf", "safetensors", "onnx", "bin")

# ============== Backend Definitions ==============
BACKENDS: dict[str, dict[str, Any]] = {
    "ollama": {
        "name": "Ollama",
        "url": OLLAMA_URL,
        "events": None,
        "description": "Local Ollama server, streamed over NDJSON",
    },
    "gateway": {
        "name": "Generation Gateway",
        "url": GATEWAY_URL,
        "events": GATEWAY_EVENTS_URL,
        "description": "HTTP commands with WebSocket push events",
    },
    "memory": {
        "name": "In-memory",
        "url": None,
        "events": None,
        "description": "Scripted backend for tests and offline demos",
    },
}

# ========== SWITCH BACKEND HERE ==========
BACKEND = os.getenv("CHAT_BACKEND", "ollama")
# =========================================


def get_backend_config(backend: str | None = None) -> dict[str, Any]:
    """
    Get configuration for a backend.

    Args:
        backend: Backend name ('ollama', 'gateway' or 'memory'). Uses default if None.

    Returns:
        Backend configuration dictionary.

    Raises:
        KeyError: If backend name is not found.
    """
    key = backend or BACKEND
    if key not in BACKENDS:
        raise KeyError(f"Unknown backend: {key}. Available: {list(BACKENDS.keys())}")
    return BACKENDS[key]


def list_backends() -> dict[str, str]:
    """List all available backends with descriptions."""
    return {name: cfg["description"] for name, cfg in BACKENDS.items()}
