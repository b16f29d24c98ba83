"""
Model Selection State

Usage:
    from chat_engine.store import SessionStore, RecentModels, JsonKeyValueStore

    store = SessionStore(backend, RecentModels(JsonKeyValueStore(STATE_PATH)))
    await store.refresh()
    print(store.selected)
"""

from .kv import JsonKeyValueStore, MemoryKeyValueStore
from .recent import RecentModels, normalize_ids, push_recent
from .session import SessionStore, resolve_active

__all__ = [
    "JsonKeyValueStore",
    "MemoryKeyValueStore",
    "RecentModels",
    "SessionStore",
    "normalize_ids",
    "push_recent",
    "resolve_active",
]
