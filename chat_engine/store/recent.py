"""
Recently Used Models

Newest-first list of model ids, no duplicates, at most MAX_RECENT entries,
persisted under a single key. Used as the fallback when the backend does not
report an active model.
"""

import logging
from collections.abc import Iterable
from typing import Any, Protocol

from chat_engine.config import MAX_RECENT, RECENT_MODELS_KEY
from chat_engine.core.models import ModelDescriptor

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


def normalize_ids(raw: Any, limit: int = MAX_RECENT) -> list[str]:
    """Coerce a stored value into a valid recency list. Anything else is []."""
    if not isinstance(raw, list):
        return []
    ids: list[str] = []
    for item in raw:
        if isinstance(item, str) and item and item not in ids:
            ids.append(item)
    return ids[:limit]


def push_recent(ids: Iterable[str], model_id: str, limit: int = MAX_RECENT) -> list[str]:
    """Move model_id to the front, dropping its older occurrence."""
    return normalize_ids([model_id, *[x for x in ids if x != model_id]], limit)


class RecentModels:
    """
    Persisted MRU list of model ids.

    Usage:
        recent = RecentModels(JsonKeyValueStore(STATE_PATH))
        recent.record("qwen3:14b")
        recent.ids  # ["qwen3:14b", ...]
    """

    def __init__(self, store: KeyValueStore, key: str = RECENT_MODELS_KEY, limit: int = MAX_RECENT):
        self._store = store
        self.key = key
        self.limit = limit
        self._ids = self.load()

    @property
    def ids(self) -> list[str]:
        return list(self._ids)

    def load(self) -> list[str]:
        """Read the list from storage. Corrupt or missing data reads as []."""
        try:
            raw = self._store.get(self.key)
        except Exception as e:
            logger.warning(f"Could not load recent models: {e}")
            return []
        return normalize_ids(raw, self.limit)

    def reload(self) -> list[str]:
        self._ids = self.load()
        return self.ids

    def record(self, model_id: str) -> list[str]:
        """Push model_id to the front and persist."""
        self._ids = push_recent(self._ids, model_id, self.limit)
        self.save()
        return self.ids

    def save(self) -> bool:
        try:
            self._store.set(self.key, list(self._ids))
        except Exception as e:
            logger.warning(f"Could not persist recent models: {e}")
            return False
        return True

    def present_in(self, catalog: Iterable[ModelDescriptor]) -> list[ModelDescriptor]:
        """Recent entries that still exist in catalog, most recent first."""
        by_id = {m.id: m for m in catalog}
        return [by_id[i] for i in self._ids if i in by_id][: self.limit]
