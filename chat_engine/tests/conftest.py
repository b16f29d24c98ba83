"""Shared fixtures for chat_engine tests."""

import pytest

from chat_engine.backend import InMemoryBackend
from chat_engine.core.models import ModelDescriptor
from chat_engine.store import MemoryKeyValueStore, RecentModels, SessionStore


def make_model(model_id: str, **kwargs) -> ModelDescriptor:
    return ModelDescriptor(id=model_id, name=kwargs.pop("name", model_id), **kwargs)


@pytest.fixture
def catalog():
    return [make_model("A"), make_model("B"), make_model("C")]


@pytest.fixture
def backend(catalog):
    return InMemoryBackend(models=catalog)


@pytest.fixture
def kv():
    return MemoryKeyValueStore()


@pytest.fixture
def store(backend, kv):
    return SessionStore(backend, RecentModels(kv))
