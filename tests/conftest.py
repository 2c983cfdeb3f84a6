"""Shared pytest fixtures."""

import copy
from types import SimpleNamespace
from typing import Any

import pytest

from docsequence.core.db import SequencedModel
from docsequence.core.modules.counter.allocator import SequenceAllocator
from docsequence.core.modules.counter.registry import SequenceRegistry
from docsequence.core.modules.counter.store import MemoryCounterStore
from docsequence.core.modules.entity.repository import EntityRepository


class FakeCursor:
    def __init__(self, docs: list[dict[str, Any]]) -> None:
        self._docs = docs

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for doc in self._docs:
            yield doc


class FakeCollection:
    """Dict-backed stand-in for the handful of collection methods repositories use."""

    def __init__(self) -> None:
        self.docs: dict[Any, dict[str, Any]] = {}

    def _matches(self, doc: dict[str, Any], query: dict[str, Any]) -> bool:
        return all(doc.get(key) == value for key, value in query.items())

    async def insert_one(self, doc: dict[str, Any]) -> SimpleNamespace:
        self.docs[doc["_id"]] = copy.deepcopy(doc)
        return SimpleNamespace(inserted_id=doc["_id"])

    async def replace_one(self, query: dict[str, Any], doc: dict[str, Any]) -> SimpleNamespace:
        for key, existing in self.docs.items():
            if self._matches(existing, query):
                self.docs[key] = copy.deepcopy(doc)
                return SimpleNamespace(matched_count=1)
        return SimpleNamespace(matched_count=0)

    async def update_one(self, query: dict[str, Any], update: dict[str, Any]) -> SimpleNamespace:
        for existing in self.docs.values():
            if self._matches(existing, query):
                existing.update(update["$set"])
                return SimpleNamespace(matched_count=1)
        return SimpleNamespace(matched_count=0)

    async def find_one(self, query: dict[str, Any]) -> dict[str, Any] | None:
        for doc in self.docs.values():
            if self._matches(doc, query):
                return copy.deepcopy(doc)
        return None

    def find(self, query: dict[str, Any]) -> FakeCursor:
        return FakeCursor([copy.deepcopy(doc) for doc in self.docs.values() if self._matches(doc, query)])


class FakeDatabase:
    def __init__(self) -> None:
        self.collections: dict[str, FakeCollection] = {}

    def get_collection(self, name: str) -> FakeCollection:
        return self.collections.setdefault(name, FakeCollection())


@pytest.fixture
def store():
    return MemoryCounterStore()


@pytest.fixture
def allocator(store):
    return SequenceAllocator(store)


@pytest.fixture
def registry(allocator):
    return SequenceRegistry(allocator)


@pytest.fixture
def database():
    return FakeDatabase()


@pytest.fixture
def make_repository(database, registry):
    """Create a repository for a model, collection named after the model."""

    def _make(model_cls: type[SequencedModel]) -> EntityRepository:
        return EntityRepository(database, model_cls.__name__.lower(), model_cls, registry)

    return _make
