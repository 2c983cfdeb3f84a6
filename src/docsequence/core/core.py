from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, TypeVar
from urllib.parse import urlparse

import structlog
from pymongo import AsyncMongoClient
from pymongo.asynchronous.database import AsyncDatabase

from docsequence.config import Config

if TYPE_CHECKING:
    from docsequence.core.db import SequencedModel
    from docsequence.core.modules.counter.allocator import SequenceAllocator
    from docsequence.core.modules.counter.registry import SequenceRegistry
    from docsequence.core.modules.counter.store import MongoCounterStore
    from docsequence.core.modules.entity.repository import EntityRepository

logger = structlog.get_logger(__name__)

T = TypeVar("T", bound="SequencedModel")


class Service:
    """Base class for components with direct database access."""

    def __init__(self, database: AsyncDatabase[dict[str, Any]]) -> None:
        self.database = database

    async def on_start(self) -> None:
        """Initialize on startup."""


class Core:
    """Container providing config, database, the counter store and registered repositories."""

    config: Config
    mongo_client: AsyncMongoClient[dict[str, Any]]
    database: AsyncDatabase[dict[str, Any]]
    store: MongoCounterStore
    allocator: SequenceAllocator
    registry: SequenceRegistry

    def __init__(self, config: Config) -> None:
        """Initialize core with config, MongoDB, counter store and an empty registry."""
        from docsequence.core.modules.counter.allocator import SequenceAllocator  # noqa: PLC0415
        from docsequence.core.modules.counter.registry import SequenceRegistry  # noqa: PLC0415
        from docsequence.core.modules.counter.store import MongoCounterStore  # noqa: PLC0415

        self.config = config
        self.mongo_client = AsyncMongoClient(config.database_url, uuidRepresentation="standard")
        self.database = self.mongo_client.get_database(urlparse(config.database_url).path[1:])
        self.store = MongoCounterStore(self.database, config.counters_collection, config.increment_retries)
        self.allocator = SequenceAllocator(self.store)
        self.registry = SequenceRegistry(self.allocator)
        self._repositories: list[EntityRepository[Any]] = []

    def repository(self, model_cls: type[T], collection: str) -> EntityRepository[T]:
        """Create a repository for a model whose counters are registered on this core."""
        from docsequence.core.modules.entity.repository import EntityRepository  # noqa: PLC0415

        repository = EntityRepository(self.database, collection, model_cls, self.registry)
        self._repositories.append(repository)
        return repository

    @asynccontextmanager
    async def lifespan(self) -> AsyncGenerator[None]:
        """Manage lifecycle - startup and shutdown."""
        await self.on_start()
        try:
            yield
        finally:
            await self.on_stop()

    async def on_start(self) -> None:
        """Prepare the counter store and repository indexes."""
        await self.store.on_start()
        for repository in self._repositories:
            await repository.on_start()
        logger.debug("core_started", counters_collection=self.config.counters_collection)

    async def on_stop(self) -> None:
        """Close MongoDB connection."""
        await self.mongo_client.aclose()
