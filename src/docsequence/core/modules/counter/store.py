import asyncio
from abc import ABC, abstractmethod
from typing import Any

import structlog
from pydantic import ValidationError
from pymongo import ReturnDocument
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.errors import DuplicateKeyError, PyMongoError

from docsequence.core.modules.counter.models import CounterRecord
from docsequence.errors import StorageInvariantViolation, StorageUnavailable

logger = structlog.get_logger(__name__)


class CounterStore(ABC):
    """Persistence of counter records with an atomic upsert-and-increment."""

    async def on_start(self) -> None:
        """Prepare the store on startup."""

    @abstractmethod
    async def find_and_increment(
        self, counter_id: str, *, counter_name: str | None = None, scope: str | None = None
    ) -> CounterRecord:
        """Atomically increment the counter, creating it at 0 first if absent, and return the new record."""

    @abstractmethod
    async def get(self, counter_id: str) -> CounterRecord | None:
        """Get the counter record without incrementing."""


def parse_record(doc: dict[str, Any] | None, counter_id: str) -> CounterRecord:
    """Validate a stored counter document."""
    if doc is None:
        raise StorageInvariantViolation(f"Counter store returned no record for '{counter_id}'")
    try:
        return CounterRecord.model_validate(doc)
    except ValidationError as e:
        raise StorageInvariantViolation(f"Malformed counter record for '{counter_id}': {e}") from e


class MongoCounterStore(CounterStore):
    """Counter records in a MongoDB collection, one document per counter."""

    def __init__(self, database: AsyncDatabase[dict[str, Any]], collection: str = "counters", retries: int = 3) -> None:
        self._collection = database.get_collection(collection)
        self._retries = max(retries, 1)

    async def on_start(self) -> None:
        """Create indexes on startup."""
        try:
            await self._collection.create_index([("counter_id", 1)], unique=True)
        except PyMongoError as e:
            raise StorageUnavailable(f"Cannot create counter index: {e}") from e

    async def find_and_increment(
        self, counter_id: str, *, counter_name: str | None = None, scope: str | None = None
    ) -> CounterRecord:
        """Atomically increment and return the counter record.

        Two upserts creating the same counter concurrently can both miss the
        record; the unique index rejects one of them with DuplicateKeyError.
        The rejected call repeats the update, which then matches the record
        created by the winner.
        """
        for attempt in range(1, self._retries + 1):
            try:
                doc = await self._collection.find_one_and_update(
                    {"counter_id": counter_id},
                    {
                        "$inc": {"seq": 1},
                        "$setOnInsert": {"counter_name": counter_name, "scope": scope},
                    },
                    upsert=True,
                    return_document=ReturnDocument.AFTER,
                )
            except DuplicateKeyError:
                logger.debug("counter_upsert_conflict", counter_id=counter_id, attempt=attempt)
                continue
            except PyMongoError as e:
                raise StorageUnavailable(f"Cannot increment counter '{counter_id}': {e}") from e
            return parse_record(doc, counter_id)

        raise StorageUnavailable(f"Cannot increment counter '{counter_id}': upsert conflict persisted")

    async def get(self, counter_id: str) -> CounterRecord | None:
        try:
            doc = await self._collection.find_one({"counter_id": counter_id})
        except PyMongoError as e:
            raise StorageUnavailable(f"Cannot read counter '{counter_id}': {e}") from e
        if doc is None:
            return None
        return parse_record(doc, counter_id)


class MemoryCounterStore(CounterStore):
    """Counter records held in process memory.

    Atomic only among tasks of one event loop; counters are lost when the
    process exits.
    """

    def __init__(self) -> None:
        self._records: dict[str, CounterRecord] = {}
        self._lock = asyncio.Lock()

    async def find_and_increment(
        self, counter_id: str, *, counter_name: str | None = None, scope: str | None = None
    ) -> CounterRecord:
        async with self._lock:
            record = self._records.get(counter_id)
            if record is None:
                record = CounterRecord(counter_id=counter_id, counter_name=counter_name, scope=scope)
            await asyncio.sleep(0)  # Yield like a store round trip
            updated = record.model_copy(update={"seq": record.seq + 1})
            self._records[counter_id] = updated
            return updated.model_copy()

    async def get(self, counter_id: str) -> CounterRecord | None:
        record = self._records.get(counter_id)
        return record.model_copy() if record is not None else None
