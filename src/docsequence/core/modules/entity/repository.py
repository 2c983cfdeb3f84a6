from typing import Any, Generic, TypeVar
from uuid import uuid4

import structlog
from pymongo.asynchronous.database import AsyncDatabase

from docsequence.core.core import Service
from docsequence.core.db import PRIMARY_FIELD, SequencedModel, mongo_field
from docsequence.core.modules.counter.binder import LifecycleBinder
from docsequence.core.modules.counter.registry import SequenceRegistry
from docsequence.errors import ConfigurationError, NotFoundError

logger = structlog.get_logger(__name__)

T = TypeVar("T", bound=SequencedModel)


class EntityRepository(Service, Generic[T]):
    """Persists entities of one model and drives their counters.

    An entity without a primary identifier is new: its first save runs the
    automatic counters. Saving an entity that already has an identifier is an
    update and never allocates.
    """

    def __init__(
        self, database: AsyncDatabase[dict[str, Any]], collection: str, model_cls: type[T], registry: SequenceRegistry
    ) -> None:
        super().__init__(database)
        self._collection = database.get_collection(collection)
        self._model_cls = model_cls
        self._registry = registry

    async def on_start(self) -> None:
        """Create indexes for lookups by automatic counter values."""
        for binder in self._registry.binders_for(self._model_cls):
            if not binder.binding.hooks_enabled or binder.inc_field == PRIMARY_FIELD:
                continue
            keys = [(name, 1) for name in binder.binding.reference_fields] + [(binder.inc_field, 1)]
            await self._collection.create_index(keys)

    async def get(self, entity_id: Any) -> T:
        """Get entity by primary identifier."""
        doc = await self._collection.find_one({"_id": entity_id})
        if not doc:
            raise NotFoundError(f"{self._model_cls.__name__} not found: {entity_id}")
        return self._model_cls.model_validate(doc)

    async def find_one(self, query: dict[str, Any] | None = None) -> T | None:
        doc = await self._collection.find_one(query or {})
        if doc is None:
            return None
        return self._model_cls.model_validate(doc)

    async def find(self, query: dict[str, Any] | None = None) -> list[T]:
        return await self._model_cls.list_cursor(self._collection.find(query or {}))

    async def save(self, entity: T, *, is_new: bool | None = None) -> T:
        """Insert a new entity or replace an existing one.

        All automatic allocations must succeed before anything is written to
        the entity or the collection; a failed allocation fails the save.
        Numbers allocated for a save that fails afterwards are not reused.

        An entity is new when it has no primary identifier. Pass is_new=True
        to insert an entity whose identifier was chosen by the caller; without
        it such an entity is replaced and NotFoundError is raised if it was
        never stored.

        Raises:
            ConfigurationError: If a counter key cannot be built.
            StorageUnavailable: If the counter store is unreachable.
            StorageInvariantViolation: If the counter store returned a corrupt record.
            NotFoundError: If an existing entity is no longer in the collection.
        """
        return await self._save(entity, {}, entity.is_new if is_new is None else is_new)

    async def set_next(self, entity: T, name: str) -> T:
        """Allocate the next number of a counter into the entity and persist it right away.

        Works on new and persisted entities whether or not the counter
        allocates automatically. name is a counter name or an inc field.
        """
        binder = self._registry.get_binder(self._model_cls, name)
        if not entity.is_new and binder.inc_field == PRIMARY_FIELD:
            raise ConfigurationError(f"Cannot change the primary identifier of a saved {self._model_cls.__name__}")

        value = await binder.allocate(entity)
        if entity.is_new:
            return await self._save(entity, {binder: value}, True)

        result = await self._collection.update_one(
            {"_id": entity.id}, {"$set": {mongo_field(binder.inc_field): value}}
        )
        if result.matched_count == 0:
            raise NotFoundError(f"{self._model_cls.__name__} not found: {entity.id}")
        binder.apply(entity, value)
        logger.debug("manual_allocation", model=self._model_cls.__name__, counter_name=binder.counter_name, value=value)
        return entity

    async def _save(self, entity: T, assigned: dict[LifecycleBinder, int], is_new: bool) -> T:
        values = dict(assigned)
        # A manually assigned field is not overwritten by an automatic counter
        taken = {binder.inc_field for binder in assigned}
        for binder in self._registry.binders_for(self._model_cls):
            if binder in values or binder.inc_field in taken:
                continue
            value = await binder.before_save(entity, is_new)
            if value is not None:
                values[binder] = value

        previous = {binder.inc_field: getattr(entity, binder.inc_field) for binder in values}
        previous[PRIMARY_FIELD] = entity.id
        try:
            for binder, value in values.items():
                binder.apply(entity, value)
            if entity.id is None:
                entity.id = uuid4()

            if is_new:
                await self._collection.insert_one(entity.to_mongo())
            else:
                result = await self._collection.replace_one({"_id": entity.id}, entity.to_mongo())
                if result.matched_count == 0:
                    raise NotFoundError(f"{self._model_cls.__name__} not found: {entity.id}")
        except Exception:
            for field, value in previous.items():
                setattr(entity, field, value)
            raise

        logger.debug(
            "entity_saved",
            model=self._model_cls.__name__,
            entity_id=entity.id,
            is_new=is_new,
            allocated={binder.counter_name: value for binder, value in values.items()},
        )
        return entity
