from typing import Any, Self
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pymongo.asynchronous.cursor import AsyncCursor

PRIMARY_FIELD = "id"  # Stored as _id in MongoDB


class SequencedModel(BaseModel):
    """Base for entities persisted through an EntityRepository.

    The primary identifier stays None until the entity is first saved. It is
    either allocated by a counter bound to the primary field or set to a fresh
    UUID by the repository.
    """

    id: int | UUID | None = Field(default=None, alias="_id", serialization_alias="id")

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
        validate_assignment=True,
    )

    @property
    def is_new(self) -> bool:
        """Whether the entity has no primary identifier yet."""
        return self.id is None

    def snapshot(self) -> dict[str, Any]:
        """Current field values keyed by field name."""
        return self.model_dump()

    def to_mongo(self) -> dict[str, Any]:
        """Convert the model to a dictionary for MongoDB storage with _id field."""
        data = self.model_dump()
        if "id" in data:
            data["_id"] = data.pop("id")  # Rename id → _id for MongoDB
        return data

    @classmethod
    async def list_cursor(cls, cursor: AsyncCursor[dict[str, Any]]) -> list[Self]:
        """Iterate over an AsyncCursor and return a list of model instances."""
        return [cls.model_validate(item) async for item in cursor]


def mongo_field(field: str) -> str:
    """Document key for a model field name."""
    return "_id" if field == PRIMARY_FIELD else field
