"""Counter records and the bindings that attach counters to entity fields."""

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from docsequence.core.db import PRIMARY_FIELD
from docsequence.errors import ConfigurationError


class CounterRecord(BaseModel):
    """Persisted state of one independent sequence.

    Indexed on counter_id - unique.
    """

    counter_id: str
    seq: int = Field(0, ge=0)  # Last value handed out; next number will be seq + 1
    counter_name: str | None = None  # Base name the counter_id was derived from
    scope: str | None = None  # Encoded reference values, None for unscoped counters


class CounterBinding(BaseModel):
    """Configuration attaching a counter to a field of an entity model."""

    model_name: str
    inc_field: str | None = None  # Defaults to the primary identifier
    reference_fields: list[str] = Field(default_factory=list)  # Field names whose values scope the counter
    counter_name: str | None = None  # Defaults to "{model_name}_{inc_field}"
    hooks_enabled: bool = True  # False: only manual allocation assigns values

    model_config = ConfigDict(protected_namespaces=())

    @field_validator("model_name")
    @classmethod
    def _check_model_name(cls, value: str) -> str:
        if not value.strip():
            raise ConfigurationError("Binding model_name must not be blank")
        return value

    @field_validator("inc_field", "counter_name")
    @classmethod
    def _check_optional_name(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            raise ConfigurationError("Binding names must not be blank")
        return value

    @field_validator("reference_fields")
    @classmethod
    def _check_reference_fields(cls, value: list[str]) -> list[str]:
        if len(set(value)) != len(value):
            raise ConfigurationError(f"Duplicate reference fields: {value}")
        if any(not name.strip() for name in value):
            raise ConfigurationError("Reference field names must not be blank")
        return value

    @model_validator(mode="after")
    def _check_scoped_counter_name(self) -> "CounterBinding":
        # A scoped counter needs a stable name shared by all its scopes
        if self.reference_fields and self.counter_name is None:
            raise ConfigurationError(f"Counter on '{self.model_name}' uses reference fields but has no counter_name")
        if self.resolved_inc_field in self.reference_fields:
            raise ConfigurationError(f"Field '{self.resolved_inc_field}' cannot reference itself")
        return self

    @property
    def resolved_inc_field(self) -> str:
        return self.inc_field or PRIMARY_FIELD

    @property
    def resolved_counter_name(self) -> str:
        return self.counter_name or f"{self.model_name}_{self.resolved_inc_field}"
