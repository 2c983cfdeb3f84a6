import json
from collections.abc import Mapping
from typing import Any

from docsequence.core.modules.counter.models import CounterBinding
from docsequence.errors import ConfigurationError

KEY_SEPARATOR = ":"


def _encode(value: Any) -> str:
    return json.dumps(value, default=_canonical, separators=(",", ":"), ensure_ascii=False, sort_keys=True)


def _canonical(value: Any) -> Any:
    # Sets iterate in hash order, which differs between processes
    if isinstance(value, set | frozenset):
        return sorted(value, key=_encode)
    return str(value)


def encode_reference_values(values: list[Any]) -> str:
    """Canonical encoding of reference values, stable across processes.

    JSON quoting keeps values containing the separator apart, e.g.
    ["a:b", "c"] and ["a", "b:c"] encode differently. Mapping keys and set
    members are sorted, so equal values always encode the same way.
    """
    return _encode(values)


class CounterKeyBuilder:
    """Derives the counter identifier scoping an allocation."""

    def scope(self, binding: CounterBinding, snapshot: Mapping[str, Any]) -> str | None:
        """Encoded reference values of the entity, None for unscoped bindings.

        Raises:
            ConfigurationError: If the inc field or a reference field is not
                part of the entity.
        """
        if binding.resolved_inc_field not in snapshot:
            raise ConfigurationError(f"Field '{binding.resolved_inc_field}' not found on '{binding.model_name}'")
        if not binding.reference_fields:
            return None

        missing = [name for name in binding.reference_fields if name not in snapshot]
        if missing:
            raise ConfigurationError(f"Reference fields {missing} not found on '{binding.model_name}'")
        return encode_reference_values([snapshot[name] for name in binding.reference_fields])

    def build(self, binding: CounterBinding, snapshot: Mapping[str, Any]) -> str:
        """Return the counter_id for a binding and the entity's current values.

        Entities sharing every reference value share a counter_id; entities
        differing in any reference value get distinct ones.
        """
        return self.compose(binding, self.scope(binding, snapshot))

    @staticmethod
    def compose(binding: CounterBinding, scope: str | None) -> str:
        if scope is None:
            return binding.resolved_counter_name
        return f"{binding.resolved_counter_name}{KEY_SEPARATOR}{scope}"
