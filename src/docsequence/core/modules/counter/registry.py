from collections.abc import Sequence

import structlog
from pydantic import TypeAdapter, ValidationError

from docsequence.core.db import SequencedModel
from docsequence.core.modules.counter.allocator import SequenceAllocator
from docsequence.core.modules.counter.binder import LifecycleBinder
from docsequence.core.modules.counter.keys import CounterKeyBuilder
from docsequence.core.modules.counter.models import CounterBinding
from docsequence.errors import ConfigurationError

logger = structlog.get_logger(__name__)


class SequenceRegistry:
    """Explicit registration of counter bindings per entity model."""

    def __init__(self, allocator: SequenceAllocator, key_builder: CounterKeyBuilder | None = None) -> None:
        self._allocator = allocator
        self._key_builder = key_builder or CounterKeyBuilder()
        self._binders: dict[type[SequencedModel], list[LifecycleBinder]] = {}

    def register(
        self,
        model_cls: type[SequencedModel],
        *,
        inc_field: str | None = None,
        reference_fields: Sequence[str] = (),
        counter_name: str | None = None,
        hooks_enabled: bool = True,
        model_name: str | None = None,
    ) -> LifecycleBinder:
        """Attach a counter to a field of an entity model.

        Raises:
            ConfigurationError: If the binding is malformed, names fields the
                model does not declare, or clashes with a registered counter.
        """
        try:
            binding = CounterBinding(
                model_name=model_name or model_cls.__name__,
                inc_field=inc_field,
                reference_fields=list(reference_fields),
                counter_name=counter_name,
                hooks_enabled=hooks_enabled,
            )
        except ValidationError as e:
            raise ConfigurationError(f"Invalid counter binding for '{model_cls.__name__}': {e}") from e

        self._check_fields(model_cls, binding)
        self._check_conflicts(model_cls, binding)

        binder = LifecycleBinder(binding, self._key_builder, self._allocator)
        self._binders.setdefault(model_cls, []).append(binder)
        logger.debug(
            "counter_registered",
            model=binding.model_name,
            counter_name=binder.counter_name,
            inc_field=binder.inc_field,
            reference_fields=binding.reference_fields,
            hooks_enabled=binding.hooks_enabled,
        )
        return binder

    def binders_for(self, model_cls: type[SequencedModel]) -> list[LifecycleBinder]:
        """Binders of a model in registration order."""
        return list(self._binders.get(model_cls, []))

    def get_binder(self, model_cls: type[SequencedModel], name: str) -> LifecycleBinder:
        """Get a model's binder by counter name or inc field.

        A counter name match wins over an inc field match.
        """
        binders = self._binders.get(model_cls, [])
        for binder in binders:
            if binder.counter_name == name:
                return binder
        for binder in binders:
            if binder.inc_field == name:
                return binder
        raise ConfigurationError(f"No counter '{name}' registered on '{model_cls.__name__}'")

    def _check_fields(self, model_cls: type[SequencedModel], binding: CounterBinding) -> None:
        declared = model_cls.model_fields
        if binding.resolved_inc_field not in declared:
            raise ConfigurationError(f"Field '{binding.resolved_inc_field}' not declared on '{model_cls.__name__}'")
        annotation = declared[binding.resolved_inc_field].annotation
        try:
            TypeAdapter(annotation).validate_python(1)
        except ValidationError as e:
            raise ConfigurationError(
                f"Field '{binding.resolved_inc_field}' on '{model_cls.__name__}' cannot hold sequence numbers"
            ) from e
        missing = [name for name in binding.reference_fields if name not in declared]
        if missing:
            raise ConfigurationError(f"Reference fields {missing} not declared on '{model_cls.__name__}'")

    def _check_conflicts(self, model_cls: type[SequencedModel], binding: CounterBinding) -> None:
        for binders in self._binders.values():
            for binder in binders:
                if binder.counter_name == binding.resolved_counter_name:
                    raise ConfigurationError(f"Counter already defined: '{binding.resolved_counter_name}'")

        # Two automatic counters on one field would overwrite each other on every insert
        if binding.hooks_enabled:
            for binder in self._binders.get(model_cls, []):
                if binder.binding.hooks_enabled and binder.inc_field == binding.resolved_inc_field:
                    raise ConfigurationError(
                        f"Field '{binding.resolved_inc_field}' on '{model_cls.__name__}' already has an automatic counter"
                    )
