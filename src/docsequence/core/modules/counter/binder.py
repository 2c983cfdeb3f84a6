import structlog

from docsequence.core.db import SequencedModel
from docsequence.core.modules.counter.allocator import SequenceAllocator
from docsequence.core.modules.counter.keys import CounterKeyBuilder
from docsequence.core.modules.counter.models import CounterBinding

logger = structlog.get_logger(__name__)


class LifecycleBinder:
    """Decides when a binding allocates and writes numbers into entities.

    New entities get a number on their first save when hooks are enabled.
    Updates never allocate. Manual allocation is always available.
    """

    def __init__(self, binding: CounterBinding, key_builder: CounterKeyBuilder, allocator: SequenceAllocator) -> None:
        self.binding = binding
        self._key_builder = key_builder
        self._allocator = allocator

    @property
    def counter_name(self) -> str:
        return self.binding.resolved_counter_name

    @property
    def inc_field(self) -> str:
        return self.binding.resolved_inc_field

    async def before_save(self, entity: SequencedModel, is_new: bool) -> int | None:
        """Allocate a number for an entity about to be saved.

        Returns the number to write into the inc field, or None when this
        save must not allocate. The entity is not modified.
        """
        if not is_new:
            return None
        if not self.binding.hooks_enabled:
            logger.debug("allocation_skipped", counter_name=self.counter_name, reason="hooks_disabled")
            return None
        return await self.allocate(entity)

    async def allocate(self, entity: SequencedModel) -> int:
        """Allocate the next number for the entity's counter, regardless of its state."""
        snapshot = entity.snapshot()
        scope = self._key_builder.scope(self.binding, snapshot)
        counter_id = self._key_builder.compose(self.binding, scope)
        return await self._allocator.allocate_next(counter_id, counter_name=self.counter_name, scope=scope)

    def apply(self, entity: SequencedModel, value: int) -> None:
        setattr(entity, self.inc_field, value)

    async def current_value(self, entity: SequencedModel) -> int:
        """Last number handed out by the counter the entity currently maps to."""
        counter_id = self._key_builder.build(self.binding, entity.snapshot())
        return await self._allocator.current_value(counter_id)
