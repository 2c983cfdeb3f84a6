import structlog

from docsequence.core.modules.counter.store import CounterStore
from docsequence.errors import StorageInvariantViolation

logger = structlog.get_logger(__name__)


class SequenceAllocator:
    """Hands out the next number of a counter.

    Every call is a single round trip to the store; nothing is cached between
    calls. A value returned here is consumed even if the caller later fails to
    use it, leaving a permanent gap in the sequence.
    """

    def __init__(self, store: CounterStore) -> None:
        self._store = store

    async def allocate_next(self, counter_id: str, *, counter_name: str | None = None, scope: str | None = None) -> int:
        """Atomically increment and return the next number for a counter.

        Raises:
            StorageUnavailable: If the store cannot complete the increment.
            StorageInvariantViolation: If the store returns a value that cannot
                follow a previous allocation.
        """
        record = await self._store.find_and_increment(counter_id, counter_name=counter_name, scope=scope)
        if record.counter_id != counter_id:
            raise StorageInvariantViolation(f"Counter store returned '{record.counter_id}' for '{counter_id}'")
        # The counter starts at 0, so an incremented value is at least 1
        if record.seq < 1:
            raise StorageInvariantViolation(f"Counter '{counter_id}' went back to {record.seq}")

        logger.debug("allocated_sequence", counter_id=counter_id, seq=record.seq)
        return record.seq

    async def current_value(self, counter_id: str) -> int:
        """Get the last allocated number without incrementing, 0 if never allocated."""
        record = await self._store.get(counter_id)
        if record is None:
            return 0
        return record.seq
