"""
SequenceService -- gap-tolerant, strictly increasing counters.

The audit log numbers its entries from the ``audit_log`` counter.  The
counter row is read with ``FOR UPDATE`` (a no-op on SQLite, where the
database-wide write lock serialises writers instead), incremented and
flushed; the new value becomes visible to others when the caller commits,
and a rollback hands it back.

Aggregate ``MAX(seq) + 1`` is never used: two writers could read the same
maximum.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from expense_kernel.logging_config import get_logger
from expense_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """Named counters. Flushes only; the caller owns the transaction."""

    AUDIT_LOG = "audit_log"

    def __init__(self, session: Session):
        self._session = session

    def _lock(self, sequence_name: str) -> SequenceCounter | None:
        stmt = (
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self._session.scalars(stmt).one_or_none()

    def _lock_or_create(self, sequence_name: str) -> SequenceCounter:
        counter = self._lock(sequence_name)
        if counter is not None:
            return counter

        # Two first writers may both try to create the row; the loser
        # rolls back its savepoint and locks the winner's row.
        savepoint = self._session.begin_nested()
        try:
            counter = SequenceCounter(name=sequence_name, current_value=0)
            self._session.add(counter)
            self._session.flush()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("sequence_counter_created_concurrently",
                         extra={"sequence_name": sequence_name})
            counter = self._lock(sequence_name)
            if counter is None:
                raise
        else:
            savepoint.commit()
        return counter

    def next_value(self, sequence_name: str) -> int:
        """Return a value greater than every value previously issued for the name."""
        counter = self._lock_or_create(sequence_name)
        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def reset(self, sequence_name: str, value: int = 0) -> None:
        """Move the counter so the next allocation is ``value + 1`` (backup restore)."""
        counter = self._lock_or_create(sequence_name)
        counter.current_value = value
        self._session.flush()
        logger.info(
            "sequence_reset", extra={"sequence_name": sequence_name, "value": value},
        )
