"""
AuditLedger -- system-wide append-only audit log.

Responsibility:
    Appends audit entries for administrative and bulk actions and lists
    them newest first.  Per-expense status changes are NOT recorded here;
    they live in the expense's own history.

Architecture position:
    Kernel > Services -- imperative shell, called by ApprovalService,
    ReferenceDataService and BackupService.

Invariants enforced:
    - Append-only: rows are never modified or deleted (ORM listeners on
      AuditLogModel).
    - seq comes from SequenceService, so listing order is stable even when
      two entries share a timestamp.

Failure modes:
    - AuditAppendError when the insert fails and the entry is ``fatal``
      (administrative operations).  Non-fatal appends (automated system
      actions) log ``audit_append_failed`` and return None.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from expense_kernel.domain.actors import Actor
from expense_kernel.domain.clock import Clock, SystemClock
from expense_kernel.domain.dtos import AuditLogItem
from expense_kernel.exceptions import AuditAppendError
from expense_kernel.logging_config import get_logger
from expense_kernel.models.audit_log import AuditAction, AuditLogModel
from expense_kernel.services.sequence_service import SequenceService

logger = get_logger("services.audit_ledger")


class AuditLedger:
    """
    Appends to and reads the audit log.

    Contract:
        ``append`` flushes within the caller's transaction, inside its own
        savepoint so a failed append never poisons the caller's unit of
        work.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock if clock is not None else SystemClock()
        self._sequence = SequenceService(session)

    def append(
        self,
        actor: Actor,
        action: AuditAction | str,
        details: str,
        payload: dict[str, Any] | None = None,
        fatal: bool = True,
    ) -> AuditLogItem | None:
        """
        Record one audit entry.

        Args:
            actor: Who performed the action.
            action: Audit action label.
            details: Human-readable summary, e.g. ``Rejected 2 expense(s)``.
            payload: Structured context (ids, counts).
            fatal: Raise on failure instead of logging a warning.

        Raises:
            AuditAppendError: if the append fails and ``fatal`` is set.
        """
        label = action.value if isinstance(action, AuditAction) else action
        try:
            with self._session.begin_nested():
                seq = self._sequence.next_value(SequenceService.AUDIT_LOG)
                entry = AuditLogModel(
                    seq=seq,
                    timestamp=self._clock.now(),
                    actor_id=actor.id,
                    actor_name=actor.display_name,
                    action=label,
                    details=details,
                    payload=payload or {},
                )
                self._session.add(entry)
                self._session.flush()
        except SQLAlchemyError as exc:
            if fatal:
                logger.error(
                    "audit_append_failed",
                    extra={"action": label, "error": str(exc)},
                )
                raise AuditAppendError(label, str(exc)) from exc
            logger.warning(
                "audit_append_failed",
                extra={"action": label, "error": str(exc)},
            )
            return None

        logger.info(
            "audit_entry_appended",
            extra={"seq": seq, "action": label, "actor_id": actor.id},
        )
        return entry.to_dto()

    def list_entries(self, limit: int | None = None) -> list[AuditLogItem]:
        """Audit entries, newest first."""
        stmt = select(AuditLogModel).order_by(AuditLogModel.seq.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        return [m.to_dto() for m in self._session.scalars(stmt)]

    def count(self) -> int:
        return self._session.scalar(
            select(func.count()).select_from(AuditLogModel)
        ) or 0
