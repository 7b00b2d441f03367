"""
expense_kernel.services.approval_service -- Approval state machine.

Responsibility:
    Applies status transitions to expenses (single and bulk) and flips the
    high-priority flag.  Transition rules come from the pure
    ``domain.workflow`` table.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - Every status change appends exactly one history entry in the same
      flush, so status and last history action never disagree.
    - APPROVED and REJECTED are terminal.  PENDING_VERIFICATION ->
      APPROVED is never applied here (auto-approval happens only at
      creation).
    - Optimistic concurrency: each write is checked against the row's
      version.  A bulk update checks each item in its own savepoint, so one
      conflict does not undo the others.
    - A bulk update writes exactly one audit entry; a priority flip writes
      exactly one audit entry and no history.

Failure modes:
    - InvalidTransitionError: transition not allowed for the actor's role.
    - ConcurrentModificationError: version mismatch or stale write.
    - ExpenseNotFoundError: toggle_priority on an unknown id.
      (update_status on an unknown id is a logged no-op.)
    - AuditAppendError: bulk/priority audit entry could not be written.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable
from uuid import UUID

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from expense_kernel.domain.actors import Actor
from expense_kernel.domain.clock import Clock, SystemClock
from expense_kernel.domain.dtos import AuditLogItem, Expense
from expense_kernel.domain.policy import DEFAULT_POLICY, PolicySettings
from expense_kernel.domain.workflow import (
    AUTO_APPROVAL_TRANSITION,
    TARGET_ACTIONS,
    TERMINAL_STATUSES,
    ExpenseStatus,
    HistoryAction,
    find_transition,
)
from expense_kernel.exceptions import (
    ConcurrentModificationError,
    ExpenseNotFoundError,
    InvalidTransitionError,
)
from expense_kernel.logging_config import LogContext, get_logger
from expense_kernel.models.audit_log import AuditAction
from expense_kernel.models.expense import ExpenseModel
from expense_kernel.models.reference import CategoryModel, SubcategoryModel
from expense_kernel.services.audit_ledger import AuditLedger
from expense_kernel.services.base import BaseService
from expense_kernel.services.notifications import NotificationDispatcher

logger = get_logger("services.approval")


@dataclass(frozen=True)
class BulkTransitionResult:
    """Outcome of ``bulk_update_status``.

    ``failed`` pairs each skipped id with the error code that stopped it
    (``INVALID_TRANSITION`` or ``CONCURRENT_MODIFICATION``).
    """

    new_status: ExpenseStatus
    updated: tuple[Expense, ...] = ()
    not_found: tuple[UUID | str, ...] = ()
    failed: tuple[tuple[UUID, str], ...] = ()
    audit_entry: AuditLogItem | None = None

    @property
    def updated_count(self) -> int:
        return len(self.updated)

    @property
    def updated_ids(self) -> tuple[UUID, ...]:
        return tuple(e.id for e in self.updated)


def _as_uuid(value: UUID | str) -> UUID | None:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _unique_ids(expense_ids: Iterable[UUID | str]) -> list[UUID | str]:
    """Distinct ids in first-seen order. A UUID and its string form count once."""
    seen: dict[UUID | str, None] = {}
    for raw in expense_ids:
        key = _as_uuid(raw)
        seen.setdefault(key if key is not None else raw, None)
    return list(seen)


class ApprovalService(BaseService[ExpenseModel]):
    """
    Status transitions and priority flags.

    Contract:
        Flushes, never commits.  Notifications go out only after the
        transition's flush succeeded; their failures never surface.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        notifications: NotificationDispatcher | None = None,
        policy: PolicySettings = DEFAULT_POLICY,
    ):
        super().__init__(session)
        self._clock = clock if clock is not None else SystemClock()
        self._notifications = (
            notifications if notifications is not None else NotificationDispatcher(session)
        )
        self._policy = policy
        self._audit = AuditLedger(session, self._clock)

    # =========================================================================
    # Internals
    # =========================================================================

    def _load(self, expense_id: UUID | str) -> ExpenseModel | None:
        key = _as_uuid(expense_id)
        if key is None:
            return None
        return self.session.get(ExpenseModel, key)

    def _resolve_action(
        self,
        model: ExpenseModel,
        new_status: ExpenseStatus,
        actor: Actor,
    ) -> HistoryAction:
        current = ExpenseStatus(model.status)
        rule = find_transition(actor.role, current, new_status)
        if rule is not None:
            return rule.action

        never_allowed = (
            current in TERMINAL_STATUSES
            or new_status == current
            or new_status not in TARGET_ACTIONS
            or (current, new_status) == (
                AUTO_APPROVAL_TRANSITION.from_status,
                AUTO_APPROVAL_TRANSITION.to_status,
            )
        )
        if self._policy.enforce_transition_table or never_allowed:
            raise InvalidTransitionError(
                str(model.id), current.value, new_status.value, actor.role.value,
            )
        # Permissive mode: the caller already restricted what it offered.
        logger.warning(
            "transition_outside_role_table",
            extra={
                "from_status": current.value,
                "to_status": new_status.value,
                "role": actor.role.value,
            },
        )
        return TARGET_ACTIONS[new_status]

    def _apply_transition(
        self,
        model: ExpenseModel,
        new_status: ExpenseStatus,
        actor: Actor,
        comment: str | None,
        expected_version: int | None,
    ) -> Expense:
        """Guard, mutate and flush inside a savepoint."""
        if expected_version is not None and model.version != expected_version:
            raise ConcurrentModificationError(
                "Expense", str(model.id), expected_version, model.version,
            )
        action = self._resolve_action(model, new_status, actor)
        previous = model.status

        try:
            with self.session.begin_nested():
                model.status = new_status.value
                model.append_history(
                    actor.id,
                    actor.display_name,
                    action.value,
                    self._clock.now(),
                    comment=comment,
                )
                self.session.flush()
        except StaleDataError as exc:
            raise ConcurrentModificationError(
                "Expense", str(model.id), expected_version,
            ) from exc

        expense = model.to_dto()
        logger.info(
            "expense_status_updated",
            extra={
                "expense_id": str(expense.id),
                "reference_number": expense.reference_number,
                "from_status": previous,
                "to_status": expense.status.value,
                "history_action": action.value,
                "version": expense.version,
            },
        )
        return expense

    def _category_names(self, expense: Expense) -> tuple[str, str | None]:
        category = self.session.get(CategoryModel, expense.category_id)
        category_name = category.name if category is not None else expense.category_id
        subcategory_name = None
        if expense.subcategory_id:
            sub = self.session.get(SubcategoryModel, expense.subcategory_id)
            subcategory_name = sub.name if sub is not None else expense.subcategory_id
        return category_name, subcategory_name

    def _notify_status_change(self, expense: Expense, comment: str | None) -> None:
        category_name, subcategory_name = self._category_names(expense)
        self._notifications.status_changed(
            expense, category_name, subcategory_name, comment=comment,
        )

    # =========================================================================
    # Operations
    # =========================================================================

    def update_status(
        self,
        expense_id: UUID | str,
        new_status: ExpenseStatus | str,
        actor: Actor,
        comment: str | None = None,
        expected_version: int | None = None,
    ) -> Expense | None:
        """
        Move one expense to ``new_status``.

        Returns:
            The updated expense, or None if no expense has that id (the
            expense may have been removed concurrently; this is not an
            error).

        Raises:
            InvalidTransitionError: transition not allowed.
            ConcurrentModificationError: ``expected_version`` does not
                match, or another transaction updated the row first.
        """
        new_status = ExpenseStatus(new_status)
        with LogContext.bind(actor_id=actor.id, expense_id=str(expense_id)):
            model = self._load(expense_id)
            if model is None:
                logger.info(
                    "expense_status_update_skipped",
                    extra={"reason": "not_found", "to_status": new_status.value},
                )
                return None
            expense = self._apply_transition(
                model, new_status, actor, comment, expected_version,
            )
        self._notify_status_change(expense, comment)
        return expense

    def bulk_update_status(
        self,
        expense_ids: Iterable[UUID | str],
        new_status: ExpenseStatus | str,
        actor: Actor,
        comment: str | None = None,
    ) -> BulkTransitionResult:
        """
        Apply ``update_status`` semantics to each id independently.

        Missing ids are skipped.  Ids whose transition is invalid or hits
        a concurrent write are skipped and reported in ``failed``; the
        others are still updated.  Exactly one audit entry summarises the
        batch, e.g. ``Rejected 2 expense(s)``.

        Raises:
            AuditAppendError: the summary entry could not be written.
        """
        new_status = ExpenseStatus(new_status)
        updated: list[Expense] = []
        not_found: list[UUID | str] = []
        failed: list[tuple[UUID, str]] = []

        with LogContext.bind(actor_id=actor.id):
            for expense_id in _unique_ids(expense_ids):
                model = self._load(expense_id)
                if model is None:
                    not_found.append(expense_id)
                    continue
                try:
                    expense = self._apply_transition(
                        model, new_status, actor, comment, None,
                    )
                except (InvalidTransitionError, ConcurrentModificationError) as exc:
                    logger.warning(
                        "bulk_item_skipped",
                        extra={"expense_id": str(model.id), "error_code": exc.code},
                    )
                    failed.append((model.id, exc.code))
                    continue
                updated.append(expense)

            action = TARGET_ACTIONS.get(new_status)
            verb = action.value if action is not None else new_status.label
            audit_entry = self._audit.append(
                actor,
                AuditAction.BULK_STATUS_UPDATE,
                f"{verb} {len(updated)} expense(s)",
                payload={
                    "to_status": new_status.value,
                    "updated": [str(e.id) for e in updated],
                    "not_found": [str(i) for i in not_found],
                    "failed": [str(i) for i, _ in failed],
                },
            )
            logger.info(
                "bulk_status_update_completed",
                extra={
                    "to_status": new_status.value,
                    "updated_count": len(updated),
                    "not_found_count": len(not_found),
                    "failed_count": len(failed),
                },
            )

        for expense in updated:
            self._notify_status_change(expense, comment)

        return BulkTransitionResult(
            new_status=new_status,
            updated=tuple(updated),
            not_found=tuple(not_found),
            failed=tuple(failed),
            audit_entry=audit_entry,
        )

    def toggle_priority(
        self,
        expense_id: UUID | str,
        actor: Actor,
        expected_version: int | None = None,
    ) -> Expense:
        """
        Flip ``is_high_priority``.  Allowed in any status.

        Writes one audit entry ("Marked as High Priority" or "Removed High
        Priority") and no history entry.

        Raises:
            ExpenseNotFoundError: unknown id.
            ConcurrentModificationError: stale version.
        """
        model = self._load(expense_id)
        if model is None:
            raise ExpenseNotFoundError(str(expense_id))
        if expected_version is not None and model.version != expected_version:
            raise ConcurrentModificationError(
                "Expense", str(model.id), expected_version, model.version,
            )

        try:
            with self.session.begin_nested():
                model.is_high_priority = not model.is_high_priority
                self.session.flush()
        except StaleDataError as exc:
            raise ConcurrentModificationError(
                "Expense", str(model.id), expected_version,
            ) from exc

        expense = model.to_dto()
        if expense.is_high_priority:
            action = AuditAction.PRIORITY_MARKED
            details = f"Marked {expense.reference_number} as high priority"
        else:
            action = AuditAction.PRIORITY_REMOVED
            details = f"Removed high priority from {expense.reference_number}"
        self._audit.append(
            actor, action, details, payload={"expense_id": str(expense.id)},
        )
        logger.info(
            "expense_priority_toggled",
            extra={
                "expense_id": str(expense.id),
                "reference_number": expense.reference_number,
                "is_high_priority": expense.is_high_priority,
            },
        )
        return expense
