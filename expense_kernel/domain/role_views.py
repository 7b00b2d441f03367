"""
Role-scoped queue views (``expense_kernel.domain.role_views``).

Responsibility
--------------
Pure read-side derivations over a collection of ``Expense`` DTOs: which
expenses a role sees, which transitions it may offer, the calendar-day
date filter, the queue sort order, and the bulk-selection set.

Architecture position
---------------------
**Kernel domain layer** -- pure.  ``selectors.expense_selector`` loads the
expenses and delegates here.

Role dispatch is by handler object, one per role, all satisfying the
``RoleView`` protocol.  ``view_for_role`` is the only place that maps a
``Role`` to its handler.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Iterable, Protocol, Sequence
from uuid import UUID

from expense_kernel.domain.actors import Actor, Role
from expense_kernel.domain.dtos import Expense
from expense_kernel.domain.workflow import ExpenseStatus, allowed_targets


class RoleView(Protocol):
    """Capability every role handler provides."""

    role: Role
    selection_enabled: bool

    def filter_queue(
        self, expenses: Iterable[Expense], user: Actor,
    ) -> list[Expense]:
        ...

    def allowed_transitions(self, status: ExpenseStatus) -> tuple[ExpenseStatus, ...]:
        ...


class _StatusQueueView:
    """Queue of every expense waiting in one status."""

    role: Role
    queue_status: ExpenseStatus
    selection_enabled = True

    def filter_queue(
        self, expenses: Iterable[Expense], user: Actor,
    ) -> list[Expense]:
        return [e for e in expenses if e.status == self.queue_status]

    def allowed_transitions(self, status: ExpenseStatus) -> tuple[ExpenseStatus, ...]:
        return allowed_targets(self.role, status)


class RequestorView:
    """A requestor sees only their own submissions and reviews nothing."""

    role = Role.REQUESTOR
    selection_enabled = False

    def filter_queue(
        self, expenses: Iterable[Expense], user: Actor,
    ) -> list[Expense]:
        return [e for e in expenses if e.requestor_id == user.id]

    def allowed_transitions(self, status: ExpenseStatus) -> tuple[ExpenseStatus, ...]:
        return ()


class VerifierView(_StatusQueueView):
    role = Role.VERIFIER
    queue_status = ExpenseStatus.PENDING_VERIFICATION


class ApproverView(_StatusQueueView):
    role = Role.APPROVER
    queue_status = ExpenseStatus.PENDING_APPROVAL


class AdminView:
    """Admins see every expense.  They administer, they do not review."""

    role = Role.ADMIN
    selection_enabled = False

    def filter_queue(
        self, expenses: Iterable[Expense], user: Actor,
    ) -> list[Expense]:
        return list(expenses)

    def allowed_transitions(self, status: ExpenseStatus) -> tuple[ExpenseStatus, ...]:
        return ()


_VIEWS: dict[Role, RoleView] = {
    Role.REQUESTOR: RequestorView(),
    Role.VERIFIER: VerifierView(),
    Role.APPROVER: ApproverView(),
    Role.ADMIN: AdminView(),
}


def view_for_role(role: Role) -> RoleView:
    """Return the queue handler for ``role``.

    Raises:
        ValueError: for roles without a queue (``Role.SYSTEM``).
    """
    try:
        return _VIEWS[role]
    except KeyError:
        raise ValueError(f"No queue view for role '{role.value}'") from None


# =========================================================================
# Filtering and ordering
# =========================================================================


class SortOrder(str, Enum):
    PRIORITY = "priority"
    DATE = "date"


@dataclass(frozen=True)
class QueueQuery:
    """
    Date range and sort applied on top of a role's queue.

    ``date_from`` / ``date_to`` are inclusive calendar days compared against
    the UTC day of ``submitted_at``; either may be None for an open end.
    """

    date_from: date | None = None
    date_to: date | None = None
    sort: SortOrder = SortOrder.PRIORITY

    def apply(self, expenses: Iterable[Expense]) -> list[Expense]:
        return sort_queue(
            filter_by_date(expenses, self.date_from, self.date_to),
            self.sort,
        )


def filter_by_date(
    expenses: Iterable[Expense],
    date_from: date | None = None,
    date_to: date | None = None,
) -> list[Expense]:
    """Keep expenses whose submission day lies in ``[date_from, date_to]``."""
    result = []
    for expense in expenses:
        day = expense.submitted_date
        if date_from is not None and day < date_from:
            continue
        if date_to is not None and day > date_to:
            continue
        result.append(expense)
    return result


def sort_queue(
    expenses: Iterable[Expense],
    order: SortOrder = SortOrder.PRIORITY,
) -> list[Expense]:
    """Newest first; with ``PRIORITY``, high-priority items lead.

    Both sorts are stable, so items submitted at the same instant keep
    their input order.
    """
    newest_first = sorted(expenses, key=lambda e: e.submitted_at, reverse=True)
    if order == SortOrder.DATE:
        return newest_first
    return (
        [e for e in newest_first if e.is_high_priority]
        + [e for e in newest_first if not e.is_high_priority]
    )


# =========================================================================
# Bulk selection
# =========================================================================


@dataclass
class QueueSelection:
    """Expense ids selected in a queue for a bulk action."""

    selected: set[UUID] = field(default_factory=set)

    def toggle(self, expense_id: UUID) -> None:
        if expense_id in self.selected:
            self.selected.discard(expense_id)
        else:
            self.selected.add(expense_id)

    def toggle_all(self, visible: Sequence[Expense]) -> None:
        """Select every visible expense, or clear if all are already selected.

        ``visible`` must be the currently filtered list, not the full
        collection.
        """
        if self.is_all_selected(visible):
            self.selected = set()
        else:
            self.selected = {e.id for e in visible}

    def prune(self, visible: Sequence[Expense]) -> None:
        """Drop selected ids that are no longer in ``visible``."""
        visible_ids = {e.id for e in visible}
        self.selected &= visible_ids

    def is_all_selected(self, visible: Sequence[Expense]) -> bool:
        visible_ids = {e.id for e in visible}
        return bool(visible_ids) and self.selected == visible_ids

    def ids(self) -> list[UUID]:
        return sorted(self.selected, key=str)
