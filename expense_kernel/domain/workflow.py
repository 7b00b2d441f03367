"""
Expense workflow state machine (``expense_kernel.domain.workflow``).

Responsibility
--------------
Pure definition of the expense lifecycle: the status enum, the role-gated
transition table, the history action label each transition produces, and
the status/last-action consistency check.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports from
``db/``, ``models/``, ``services/`` or ``selectors/``.

Invariants enforced
-------------------
* Only the transitions in ``ROLE_TRANSITIONS`` may be applied by a human
  actor.  ``APPROVED`` and ``REJECTED`` are terminal.
* ``PENDING_VERIFICATION -> APPROVED`` exists only as the creation-time
  auto-approval edge (``AUTO_APPROVAL_TRANSITION``) and is never offered to
  any role.
* ``STATUS_ACTIONS`` maps each status to the history actions that may end
  an expense's history while it is in that status.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from expense_kernel.domain.actors import Role


class ExpenseStatus(str, Enum):
    """Expense lifecycle states."""

    PENDING_VERIFICATION = "pending_verification"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def label(self) -> str:
        """Human-facing label, e.g. ``Pending Verification``."""
        return self.value.replace("_", " ").title()


TERMINAL_STATUSES: frozenset[ExpenseStatus] = frozenset({
    ExpenseStatus.APPROVED,
    ExpenseStatus.REJECTED,
})

INITIAL_STATUS = ExpenseStatus.PENDING_VERIFICATION


class HistoryAction(str, Enum):
    """History action labels written to an expense's history."""

    SUBMITTED = "Submitted"
    VERIFIED = "Verified"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    AUTO_APPROVED = "Auto-Approved"


@dataclass(frozen=True)
class TransitionRule:
    """One row of the role transition table."""

    role: Role
    from_status: ExpenseStatus
    to_status: ExpenseStatus
    action: HistoryAction


ROLE_TRANSITIONS: tuple[TransitionRule, ...] = (
    TransitionRule(
        Role.VERIFIER,
        ExpenseStatus.PENDING_VERIFICATION,
        ExpenseStatus.PENDING_APPROVAL,
        HistoryAction.VERIFIED,
    ),
    TransitionRule(
        Role.VERIFIER,
        ExpenseStatus.PENDING_VERIFICATION,
        ExpenseStatus.REJECTED,
        HistoryAction.REJECTED,
    ),
    TransitionRule(
        Role.APPROVER,
        ExpenseStatus.PENDING_APPROVAL,
        ExpenseStatus.APPROVED,
        HistoryAction.APPROVED,
    ),
    TransitionRule(
        Role.APPROVER,
        ExpenseStatus.PENDING_APPROVAL,
        ExpenseStatus.REJECTED,
        HistoryAction.REJECTED,
    ),
)

AUTO_APPROVAL_TRANSITION = TransitionRule(
    Role.SYSTEM,
    ExpenseStatus.PENDING_VERIFICATION,
    ExpenseStatus.APPROVED,
    HistoryAction.AUTO_APPROVED,
)

# Action label derived from the target status alone.  Used when the
# transition table is not enforced and no rule matches.
TARGET_ACTIONS: dict[ExpenseStatus, HistoryAction] = {
    ExpenseStatus.PENDING_APPROVAL: HistoryAction.VERIFIED,
    ExpenseStatus.APPROVED: HistoryAction.APPROVED,
    ExpenseStatus.REJECTED: HistoryAction.REJECTED,
}

STATUS_ACTIONS: dict[ExpenseStatus, frozenset[HistoryAction]] = {
    ExpenseStatus.PENDING_VERIFICATION: frozenset({HistoryAction.SUBMITTED}),
    ExpenseStatus.PENDING_APPROVAL: frozenset({HistoryAction.VERIFIED}),
    ExpenseStatus.APPROVED: frozenset({
        HistoryAction.APPROVED,
        HistoryAction.AUTO_APPROVED,
    }),
    ExpenseStatus.REJECTED: frozenset({HistoryAction.REJECTED}),
}


def find_transition(
    role: Role,
    from_status: ExpenseStatus,
    to_status: ExpenseStatus,
) -> TransitionRule | None:
    """Return the table row allowing this transition, or None."""
    for rule in ROLE_TRANSITIONS:
        if (
            rule.role == role
            and rule.from_status == from_status
            and rule.to_status == to_status
        ):
            return rule
    return None


def allowed_targets(role: Role, from_status: ExpenseStatus) -> tuple[ExpenseStatus, ...]:
    """Statuses the given role may move an expense to from ``from_status``."""
    return tuple(
        rule.to_status
        for rule in ROLE_TRANSITIONS
        if rule.role == role and rule.from_status == from_status
    )


def action_for_target(to_status: ExpenseStatus) -> HistoryAction:
    """History action produced by moving to ``to_status``."""
    try:
        return TARGET_ACTIONS[to_status]
    except KeyError:
        raise ValueError(
            f"No history action moves an expense into '{to_status.value}'"
        ) from None


def is_consistent(status: ExpenseStatus, last_action: str) -> bool:
    """True if ``last_action`` may be the final history entry in ``status``."""
    return last_action in {a.value for a in STATUS_ACTIONS[status]}
