"""
Tests for the expense state machine (expense_kernel.domain.workflow).

Covers:
- The role transition table (who may move what where)
- Terminal statuses and the auto-approval edge
- History action mapping and status/last-action consistency
"""

import pytest

from expense_kernel.domain.actors import Role
from expense_kernel.domain.workflow import (
    AUTO_APPROVAL_TRANSITION,
    INITIAL_STATUS,
    ROLE_TRANSITIONS,
    TERMINAL_STATUSES,
    ExpenseStatus,
    HistoryAction,
    action_for_target,
    allowed_targets,
    find_transition,
    is_consistent,
)

PV = ExpenseStatus.PENDING_VERIFICATION
PA = ExpenseStatus.PENDING_APPROVAL
APPROVED = ExpenseStatus.APPROVED
REJECTED = ExpenseStatus.REJECTED


class TestTransitionTable:

    @pytest.mark.parametrize(
        "role, from_status, to_status, action",
        [
            (Role.VERIFIER, PV, PA, HistoryAction.VERIFIED),
            (Role.VERIFIER, PV, REJECTED, HistoryAction.REJECTED),
            (Role.APPROVER, PA, APPROVED, HistoryAction.APPROVED),
            (Role.APPROVER, PA, REJECTED, HistoryAction.REJECTED),
        ],
    )
    def test_allowed_transitions(self, role, from_status, to_status, action):
        rule = find_transition(role, from_status, to_status)
        assert rule is not None
        assert rule.action == action

    @pytest.mark.parametrize(
        "role, from_status, to_status",
        [
            (Role.VERIFIER, PV, APPROVED),
            (Role.VERIFIER, PA, APPROVED),
            (Role.APPROVER, PV, PA),
            (Role.APPROVER, PV, REJECTED),
            (Role.REQUESTOR, PV, PA),
            (Role.ADMIN, PA, APPROVED),
            (Role.SYSTEM, PV, APPROVED),
        ],
    )
    def test_disallowed_transitions(self, role, from_status, to_status):
        assert find_transition(role, from_status, to_status) is None

    def test_terminal_statuses_have_no_outgoing_edges(self):
        for rule in ROLE_TRANSITIONS:
            assert rule.from_status not in TERMINAL_STATUSES

    def test_auto_approval_is_not_offered_to_any_role(self):
        assert AUTO_APPROVAL_TRANSITION not in ROLE_TRANSITIONS
        assert AUTO_APPROVAL_TRANSITION.role == Role.SYSTEM
        assert AUTO_APPROVAL_TRANSITION.from_status == INITIAL_STATUS
        assert AUTO_APPROVAL_TRANSITION.to_status == APPROVED
        assert AUTO_APPROVAL_TRANSITION.action == HistoryAction.AUTO_APPROVED

    def test_allowed_targets_per_role(self):
        assert allowed_targets(Role.VERIFIER, PV) == (PA, REJECTED)
        assert allowed_targets(Role.APPROVER, PA) == (APPROVED, REJECTED)
        assert allowed_targets(Role.VERIFIER, PA) == ()
        assert allowed_targets(Role.APPROVER, APPROVED) == ()


class TestActions:

    def test_action_for_target(self):
        assert action_for_target(PA) == HistoryAction.VERIFIED
        assert action_for_target(APPROVED) == HistoryAction.APPROVED
        assert action_for_target(REJECTED) == HistoryAction.REJECTED

    def test_no_action_moves_into_initial_status(self):
        with pytest.raises(ValueError):
            action_for_target(PV)

    @pytest.mark.parametrize(
        "status, action, expected",
        [
            (PV, "Submitted", True),
            (PA, "Verified", True),
            (APPROVED, "Approved", True),
            (APPROVED, "Auto-Approved", True),
            (REJECTED, "Rejected", True),
            (PV, "Verified", False),
            (PA, "Submitted", False),
            (APPROVED, "Rejected", False),
        ],
    )
    def test_is_consistent(self, status, action, expected):
        assert is_consistent(status, action) is expected

    def test_status_labels(self):
        assert PV.label == "Pending Verification"
        assert APPROVED.label == "Approved"
