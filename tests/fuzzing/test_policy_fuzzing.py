"""
Property-based tests for the approval policy and state machine.

Properties:
- Auto-approval is exactly ``0 < threshold and amount <= threshold``
- format_amount round-trips to the amount and groups digits 3 then 2
- Draft validation accepts every finite non-negative amount
- No sequence of role actions leaves a terminal status or desynchronises
  status and last history action (pure model and persisted)
"""

import re
from decimal import Decimal

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from expense_kernel.domain.actors import Role
from expense_kernel.domain.dtos import Category
from expense_kernel.domain.policy import (
    evaluate_auto_approval,
    format_amount,
    validate_draft,
)
from expense_kernel.domain.workflow import (
    INITIAL_STATUS,
    TERMINAL_STATUSES,
    ExpenseStatus,
    find_transition,
    is_consistent,
)
from expense_kernel.exceptions import InvalidTransitionError, ValidationError
from tests.factories import ADMIN, APPROVER, REQUESTOR, VERIFIER, make_draft

amounts = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("999999999.99"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)

actions = st.lists(
    st.tuples(
        st.sampled_from([Role.VERIFIER, Role.APPROVER, Role.REQUESTOR, Role.ADMIN]),
        st.sampled_from(list(ExpenseStatus)),
    ),
    max_size=8,
)

GROUPED = re.compile(r"^\d{1,3}$|^\d{1,2}(,\d{2})*,\d{3}$")

ACTORS = {
    Role.ADMIN: ADMIN,
    Role.REQUESTOR: REQUESTOR,
    Role.VERIFIER: VERIFIER,
    Role.APPROVER: APPROVER,
}


class _Amount:
    def __init__(self, amount):
        self.amount = amount


class TestAutoApprovalProperties:

    @given(amount=amounts, threshold=amounts)
    def test_decision_matches_rule(self, amount, threshold):
        category = Category("cat-x", "Any", False, threshold)
        expected = threshold > 0 and amount <= threshold
        assert evaluate_auto_approval(_Amount(amount), category) is expected

    @given(threshold=amounts.filter(lambda t: t > 0))
    def test_boundary_inclusive(self, threshold):
        category = Category("cat-x", "Any", False, threshold)
        assert evaluate_auto_approval(_Amount(threshold), category)
        assert not evaluate_auto_approval(_Amount(threshold + Decimal("0.01")), category)


class TestFormatProperties:

    @given(amount=amounts)
    def test_round_trip(self, amount):
        text = format_amount(amount)
        assert text.startswith("₹")
        assert Decimal(text[1:].replace(",", "")) == amount

    @given(amount=amounts)
    def test_indian_grouping(self, amount):
        whole = format_amount(amount)[1:].split(".")[0]
        assert GROUPED.match(whole)

    @given(amount=amounts.filter(lambda a: a > 0))
    def test_negative_mirrors_positive(self, amount):
        assert format_amount(-amount) == "-" + format_amount(amount)


class TestDraftProperties:

    @given(amount=amounts)
    def test_any_non_negative_amount_is_valid(self, amount):
        assert validate_draft(make_draft(amount=amount)) == amount

    @given(text=st.text(alphabet=" \t\n", max_size=5))
    def test_blank_description_always_rejected(self, text):
        with pytest.raises(ValidationError) as exc_info:
            validate_draft(make_draft(description=text))
        assert exc_info.value.field == "description"


class TestStateMachineProperties:

    @given(steps=actions)
    def test_pure_model(self, steps):
        status = INITIAL_STATUS
        last_action = "Submitted"
        for role, target in steps:
            rule = find_transition(role, status, target)
            if status in TERMINAL_STATUSES:
                assert rule is None
            if rule is None:
                continue
            status, last_action = rule.to_status, rule.action.value
            assert is_consistent(status, last_action)
        assert is_consistent(status, last_action)

    @settings(
        max_examples=25,
        deadline=None,
        suppress_health_check=[HealthCheck.function_scoped_fixture],
    )
    @given(steps=actions)
    def test_persisted_history_matches_status(
        self, submit_expense, approval_service, expense_selector, steps,
    ):
        expense = submit_expense()
        applied = 0
        for role, target in steps:
            actor = ACTORS[role]
            before = expense_selector.get_expense(expense.id)
            try:
                approval_service.update_status(expense.id, target, actor)
            except InvalidTransitionError:
                after = expense_selector.get_expense(expense.id)
                assert after.status == before.status
                assert len(after.history) == len(before.history)
                continue
            assert before.status not in TERMINAL_STATUSES
            applied += 1

        final = expense_selector.get_expense(expense.id)
        assert len(final.history) == applied + 1
        assert is_consistent(final.status, final.last_action)

