"""
Tests for role-scoped queues (expense_kernel.domain.role_views).

Covers:
- Which expenses each role sees and which transitions it may offer
- Inclusive calendar-day date filter
- Priority and date sort orders
- Bulk selection: toggle, select-all over the visible list, pruning
"""

from datetime import date, timedelta

import pytest

from expense_kernel.domain.actors import Actor, Role
from expense_kernel.domain.role_views import (
    QueueQuery,
    QueueSelection,
    SortOrder,
    filter_by_date,
    sort_queue,
    view_for_role,
)
from expense_kernel.domain.workflow import ExpenseStatus
from tests.factories import APPROVER, REQUESTOR, VERIFIER, make_expense

PV = ExpenseStatus.PENDING_VERIFICATION
PA = ExpenseStatus.PENDING_APPROVAL


@pytest.fixture
def mixed_expenses():
    return [
        make_expense(PV, minutes_ago=10),
        make_expense(PA, minutes_ago=20),
        make_expense(ExpenseStatus.APPROVED, minutes_ago=30),
        make_expense(ExpenseStatus.REJECTED, minutes_ago=40),
        make_expense(PV, minutes_ago=50, requestor_id="user-9"),
    ]


class TestRoleViews:

    def test_verifier_sees_pending_verification(self, mixed_expenses):
        queue = view_for_role(Role.VERIFIER).filter_queue(mixed_expenses, VERIFIER)
        assert [e.status for e in queue] == [PV, PV]

    def test_approver_sees_pending_approval(self, mixed_expenses):
        queue = view_for_role(Role.APPROVER).filter_queue(mixed_expenses, APPROVER)
        assert [e.status for e in queue] == [PA]

    def test_requestor_sees_only_own(self, mixed_expenses):
        queue = view_for_role(Role.REQUESTOR).filter_queue(mixed_expenses, REQUESTOR)
        assert len(queue) == 4
        assert all(e.requestor_id == REQUESTOR.id for e in queue)

    def test_admin_sees_everything(self, mixed_expenses):
        admin = Actor("user-1", "Admin User", Role.ADMIN)
        assert len(view_for_role(Role.ADMIN).filter_queue(mixed_expenses, admin)) == 5

    def test_allowed_transitions(self):
        assert view_for_role(Role.VERIFIER).allowed_transitions(PV) == (
            PA, ExpenseStatus.REJECTED,
        )
        assert view_for_role(Role.APPROVER).allowed_transitions(PA) == (
            ExpenseStatus.APPROVED, ExpenseStatus.REJECTED,
        )
        assert view_for_role(Role.VERIFIER).allowed_transitions(PA) == ()
        assert view_for_role(Role.REQUESTOR).allowed_transitions(PV) == ()
        assert view_for_role(Role.ADMIN).allowed_transitions(PA) == ()

    def test_selection_only_for_reviewers(self):
        assert view_for_role(Role.VERIFIER).selection_enabled
        assert view_for_role(Role.APPROVER).selection_enabled
        assert not view_for_role(Role.REQUESTOR).selection_enabled
        assert not view_for_role(Role.ADMIN).selection_enabled

    def test_system_has_no_view(self):
        with pytest.raises(ValueError):
            view_for_role(Role.SYSTEM)


class TestDateFilter:

    def test_inclusive_bounds(self):
        today = make_expense(minutes_ago=0)
        yesterday = make_expense(minutes_ago=24 * 60)
        two_days = make_expense(minutes_ago=48 * 60)
        day = today.submitted_date

        result = filter_by_date([today, yesterday, two_days], day - timedelta(days=1), day)
        assert result == [today, yesterday]

    def test_open_ends(self):
        expenses = [make_expense(minutes_ago=m) for m in (0, 24 * 60, 48 * 60)]
        day = expenses[0].submitted_date
        assert len(filter_by_date(expenses, None, None)) == 3
        assert len(filter_by_date(expenses, day, None)) == 1
        assert len(filter_by_date(expenses, None, day - timedelta(days=2))) == 1

    def test_empty_range(self):
        expenses = [make_expense()]
        assert filter_by_date(expenses, date(2030, 1, 1), date(2030, 1, 2)) == []


class TestSort:

    def test_priority_first_then_newest(self):
        old_urgent = make_expense(minutes_ago=30, is_high_priority=True)
        new_normal = make_expense(minutes_ago=0)
        mid_normal = make_expense(minutes_ago=10)
        new_urgent = make_expense(minutes_ago=5, is_high_priority=True)

        result = sort_queue([old_urgent, new_normal, mid_normal, new_urgent])
        assert result == [new_urgent, old_urgent, new_normal, mid_normal]

    def test_date_sort_ignores_priority(self):
        old_urgent = make_expense(minutes_ago=30, is_high_priority=True)
        new_normal = make_expense(minutes_ago=0)
        result = sort_queue([old_urgent, new_normal], SortOrder.DATE)
        assert result == [new_normal, old_urgent]

    def test_ties_keep_input_order(self):
        a = make_expense(minutes_ago=0)
        b = make_expense(minutes_ago=0)
        assert sort_queue([a, b]) == [a, b]
        assert sort_queue([b, a]) == [b, a]

    def test_query_applies_filter_and_sort(self):
        urgent = make_expense(minutes_ago=60, is_high_priority=True)
        normal = make_expense(minutes_ago=0)
        stale = make_expense(minutes_ago=72 * 60)
        day = normal.submitted_date
        query = QueueQuery(date_from=day, date_to=day)
        assert query.apply([normal, stale, urgent]) == [urgent, normal]


class TestQueueSelection:

    def test_toggle(self):
        expense = make_expense()
        selection = QueueSelection()
        selection.toggle(expense.id)
        assert selection.ids() == [expense.id]
        selection.toggle(expense.id)
        assert selection.ids() == []

    def test_toggle_all_selects_exactly_visible(self):
        visible = [make_expense(), make_expense()]
        hidden = make_expense()
        selection = QueueSelection({hidden.id})

        selection.toggle_all(visible)
        assert selection.selected == {e.id for e in visible}
        assert selection.is_all_selected(visible)

    def test_toggle_all_clears_when_all_selected(self):
        visible = [make_expense(), make_expense()]
        selection = QueueSelection({e.id for e in visible})
        selection.toggle_all(visible)
        assert selection.selected == set()

    def test_partial_selection_then_toggle_all_selects_all(self):
        visible = [make_expense(), make_expense()]
        selection = QueueSelection({visible[0].id})
        assert not selection.is_all_selected(visible)
        selection.toggle_all(visible)
        assert selection.is_all_selected(visible)

    def test_empty_visible_is_never_all_selected(self):
        assert not QueueSelection().is_all_selected([])

    def test_prune_drops_filtered_out_ids(self):
        kept, dropped = make_expense(), make_expense()
        selection = QueueSelection({kept.id, dropped.id})
        selection.prune([kept])
        assert selection.ids() == [kept.id]
