"""Tests for ReferenceDataSelector."""

from decimal import Decimal

import pytest

from expense_kernel.domain.actors import Role
from expense_kernel.exceptions import (
    CategoryNotFoundError,
    ReferenceNotFoundError,
    UserNotFoundError,
)


def test_categories_with_subcategories(seeded, reference_selector):
    travel = reference_selector.get_category("cat-2")
    assert travel.attachment_required is True
    assert travel.auto_approve_amount == Decimal("0")
    assert [s.name for s in travel.subcategories] == ["Flights", "Local Conveyance"]
    assert travel.get_subcategory("sub-3").attachment_required is True
    assert travel.get_subcategory("sub-1") is None


def test_find_category(seeded, reference_selector):
    assert reference_selector.find_category("cat-3").name == "Food & Dining"
    assert reference_selector.find_category("cat-404") is None


def test_get_unknown(seeded, reference_selector):
    with pytest.raises(CategoryNotFoundError):
        reference_selector.get_category("cat-404")
    with pytest.raises(ReferenceNotFoundError):
        reference_selector.get_project("proj-404")
    with pytest.raises(ReferenceNotFoundError):
        reference_selector.get_site("site-404")
    with pytest.raises(UserNotFoundError):
        reference_selector.get_user("user-404")


def test_projects_and_sites(seeded, reference_selector):
    assert [p.name for p in reference_selector.list_projects()] == [
        "Internal Operations", "Client Onboarding",
    ]
    assert reference_selector.get_site("site-2").name == "Mumbai Branch"


def test_users_by_role(seeded, reference_selector):
    assert [u.id for u in reference_selector.list_users(Role.VERIFIER)] == ["user-3"]
    assert reference_selector.list_users(Role.SYSTEM) == []
    assert reference_selector.get_user("user-4").email == "approver@example.com"


def test_empty_database(session, reference_selector):
    assert reference_selector.list_categories() == []
    assert reference_selector.list_users() == []
