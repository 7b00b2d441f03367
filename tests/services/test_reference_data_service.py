"""
Tests for ReferenceDataService -- audited administration and seeding.
"""

from decimal import Decimal

import pytest
from sqlalchemy import select

from expense_kernel.domain.actors import Role
from expense_kernel.exceptions import (
    CategoryNotFoundError,
    ReferenceNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from expense_kernel.models.reference import SubcategoryModel
from expense_kernel.services.reference_data_service import ReferenceDataService


@pytest.fixture
def reference_service(session, deterministic_clock) -> ReferenceDataService:
    return ReferenceDataService(session, deterministic_clock)


def _latest(audit_ledger):
    return audit_ledger.list_entries(limit=1)[0]


class TestSeed:

    def test_seed_inserts_default_data(self, seeded, reference_selector, audit_ledger):
        assert [c.name for c in reference_selector.list_categories()] == [
            "Office Supplies", "Travel", "Food & Dining", "Software Subscription",
        ]
        assert len(reference_selector.list_projects()) == 2
        assert len(reference_selector.list_sites()) == 2
        assert [u.role for u in reference_selector.list_users()] == [
            Role.ADMIN, Role.REQUESTOR, Role.VERIFIER, Role.APPROVER,
        ]

        entry = _latest(audit_ledger)
        assert entry.seq == 1
        assert entry.action == "Reference Data Seeded"
        assert entry.details == "Seeded 16 reference record(s) from config 'default'"
        assert entry.payload["config_checksum"] == seeded.checksum

    def test_seed_is_idempotent(self, seeded, reference_service, admin, audit_ledger):
        assert reference_service.seed(seeded, admin) == 0
        assert audit_ledger.count() == 1

    def test_seed_keeps_existing_rows(self, seeded, reference_service, admin, reference_selector):
        reference_service.update_category(admin, "cat-1", auto_approve_amount="750")
        reference_service.seed(seeded, admin)
        assert reference_selector.get_category("cat-1").auto_approve_amount == Decimal("750")


class TestCategories:

    def test_create(self, reference_service, admin, audit_ledger):
        category = reference_service.create_category(
            admin, "  Training  ", auto_approve_amount="1500.50",
        )
        assert category.name == "Training"
        assert category.auto_approve_amount == Decimal("1500.50")
        assert category.attachment_required is False
        assert category.subcategories == ()

        entry = _latest(audit_ledger)
        assert entry.action == "Category Created"
        assert entry.details == "Created category 'Training'"
        assert entry.payload == {"category_id": category.id}

    def test_create_with_explicit_id(self, reference_service, admin, reference_selector):
        reference_service.create_category(admin, "Training", category_id="cat-9")
        assert reference_selector.get_category("cat-9").name == "Training"

    def test_duplicate_id_rejected(self, seeded, reference_service, admin):
        with pytest.raises(ValidationError) as exc_info:
            reference_service.create_category(admin, "Again", category_id="cat-1")
        assert exc_info.value.field == "id"

    @pytest.mark.parametrize("amount", [-1, "-0.01", "abc", "NaN"])
    def test_invalid_threshold_rejected(self, reference_service, admin, amount):
        with pytest.raises(ValidationError) as exc_info:
            reference_service.create_category(admin, "Training", auto_approve_amount=amount)
        assert exc_info.value.field == "auto_approve_amount"

    def test_blank_name_rejected(self, reference_service, admin):
        with pytest.raises(ValidationError):
            reference_service.create_category(admin, "   ")

    def test_update(self, seeded, reference_service, admin, audit_ledger):
        category = reference_service.update_category(
            admin, "cat-2", attachment_required=False, auto_approve_amount=300,
        )
        assert category.attachment_required is False
        assert category.auto_approve_amount == Decimal("300")
        assert category.name == "Travel"
        assert _latest(audit_ledger).details == "Updated category 'Travel'"

    def test_update_unknown(self, seeded, reference_service, admin):
        with pytest.raises(CategoryNotFoundError):
            reference_service.update_category(admin, "cat-404", name="X")

    def test_delete_removes_subcategories(
        self, session, seeded, reference_service, admin, audit_ledger,
    ):
        reference_service.delete_category(admin, "cat-2")

        assert session.scalars(
            select(SubcategoryModel).where(SubcategoryModel.category_id == "cat-2")
        ).all() == []
        entry = _latest(audit_ledger)
        assert entry.action == "Category Deleted"
        assert entry.payload["subcategories_deleted"] == 2

    def test_delete_keeps_expense_reference(
        self, seeded, submit_expense, reference_service, admin, expense_selector,
    ):
        expense = submit_expense(category_id="cat-4", amount=Decimal("5000"))
        reference_service.delete_category(admin, "cat-4")
        assert expense_selector.get_expense(expense.id).category_id == "cat-4"


class TestSubcategories:

    def test_create(self, seeded, reference_service, admin, reference_selector, audit_ledger):
        sub = reference_service.create_subcategory(
            admin, "cat-3", "Client Dinner", attachment_required=True,
        )
        assert sub.category_id == "cat-3"
        assert sub.attachment_required is True
        assert reference_selector.get_category("cat-3").get_subcategory(sub.id) == sub
        assert _latest(audit_ledger).details == (
            "Created subcategory 'Client Dinner' in 'Food & Dining'"
        )

    def test_create_under_unknown_category(self, seeded, reference_service, admin):
        with pytest.raises(CategoryNotFoundError):
            reference_service.create_subcategory(admin, "cat-404", "Anything")

    def test_update_and_delete(self, seeded, reference_service, admin, reference_selector):
        reference_service.update_subcategory(admin, "sub-3", attachment_required=False)
        assert not reference_selector.get_category("cat-2").get_subcategory("sub-3").attachment_required

        reference_service.delete_subcategory(admin, "sub-3")
        remaining = reference_selector.get_category("cat-2").subcategories
        assert [s.id for s in remaining] == ["sub-4"]

    def test_unknown_subcategory(self, seeded, reference_service, admin):
        with pytest.raises(CategoryNotFoundError) as exc_info:
            reference_service.delete_subcategory(admin, "sub-404")
        assert "Subcategory" in str(exc_info.value)


class TestProjectsAndSites:

    def test_project_lifecycle(self, seeded, reference_service, admin, reference_selector, audit_ledger):
        project = reference_service.create_project(admin, "Data Migration", project_id="proj-3")
        assert reference_selector.get_project("proj-3") == project

        reference_service.update_project(admin, "proj-3", "Data Migration Phase 2")
        assert reference_selector.get_project("proj-3").name == "Data Migration Phase 2"

        reference_service.delete_project(admin, "proj-3")
        with pytest.raises(ReferenceNotFoundError):
            reference_selector.get_project("proj-3")

        actions = [e.action for e in audit_ledger.list_entries(limit=3)]
        assert actions == ["Project Deleted", "Project Updated", "Project Created"]

    def test_site_lifecycle(self, seeded, reference_service, admin, reference_selector):
        site = reference_service.create_site(admin, "Pune Office")
        assert site in reference_selector.list_sites()
        reference_service.update_site(admin, site.id, "Pune Campus")
        reference_service.delete_site(admin, site.id)
        assert [s.id for s in reference_selector.list_sites()] == ["site-1", "site-2"]

    def test_unknown_project_and_site(self, seeded, reference_service, admin):
        with pytest.raises(ReferenceNotFoundError):
            reference_service.update_project(admin, "proj-404", "X")
        with pytest.raises(ReferenceNotFoundError):
            reference_service.delete_site(admin, "site-404")


class TestUsers:

    def test_create(self, seeded, reference_service, admin, reference_selector, audit_ledger):
        user = reference_service.create_user(
            admin, "verifier2", "Second Verifier", "verifier2@example.com", "verifier",
        )
        assert user.role == Role.VERIFIER
        assert user in reference_selector.list_users(Role.VERIFIER)
        assert _latest(audit_ledger).details == "Created user 'verifier2' (verifier)"

    def test_duplicate_username(self, seeded, reference_service, admin):
        with pytest.raises(ValidationError) as exc_info:
            reference_service.create_user(
                admin, "requestor", "Someone Else", "else@example.com", Role.REQUESTOR,
            )
        assert exc_info.value.field == "username"

    def test_system_role_rejected(self, seeded, reference_service, admin):
        with pytest.raises(ValidationError) as exc_info:
            reference_service.create_user(admin, "robot", "Robot", "", Role.SYSTEM)
        assert exc_info.value.field == "role"

        with pytest.raises(ValidationError):
            reference_service.update_user(admin, "user-2", role="system")

    def test_unknown_role_value(self, seeded, reference_service, admin):
        with pytest.raises(ValueError):
            reference_service.create_user(admin, "x", "X", "", "auditor")

    def test_update_and_delete(self, seeded, reference_service, admin, reference_selector):
        updated = reference_service.update_user(admin, "user-2", role=Role.APPROVER)
        assert updated.role == Role.APPROVER
        assert [u.id for u in reference_selector.list_users(Role.APPROVER)] == ["user-2", "user-4"]

        reference_service.delete_user(admin, "user-2")
        with pytest.raises(UserNotFoundError):
            reference_selector.get_user("user-2")

    def test_unknown_user(self, seeded, reference_service, admin):
        with pytest.raises(UserNotFoundError):
            reference_service.update_user(admin, "user-404", name="X")
