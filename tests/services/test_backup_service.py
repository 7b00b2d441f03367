"""
Tests for BackupService -- export, plain-data form, restore.

The restore tests push the bundle through JSON to mimic a real transport.
"""

import json
from decimal import Decimal

import pytest

from expense_kernel.domain.workflow import ExpenseStatus
from expense_kernel.exceptions import BackupFormatError
from expense_kernel.services.backup_service import BackupBundle, BackupService
from expense_kernel.services.reference_data_service import ReferenceDataService


@pytest.fixture
def backup_service(session, deterministic_clock) -> BackupService:
    return BackupService(session, deterministic_clock)


@pytest.fixture
def populated(submit_expense, approval_service, verifier, approver):
    """Four expenses covering every status plus a priority flag."""
    auto = submit_expense(category_id="cat-1", amount=Decimal("350"))
    pending = submit_expense()
    rejected = submit_expense(description="Taxi to airport.")
    approval_service.update_status(rejected.id, "rejected", verifier, comment="Duplicate.")
    approved = submit_expense(category_id="cat-4", amount=Decimal("4999.99"))
    approval_service.update_status(approved.id, "pending_approval", verifier)
    approval_service.update_status(approved.id, "approved", approver)
    approval_service.toggle_priority(pending.id, verifier)
    return {"auto": auto, "pending": pending, "rejected": rejected, "approved": approved}


def _transport(bundle: BackupBundle) -> BackupBundle:
    return BackupBundle.from_dict(json.loads(json.dumps(bundle.to_dict())))


class TestExport:

    def test_snapshot_contents(self, populated, backup_service, deterministic_clock):
        bundle = backup_service.export_snapshot()

        assert bundle.exported_at == deterministic_clock.now()
        assert len(bundle.categories) == 4
        assert len(bundle.users) == 4
        assert len(bundle.expenses) == 4
        assert [e.id for e in bundle.expenses] == [
            populated[k].id for k in ("auto", "pending", "rejected", "approved")
        ]
        assert [a.seq for a in bundle.audit_log] == sorted(a.seq for a in bundle.audit_log)

    def test_export_with_actor_is_audited_after_snapshot(
        self, populated, backup_service, admin, audit_ledger,
    ):
        bundle = backup_service.export_snapshot(actor=admin)
        latest = audit_ledger.list_entries(limit=1)[0]

        assert latest.action == "Backup Exported"
        assert latest.details == "Exported backup with 4 expense(s)"
        assert latest.seq not in {a.seq for a in bundle.audit_log}

    def test_plain_data_is_json_safe(self, populated, backup_service):
        data = backup_service.export_snapshot().to_dict()
        text = json.dumps(data)
        assert '"format_version": 1' in text
        assert Decimal(data["categories"][0]["auto_approve_amount"]) == Decimal("500")
        assert data["expenses"][0]["history"][-1]["action"] == "Auto-Approved"


class TestRestore:

    def test_round_trip(self, populated, session, backup_service, admin):
        original = backup_service.export_snapshot()
        restored_bundle = _transport(original)

        backup_service.import_snapshot(restored_bundle, admin)
        again = backup_service.export_snapshot()

        assert again.categories == original.categories
        assert again.projects == original.projects
        assert again.sites == original.sites
        assert again.users == original.users
        assert again.expenses == original.expenses
        assert again.audit_log[:-1] == original.audit_log

        approved = next(e for e in again.expenses if e.id == populated["approved"].id)
        assert [h.action for h in approved.history] == ["Submitted", "Verified", "Approved"]
        assert approved.version == populated["approved"].version + 2

        rejected = next(e for e in again.expenses if e.id == populated["rejected"].id)
        assert rejected.history[-1].comment == "Duplicate."

    def test_restore_replaces_existing_state(
        self, populated, session, deterministic_clock, backup_service, admin,
        submit_expense, expense_selector, reference_selector,
    ):
        snapshot = backup_service.export_snapshot()
        ReferenceDataService(session, deterministic_clock).create_project(admin, "Temporary")
        late = submit_expense()

        backup_service.import_snapshot(snapshot, admin)

        assert late.id not in {e.id for e in expense_selector.list_expenses()}
        assert len(expense_selector.list_expenses()) == 4
        assert "Temporary" not in [p.name for p in reference_selector.list_projects()]

    def test_audit_sequence_continues(self, populated, backup_service, admin, audit_ledger):
        snapshot = backup_service.export_snapshot()
        last_seq = snapshot.audit_log[-1].seq

        backup_service.import_snapshot(snapshot, admin)
        restored_entry = audit_ledger.list_entries(limit=1)[0]

        assert restored_entry.action == "Backup Restored"
        assert restored_entry.seq == last_seq + 1
        assert audit_ledger.count() == len(snapshot.audit_log) + 1

    def test_restored_expense_accepts_transitions(
        self, populated, backup_service, admin, approval_service, verifier,
    ):
        snapshot = _transport(backup_service.export_snapshot())
        backup_service.import_snapshot(snapshot, admin)

        pending = populated["pending"]
        before = next(e for e in snapshot.expenses if e.id == pending.id)
        updated = approval_service.update_status(pending.id, "pending_approval", verifier)

        assert updated.status == ExpenseStatus.PENDING_APPROVAL
        assert updated.version == before.version + 1
        assert updated.is_high_priority is True
        assert len(updated.history) == 2


class TestFormatErrors:

    def test_unsupported_version(self):
        with pytest.raises(BackupFormatError) as exc_info:
            BackupBundle.from_dict({"format_version": 2, "exported_at": "2024-05-20T09:00:00+00:00"})
        assert exc_info.value.code == "BACKUP_FORMAT_ERROR"
        assert "format_version" in str(exc_info.value)

    def test_not_a_mapping(self):
        with pytest.raises(BackupFormatError):
            BackupBundle.from_dict(["not", "a", "bundle"])

    def test_missing_timestamp(self):
        with pytest.raises(BackupFormatError) as exc_info:
            BackupBundle.from_dict({"format_version": 1})
        assert "exported_at" in str(exc_info.value)

    def test_section_not_a_list(self):
        with pytest.raises(BackupFormatError) as exc_info:
            BackupBundle.from_dict({
                "exported_at": "2024-05-20T09:00:00+00:00",
                "expenses": {"id": "x"},
            })
        assert "expenses" in str(exc_info.value)

    def test_expense_without_history(self, populated, backup_service):
        data = backup_service.export_snapshot().to_dict()
        data["expenses"][0]["history"] = []
        with pytest.raises(BackupFormatError) as exc_info:
            BackupBundle.from_dict(data)
        assert "expenses" in str(exc_info.value)

    def test_bad_bundle_leaves_state_untouched(
        self, populated, backup_service, expense_selector,
    ):
        data = backup_service.export_snapshot().to_dict()
        data["users"][0]["role"] = "auditor"
        with pytest.raises(BackupFormatError):
            BackupBundle.from_dict(data)
        assert len(expense_selector.list_expenses()) == 4
