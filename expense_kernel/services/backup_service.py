"""
BackupService -- full-state export and restore.

Responsibility:
    Exports every aggregate (reference data, users, expenses with full
    history, audit log) as a ``BackupBundle`` and restores a bundle,
    replacing all existing state.  ``to_dict`` / ``from_dict`` give the
    plain-data form a transport (JSON file, object store) can carry; file
    formatting and retention scheduling are left to the caller.

Invariants enforced:
    - Round trip: export then import reproduces an equivalent state,
      including history order, versions, audit sequence numbers and
      audit payloads.
    - Restore is the only operation that rewrites history and audit rows.
      It uses bulk statements, which bypass the ORM append-only listeners,
      and it records its own "Backup Restored" audit entry afterwards.
    - After a restore the audit sequence continues past the highest
      restored seq.

Failure modes:
    - BackupFormatError: malformed bundle.  Raised by ``from_dict`` before
      anything is deleted.
    - AuditAppendError: the export/restore audit entry could not be written.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, TypeVar
from uuid import UUID, uuid5

from sqlalchemy import delete, insert, select
from sqlalchemy.orm import Session

from expense_kernel.db.types import to_money
from expense_kernel.domain.actors import Actor, Role
from expense_kernel.domain.clock import Clock, SystemClock
from expense_kernel.domain.dtos import (
    AttachmentRef,
    AuditLogItem,
    Category,
    Expense,
    HistoryItem,
    Project,
    Site,
    Subcategory,
    User,
)
from expense_kernel.domain.workflow import ExpenseStatus
from expense_kernel.exceptions import BackupFormatError
from expense_kernel.logging_config import get_logger
from expense_kernel.models.audit_log import AuditAction, AuditLogModel
from expense_kernel.models.expense import ExpenseModel, HistoryItemModel
from expense_kernel.models.reference import (
    CategoryModel,
    ProjectModel,
    SiteModel,
    SubcategoryModel,
)
from expense_kernel.models.user import UserModel
from expense_kernel.services.audit_ledger import AuditLedger
from expense_kernel.services.base import BaseService
from expense_kernel.services.sequence_service import SequenceService

logger = get_logger("services.backup")

BACKUP_FORMAT_VERSION = 1

T = TypeVar("T")


@dataclass(frozen=True)
class BackupBundle:
    """A complete snapshot of the expense store."""

    exported_at: datetime
    categories: tuple[Category, ...] = ()
    projects: tuple[Project, ...] = ()
    sites: tuple[Site, ...] = ()
    users: tuple[User, ...] = ()
    expenses: tuple[Expense, ...] = ()
    audit_log: tuple[AuditLogItem, ...] = ()
    format_version: int = BACKUP_FORMAT_VERSION

    # ------------------------------------------------------------------
    # Plain-data form
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "format_version": self.format_version,
            "exported_at": self.exported_at.isoformat(),
            "categories": [_category_to_dict(c) for c in self.categories],
            "projects": [{"id": p.id, "name": p.name} for p in self.projects],
            "sites": [{"id": s.id, "name": s.name} for s in self.sites],
            "users": [
                {
                    "id": u.id,
                    "username": u.username,
                    "name": u.name,
                    "email": u.email,
                    "role": u.role.value,
                }
                for u in self.users
            ],
            "expenses": [_expense_to_dict(e) for e in self.expenses],
            "audit_log": [
                {
                    "id": str(a.id),
                    "seq": a.seq,
                    "timestamp": a.timestamp.isoformat(),
                    "actor_id": a.actor_id,
                    "actor_name": a.actor_name,
                    "action": a.action,
                    "details": a.details,
                    "payload": dict(a.payload),
                }
                for a in self.audit_log
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BackupBundle:
        """
        Parse the plain-data form.

        Raises:
            BackupFormatError: naming the section that failed to parse.
        """
        if not isinstance(data, dict):
            raise BackupFormatError("bundle", "expected a mapping")
        version = data.get("format_version", BACKUP_FORMAT_VERSION)
        if version != BACKUP_FORMAT_VERSION:
            raise BackupFormatError(
                "format_version", f"unsupported version {version!r}"
            )
        return cls(
            exported_at=_parse("exported_at", data.get("exported_at"), _timestamp),
            categories=_parse_list(data, "categories", _category_from_dict),
            projects=_parse_list(
                data, "projects", lambda d: Project(id=d["id"], name=d["name"]),
            ),
            sites=_parse_list(
                data, "sites", lambda d: Site(id=d["id"], name=d["name"]),
            ),
            users=_parse_list(data, "users", _user_from_dict),
            expenses=_parse_list(data, "expenses", _expense_from_dict),
            audit_log=_parse_list(data, "audit_log", _audit_from_dict),
        )


# =========================================================================
# Serialization helpers
# =========================================================================


def _timestamp(value: Any) -> datetime:
    if not isinstance(value, str):
        raise TypeError(f"expected an ISO timestamp, got {value!r}")
    return datetime.fromisoformat(value)


def _parse(section: str, value: Any, parser: Callable[[Any], T]) -> T:
    try:
        return parser(value)
    except (KeyError, TypeError, ValueError) as exc:
        raise BackupFormatError(section, str(exc)) from exc


def _parse_list(
    data: dict[str, Any],
    section: str,
    parser: Callable[[dict[str, Any]], T],
) -> tuple[T, ...]:
    items = data.get(section, [])
    if not isinstance(items, list):
        raise BackupFormatError(section, "expected a list")
    return tuple(_parse(section, item, parser) for item in items)


def _attachment_to_dict(ref: AttachmentRef | None) -> dict[str, Any] | None:
    if ref is None:
        return None
    return {"name": ref.name, "mime_type": ref.mime_type, "storage_key": ref.storage_key}


def _attachment_from_dict(data: dict[str, Any] | None) -> AttachmentRef | None:
    if data is None:
        return None
    return AttachmentRef(
        name=data["name"],
        mime_type=data["mime_type"],
        storage_key=data.get("storage_key"),
    )


def _category_to_dict(category: Category) -> dict[str, Any]:
    return {
        "id": category.id,
        "name": category.name,
        "attachment_required": category.attachment_required,
        "auto_approve_amount": str(category.auto_approve_amount),
        "subcategories": [
            {
                "id": s.id,
                "name": s.name,
                "attachment_required": s.attachment_required,
            }
            for s in category.subcategories
        ],
    }


def _category_from_dict(data: dict[str, Any]) -> Category:
    return Category(
        id=data["id"],
        name=data["name"],
        attachment_required=bool(data.get("attachment_required", False)),
        auto_approve_amount=to_money(data.get("auto_approve_amount", "0")),
        subcategories=tuple(
            Subcategory(
                id=s["id"],
                category_id=data["id"],
                name=s["name"],
                attachment_required=bool(s.get("attachment_required", False)),
            )
            for s in data.get("subcategories", [])
        ),
    )


def _user_from_dict(data: dict[str, Any]) -> User:
    return User(
        id=data["id"],
        username=data["username"],
        name=data["name"],
        email=data.get("email", ""),
        role=Role(data["role"]),
    )


def _expense_to_dict(expense: Expense) -> dict[str, Any]:
    return {
        "id": str(expense.id),
        "reference_number": expense.reference_number,
        "requestor_id": expense.requestor_id,
        "requestor_name": expense.requestor_name,
        "category_id": expense.category_id,
        "subcategory_id": expense.subcategory_id,
        "project_id": expense.project_id,
        "site_id": expense.site_id,
        "amount": str(expense.amount),
        "description": expense.description,
        "status": expense.status.value,
        "submitted_at": expense.submitted_at.isoformat(),
        "is_high_priority": expense.is_high_priority,
        "attachment": _attachment_to_dict(expense.attachment),
        "subcategory_attachment": _attachment_to_dict(expense.subcategory_attachment),
        "history": [
            {
                "actor_id": h.actor_id,
                "actor_name": h.actor_name,
                "action": h.action,
                "timestamp": h.timestamp.isoformat(),
                "comment": h.comment,
            }
            for h in expense.history
        ],
        "version": expense.version,
    }


def _expense_from_dict(data: dict[str, Any]) -> Expense:
    history = tuple(
        HistoryItem(
            actor_id=h["actor_id"],
            actor_name=h["actor_name"],
            action=h["action"],
            timestamp=_timestamp(h["timestamp"]),
            comment=h.get("comment"),
        )
        for h in data["history"]
    )
    if not history:
        raise ValueError(f"expense {data['id']} has no history")
    return Expense(
        id=UUID(data["id"]),
        reference_number=data["reference_number"],
        requestor_id=data["requestor_id"],
        requestor_name=data["requestor_name"],
        category_id=data["category_id"],
        subcategory_id=data.get("subcategory_id"),
        project_id=data["project_id"],
        site_id=data["site_id"],
        amount=to_money(data["amount"]),
        description=data["description"],
        status=ExpenseStatus(data["status"]),
        submitted_at=_timestamp(data["submitted_at"]),
        is_high_priority=bool(data.get("is_high_priority", False)),
        attachment=_attachment_from_dict(data.get("attachment")),
        subcategory_attachment=_attachment_from_dict(data.get("subcategory_attachment")),
        history=history,
        version=int(data.get("version", 1)),
    )


def _audit_from_dict(data: dict[str, Any]) -> AuditLogItem:
    return AuditLogItem(
        id=UUID(data["id"]),
        seq=int(data["seq"]),
        timestamp=_timestamp(data["timestamp"]),
        actor_id=data["actor_id"],
        actor_name=data["actor_name"],
        action=data["action"],
        details=data["details"],
        payload=dict(data.get("payload") or {}),
    )


# =========================================================================
# Service
# =========================================================================


class BackupService(BaseService[ExpenseModel]):
    """
    Export and restore the whole store.

    Contract:
        Flushes, never commits.  A restore that fails part-way leaves the
        caller's transaction to be rolled back.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock if clock is not None else SystemClock()
        self._audit = AuditLedger(session, self._clock)
        self._sequence = SequenceService(session)

    def export_snapshot(self, actor: Actor | None = None) -> BackupBundle:
        """
        Capture the current state.

        When ``actor`` is given, a "Backup Exported" audit entry is written
        after the snapshot is taken (so it is not part of the snapshot).
        """
        session = self.session
        bundle = BackupBundle(
            exported_at=self._clock.now(),
            categories=tuple(
                m.to_dto()
                for m in session.scalars(select(CategoryModel).order_by(CategoryModel.id))
            ),
            projects=tuple(
                m.to_dto()
                for m in session.scalars(select(ProjectModel).order_by(ProjectModel.id))
            ),
            sites=tuple(
                m.to_dto()
                for m in session.scalars(select(SiteModel).order_by(SiteModel.id))
            ),
            users=tuple(
                m.to_dto()
                for m in session.scalars(select(UserModel).order_by(UserModel.id))
            ),
            expenses=tuple(
                m.to_dto()
                for m in session.scalars(
                    select(ExpenseModel).order_by(
                        ExpenseModel.submitted_at, ExpenseModel.reference_number,
                    )
                )
            ),
            audit_log=tuple(
                m.to_dto()
                for m in session.scalars(select(AuditLogModel).order_by(AuditLogModel.seq))
            ),
        )
        logger.info(
            "backup_exported",
            extra={
                "expense_count": len(bundle.expenses),
                "audit_count": len(bundle.audit_log),
            },
        )
        if actor is not None:
            self._audit.append(
                actor,
                AuditAction.BACKUP_EXPORTED,
                f"Exported backup with {len(bundle.expenses)} expense(s)",
                payload={"exported_at": bundle.exported_at.isoformat()},
            )
        return bundle

    def _clear(self) -> None:
        # Children first; bulk statements skip the append-only listeners.
        for model_cls in (
            HistoryItemModel,
            ExpenseModel,
            AuditLogModel,
            SubcategoryModel,
            CategoryModel,
            ProjectModel,
            SiteModel,
            UserModel,
        ):
            self.session.execute(
                delete(model_cls).execution_options(synchronize_session=False)
            )
        self.session.expunge_all()

    def _insert(self, model_cls: type, rows: list[dict[str, Any]]) -> None:
        if rows:
            self.session.execute(insert(model_cls.__table__), rows)

    def import_snapshot(self, bundle: BackupBundle, actor: Actor) -> None:
        """
        Replace all state with the bundle's contents.

        Raises:
            AuditAppendError: the "Backup Restored" entry could not be
                written; the caller must roll back.
        """
        self.session.flush()
        self._clear()

        self._insert(CategoryModel, [
            {
                "id": c.id,
                "name": c.name,
                "attachment_required": c.attachment_required,
                "auto_approve_amount": c.auto_approve_amount,
                "created_by_id": actor.id,
            }
            for c in bundle.categories
        ])
        self._insert(SubcategoryModel, [
            {
                "id": s.id,
                "category_id": c.id,
                "name": s.name,
                "attachment_required": s.attachment_required,
                "created_by_id": actor.id,
            }
            for c in bundle.categories
            for s in c.subcategories
        ])
        self._insert(ProjectModel, [
            {"id": p.id, "name": p.name, "created_by_id": actor.id}
            for p in bundle.projects
        ])
        self._insert(SiteModel, [
            {"id": s.id, "name": s.name, "created_by_id": actor.id}
            for s in bundle.sites
        ])
        self._insert(UserModel, [
            {
                "id": u.id,
                "username": u.username,
                "name": u.name,
                "email": u.email,
                "role": u.role.value,
                "created_by_id": actor.id,
            }
            for u in bundle.users
        ])
        self._insert(ExpenseModel, [_expense_row(e) for e in bundle.expenses])
        self._insert(HistoryItemModel, [
            {
                "id": _history_id(e.id, seq),
                "expense_id": e.id,
                "seq": seq,
                "actor_id": h.actor_id,
                "actor_name": h.actor_name,
                "action": h.action,
                "timestamp": h.timestamp,
                "comment": h.comment,
            }
            for e in bundle.expenses
            for seq, h in enumerate(e.history, start=1)
        ])
        self._insert(AuditLogModel, [
            {
                "id": a.id,
                "seq": a.seq,
                "timestamp": a.timestamp,
                "actor_id": a.actor_id,
                "actor_name": a.actor_name,
                "action": a.action,
                "details": a.details,
                "payload": dict(a.payload),
            }
            for a in bundle.audit_log
        ])

        last_seq = max((a.seq for a in bundle.audit_log), default=0)
        self._sequence.reset(SequenceService.AUDIT_LOG, last_seq)

        logger.info(
            "backup_restored",
            extra={
                "expense_count": len(bundle.expenses),
                "audit_count": len(bundle.audit_log),
                "exported_at": bundle.exported_at.isoformat(),
            },
        )
        self._audit.append(
            actor,
            AuditAction.BACKUP_RESTORED,
            f"Restored backup from {bundle.exported_at.isoformat()} with "
            f"{len(bundle.expenses)} expense(s)",
            payload={"exported_at": bundle.exported_at.isoformat()},
        )


def _expense_row(expense: Expense) -> dict[str, Any]:
    attachment = expense.attachment
    sub_attachment = expense.subcategory_attachment
    return {
        "id": expense.id,
        "reference_number": expense.reference_number,
        "requestor_id": expense.requestor_id,
        "requestor_name": expense.requestor_name,
        "category_id": expense.category_id,
        "subcategory_id": expense.subcategory_id,
        "project_id": expense.project_id,
        "site_id": expense.site_id,
        "amount": Decimal(expense.amount),
        "description": expense.description,
        "status": expense.status.value,
        "submitted_at": expense.submitted_at,
        "is_high_priority": expense.is_high_priority,
        "attachment_name": attachment.name if attachment else None,
        "attachment_mime_type": attachment.mime_type if attachment else None,
        "attachment_key": attachment.storage_key if attachment else None,
        "subcategory_attachment_name": sub_attachment.name if sub_attachment else None,
        "subcategory_attachment_mime_type": (
            sub_attachment.mime_type if sub_attachment else None
        ),
        "subcategory_attachment_key": (
            sub_attachment.storage_key if sub_attachment else None
        ),
        "version": expense.version,
    }


def _history_id(expense_id: UUID, seq: int) -> UUID:
    """Deterministic id so a restored history row is the same row each time."""
    return uuid5(expense_id, f"history-{seq}")
