"""
Module: expense_kernel.models.audit_log
Responsibility: ORM persistence for the system-wide audit log.
Architecture position: Kernel > Models.  May import from db/ and
    exceptions only.

Invariants enforced:
    - Audit rows are append-only; no UPDATE or DELETE through the ORM.
    - seq is unique and monotonically increasing, allocated by
      SequenceService.  Listing order is by seq, never by timestamp.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.

Audit relevance:
    This table narrates administrative, bulk and automated actions
    (priority flips, bulk status updates, auto-approvals, reference data
    changes, backups).  Human status changes on a single expense are
    narrated by the expense's own history instead.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, Index, event
from sqlalchemy.orm import Mapped, mapped_column

from expense_kernel.db.base import Base
from expense_kernel.db.types import LongText, Name, ShortCode
from expense_kernel.exceptions import ImmutabilityViolationError


class AuditAction(str, Enum):
    """Audit action labels.

    Values are the human-facing labels shown in the audit log listing.
    """

    # Expense queue actions
    PRIORITY_MARKED = "Marked as High Priority"
    PRIORITY_REMOVED = "Removed High Priority"
    BULK_STATUS_UPDATE = "Bulk Status Update"
    EXPENSE_AUTO_APPROVED = "Expense Auto-Approved"

    # Reference data administration
    CATEGORY_CREATED = "Category Created"
    CATEGORY_UPDATED = "Category Updated"
    CATEGORY_DELETED = "Category Deleted"
    SUBCATEGORY_CREATED = "Subcategory Created"
    SUBCATEGORY_UPDATED = "Subcategory Updated"
    SUBCATEGORY_DELETED = "Subcategory Deleted"
    PROJECT_CREATED = "Project Created"
    PROJECT_UPDATED = "Project Updated"
    PROJECT_DELETED = "Project Deleted"
    SITE_CREATED = "Site Created"
    SITE_UPDATED = "Site Updated"
    SITE_DELETED = "Site Deleted"
    USER_CREATED = "User Created"
    USER_UPDATED = "User Updated"
    USER_DELETED = "User Deleted"
    REFERENCE_DATA_SEEDED = "Reference Data Seeded"

    # Backups
    BACKUP_EXPORTED = "Backup Exported"
    BACKUP_RESTORED = "Backup Restored"


class AuditLogModel(Base):
    """
    One audit log entry.

    Contract:
        Rows are append-only -- never updated or deleted by the ORM.  A
        backup restore replaces the table with bulk statements, which is
        the only sanctioned rewrite.
    """

    __tablename__ = "audit_log"

    __table_args__ = (
        Index("idx_audit_log_seq", "seq"),
        Index("idx_audit_log_action", "action"),
    )

    seq: Mapped[int] = mapped_column(nullable=False, unique=True)
    timestamp: Mapped[datetime] = mapped_column(nullable=False)
    actor_id: Mapped[ShortCode] = mapped_column(nullable=False)
    actor_name: Mapped[Name] = mapped_column(nullable=False)
    action: Mapped[Name] = mapped_column(nullable=False)
    details: Mapped[LongText] = mapped_column(nullable=False)

    # Structured context for machine consumers (ids touched, counts, ...)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<AuditLog #{self.seq} {self.action}>"

    def to_dto(self):
        from expense_kernel.domain.dtos import AuditLogItem

        return AuditLogItem(
            id=self.id,
            seq=self.seq,
            timestamp=self.timestamp,
            actor_id=self.actor_id,
            actor_name=self.actor_name,
            action=self.action,
            details=self.details,
            payload=dict(self.payload or {}),
        )


# =============================================================================
# ORM-Level Immutability (Append-Only)
# =============================================================================


@event.listens_for(AuditLogModel, "before_update")
def prevent_audit_update(mapper, connection, target):
    """Prevent updates to audit log rows."""
    raise ImmutabilityViolationError(
        entity_type="AuditLog",
        entity_id=str(target.id),
        reason="Audit log entries are immutable -- cannot modify",
    )


@event.listens_for(AuditLogModel, "before_delete")
def prevent_audit_delete(mapper, connection, target):
    """Prevent deletion of audit log rows."""
    raise ImmutabilityViolationError(
        entity_type="AuditLog",
        entity_id=str(target.id),
        reason="Audit log entries are immutable -- cannot delete",
    )
