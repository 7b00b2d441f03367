"""
Domain DTOs (``expense_kernel.domain.dtos``).

Frozen value objects passed between layers.  ORM models convert to these
via ``to_dto()``; services and selectors never hand ORM instances to
callers.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from expense_kernel.domain.actors import Role
from expense_kernel.domain.workflow import TERMINAL_STATUSES, ExpenseStatus


# =========================================================================
# Attachments
# =========================================================================


@dataclass(frozen=True)
class AttachmentUpload:
    """A blob supplied with a submission, before it reaches the store."""

    name: str
    mime_type: str
    data: bytes = b""


@dataclass(frozen=True)
class AttachmentRef:
    """A stored attachment: name, MIME type and the store's key."""

    name: str
    mime_type: str
    storage_key: str | None = None


# =========================================================================
# Reference data
# =========================================================================


@dataclass(frozen=True)
class Subcategory:
    id: str
    category_id: str
    name: str
    attachment_required: bool = False


@dataclass(frozen=True)
class Category:
    """An expense category and its auto-approval / attachment policy."""

    id: str
    name: str
    attachment_required: bool = False
    auto_approve_amount: Decimal = Decimal("0")
    subcategories: tuple[Subcategory, ...] = ()

    def get_subcategory(self, subcategory_id: str) -> Subcategory | None:
        for sub in self.subcategories:
            if sub.id == subcategory_id:
                return sub
        return None


@dataclass(frozen=True)
class Project:
    id: str
    name: str


@dataclass(frozen=True)
class Site:
    id: str
    name: str


@dataclass(frozen=True)
class User:
    """Mirror of an identity-provider user, used for notification routing."""

    id: str
    username: str
    name: str
    email: str
    role: Role


# =========================================================================
# Expense aggregate
# =========================================================================


@dataclass(frozen=True)
class HistoryItem:
    """One entry in an expense's append-only history."""

    actor_id: str
    actor_name: str
    action: str
    timestamp: datetime
    comment: str | None = None


@dataclass(frozen=True)
class Expense:
    """
    Immutable snapshot of an expense and its full history.

    ``history`` is in insertion (chronological) order and is never empty.
    """

    id: UUID
    reference_number: str
    requestor_id: str
    requestor_name: str
    category_id: str
    project_id: str
    site_id: str
    amount: Decimal
    description: str
    status: ExpenseStatus
    submitted_at: datetime
    subcategory_id: str | None = None
    is_high_priority: bool = False
    attachment: AttachmentRef | None = None
    subcategory_attachment: AttachmentRef | None = None
    history: tuple[HistoryItem, ...] = ()
    version: int = 1

    @property
    def last_action(self) -> str | None:
        return self.history[-1].action if self.history else None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def submitted_date(self):
        """Calendar day of submission (UTC)."""
        return self.submitted_at.date()


@dataclass(frozen=True)
class ExpenseDraft:
    """Fields a requestor fills in before submission."""

    category_id: str | None
    project_id: str | None
    site_id: str | None
    amount: Any
    description: str | None
    subcategory_id: str | None = None
    attachment: AttachmentUpload | AttachmentRef | None = None
    subcategory_attachment: AttachmentUpload | AttachmentRef | None = None


# =========================================================================
# Audit log
# =========================================================================


@dataclass(frozen=True)
class AuditLogItem:
    """One system-wide audit entry.  Never mutated or deleted."""

    id: UUID
    seq: int
    timestamp: datetime
    actor_id: str
    actor_name: str
    action: str
    details: str
    payload: dict[str, Any] = field(default_factory=dict)
