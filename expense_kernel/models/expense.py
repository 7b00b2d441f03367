"""
Module: expense_kernel.models.expense
Responsibility: ORM persistence for the Expense aggregate and its
    append-only history.
Architecture position: Kernel > Models.  May import from db/ and
    exceptions only.

Invariants enforced:
    - Optimistic concurrency: ``version`` is the mapper's
      ``version_id_col``.  Every UPDATE is issued as
      ``... WHERE id = :id AND version = :version`` and bumps the version;
      a stale write raises ``StaleDataError`` at flush.
    - reference_number is unique (DB constraint).
    - History rows are append-only: ORM listeners reject UPDATE and
      DELETE.  ``(expense_id, seq)`` is unique and fixes history order.
    - status is one of the four lifecycle values (DB check constraint).

Failure modes:
    - StaleDataError on a concurrent write (translated by the services to
      ConcurrentModificationError).
    - IntegrityError on a duplicate reference number.
    - ImmutabilityViolationError on any history UPDATE/DELETE.

Audit relevance:
    The history rows ARE the per-expense audit trail.  Together with the
    system-wide audit log they narrate every mutation.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expense_kernel.db.base import Base, UUIDString
from expense_kernel.db.types import LongText, Money, Name, ShortCode
from expense_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from expense_kernel.domain.dtos import AttachmentRef, Expense, HistoryItem


class ExpenseModel(Base):
    """Persistent expense.

    Contract:
        Status changes go through ApprovalService, which appends exactly
        one HistoryItemModel in the same flush.

    Guarantees:
        - version starts at 1 and increments on every UPDATE.
        - submitted_at and reference_number never change after INSERT.
    """

    __tablename__ = "expenses"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending_verification', 'pending_approval', "
            "'approved', 'rejected')",
            name="ck_expenses_valid_status",
        ),
        CheckConstraint("amount >= 0", name="ck_expenses_amount_non_negative"),
        Index("idx_expenses_status_submitted", "status", "submitted_at"),
        Index("idx_expenses_requestor", "requestor_id"),
    )

    reference_number: Mapped[ShortCode] = mapped_column(
        nullable=False, unique=True,
    )
    requestor_id: Mapped[ShortCode] = mapped_column(nullable=False)
    requestor_name: Mapped[Name] = mapped_column(nullable=False)

    # Reference ids are stored without foreign keys: an administrator may
    # delete a category or project that old expenses still point at.
    category_id: Mapped[ShortCode] = mapped_column(nullable=False)
    subcategory_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    project_id: Mapped[ShortCode] = mapped_column(nullable=False)
    site_id: Mapped[ShortCode] = mapped_column(nullable=False)

    amount: Mapped[Money] = mapped_column(nullable=False)
    description: Mapped[LongText] = mapped_column(nullable=False)
    status: Mapped[ShortCode] = mapped_column(nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(nullable=False)
    is_high_priority: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )

    attachment_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    attachment_mime_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    attachment_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    subcategory_attachment_name: Mapped[str | None] = mapped_column(
        String(255), nullable=True,
    )
    subcategory_attachment_mime_type: Mapped[str | None] = mapped_column(
        String(100), nullable=True,
    )
    subcategory_attachment_key: Mapped[str | None] = mapped_column(
        String(255), nullable=True,
    )

    version: Mapped[int] = mapped_column(nullable=False)

    history: Mapped[list["HistoryItemModel"]] = relationship(
        "HistoryItemModel",
        back_populates="expense",
        order_by="HistoryItemModel.seq",
        cascade="save-update, merge",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<Expense {self.reference_number} status={self.status} "
            f"v{self.version}>"
        )

    def append_history(
        self,
        actor_id: str,
        actor_name: str,
        action: str,
        timestamp: datetime,
        comment: str | None = None,
    ) -> HistoryItemModel:
        """Append the next history row (seq is one past the current tail)."""
        item = HistoryItemModel(
            seq=len(self.history) + 1,
            actor_id=actor_id,
            actor_name=actor_name,
            action=action,
            timestamp=timestamp,
            comment=comment,
        )
        self.history.append(item)
        return item

    def set_attachment(self, ref: AttachmentRef | None) -> None:
        self.attachment_name = ref.name if ref else None
        self.attachment_mime_type = ref.mime_type if ref else None
        self.attachment_key = ref.storage_key if ref else None

    def set_subcategory_attachment(self, ref: AttachmentRef | None) -> None:
        self.subcategory_attachment_name = ref.name if ref else None
        self.subcategory_attachment_mime_type = ref.mime_type if ref else None
        self.subcategory_attachment_key = ref.storage_key if ref else None

    def to_dto(self) -> Expense:
        """Convert ORM model to frozen domain DTO."""
        from expense_kernel.domain.dtos import AttachmentRef
        from expense_kernel.domain.dtos import Expense as ExpenseDTO
        from expense_kernel.domain.workflow import ExpenseStatus

        attachment = None
        if self.attachment_name is not None:
            attachment = AttachmentRef(
                name=self.attachment_name,
                mime_type=self.attachment_mime_type or "",
                storage_key=self.attachment_key,
            )
        subcategory_attachment = None
        if self.subcategory_attachment_name is not None:
            subcategory_attachment = AttachmentRef(
                name=self.subcategory_attachment_name,
                mime_type=self.subcategory_attachment_mime_type or "",
                storage_key=self.subcategory_attachment_key,
            )

        return ExpenseDTO(
            id=self.id,
            reference_number=self.reference_number,
            requestor_id=self.requestor_id,
            requestor_name=self.requestor_name,
            category_id=self.category_id,
            subcategory_id=self.subcategory_id,
            project_id=self.project_id,
            site_id=self.site_id,
            amount=self.amount,
            description=self.description,
            status=ExpenseStatus(self.status),
            submitted_at=self.submitted_at,
            is_high_priority=self.is_high_priority,
            attachment=attachment,
            subcategory_attachment=subcategory_attachment,
            history=tuple(h.to_dto() for h in self.history),
            version=self.version,
        )


class HistoryItemModel(Base):
    """One history entry of an expense.  Append-only."""

    __tablename__ = "expense_history"

    __table_args__ = (
        UniqueConstraint("expense_id", "seq", name="uq_expense_history_seq"),
    )

    expense_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("expenses.id"),
        nullable=False,
    )
    seq: Mapped[int] = mapped_column(nullable=False)
    actor_id: Mapped[ShortCode] = mapped_column(nullable=False)
    actor_name: Mapped[Name] = mapped_column(nullable=False)
    action: Mapped[ShortCode] = mapped_column(nullable=False)
    timestamp: Mapped[datetime] = mapped_column(nullable=False)
    comment: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    expense: Mapped[ExpenseModel] = relationship(
        "ExpenseModel", back_populates="history",
    )

    def __repr__(self) -> str:
        return f"<HistoryItem {self.expense_id}#{self.seq} {self.action}>"

    def to_dto(self) -> HistoryItem:
        from expense_kernel.domain.dtos import HistoryItem as HistoryItemDTO

        return HistoryItemDTO(
            actor_id=self.actor_id,
            actor_name=self.actor_name,
            action=self.action,
            timestamp=self.timestamp,
            comment=self.comment,
        )


# =============================================================================
# ORM-Level Immutability for History (Append-Only)
# =============================================================================


@event.listens_for(HistoryItemModel, "before_update")
def prevent_history_update(mapper, connection, target):
    """Prevent updates to expense history rows."""
    raise ImmutabilityViolationError(
        entity_type="HistoryItem",
        entity_id=str(target.id),
        reason="Expense history is append-only -- cannot modify",
    )


@event.listens_for(HistoryItemModel, "before_delete")
def prevent_history_delete(mapper, connection, target):
    """Prevent deletion of expense history rows."""
    raise ImmutabilityViolationError(
        entity_type="HistoryItem",
        entity_id=str(target.id),
        reason="Expense history is append-only -- cannot delete",
    )
