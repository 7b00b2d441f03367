"""
Module: expense_kernel.selectors.expense_selector
Responsibility: Read side for expenses -- role queues, direct lookups,
    the overview statistics and the attachment library.
Architecture position: Kernel > Selectors.  Loads ORM rows, converts them
    to DTOs and delegates queue filtering/sorting to ``domain.role_views``.

Failure modes:
    - ExpenseNotFoundError from ``get_expense`` / ``get_by_reference``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from expense_kernel.domain.actors import Actor
from expense_kernel.domain.dtos import AttachmentRef, Expense
from expense_kernel.domain.role_views import QueueQuery, filter_by_date, view_for_role
from expense_kernel.domain.workflow import ExpenseStatus
from expense_kernel.exceptions import ExpenseNotFoundError
from expense_kernel.models.expense import ExpenseModel
from expense_kernel.models.reference import CategoryModel, SubcategoryModel
from expense_kernel.selectors.base import BaseSelector

RECENT_EXPENSE_COUNT = 5


@dataclass(frozen=True)
class OverviewStats:
    """Dashboard totals across all expenses."""

    total_amount: Decimal
    total_count: int
    pending_count: int
    approved_count: int
    rejected_count: int
    recent: tuple[Expense, ...]


@dataclass(frozen=True)
class AttachmentLibraryItem:
    """One stored attachment and the expense it belongs to."""

    expense: Expense
    attachment: AttachmentRef
    scope: str  # "category" or "subcategory"
    category_name: str
    subcategory_name: str | None = None


class ExpenseSelector(BaseSelector[ExpenseModel]):
    """Read-only queries over expenses."""

    def list_expenses(self) -> list[Expense]:
        """All expenses, newest first."""
        rows = self.session.scalars(
            select(ExpenseModel).order_by(ExpenseModel.submitted_at.desc())
        )
        return [row.to_dto() for row in rows]

    def get_expense(self, expense_id: UUID | str) -> Expense:
        """
        Load one expense.

        Raises:
            ExpenseNotFoundError: no expense has this id.
        """
        try:
            key = expense_id if isinstance(expense_id, UUID) else UUID(str(expense_id))
        except ValueError:
            raise ExpenseNotFoundError(str(expense_id)) from None
        row = self.session.get(ExpenseModel, key)
        if row is None:
            raise ExpenseNotFoundError(str(expense_id))
        return row.to_dto()

    def get_by_reference(self, reference_number: str) -> Expense:
        row = self.session.scalars(
            select(ExpenseModel).where(
                ExpenseModel.reference_number == reference_number
            )
        ).one_or_none()
        if row is None:
            raise ExpenseNotFoundError(reference_number)
        return row.to_dto()

    def queue_for(self, user: Actor, query: QueueQuery | None = None) -> list[Expense]:
        """The expenses ``user`` sees in their queue, filtered and sorted.

        Raises:
            ValueError: for roles without a queue.
        """
        view = view_for_role(user.role)
        query = query if query is not None else QueueQuery()
        return query.apply(view.filter_queue(self.list_expenses(), user))

    def overview(self) -> OverviewStats:
        counts: dict[str, int] = dict(
            self.session.execute(
                select(ExpenseModel.status, func.count()).group_by(ExpenseModel.status)
            ).all()
        )
        # Summed here rather than in SQL: SQLite aggregates NUMERIC as float.
        total_amount = sum(
            self.session.scalars(select(ExpenseModel.amount)), Decimal("0"),
        )
        recent = self.session.scalars(
            select(ExpenseModel)
            .order_by(ExpenseModel.submitted_at.desc())
            .limit(RECENT_EXPENSE_COUNT)
        )
        return OverviewStats(
            total_amount=total_amount,
            total_count=sum(counts.values()),
            pending_count=(
                counts.get(ExpenseStatus.PENDING_VERIFICATION.value, 0)
                + counts.get(ExpenseStatus.PENDING_APPROVAL.value, 0)
            ),
            approved_count=counts.get(ExpenseStatus.APPROVED.value, 0),
            rejected_count=counts.get(ExpenseStatus.REJECTED.value, 0),
            recent=tuple(row.to_dto() for row in recent),
        )

    def attachment_library(
        self,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> list[AttachmentLibraryItem]:
        """Every stored attachment of expenses submitted in the date range.

        Newest expense first; a category attachment precedes the
        subcategory attachment of the same expense.
        """
        category_names = dict(
            self.session.execute(select(CategoryModel.id, CategoryModel.name)).all()
        )
        subcategory_names = dict(
            self.session.execute(
                select(SubcategoryModel.id, SubcategoryModel.name)
            ).all()
        )

        items: list[AttachmentLibraryItem] = []
        for expense in filter_by_date(self.list_expenses(), date_from, date_to):
            category_name = category_names.get(expense.category_id, expense.category_id)
            subcategory_name = None
            if expense.subcategory_id:
                subcategory_name = subcategory_names.get(
                    expense.subcategory_id, expense.subcategory_id,
                )
            if expense.attachment is not None:
                items.append(AttachmentLibraryItem(
                    expense, expense.attachment, "category",
                    category_name, subcategory_name,
                ))
            if expense.subcategory_attachment is not None:
                items.append(AttachmentLibraryItem(
                    expense, expense.subcategory_attachment, "subcategory",
                    category_name, subcategory_name,
                ))
        return items
