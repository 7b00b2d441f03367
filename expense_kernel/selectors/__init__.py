"""Read-only selectors over the expense store."""

from expense_kernel.selectors.base import BaseSelector
from expense_kernel.selectors.expense_selector import (
    AttachmentLibraryItem,
    ExpenseSelector,
    OverviewStats,
)
from expense_kernel.selectors.reference_selector import ReferenceDataSelector

__all__ = [
    "AttachmentLibraryItem",
    "BaseSelector",
    "ExpenseSelector",
    "OverviewStats",
    "ReferenceDataSelector",
]
