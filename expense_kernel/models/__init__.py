"""ORM models for the expense kernel."""

from expense_kernel.models.audit_log import AuditAction, AuditLogModel
from expense_kernel.models.expense import ExpenseModel, HistoryItemModel
from expense_kernel.models.reference import (
    CategoryModel,
    ProjectModel,
    SiteModel,
    SubcategoryModel,
)
from expense_kernel.models.sequence import SequenceCounter
from expense_kernel.models.user import UserModel

__all__ = [
    "AuditAction",
    "AuditLogModel",
    "CategoryModel",
    "ExpenseModel",
    "HistoryItemModel",
    "ProjectModel",
    "SequenceCounter",
    "SiteModel",
    "SubcategoryModel",
    "UserModel",
]
