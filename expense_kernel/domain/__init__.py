"""
Pure domain layer.

This package contains frozen value objects and domain logic with NO
dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (except the injectable Clock itself)
- I/O

Everything here is deterministic given its inputs.
"""

from expense_kernel.domain.actors import SYSTEM_ACTOR, Actor, Role
from expense_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from expense_kernel.domain.dtos import (
    AttachmentRef,
    AttachmentUpload,
    AuditLogItem,
    Category,
    Expense,
    ExpenseDraft,
    HistoryItem,
    Project,
    Site,
    Subcategory,
    User,
)
from expense_kernel.domain.policy import (
    DEFAULT_POLICY,
    PolicyAdvisory,
    PolicySettings,
    auto_approval_comment,
    evaluate_auto_approval,
    validate_attachment_requirement,
    validate_draft,
)
from expense_kernel.domain.reference import generate_reference_number
from expense_kernel.domain.role_views import (
    AdminView,
    ApproverView,
    QueueQuery,
    QueueSelection,
    RequestorView,
    RoleView,
    SortOrder,
    VerifierView,
    view_for_role,
)
from expense_kernel.domain.workflow import (
    ROLE_TRANSITIONS,
    TERMINAL_STATUSES,
    ExpenseStatus,
    HistoryAction,
    TransitionRule,
)

__all__ = [
    # Identity
    "Actor",
    "Role",
    "SYSTEM_ACTOR",
    # Time
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # DTOs
    "AttachmentRef",
    "AttachmentUpload",
    "AuditLogItem",
    "Category",
    "Expense",
    "ExpenseDraft",
    "HistoryItem",
    "Project",
    "Site",
    "Subcategory",
    "User",
    # Policy
    "DEFAULT_POLICY",
    "PolicyAdvisory",
    "PolicySettings",
    "auto_approval_comment",
    "evaluate_auto_approval",
    "validate_attachment_requirement",
    "validate_draft",
    "generate_reference_number",
    # Workflow
    "ExpenseStatus",
    "HistoryAction",
    "ROLE_TRANSITIONS",
    "TERMINAL_STATUSES",
    "TransitionRule",
    # Queues
    "AdminView",
    "ApproverView",
    "QueueQuery",
    "QueueSelection",
    "RequestorView",
    "RoleView",
    "SortOrder",
    "VerifierView",
    "view_for_role",
]
