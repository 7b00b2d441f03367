"""Kernel services (imperative shell): flush, never commit."""

from expense_kernel.services.approval_service import (
    ApprovalService,
    BulkTransitionResult,
)
from expense_kernel.services.attachment_store import (
    AttachmentStore,
    InMemoryAttachmentStore,
)
from expense_kernel.services.audit_ledger import AuditLedger
from expense_kernel.services.backup_service import BackupBundle, BackupService
from expense_kernel.services.expense_service import ExpenseService
from expense_kernel.services.notifications import (
    LoggingNotificationSink,
    NotificationDispatcher,
    NotificationKind,
    NotificationSink,
    RenderedNotification,
    render_notification,
)
from expense_kernel.services.reference_data_service import ReferenceDataService
from expense_kernel.services.sequence_service import SequenceService

__all__ = [
    "ApprovalService",
    "AttachmentStore",
    "AuditLedger",
    "BackupBundle",
    "BackupService",
    "BulkTransitionResult",
    "ExpenseService",
    "InMemoryAttachmentStore",
    "LoggingNotificationSink",
    "NotificationDispatcher",
    "NotificationKind",
    "NotificationSink",
    "ReferenceDataService",
    "RenderedNotification",
    "SequenceService",
    "render_notification",
]
