"""
Config -> Kernel Bridges.

Functions that turn an ``ExpenseConfig`` into configured kernel services.
These live in expense_config (the producer) so the kernel never depends on
the configuration package at runtime.

Usage:
    from expense_config.bridges import build_expense_service

    config = get_active_config()
    expenses = build_expense_service(session, config, clock=clock)
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from expense_config.schema import ExpenseConfig
from expense_kernel.domain.clock import Clock
from expense_kernel.services.approval_service import ApprovalService
from expense_kernel.services.attachment_store import AttachmentStore
from expense_kernel.services.expense_service import ExpenseService
from expense_kernel.services.notifications import (
    LoggingNotificationSink,
    NotificationDispatcher,
    NotificationSink,
)


def build_notification_dispatcher(
    session: Session,
    config: ExpenseConfig,
    sink: NotificationSink | None = None,
) -> NotificationDispatcher:
    """Dispatcher whose default sink renders amounts in the config currency."""
    return NotificationDispatcher(
        session,
        sink if sink is not None else LoggingNotificationSink(config.policy.currency_symbol),
    )


def build_expense_service(
    session: Session,
    config: ExpenseConfig,
    clock: Clock | None = None,
    notifications: NotificationDispatcher | None = None,
    attachment_store: AttachmentStore | None = None,
) -> ExpenseService:
    """ExpenseService using the config's policy and reference format."""
    return ExpenseService(
        session,
        clock=clock,
        notifications=notifications or build_notification_dispatcher(session, config),
        attachment_store=attachment_store,
        policy=config.policy,
        reference_prefix=config.reference.prefix,
        reference_suffix_length=config.reference.suffix_length,
        max_reference_attempts=config.reference.max_attempts,
    )


def build_approval_service(
    session: Session,
    config: ExpenseConfig,
    clock: Clock | None = None,
    notifications: NotificationDispatcher | None = None,
) -> ApprovalService:
    """ApprovalService using the config's transition policy."""
    return ApprovalService(
        session,
        clock=clock,
        notifications=notifications or build_notification_dispatcher(session, config),
        policy=config.policy,
    )
