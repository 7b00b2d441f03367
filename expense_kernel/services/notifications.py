"""
Notifications -- best-effort messages about expense lifecycle events.

Responsibility:
    Decides WHO is told about WHAT (``NotificationDispatcher``) and hands
    the message to an external ``NotificationSink``.  Template text lives
    in ``render_notification`` so any sink (email, chat, log) renders the
    same subject and body.

Architecture position:
    Kernel > Services -- boundary adapter.  Called by ExpenseService and
    ApprovalService after their flush succeeds.

Routing:
    - Submission: the requestor gets a confirmation; while the expense is
      still pending verification, every verifier gets an action request.
    - Any status change: the requestor is told the new status.
    - Entry into PENDING_APPROVAL: every approver gets an action request.

Failure modes:
    A sink failure is logged as ``notification_failed`` and never
    propagates.  The state transition that triggered it stands.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from expense_kernel.domain.actors import Role
from expense_kernel.domain.dtos import Expense, User
from expense_kernel.domain.policy import format_amount
from expense_kernel.domain.workflow import ExpenseStatus
from expense_kernel.logging_config import get_logger
from expense_kernel.models.user import UserModel

logger = get_logger("services.notifications")


class NotificationKind(str, Enum):
    SUBMISSION_CONFIRMATION = "submission_confirmation"
    VERIFICATION_REQUIRED = "verification_required"
    STATUS_CHANGED = "status_changed"
    APPROVAL_REQUIRED = "approval_required"


class NotificationSink(Protocol):
    """External notification transport."""

    def notify(
        self,
        recipients: Sequence[User],
        kind: NotificationKind,
        expense: Expense,
        category_name: str,
        subcategory_name: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        ...


@dataclass(frozen=True)
class RenderedNotification:
    subject: str
    body: str


# =========================================================================
# Templates
# =========================================================================


def _expense_details(
    expense: Expense,
    category_name: str,
    subcategory_name: str | None,
    currency_symbol: str,
) -> str:
    category = category_name
    if subcategory_name:
        category = f"{category_name} / {subcategory_name}"
    submitted = expense.submitted_at.strftime("%d-%b-%Y %H:%M:%S")
    return (
        f"Reference: {expense.reference_number}\n"
        f"Amount: {format_amount(expense.amount, currency_symbol)}\n"
        f"Category: {category}\n"
        f"Description: {expense.description}\n"
        f"Submitted On: {submitted}"
    )


def render_notification(
    kind: NotificationKind,
    recipient: User,
    expense: Expense,
    category_name: str,
    subcategory_name: str | None = None,
    extra: dict[str, Any] | None = None,
    currency_symbol: str = "₹",
) -> RenderedNotification:
    """Subject and body for one recipient of a notification."""
    extra = extra or {}
    ref = expense.reference_number
    details = _expense_details(expense, category_name, subcategory_name, currency_symbol)

    if kind == NotificationKind.SUBMISSION_CONFIRMATION:
        return RenderedNotification(
            f"✅ Your expense request {ref} has been submitted",
            f"Hi {recipient.name},\n\n"
            "This is a confirmation that your expense request has been "
            "successfully submitted.\n\n"
            f"{details}\n\n"
            f"Current Status: {expense.status.label}\n\n"
            "You will be notified of any status changes.",
        )

    if kind == NotificationKind.VERIFICATION_REQUIRED:
        return RenderedNotification(
            f"Action Required: New expense {ref} from {expense.requestor_name}",
            "Hello Team,\n\n"
            "A new expense request requires your verification.\n\n"
            f"Requestor: {expense.requestor_name}\n{details}\n\n"
            "Please log in to the portal to review and take action.",
        )

    if kind == NotificationKind.APPROVAL_REQUIRED:
        return RenderedNotification(
            f"Action Required: Verified expense {ref} needs approval",
            "Hello Team,\n\n"
            "A verified expense request requires your final approval.\n\n"
            f"Requestor: {expense.requestor_name}\n{details}\n\n"
            "Please log in to the portal to review and take action.",
        )

    if kind == NotificationKind.STATUS_CHANGED:
        greeting = f"Hi {recipient.name},\n\n"
        if expense.status == ExpenseStatus.PENDING_APPROVAL:
            return RenderedNotification(
                f"👍 Your expense request {ref} has been verified",
                greeting
                + "Good news! Your expense request has been verified and is "
                "now pending final approval.\n\n" + details,
            )
        if expense.status == ExpenseStatus.APPROVED:
            return RenderedNotification(
                f"🎉 Your expense request {ref} has been approved",
                greeting
                + "Your expense request has been approved. The amount will "
                "be reimbursed shortly.\n\n" + details,
            )
        if expense.status == ExpenseStatus.REJECTED:
            comment = extra.get("comment")
            reason = (
                f'Reason for rejection:\n"{comment}"'
                if comment
                else "No specific reason was provided."
            )
            return RenderedNotification(
                f"❌ Your expense request {ref} has been rejected",
                greeting
                + "Unfortunately, your expense request has been rejected.\n\n"
                + details + "\n\n" + reason + "\n\n"
                "Please review the feedback and resubmit if necessary, or "
                "contact support for more details.",
            )

    raise ValueError(
        f"No template for {kind.value} with status {expense.status.value}"
    )


class LoggingNotificationSink:
    """Sink that renders each message and writes it to the log."""

    def __init__(self, currency_symbol: str = "₹"):
        self._currency_symbol = currency_symbol

    def notify(
        self,
        recipients: Sequence[User],
        kind: NotificationKind,
        expense: Expense,
        category_name: str,
        subcategory_name: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        for recipient in recipients:
            message = render_notification(
                kind, recipient, expense, category_name, subcategory_name,
                extra, self._currency_symbol,
            )
            logger.info(
                "notification_sent",
                extra={
                    "kind": kind.value,
                    "recipient": recipient.email or recipient.id,
                    "subject": message.subject,
                    "reference_number": expense.reference_number,
                },
            )


# =========================================================================
# Routing
# =========================================================================


class NotificationDispatcher:
    """
    Resolves recipients and forwards to the sink, swallowing failures.

    Recipients are looked up in the local user mirror.  A requestor who is
    not mirrored still receives status notices, addressed by id and the
    name captured on the expense.
    """

    def __init__(self, session: Session, sink: NotificationSink | None = None):
        self._session = session
        self._sink = sink if sink is not None else LoggingNotificationSink()

    def _users_with_role(self, role: Role) -> list[User]:
        rows = self._session.scalars(
            select(UserModel).where(UserModel.role == role.value).order_by(UserModel.id)
        )
        return [row.to_dto() for row in rows]

    def _requestor(self, expense: Expense) -> User:
        row = self._session.get(UserModel, expense.requestor_id)
        if row is not None:
            return row.to_dto()
        return User(
            id=expense.requestor_id,
            username=expense.requestor_id,
            name=expense.requestor_name,
            email="",
            role=Role.REQUESTOR,
        )

    def _send(
        self,
        recipients: Sequence[User],
        kind: NotificationKind,
        expense: Expense,
        category_name: str,
        subcategory_name: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        if not recipients:
            return
        try:
            self._sink.notify(
                recipients, kind, expense, category_name, subcategory_name, extra,
            )
        except Exception as exc:
            # Notifications are best-effort; the transition already happened.
            logger.warning(
                "notification_failed",
                extra={
                    "kind": kind.value,
                    "expense_id": str(expense.id),
                    "reference_number": expense.reference_number,
                    "error": str(exc),
                },
            )

    def expense_submitted(
        self,
        expense: Expense,
        category_name: str,
        subcategory_name: str | None = None,
    ) -> None:
        self._send(
            [self._requestor(expense)],
            NotificationKind.SUBMISSION_CONFIRMATION,
            expense, category_name, subcategory_name,
        )
        if expense.status == ExpenseStatus.PENDING_VERIFICATION:
            self._send(
                self._users_with_role(Role.VERIFIER),
                NotificationKind.VERIFICATION_REQUIRED,
                expense, category_name, subcategory_name,
            )

    def status_changed(
        self,
        expense: Expense,
        category_name: str,
        subcategory_name: str | None = None,
        comment: str | None = None,
    ) -> None:
        self._send(
            [self._requestor(expense)],
            NotificationKind.STATUS_CHANGED,
            expense, category_name, subcategory_name,
            {"comment": comment} if comment else None,
        )
        if expense.status == ExpenseStatus.PENDING_APPROVAL:
            self._send(
                self._users_with_role(Role.APPROVER),
                NotificationKind.APPROVAL_REQUIRED,
                expense, category_name, subcategory_name,
            )
