"""
ExpenseService -- expense submission.

Responsibility:
    Turns a requestor's draft into a persisted, self-consistent Expense:
    validates the draft and its references, applies the attachment policy,
    allocates the reference number, writes the initial history and applies
    auto-approval.

Architecture position:
    Kernel > Services -- imperative shell.  Policy decisions are delegated
    to the pure ``domain.policy`` functions.

Invariants enforced:
    - An expense is never persisted without history; the first entry is
      always "Submitted" by the requestor.
    - Auto-approval happens here and only here, at creation time.
    - Validation and policy failures leave no rows behind.

Failure modes:
    - ValidationError: missing/invalid draft field or unknown reference.
    - PolicyViolationError: a required attachment is missing.
    - ReferenceAllocationError: reference retries exhausted.
"""

from __future__ import annotations

import random
from typing import Callable
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from expense_kernel.domain.actors import SYSTEM_ACTOR, Actor
from expense_kernel.domain.clock import Clock, SystemClock
from expense_kernel.domain.dtos import Category, Expense, ExpenseDraft
from expense_kernel.domain.policy import (
    DEFAULT_POLICY,
    PolicySettings,
    auto_approval_comment,
    evaluate_auto_approval,
    format_amount,
    validate_attachment_requirement,
    validate_draft,
)
from expense_kernel.domain.reference import (
    DEFAULT_PREFIX,
    DEFAULT_SUFFIX_LENGTH,
    generate_reference_number,
)
from expense_kernel.domain.workflow import (
    AUTO_APPROVAL_TRANSITION,
    INITIAL_STATUS,
    HistoryAction,
)
from expense_kernel.exceptions import ReferenceAllocationError, ValidationError
from expense_kernel.logging_config import LogContext, get_logger
from expense_kernel.models.audit_log import AuditAction
from expense_kernel.models.expense import ExpenseModel
from expense_kernel.models.reference import CategoryModel, ProjectModel, SiteModel
from expense_kernel.services.attachment_store import (
    AttachmentStore,
    InMemoryAttachmentStore,
    store_attachment,
)
from expense_kernel.services.audit_ledger import AuditLedger
from expense_kernel.services.base import BaseService
from expense_kernel.services.notifications import NotificationDispatcher

logger = get_logger("services.expense")

CategoryResolver = Callable[[str], "Category | None"]


class ExpenseService(BaseService[ExpenseModel]):
    """
    Creates expenses.

    Contract:
        ``create_expense`` flushes; it never commits.  Notifications are
        sent after the flush succeeds.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        notifications: NotificationDispatcher | None = None,
        attachment_store: AttachmentStore | None = None,
        policy: PolicySettings = DEFAULT_POLICY,
        reference_prefix: str = DEFAULT_PREFIX,
        reference_suffix_length: int = DEFAULT_SUFFIX_LENGTH,
        max_reference_attempts: int = 10,
        rng: random.Random | None = None,
    ):
        super().__init__(session)
        self._clock = clock if clock is not None else SystemClock()
        self._notifications = (
            notifications if notifications is not None else NotificationDispatcher(session)
        )
        self._attachments = (
            attachment_store if attachment_store is not None else InMemoryAttachmentStore()
        )
        self._policy = policy
        self._reference_prefix = reference_prefix
        self._reference_suffix_length = reference_suffix_length
        self._max_reference_attempts = max_reference_attempts
        self._rng = rng
        self._audit = AuditLedger(session, self._clock)

    def _resolve_category(self, category_id: str) -> Category | None:
        model = self.session.get(CategoryModel, category_id)
        return model.to_dto() if model is not None else None

    def _allocate_reference_number(self) -> str:
        now = self._clock.now()
        for _ in range(self._max_reference_attempts):
            candidate = generate_reference_number(
                now,
                rng=self._rng,
                prefix=self._reference_prefix,
                suffix_length=self._reference_suffix_length,
            )
            taken = self.session.scalar(
                select(ExpenseModel.id).where(
                    ExpenseModel.reference_number == candidate
                )
            )
            if taken is None:
                return candidate
            logger.debug(
                "reference_number_collision",
                extra={"reference_number": candidate},
            )
        raise ReferenceAllocationError(self._max_reference_attempts)

    def create_expense(
        self,
        draft: ExpenseDraft,
        requestor: Actor,
        category_resolver: CategoryResolver | None = None,
    ) -> Expense:
        """
        Submit a new expense.

        Args:
            draft: Fields filled in by the requestor.
            requestor: The authenticated submitter.
            category_resolver: Looks a category up by id.  Defaults to the
                categories table.

        Returns:
            The created expense, status PENDING_VERIFICATION or, when
            within the category's limit, APPROVED.

        Raises:
            ValidationError: missing field or unknown reference id.
            PolicyViolationError: required attachment missing.
        """
        amount = validate_draft(draft)

        resolve = category_resolver or self._resolve_category
        category = resolve(draft.category_id)
        if category is None:
            raise ValidationError(
                "category", f"unknown category '{draft.category_id}'"
            )

        subcategory = None
        if draft.subcategory_id:
            subcategory = category.get_subcategory(draft.subcategory_id)
            if subcategory is None:
                raise ValidationError(
                    "subcategory",
                    f"'{draft.subcategory_id}' is not a subcategory of "
                    f"'{category.name}'",
                )

        if self.session.get(ProjectModel, draft.project_id) is None:
            raise ValidationError("project", f"unknown project '{draft.project_id}'")
        if self.session.get(SiteModel, draft.site_id) is None:
            raise ValidationError("site", f"unknown site '{draft.site_id}'")

        advisories = validate_attachment_requirement(
            draft, category, subcategory, self._policy,
        )

        reference_number = self._allocate_reference_number()
        now = self._clock.now()

        model = ExpenseModel(
            id=uuid4(),
            reference_number=reference_number,
            requestor_id=requestor.id,
            requestor_name=requestor.display_name,
            category_id=category.id,
            subcategory_id=subcategory.id if subcategory else None,
            project_id=draft.project_id,
            site_id=draft.site_id,
            amount=amount,
            description=draft.description.strip(),
            status=INITIAL_STATUS.value,
            submitted_at=now,
            is_high_priority=False,
        )
        model.set_attachment(store_attachment(self._attachments, draft.attachment))
        if subcategory is not None:
            model.set_subcategory_attachment(
                store_attachment(self._attachments, draft.subcategory_attachment)
            )
        model.append_history(
            requestor.id, requestor.display_name, HistoryAction.SUBMITTED.value, now,
        )

        auto_approved = evaluate_auto_approval(model, category)
        if auto_approved:
            model.status = AUTO_APPROVAL_TRANSITION.to_status.value
            model.append_history(
                SYSTEM_ACTOR.id,
                SYSTEM_ACTOR.display_name,
                AUTO_APPROVAL_TRANSITION.action.value,
                now,
                comment=auto_approval_comment(category, self._policy.currency_symbol),
            )

        self.session.add(model)
        self.session.flush()
        expense = model.to_dto()

        with LogContext.bind(
            actor_id=requestor.id,
            expense_id=str(expense.id),
            reference_number=expense.reference_number,
        ):
            for advisory in advisories:
                logger.info(
                    "attachment_advisory",
                    extra={"policy": advisory.policy, "advisory": advisory.message},
                )
            logger.info(
                "expense_created",
                extra={
                    "category_id": category.id,
                    "amount": str(amount),
                    "status": expense.status.value,
                    "auto_approved": auto_approved,
                },
            )

        if auto_approved:
            self._audit.append(
                SYSTEM_ACTOR,
                AuditAction.EXPENSE_AUTO_APPROVED,
                f"Auto-approved {expense.reference_number} "
                f"({format_amount(amount, self._policy.currency_symbol)} in "
                f"'{category.name}')",
                payload={
                    "expense_id": str(expense.id),
                    "threshold": str(category.auto_approve_amount),
                },
                fatal=False,
            )

        self._notifications.expense_submitted(
            expense,
            category.name,
            subcategory.name if subcategory else None,
        )
        return expense
