"""
Expense policy engine (``expense_kernel.domain.policy``).

Responsibility:
    Pure evaluation of the per-category submission policies: required
    draft fields, attachment requirements, and auto-approval eligibility.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O, no clock access.
    The caller applies the resulting status transition and history entry.

Invariants enforced:
    - Auto-approval threshold is inclusive (``amount <= threshold``).
    - A threshold of 0 disables auto-approval for the category.
    - A missing category attachment blocks submission when the category
      requires one.  A missing subcategory attachment is advisory unless
      ``PolicySettings.enforce_subcategory_attachment`` is set.

Failure modes:
    - ValidationError for a missing/invalid draft field.
    - PolicyViolationError for a blocking attachment requirement.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from expense_kernel.db.types import round_money, to_money
from expense_kernel.domain.dtos import Category, ExpenseDraft, Subcategory
from expense_kernel.exceptions import PolicyViolationError, ValidationError

CATEGORY_ATTACHMENT_POLICY = "category_attachment_required"
SUBCATEGORY_ATTACHMENT_POLICY = "subcategory_attachment_required"


@dataclass(frozen=True)
class PolicySettings:
    """Runtime policy toggles (loaded by ``expense_config``)."""

    enforce_transition_table: bool = True
    enforce_subcategory_attachment: bool = False
    currency_symbol: str = "₹"


DEFAULT_POLICY = PolicySettings()


@dataclass(frozen=True)
class PolicyAdvisory:
    """A non-blocking policy note surfaced to the submitter."""

    policy: str
    message: str


class _HasAmount(Protocol):
    amount: object


class _HasAttachments(Protocol):
    attachment: object
    subcategory_attachment: object


# =========================================================================
# Draft validation
# =========================================================================


def validate_draft(draft: ExpenseDraft) -> Decimal:
    """Check required draft fields and return the parsed amount.

    Raises:
        ValidationError: naming the first missing or invalid field.
    """
    if not draft.category_id:
        raise ValidationError("category", "a category is required")
    if not draft.project_id:
        raise ValidationError("project", "a project is required")
    if not draft.site_id:
        raise ValidationError("site", "a site is required")
    if draft.amount is None or draft.amount == "":
        raise ValidationError("amount", "an amount is required")
    try:
        amount = to_money(draft.amount)
    except ValueError:
        raise ValidationError("amount", f"not a number: {draft.amount!r}") from None
    if not amount.is_finite():
        raise ValidationError("amount", "must be a finite number")
    if amount < 0:
        raise ValidationError("amount", "must not be negative")
    if not draft.description or not draft.description.strip():
        raise ValidationError("description", "a description is required")
    return amount


# =========================================================================
# Attachment policy
# =========================================================================


def validate_attachment_requirement(
    expense: _HasAttachments,
    category: Category,
    subcategory: Subcategory | None = None,
    settings: PolicySettings = DEFAULT_POLICY,
) -> tuple[PolicyAdvisory, ...]:
    """Apply the attachment policies of the category and subcategory.

    Returns:
        Advisory notes for requirements that were not met but do not block.

    Raises:
        PolicyViolationError: when a blocking requirement is not met.
    """
    if category.attachment_required and expense.attachment is None:
        raise PolicyViolationError(category.name, CATEGORY_ATTACHMENT_POLICY)

    advisories: list[PolicyAdvisory] = []
    if (
        subcategory is not None
        and subcategory.attachment_required
        and expense.subcategory_attachment is None
    ):
        message = (
            f"An attachment is recommended for the '{subcategory.name}' "
            f"subcategory."
        )
        if settings.enforce_subcategory_attachment:
            raise PolicyViolationError(
                subcategory.name,
                SUBCATEGORY_ATTACHMENT_POLICY,
                f"An attachment is required for the '{subcategory.name}' "
                f"subcategory.",
            )
        advisories.append(PolicyAdvisory(SUBCATEGORY_ATTACHMENT_POLICY, message))
    return tuple(advisories)


# =========================================================================
# Auto-approval
# =========================================================================


def evaluate_auto_approval(
    expense: _HasAmount,
    category: Category | None,
) -> bool:
    """True if the expense is within the category's auto-approval limit.

    The boundary is inclusive.  A zero threshold means "never auto-approve",
    so even a zero-amount expense stays in the review pipeline.
    """
    if category is None:
        return False
    threshold = category.auto_approve_amount
    if threshold <= 0:
        return False
    return to_money(expense.amount) <= threshold


def format_amount(amount: Decimal, currency_symbol: str = "₹") -> str:
    """Format an amount with Indian digit grouping, e.g. ``₹1,00,000``.

    Whole amounts print without decimals; others print with two.
    """
    amount = round_money(to_money(amount))
    sign = "-" if amount < 0 else ""
    amount = abs(amount)
    whole, frac = f"{amount:.2f}".split(".")
    frac = "" if frac == "00" else "." + frac
    if len(whole) > 3:
        head, tail = whole[:-3], whole[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        whole = ",".join(groups + [tail])
    return f"{sign}{currency_symbol}{whole}{frac}"


def auto_approval_comment(category: Category, currency_symbol: str = "₹") -> str:
    """History comment recorded with an auto-approval."""
    limit = format_amount(category.auto_approve_amount, currency_symbol)
    return f"Amount is within auto-approval limit of {limit}."
