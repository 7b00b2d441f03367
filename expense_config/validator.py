"""
Configuration Validator (``expense_config.validator``).

Responsibility
--------------
Validates a parsed ``ExpenseConfig`` before it is handed to callers,
so that seeding never half-applies a broken configuration.

Invariants enforced
-------------------
* Id uniqueness within each kind of reference record.
* Username uniqueness.
* Auto-approval thresholds are non-negative.
* Seeded users never hold the reserved system role.
* Reference numbers have a non-empty alphanumeric prefix and a suffix of
  at least one character.

Failure modes
-------------
* Validation errors (``ConfigValidationResult.errors``)  -> the
  configuration MUST NOT be used.
* Validation warnings  -> usable, but should be reviewed.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from expense_config.schema import ExpenseConfig
from expense_kernel.domain.actors import Role


class ConfigValidationError(ValueError):
    """Raised by ``get_active_config`` when validation reports errors."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in self.errors)
        )


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    Contract
    --------
    * ``is_valid`` returns ``True`` only when ``errors`` is empty.
    * Warnings do not block use but should be reviewed.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: ExpenseConfig) -> ConfigValidationResult:
    """Validate a configuration; returns errors and warnings, never raises."""
    result = ConfigValidationResult()

    _validate_reference_format(config, result)
    _validate_policy(config, result)
    _validate_categories(config, result)
    _validate_unique_ids("project", (p.id for p in config.seed.projects), result)
    _validate_unique_ids("site", (s.id for s in config.seed.sites), result)
    _validate_users(config, result)

    return result


def _validate_unique_ids(
    kind: str, ids: Iterable[str], result: ConfigValidationResult
) -> None:
    seen: set[str] = set()
    for record_id in ids:
        if not record_id:
            result.add_error(f"Empty {kind} id")
        elif record_id in seen:
            result.add_error(f"Duplicate {kind} id: {record_id}")
        seen.add(record_id)


def _validate_reference_format(
    config: ExpenseConfig, result: ConfigValidationResult
) -> None:
    ref = config.reference
    if not ref.prefix or not ref.prefix.isalnum():
        result.add_error(
            f"Reference prefix must be non-empty and alphanumeric, got {ref.prefix!r}"
        )
    if ref.suffix_length < 1:
        result.add_error(
            f"Reference suffix_length must be at least 1, got {ref.suffix_length}"
        )
    elif ref.suffix_length < 3:
        result.add_warning(
            f"Reference suffix_length {ref.suffix_length} leaves few unique "
            "numbers per day"
        )
    if ref.max_attempts < 1:
        result.add_error(
            f"Reference max_attempts must be at least 1, got {ref.max_attempts}"
        )


def _validate_policy(config: ExpenseConfig, result: ConfigValidationResult) -> None:
    if not config.policy.currency_symbol:
        result.add_error("Policy currency_symbol must not be empty")
    if not config.policy.enforce_transition_table:
        result.add_warning(
            "Transition table enforcement is disabled (permissive status moves)"
        )


def _validate_categories(
    config: ExpenseConfig, result: ConfigValidationResult
) -> None:
    categories = config.seed.categories
    _validate_unique_ids("category", (c.id for c in categories), result)
    _validate_unique_ids(
        "subcategory",
        (s.id for c in categories for s in c.subcategories),
        result,
    )
    for category in categories:
        if not category.name.strip():
            result.add_error(f"Category {category.id} has an empty name")
        if not category.auto_approve_amount.is_finite():
            result.add_error(f"Category {category.id} has a non-finite threshold")
        elif category.auto_approve_amount < 0:
            result.add_error(
                f"Category {category.id} has a negative auto-approval "
                f"threshold: {category.auto_approve_amount}"
            )
        for sub in category.subcategories:
            if not sub.name.strip():
                result.add_error(
                    f"Subcategory {sub.id} of {category.id} has an empty name"
                )


def _validate_users(config: ExpenseConfig, result: ConfigValidationResult) -> None:
    users = config.seed.users
    _validate_unique_ids("user", (u.id for u in users), result)

    usernames: set[str] = set()
    for user in users:
        if user.role == Role.SYSTEM:
            result.add_error(f"User {user.id} cannot hold the system role")
        if user.username in usernames:
            result.add_error(f"Duplicate username: {user.username}")
        usernames.add(user.username)

    roles = {u.role for u in users}
    for role in (Role.VERIFIER, Role.APPROVER):
        if users and role not in roles:
            result.add_warning(
                f"No {role.value} user seeded; {role.value} notifications "
                "will have no recipients"
            )
