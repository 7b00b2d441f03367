"""
Typed Exception Hierarchy for the Expense Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (a web layer, a CLI, a batch job) must be able to tell a missing
field from a blocked policy from a lost update without parsing messages.
Every error therefore:
  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE attribute (machine-readable, API-safe)
  3. Carries structured DATA (not just a message string)

Example:
    try:
        expense_service.create_expense(draft, requestor)
    except PolicyViolationError as e:
        show_form_error(f"Attachment required for {e.category_name}")
    except ValidationError as e:
        show_field_error(e.field, e.reason)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ExpenseKernelError (base)
    |
    +-- SubmissionError
    |   +-- ValidationError
    |   +-- PolicyViolationError
    |   +-- ReferenceAllocationError
    |
    +-- WorkflowError
    |   +-- InvalidTransitionError
    |
    +-- NotFoundError
    |   +-- ExpenseNotFoundError
    |   +-- CategoryNotFoundError
    |   +-- ReferenceNotFoundError
    |   +-- UserNotFoundError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentModificationError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- AuditError
    |   +-- AuditAppendError
    |
    +-- BackupError
        +-- BackupFormatError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                     | When Raised
-------------|--------------------------|------------------------------------------
Submission   | VALIDATION_ERROR         | Missing/invalid required draft field
             | POLICY_VIOLATION         | Required attachment missing
             | REFERENCE_ALLOCATION_FAILED | Reference number retries exhausted
-------------|--------------------------|------------------------------------------
Workflow     | INVALID_TRANSITION       | Transition not in the role table
-------------|--------------------------|------------------------------------------
Not found    | EXPENSE_NOT_FOUND        | Direct lookup of a missing expense
             | CATEGORY_NOT_FOUND       | Category/subcategory id unknown
             | REFERENCE_NOT_FOUND      | Project/site id unknown
             | USER_NOT_FOUND           | User id unknown
-------------|--------------------------|------------------------------------------
Concurrency  | CONCURRENT_MODIFICATION  | Optimistic version check lost
-------------|--------------------------|------------------------------------------
Immutability | IMMUTABILITY_VIOLATION   | History/audit row mutated or deleted
-------------|--------------------------|------------------------------------------
Audit        | AUDIT_APPEND_FAILED      | Audit log row could not be written
-------------|--------------------------|------------------------------------------
Backup       | BACKUP_FORMAT_ERROR      | Malformed snapshot bundle on import

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Submission errors are recovered at the boundary and shown to the
   submitting user.  Nothing was persisted.

2. ConcurrentModificationError means "re-read and retry":

    except ConcurrentModificationError:
        expense = selector.get_expense(expense_id)
        ...

3. NotFoundError from a direct lookup is an explicit 404.  Status updates
   on a missing expense do NOT raise (see ApprovalService.update_status).
"""


class ExpenseKernelError(Exception):
    """
    Base exception for all expense kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "EXPENSE_KERNEL_ERROR"


# Submission-related exceptions


class SubmissionError(ExpenseKernelError):
    """Base exception for errors raised while creating an expense."""

    code: str = "SUBMISSION_ERROR"


class ValidationError(SubmissionError):
    """A required field is missing or invalid on submission."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class PolicyViolationError(SubmissionError):
    """Submission blocked by an attachment policy."""

    code: str = "POLICY_VIOLATION"

    def __init__(self, category_name: str, policy: str, message: str | None = None):
        self.category_name = category_name
        self.policy = policy
        super().__init__(
            message
            or f"An attachment is required for the '{category_name}' category."
        )


class ReferenceAllocationError(SubmissionError):
    """No unused reference number was found within the retry budget."""

    code: str = "REFERENCE_ALLOCATION_FAILED"

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(
            f"Could not allocate a unique reference number after {attempts} attempts"
        )


# Workflow exceptions


class WorkflowError(ExpenseKernelError):
    """Base exception for approval workflow errors."""

    code: str = "WORKFLOW_ERROR"


class InvalidTransitionError(WorkflowError):
    """Status change not present in the role transition table."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        expense_id: str,
        from_status: str,
        to_status: str,
        role: str | None = None,
    ):
        self.expense_id = expense_id
        self.from_status = from_status
        self.to_status = to_status
        self.role = role
        by_role = f" by role '{role}'" if role else ""
        super().__init__(
            f"Invalid transition for expense {expense_id}{by_role}: "
            f"'{from_status}' -> '{to_status}'"
        )


# Lookup exceptions


class NotFoundError(ExpenseKernelError):
    """Base exception for lookups of ids that do not exist."""

    code: str = "NOT_FOUND"


class ExpenseNotFoundError(NotFoundError):
    """Expense id does not exist."""

    code: str = "EXPENSE_NOT_FOUND"

    def __init__(self, expense_id: str):
        self.expense_id = expense_id
        super().__init__(f"Expense not found: {expense_id}")


class CategoryNotFoundError(NotFoundError):
    """Category or subcategory id does not exist."""

    code: str = "CATEGORY_NOT_FOUND"

    def __init__(self, category_id: str, kind: str = "Category"):
        self.category_id = category_id
        self.kind = kind
        super().__init__(f"{kind} not found: {category_id}")


class ReferenceNotFoundError(NotFoundError):
    """Project or site id does not exist."""

    code: str = "REFERENCE_NOT_FOUND"

    def __init__(self, reference_type: str, reference_id: str):
        self.reference_type = reference_type
        self.reference_id = reference_id
        super().__init__(f"{reference_type} not found: {reference_id}")


class UserNotFoundError(NotFoundError):
    """User id does not exist."""

    code: str = "USER_NOT_FOUND"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


# Concurrency-related exceptions


class ConcurrencyError(ExpenseKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentModificationError(ConcurrencyError):
    """Optimistic version check failed: another writer got there first."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        detail = ""
        if expected_version is not None:
            detail = f" (expected version {expected_version}, found {actual_version})"
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id}: "
            f"entity was modified by another transaction{detail}"
        )


# Immutability-related exceptions


class ImmutabilityError(ExpenseKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an append-only record.

    Expense history items and audit log items are immutable once written.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Audit-related exceptions


class AuditError(ExpenseKernelError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditAppendError(AuditError):
    """The audit log entry for an operation could not be written."""

    code: str = "AUDIT_APPEND_FAILED"

    def __init__(self, action: str, reason: str):
        self.action = action
        self.reason = reason
        super().__init__(f"Could not append audit entry '{action}': {reason}")


# Backup-related exceptions


class BackupError(ExpenseKernelError):
    """Base exception for backup/restore errors."""

    code: str = "BACKUP_ERROR"


class BackupFormatError(BackupError):
    """A snapshot bundle is missing sections or has malformed records."""

    code: str = "BACKUP_FORMAT_ERROR"

    def __init__(self, section: str, reason: str):
        self.section = section
        self.reason = reason
        super().__init__(f"Malformed backup section '{section}': {reason}")
