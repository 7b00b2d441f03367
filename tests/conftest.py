"""
Pytest fixtures for the expense kernel test suite.

Provides:
- An isolated in-memory SQLite database per test (engine, tables, session)
- The default configuration set, seeded into the database
- Wired services and selectors with a deterministic clock
- A recording notification sink and structured log capture

Environment Variables:
- DATABASE_URL: override the database (e.g. a PostgreSQL URL).  Each test
  then creates and drops the tables itself.
"""

import json
import logging
import os
from io import StringIO
from decimal import Decimal
from typing import Any, Generator

import pytest
from sqlalchemy.orm import Session

from expense_config import ExpenseConfig, get_active_config
from expense_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from expense_kernel.domain.actors import Actor
from expense_kernel.domain.clock import DeterministicClock
from expense_kernel.domain.dtos import Expense
from expense_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from expense_kernel.selectors.expense_selector import ExpenseSelector
from expense_kernel.selectors.reference_selector import ReferenceDataSelector
from expense_kernel.services.approval_service import ApprovalService
from expense_kernel.services.attachment_store import InMemoryAttachmentStore
from expense_kernel.services.audit_ledger import AuditLedger
from expense_kernel.services.expense_service import ExpenseService
from expense_kernel.services.notifications import NotificationDispatcher
from expense_kernel.services.reference_data_service import ReferenceDataService
from tests.factories import (
    ADMIN,
    APPROVER,
    REQUESTOR,
    VERIFIER,
    RecordingSink,
    make_draft,
)

DEFAULT_DATABASE_URL = "sqlite://"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture expense_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, expense_service):
            expense_service.create_expense(...)
            logs = captured_logs()
            assert any(r["message"] == "expense_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("expense_kernel")
    previous_level = root.level
    root.addHandler(handler)
    root.setLevel(logging.DEBUG)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )


def get_database_url() -> str:
    """Get database URL from environment, or use in-memory SQLite."""
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_engine():
    """A fresh engine with all tables created; dropped afterwards."""
    engine = init_engine_from_url(get_database_url())
    create_tables()
    yield engine
    drop_tables()
    reset_engine()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    """Session bound to the per-test database; rolled back at teardown."""
    sess = get_session()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    """Clock pinned to 2024-05-20 09:00 UTC."""
    return DeterministicClock()


# =============================================================================
# Configuration and reference data
# =============================================================================


@pytest.fixture
def expense_config() -> ExpenseConfig:
    return get_active_config()


@pytest.fixture
def seeded(session, expense_config, deterministic_clock) -> ExpenseConfig:
    """Default categories, projects, sites and users loaded into the DB."""
    ReferenceDataService(session, deterministic_clock).seed(expense_config, ADMIN)
    return expense_config


@pytest.fixture
def admin() -> Actor:
    return ADMIN


@pytest.fixture
def requestor() -> Actor:
    return REQUESTOR


@pytest.fixture
def verifier() -> Actor:
    return VERIFIER


@pytest.fixture
def approver() -> Actor:
    return APPROVER


# =============================================================================
# Notifications
# =============================================================================


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def notifications(session, recording_sink) -> NotificationDispatcher:
    return NotificationDispatcher(session, recording_sink)


# =============================================================================
# Services and selectors
# =============================================================================


@pytest.fixture
def attachment_store() -> InMemoryAttachmentStore:
    return InMemoryAttachmentStore()


@pytest.fixture
def expense_service(
    session, seeded, deterministic_clock, notifications, attachment_store,
) -> ExpenseService:
    return ExpenseService(
        session,
        clock=deterministic_clock,
        notifications=notifications,
        attachment_store=attachment_store,
        policy=seeded.policy,
    )


@pytest.fixture
def approval_service(
    session, seeded, deterministic_clock, notifications,
) -> ApprovalService:
    return ApprovalService(
        session,
        clock=deterministic_clock,
        notifications=notifications,
        policy=seeded.policy,
    )


@pytest.fixture
def audit_ledger(session, deterministic_clock) -> AuditLedger:
    return AuditLedger(session, deterministic_clock)


@pytest.fixture
def expense_selector(session) -> ExpenseSelector:
    return ExpenseSelector(session)


@pytest.fixture
def reference_selector(session) -> ReferenceDataSelector:
    return ReferenceDataSelector(session)


# =============================================================================
# Expense factories
# =============================================================================


@pytest.fixture
def submit_expense(expense_service, requestor, deterministic_clock):
    """Factory fixture: submit a draft and advance the clock one minute.

    Each submission gets a distinct ``submitted_at`` so newest-first
    ordering is deterministic.
    """

    def _submit(actor: Actor | None = None, **overrides: Any) -> Expense:
        expense = expense_service.create_expense(
            make_draft(**overrides), actor or requestor,
        )
        deterministic_clock.advance(60)
        return expense

    return _submit


@pytest.fixture
def pending_approval_expense(submit_expense, approval_service, verifier):
    """A Software Subscription expense of 2500 already verified."""
    expense = submit_expense(
        category_id="cat-4",
        amount=Decimal("2500"),
        description="Annual subscription for design tool.",
    )
    return approval_service.update_status(
        expense.id, "pending_approval", verifier,
    )
