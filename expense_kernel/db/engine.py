"""
Module: expense_kernel.db.engine
Responsibility: engine construction, the session factory and the
    transactional scope used by callers of the kernel.
Architecture position: Kernel > DB.  MUST NOT import from services/,
    selectors/ or domain/ (create_tables imports models so that the
    metadata is complete).

Invariants enforced:
    - Services flush; only session_scope() commits.
    - Sessions never expire attributes on commit, so DTOs built after a
      commit do not trigger lazy reloads.
    - On SQLite, SQLAlchemy rather than pysqlite emits BEGIN, which makes
      SAVEPOINT (per-item isolation in bulk updates) behave correctly.
      Foreign keys are switched on for every connection.
    - On PostgreSQL the isolation level is READ COMMITTED; lost updates
      are prevented by the version column on expenses, not by locking.

Failure modes:
    - RuntimeError from any accessor called before init_engine_from_url().
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from expense_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_IN_MEMORY_URLS = ("sqlite://", "sqlite+pysqlite://")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _sqlite_engine(database_url: str, echo: bool) -> Engine:
    connect_args = {"check_same_thread": False}
    if database_url in _IN_MEMORY_URLS or ":memory:" in database_url:
        # One shared connection, otherwise each checkout sees an empty database.
        engine = create_engine(
            database_url, echo=echo, connect_args=connect_args, poolclass=StaticPool,
        )
    else:
        engine = create_engine(database_url, echo=echo, connect_args=connect_args)

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create the module-level engine and session factory.

    Calling this again replaces both; callers that switch databases should
    call reset_engine() first so pooled connections are released.

    Args:
        database_url: ``sqlite://`` (in-memory), ``sqlite:///path`` or a
            PostgreSQL URL.
        echo: Log every SQL statement.
        pool_size, max_overflow, pool_recycle: Pool tuning for server
            databases; ignored for SQLite.
    """
    global _engine, _SessionFactory

    if database_url.startswith("sqlite"):
        _engine = _sqlite_engine(database_url, echo)
    else:
        _engine = create_engine(
            database_url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": _engine.dialect.name, "echo": echo},
    )
    return _engine


def _require_initialized() -> sessionmaker[Session]:
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


def get_engine() -> Engine:
    _require_initialized()
    return _engine


def get_session() -> Session:
    """A new session bound to the current engine. The caller owns it."""
    return _require_initialized()()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Run a unit of work in one transaction.

    Commits on normal exit; rolls back and re-raises on any exception.
    The session is always closed.

    Usage:
        with session_scope() as session:
            ApprovalService(session, clock, dispatcher).update_status(...)
    """
    session = get_session()
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    """Create every kernel table on the current engine."""
    from expense_kernel.db.base import Base
    import expense_kernel.models  # noqa: F401  (registers all tables)

    Base.metadata.create_all(get_engine())
    logger.info("tables_created", extra={"table_count": len(Base.metadata.tables)})


def drop_tables() -> None:
    from expense_kernel.db.base import Base
    import expense_kernel.models  # noqa: F401

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory. Used by tests."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


@atexit.register
def _dispose_on_exit() -> None:
    if _engine is not None:
        _engine.dispose()
