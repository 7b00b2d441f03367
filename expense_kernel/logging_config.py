"""
Structured JSON logging for the expense kernel.

Every record is written as one JSON object per line.  The envelope is
``ts``, ``level``, ``logger`` and ``message``; the request-scoped fields
held by :class:`LogContext` (actor, expense, reference number, correlation
id) are merged in, followed by anything passed through ``extra=``.

Exceptions logged with ``exc_info`` contribute ``exc_type``,
``exc_message`` and, for kernel errors, ``exc_code`` plus one
``exc_<attr>`` key per public attribute of the error.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar, Token
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

LOGGER_ROOT = "expense_kernel"

CONTEXT_FIELDS = ("correlation_id", "actor_id", "expense_id", "reference_number")

_context_vars: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"expense_log_{name}", default=None) for name in CONTEXT_FIELDS
}


class LogContext:
    """Request-scoped log fields, safe across threads and asyncio tasks."""

    @staticmethod
    def set(
        *,
        correlation_id: str | None = None,
        actor_id: str | None = None,
        expense_id: str | None = None,
        reference_number: str | None = None,
    ) -> None:
        """Set the given fields; ``None`` leaves a field unchanged."""
        values = {
            "correlation_id": correlation_id,
            "actor_id": actor_id,
            "expense_id": expense_id,
            "reference_number": reference_number,
        }
        for name, value in values.items():
            if value is not None:
                _context_vars[name].set(value)

    @staticmethod
    def get_all() -> dict[str, str]:
        return {
            name: var.get()
            for name, var in _context_vars.items()
            if var.get() is not None
        }

    @staticmethod
    def clear() -> None:
        for var in _context_vars.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: str | None) -> Iterator[type["LogContext"]]:
        """
        Set fields for the duration of a ``with`` block.

        Unknown names and ``None`` values are ignored.  On exit each field
        goes back to whatever it held before, including ``None``.
        """
        tokens: list[tuple[ContextVar[str | None], Token]] = []
        for name, value in fields.items():
            var = _context_vars.get(name)
            if var is not None and value is not None:
                tokens.append((var, var.set(value)))
        try:
            yield LogContext
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# LogRecord attributes that are never copied into the payload.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for attr, value in vars(exc).items():
        if attr.startswith("_") or attr in ("args", "code"):
            continue
        fields[f"exc_{attr}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }

        for key, value in vars(record).items():
            if key in _RECORD_ATTRS or key in payload:
                continue
            payload[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json)


def get_logger(name: str) -> logging.Logger:
    """Return ``expense_kernel.<name>``."""
    return logging.getLogger(f"{LOGGER_ROOT}.{name}")


_configured = False
_installed_handler: logging.Handler | None = None
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``expense_kernel`` logger.

    Only the first call has an effect.  Records do not propagate to the
    root logger, so host applications see kernel output exactly once.
    """
    global _configured, _installed_handler
    with _lock:
        if _configured:
            return
        _configured = True

        kernel_logger = logging.getLogger(LOGGER_ROOT)
        kernel_logger.setLevel(level)
        kernel_logger.propagate = False

        if handler is not None:
            target = handler
        else:
            target = logging.StreamHandler(stream if stream is not None else sys.stderr)
        target.setFormatter(StructuredFormatter())
        kernel_logger.addHandler(target)
        _installed_handler = target


def reset_logging() -> None:
    """
    Remove the handler configure_logging() installed and allow it to run
    again. Handlers attached by others are left alone. Tests only.
    """
    global _configured, _installed_handler
    with _lock:
        _configured = False
        kernel_logger = logging.getLogger(LOGGER_ROOT)
        if _installed_handler is not None:
            kernel_logger.removeHandler(_installed_handler)
            _installed_handler = None
        kernel_logger.setLevel(logging.WARNING)
