"""
Structured JSON logging for the stock kernel.

Every line is one JSON object::

    {"ts": "...", "level": "INFO", "logger": "stock_kernel.services.movement_store",
     "message": "movement_added", "sku": "TEA-001", "reference_id": "1042",
     "movement_id": 17, "quantity": -3}

Messages are snake_case event names; data goes in ``extra``.  The ledger
context (``sku``, ``reference_id``, ``operation``) is bound by the services
with ``LogContext.bind()`` and stamped onto every line logged inside it.
"""

__all__ = [
    "CONTEXT_FIELDS",
    "LogContext",
    "StructuredFormatter",
    "configure_logging",
    "get_logger",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

_LOGGER_PREFIX = "stock_kernel"

CONTEXT_FIELDS = ("sku", "reference_id", "operation")

_context: ContextVar[dict[str, str] | None] = ContextVar("stock_log_context", default=None)


class LogContext:
    """Ledger context carried by every log line of the current thread or task."""

    @staticmethod
    def current() -> dict[str, str]:
        return dict(_context.get() or {})

    @staticmethod
    @contextmanager
    def bind(
        *,
        sku: str | None = None,
        reference_id: str | None = None,
        operation: str | None = None,
    ) -> Iterator[None]:
        """Add fields for the duration of the block; None leaves a field as is."""
        updates = {
            name: value
            for name, value in zip(CONTEXT_FIELDS, (sku, reference_id, operation))
            if value is not None
        }
        token = _context.set({**(_context.get() or {}), **updates})
        try:
            yield
        finally:
            _context.reset(token)

    @staticmethod
    def clear() -> None:
        _context.set(None)


# Attributes every LogRecord has; anything else on a record came from ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "taskName"}
_HEADER_KEYS = ("ts", "level", "logger", "message")


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    """Type, message and the structured attributes of a kernel exception."""
    fields: dict[str, Any] = {"type": type(exc).__name__, "message": str(exc)}
    code = getattr(exc, "code", None)
    if code is not None:
        fields["code"] = code
    for name, value in vars(exc).items():
        if not name.startswith("_") and name not in fields:
            fields[name] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: header, ledger context, extras, exception."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.current())
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key not in _HEADER_KEYS
        )
        if record.exc_info and record.exc_info[1] is not None:
            payload["exception"] = _exception_fields(record.exc_info[1])
            payload["traceback"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``stock_kernel`` namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Install one JSON handler on ``stock_kernel``.  Later calls do nothing."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())

    root = logging.getLogger(_LOGGER_PREFIX)
    root.setLevel(level)
    root.propagate = False
    root.addHandler(handler)


def reset_logging() -> None:
    """Drop the handler and allow ``configure_logging`` again (tests only)."""
    global _configured
    with _lock:
        _configured = False
    root = logging.getLogger(_LOGGER_PREFIX)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
