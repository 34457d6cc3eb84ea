"""
Structured logging for the commission engine.

Responsibility:
    One JSON object per log line, carrying the command scope it was emitted
    in (correlation id, gallery, command, ledger batch) so a payment can be
    followed from ``command_started`` through ``ledger_batch_appended`` to
    ``command_applied`` or ``command_rejected``.

Architecture position:
    Kernel > cross-cutting.  Every layer logs through ``get_logger``; only
    ``commission_services`` binds scope with ``LogContext.bind``.

Payload rules:
    - Scope fields come from ``LogContext``; an explicit ``extra`` key of the
      same name wins (a ledger row always names its own batch).
    - Enums are logged by value, UUIDs as strings, datetimes as ISO 8601.
      Amounts stay integer cents.
    - A ``CommissionEngineError`` is an expected rejection: it is logged as
      an ``error`` object (code, type, message, recoverable, fields) without
      a traceback.  Any other exception also carries ``traceback``.
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
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator
from uuid import UUID

from commission_kernel.exceptions import CommissionEngineError

LOGGER_NAMESPACE = "commission_kernel"

_SCOPE: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"commission_log_{name}", default=None)
    for name in ("correlation_id", "gallery_id", "command", "batch_id")
}


class LogContext:
    """Command scope attached to every record emitted while it is bound."""

    fields = tuple(_SCOPE)

    @staticmethod
    def set(**values: Any) -> None:
        """Set scope fields for the rest of the current context.  ``None`` is skipped."""
        for name, value in values.items():
            if name in _SCOPE and value is not None:
                _SCOPE[name].set(str(value))

    @staticmethod
    def get_all() -> dict[str, str]:
        return {
            name: value for name, var in _SCOPE.items()
            if (value := var.get()) is not None
        }

    @staticmethod
    def clear() -> None:
        for var in _SCOPE.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**values: Any) -> Iterator[None]:
        """
        Bind scope fields for the duration of a ``with`` block.

        Nested binds override the outer value and restore it on exit, so a
        ledger batch can be bound inside a command.  Unknown names and
        ``None`` values are ignored.
        """
        tokens = [
            (_SCOPE[name], _SCOPE[name].set(str(value)))
            for name, value in values.items()
            if name in _SCOPE and value is not None
        ]
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return value


def _error_payload(exc: BaseException) -> dict[str, Any]:
    error: dict[str, Any] = {"type": type(exc).__name__, "message": str(exc)}
    if isinstance(exc, CommissionEngineError):
        error["code"] = exc.code
        error["recoverable"] = exc.recoverable
        error["fields"] = {
            k: _jsonable(v) for k, v in vars(exc).items() if not k.startswith("_")
        }
    return error


class StructuredFormatter(logging.Formatter):
    """Render a record as one JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                payload[key] = _jsonable(value)

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["error"] = _error_payload(exc)
            if not isinstance(exc, CommissionEngineError):
                payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``commission_kernel`` namespace."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach a JSON handler to the namespace logger.  Only the first call has effect."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    namespace_logger = logging.getLogger(LOGGER_NAMESPACE)
    namespace_logger.setLevel(level)
    namespace_logger.propagate = False

    target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())
    namespace_logger.addHandler(target)


def reset_logging() -> None:
    """Drop handlers and allow ``configure_logging`` to run again.  Test use only."""
    global _configured
    with _lock:
        _configured = False
    namespace_logger = logging.getLogger(LOGGER_NAMESPACE)
    namespace_logger.handlers.clear()
    namespace_logger.setLevel(logging.WARNING)
