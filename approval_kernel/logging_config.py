"""
Structured JSON logging for the approval engine.

Every record is emitted as one JSON line. Request-scoped identifiers
(request, purchase order, acting user, background job) are carried in a
context variable so that worker threads started through
``contextvars.copy_context`` log with the same identifiers as their caller.
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
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import UUID

ROOT_LOGGER_NAME = "approval_kernel"

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "request_id",
    "purchase_order_id",
    "actor_id",
    "job_id",
)

_EMPTY: Mapping[str, str] = MappingProxyType({})
_fields: ContextVar[Mapping[str, str]] = ContextVar("approval_log_fields", default=_EMPTY)


def _merged(current: Mapping[str, str], updates: Mapping[str, str | None]) -> Mapping[str, str]:
    accepted = {
        name: value
        for name, value in updates.items()
        if name in CONTEXT_FIELDS and value is not None
    }
    if not accepted:
        return current
    return MappingProxyType({**current, **accepted})


class LogContext:
    """Request-scoped identifiers attached to every log line."""

    @staticmethod
    def set(**fields: str | None) -> None:
        """Overwrite the named fields; ``None`` and unknown names are ignored."""
        _fields.set(_merged(_fields.get(), fields))

    @staticmethod
    def get_all() -> dict[str, str]:
        current = _fields.get()
        return {name: current[name] for name in CONTEXT_FIELDS if name in current}

    @staticmethod
    def clear() -> None:
        _fields.set(_EMPTY)

    @staticmethod
    @contextmanager
    def bind(**fields: str | None) -> Iterator[None]:
        """Scope fields to a ``with`` block, restoring the previous values on exit."""
        token = _fields.set(_merged(_fields.get(), fields))
        try:
            yield
        finally:
            _fields.reset(token)


# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (set, frozenset)):
        return sorted(str(item) for item in value)
    return str(value)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: envelope, context, extras, then exception."""

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        line.update(LogContext.get_all())
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                line.setdefault(key, value)
        if record.exc_info and record.exc_info[1] is not None:
            line.update(self._exception_fields(record))
        return json.dumps(line, default=_to_json)

    def _exception_fields(self, record: logging.LogRecord) -> dict[str, Any]:
        exc = record.exc_info[1]
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        # ApprovalEngineError subclasses keep their identifiers as attributes
        for attr, value in vars(exc).items():
            if attr != "code" and not attr.startswith("_"):
                fields[f"exc_{attr}"] = value
        fields["traceback"] = self.formatException(record.exc_info)
        return fields


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


_install_lock = threading.Lock()
_installed: logging.Handler | None = None


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach the JSON handler to the engine's logger tree once per process."""
    global _installed
    with _install_lock:
        if _installed is not None:
            return
        target = handler or logging.StreamHandler(stream or sys.stderr)
        target.setFormatter(StructuredFormatter())
        root = logging.getLogger(ROOT_LOGGER_NAME)
        root.setLevel(level)
        root.propagate = False
        root.addHandler(target)
        _installed = target


def reset_logging() -> None:
    """Detach the handler installed by configure_logging (test helper)."""
    global _installed
    with _install_lock:
        root = logging.getLogger(ROOT_LOGGER_NAME)
        root.handlers.clear()
        root.setLevel(logging.WARNING)
        _installed = None
