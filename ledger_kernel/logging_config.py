"""
Structured JSON logging for the ledger.

Every ledger logger lives under the ``ledger_kernel`` namespace and emits
one JSON object per line.  The message is an event name
(``payment_recorded``); details travel in ``extra`` and become top-level
keys.  Request-scoped ids bound with ``LogContext`` (the invoice or
transaction being worked on) are stamped onto every record emitted
inside the binding, including records from engines that never see the id.

Ledger errors logged with ``exc_info`` are rendered as an ``error``
object carrying the error code and the error's context attributes, so
a rejected payment's amount and remaining balance are searchable
without parsing the message.
"""

__all__ = [
    "CONTEXT_FIELDS",
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, is_dataclass
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import UUID

CONTEXT_FIELDS = ("correlation_id", "invoice_id", "transaction_id", "actor_id")

_EMPTY: Mapping[str, str] = MappingProxyType({})
_context: ContextVar[Mapping[str, str]] = ContextVar("ledger_log_context", default=_EMPTY)


class LogContext:
    """Request-scoped log fields, isolated per thread and per task."""

    @staticmethod
    def _merged(fields: Mapping[str, Any]) -> Mapping[str, str]:
        current = dict(_context.get())
        for key, val in fields.items():
            if key in CONTEXT_FIELDS and val is not None:
                current[key] = str(val)
        return MappingProxyType(current)

    @classmethod
    def set(cls, **fields: str | None) -> None:
        """Set context fields.  None values leave a field unchanged."""
        unknown = set(fields) - set(CONTEXT_FIELDS)
        if unknown:
            raise ValueError(f"Unknown log context fields: {sorted(unknown)}")
        _context.set(cls._merged(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set(_EMPTY)

    @classmethod
    @contextmanager
    def bind(cls, **fields: str | None) -> Iterator[None]:
        """
        Set fields for the duration of a block and restore them on exit.

        Fields outside CONTEXT_FIELDS are ignored, so callers can pass
        through whatever ids they hold.
        """
        token = _context.set(cls._merged(fields))
        try:
            yield
        finally:
            _context.reset(token)


# ---------------------------------------------------------------------------
# JSON rendering
# ---------------------------------------------------------------------------

_RESERVED = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "taskName",
}


def _to_json(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (Decimal, UUID)):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if is_dataclass(obj) and not isinstance(obj, type):
        return asdict(obj)
    return str(obj)


def _error_payload(exc: BaseException) -> dict[str, Any]:
    error: dict[str, Any] = {"type": type(exc).__name__, "message": str(exc)}
    code = getattr(exc, "code", None)
    if code is not None:
        error["code"] = code
        context = {k: v for k, v in vars(exc).items() if not k.startswith("_")}
        if context:
            error["context"] = context
    return error


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: ts, level, logger, message, context, extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context.get(),
        }
        payload.update(
            (key, val) for key, val in vars(record).items()
            if key not in _RESERVED and key not in payload
        )
        if record.exc_info and record.exc_info[1] is not None:
            payload["error"] = _error_payload(record.exc_info[1])
            payload["traceback"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_to_json)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------

_ROOT_NAME = "ledger_kernel"
_HANDLER_MARK = "_ledger_structured"


def get_logger(name: str) -> logging.Logger:
    """Logger ``ledger_kernel.<name>``."""
    return logging.getLogger(f"{_ROOT_NAME}.{name}")


def _ledger_handlers(logger: logging.Logger) -> list[logging.Handler]:
    return [h for h in logger.handlers if getattr(h, _HANDLER_MARK, False)]


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> logging.Handler:
    """
    Attach the JSON handler to the ledger logger tree.

    Idempotent: when a ledger handler is already attached it is returned
    unchanged and the arguments are ignored.  ``level`` accepts a level
    name as read from a config file ("INFO").
    """
    root = logging.getLogger(_ROOT_NAME)
    existing = _ledger_handlers(root)
    if existing:
        return existing[0]

    if isinstance(level, str):
        level_name = level.strip().upper()
        levels = logging.getLevelNamesMapping()
        if level_name not in levels:
            raise ValueError(f"Unknown log level {level!r}")
        level = levels[level_name]

    h = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    h.setFormatter(StructuredFormatter())
    setattr(h, _HANDLER_MARK, True)
    root.setLevel(level)
    root.propagate = False
    root.addHandler(h)
    return h


def reset_logging() -> None:
    """Detach ledger handlers and restore the default level.  Test helper."""
    root = logging.getLogger(_ROOT_NAME)
    for h in _ledger_handlers(root):
        root.removeHandler(h)
    root.setLevel(logging.WARNING)
    root.propagate = True
