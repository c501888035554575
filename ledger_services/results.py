"""
ledger_services.results -- Explicit outcome of every service operation.

Services never raise LedgerKernelError to their callers: each operation
returns an ``OperationResult`` whose ``status`` says what happened.

    SUCCESS             -- computed and persisted
    ALREADY_RECORDED    -- idempotent replay; ``value`` is the stored state
    REJECTED            -- validation or workflow error; nothing changed
    PERSISTENCE_FAILED  -- computed but not written; ``value`` holds the
                           computed state for retry
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from ledger_kernel.exceptions import LedgerKernelError


class OperationStatus(str, Enum):
    """Status of a service operation."""

    SUCCESS = "success"
    ALREADY_RECORDED = "already_recorded"
    REJECTED = "rejected"
    PERSISTENCE_FAILED = "persistence_failed"


@dataclass(frozen=True)
class OperationResult:
    """Result of a service operation."""

    status: OperationStatus
    value: Any = None
    error_code: str | None = None
    message: str | None = None
    notification_errors: tuple[str, ...] = ()

    @property
    def is_success(self) -> bool:
        return self.status in (
            OperationStatus.SUCCESS,
            OperationStatus.ALREADY_RECORDED,
        )

    @classmethod
    def success(cls, value: Any, notification_errors: tuple[str, ...] = ()) -> OperationResult:
        return cls(OperationStatus.SUCCESS, value, notification_errors=notification_errors)

    @classmethod
    def already_recorded(cls, value: Any) -> OperationResult:
        return cls(OperationStatus.ALREADY_RECORDED, value)

    @classmethod
    def rejected(cls, error: LedgerKernelError) -> OperationResult:
        return cls(OperationStatus.REJECTED, error_code=error.code, message=str(error))

    @classmethod
    def persistence_failed(cls, error: LedgerKernelError, value: Any = None) -> OperationResult:
        return cls(
            OperationStatus.PERSISTENCE_FAILED,
            value,
            error_code=error.code,
            message=str(error),
        )
