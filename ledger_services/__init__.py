"""
Ledger Services -- orchestration, persistence and notification.

Services serialize work per invoice, call the modules, write through a
LedgerStore and publish events.  Every operation returns an
OperationResult.
"""

from ledger_services.invoice_service import InvoiceService
from ledger_services.locks import KeyedLockRegistry
from ledger_services.notifications import (
    LoggingDispatcher,
    NotificationDispatcher,
    RecordingDispatcher,
)
from ledger_services.reconciliation_service import ReconciliationService
from ledger_services.results import OperationResult, OperationStatus
from ledger_services.store import InMemoryLedgerStore, LedgerStore

__all__ = [
    "InMemoryLedgerStore",
    "InvoiceService",
    "KeyedLockRegistry",
    "LedgerStore",
    "LoggingDispatcher",
    "NotificationDispatcher",
    "OperationResult",
    "OperationStatus",
    "RecordingDispatcher",
    "ReconciliationService",
]
