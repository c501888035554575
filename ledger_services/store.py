"""
ledger_services.store -- Persistence collaborator for invoices and transactions.

Responsibility:
    The record-store protocol the services write through, and an
    in-memory implementation for tests and single-process use.  The
    SQLAlchemy implementation lives in ``ledger_services.orm``.

Invariants enforced:
    - A save is durable before it returns; a failed save raises
      PersistenceError and leaves the stored state unchanged.
    - ``save_reconciliation`` writes the invoice and the transaction as
      one unit: both or neither.
"""

from __future__ import annotations

import threading
from typing import Protocol, runtime_checkable

from ledger_kernel.logging_config import get_logger
from ledger_modules.invoicing.models import Invoice
from ledger_modules.reconciliation.models import Transaction

logger = get_logger("services.store")


@runtime_checkable
class LedgerStore(Protocol):
    """Abstract record store.  Writes raise PersistenceError on failure."""

    def load_invoice(self, invoice_id: str) -> Invoice | None:
        ...

    def save_invoice(self, invoice: Invoice) -> None:
        ...

    def load_transaction(self, transaction_id: str) -> Transaction | None:
        ...

    def save_transaction(self, transaction: Transaction) -> None:
        ...

    def save_reconciliation(self, invoice: Invoice, transaction: Transaction) -> None:
        ...

    def list_invoices(self) -> list[Invoice]:
        ...

    def list_transactions(self) -> list[Transaction]:
        ...

    def unmatched_invoices(self) -> list[Invoice]:
        """Invoices in SENT or PARTIALLY_PAID with a remaining balance."""
        ...


class InMemoryLedgerStore:
    """Dict-backed LedgerStore.  Thread-safe; values are frozen models."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._invoices: dict[str, Invoice] = {}
        self._transactions: dict[str, Transaction] = {}

    def load_invoice(self, invoice_id: str) -> Invoice | None:
        with self._lock:
            return self._invoices.get(invoice_id)

    def save_invoice(self, invoice: Invoice) -> None:
        with self._lock:
            self._invoices[invoice.id] = invoice
        logger.debug("invoice_saved", extra={"invoice_id": invoice.id})

    def load_transaction(self, transaction_id: str) -> Transaction | None:
        with self._lock:
            return self._transactions.get(transaction_id)

    def save_transaction(self, transaction: Transaction) -> None:
        with self._lock:
            self._transactions[transaction.id] = transaction
        logger.debug("transaction_saved", extra={"transaction_id": transaction.id})

    def save_reconciliation(self, invoice: Invoice, transaction: Transaction) -> None:
        with self._lock:
            self._invoices[invoice.id] = invoice
            self._transactions[transaction.id] = transaction
        logger.debug("reconciliation_saved", extra={
            "invoice_id": invoice.id,
            "transaction_id": transaction.id,
        })

    def list_invoices(self) -> list[Invoice]:
        with self._lock:
            return sorted(self._invoices.values(), key=lambda i: i.id)

    def list_transactions(self) -> list[Transaction]:
        with self._lock:
            return sorted(self._transactions.values(), key=lambda t: t.id)

    def unmatched_invoices(self) -> list[Invoice]:
        return [i for i in self.list_invoices() if i.is_unmatched]
