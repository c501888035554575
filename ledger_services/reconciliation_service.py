"""
Reconciliation Service - Orchestrates transaction matching via modules + store.

Thin glue layer that:
1. Ranks unmatched invoices for a transaction (read-only, no lock)
2. Confirms matches under the invoice and transaction locks, writing the
   invoice and the transaction in one unit of work
3. Flags disputed transactions
4. Summarizes transactions for the reconciliation dashboard

Usage:
    service = ReconciliationService(store, clock=clock)
    ranked = service.rank_candidates("QK7A1B2C3D").value
    result = service.confirm_match("QK7A1B2C3D", ranked[0].invoice.id)
"""

from __future__ import annotations

from ledger_config import LedgerConfig
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import (
    LedgerKernelError,
    PersistenceError,
    TransactionNotFoundError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_modules.invoicing.payments import PaymentRecorder
from ledger_modules.invoicing.workflows import WorkflowStateMachine
from ledger_modules.reconciliation.matcher import ReconciliationMatcher, summarize_transactions
from ledger_modules.reconciliation.models import Transaction
from ledger_services.locks import KeyedLockRegistry, invoice_key, transaction_key
from ledger_services.notifications import (
    LoggingDispatcher,
    NotificationDispatcher,
    TransactionDisputed,
    TransactionMatched,
    invoice_change_events,
    publish_all,
)
from ledger_services.results import OperationResult
from ledger_services.store import LedgerStore

logger = get_logger("services.reconciliation")


class ReconciliationService:
    """
    Orchestrates reconciliation of external transactions.

    Share the ``KeyedLockRegistry`` with the InvoiceService that writes
    the same store, so that payments and matches on one invoice are
    serialized.
    """

    def __init__(
        self,
        store: LedgerStore,
        config: LedgerConfig | None = None,
        clock: Clock | None = None,
        notifier: NotificationDispatcher | None = None,
        locks: KeyedLockRegistry | None = None,
    ):
        self._store = store
        self._config = config or LedgerConfig.with_defaults()
        self._clock = clock or SystemClock()
        self._notifier = notifier or LoggingDispatcher()
        self._locks = locks or KeyedLockRegistry()

        recorder = PaymentRecorder(
            state_machine=WorkflowStateMachine(clock=self._clock),
            clock=self._clock,
        )
        self._matcher = ReconciliationMatcher(
            recorder=recorder,
            close_match_percent=self._config.close_match_percent,
            match_window=self._config.match_window,
        )

    def _load_transaction(self, transaction_id: str) -> Transaction:
        transaction = self._store.load_transaction(transaction_id)
        if transaction is None:
            raise TransactionNotFoundError(transaction_id)
        return transaction

    def record_transaction(self, transaction: Transaction) -> OperationResult:
        """Store a transaction reported by a payment feed."""
        with self._locks.hold(transaction_key(transaction.id)):
            try:
                existing = self._store.load_transaction(transaction.id)
                if existing is not None:
                    logger.info("transaction_already_recorded", extra={
                        "transaction_id": transaction.id,
                    })
                    return OperationResult.already_recorded(existing)
                self._store.save_transaction(transaction)
            except PersistenceError as e:
                return OperationResult.persistence_failed(e, transaction)
        logger.info("transaction_recorded", extra={
            "transaction_id": transaction.id,
            "amount": transaction.amount,
        })
        return OperationResult.success(transaction)

    def rank_candidates(self, transaction_id: str, limit: int | None = None) -> OperationResult:
        """
        Rank unmatched invoices for a transaction.

        Reads a snapshot without locking; confirm_match re-validates.
        """
        try:
            transaction = self._load_transaction(transaction_id)
            invoices = self._store.unmatched_invoices()
        except PersistenceError as e:
            return OperationResult.persistence_failed(e)
        except LedgerKernelError as e:
            return OperationResult.rejected(e)
        ranked = self._matcher.rank_candidates(transaction, invoices, limit=limit)
        return OperationResult.success(ranked)

    def confirm_match(self, transaction_id: str, invoice_id: str) -> OperationResult:
        """
        Match a transaction to an invoice and record the payment.

        Returns:
            SUCCESS with ``(transaction, invoice)``; REJECTED with the
            matcher or recorder error code; PERSISTENCE_FAILED with the
            computed pair when the combined write failed.
        """
        keys = (invoice_key(invoice_id), transaction_key(transaction_id))
        with LogContext.bind(invoice_id=invoice_id, transaction_id=transaction_id), \
                self._locks.hold(*keys):
            try:
                transaction = self._load_transaction(transaction_id)
                invoice = self._store.load_invoice(invoice_id)
                lookup = {invoice_id: invoice} if invoice is not None else {}
                matched, paid = self._matcher.confirm_match(transaction, invoice_id, lookup)
            except PersistenceError as e:
                return OperationResult.persistence_failed(e)
            except LedgerKernelError as e:
                logger.info("match_rejected", extra={
                    "error_code": e.code,
                    "error_message": str(e),
                })
                return OperationResult.rejected(e)

            try:
                self._store.save_reconciliation(paid, matched)
            except PersistenceError as e:
                logger.error("match_persistence_failed", extra={"error_message": str(e)})
                return OperationResult.persistence_failed(e, (matched, paid))

            now = self._clock.now()
            events = [
                TransactionMatched(
                    transaction_id=matched.id,
                    invoice_id=invoice_id,
                    amount=matched.amount,
                    occurred_at=now,
                ),
                *invoice_change_events(invoice, paid, now),
            ]
            errors = publish_all(self._notifier, events)
            return OperationResult.success((matched, paid), notification_errors=errors)

    def mark_disputed(self, transaction_id: str, reason: str | None = None) -> OperationResult:
        with LogContext.bind(transaction_id=transaction_id), \
                self._locks.hold(transaction_key(transaction_id)):
            try:
                transaction = self._load_transaction(transaction_id)
                disputed = self._matcher.mark_disputed(transaction, reason)
            except PersistenceError as e:
                return OperationResult.persistence_failed(e)
            except LedgerKernelError as e:
                return OperationResult.rejected(e)

            try:
                self._store.save_transaction(disputed)
            except PersistenceError as e:
                return OperationResult.persistence_failed(e, disputed)

            errors = publish_all(self._notifier, [
                TransactionDisputed(
                    transaction_id=disputed.id,
                    reason=reason,
                    occurred_at=self._clock.now(),
                ),
            ])
            return OperationResult.success(disputed, notification_errors=errors)

    def transaction_summary(self) -> OperationResult:
        try:
            transactions = self._store.list_transactions()
        except PersistenceError as e:
            return OperationResult.persistence_failed(e)
        return OperationResult.success(summarize_transactions(transactions))
