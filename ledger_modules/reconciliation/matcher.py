"""
ledger_modules.reconciliation.matcher -- Link external transactions to invoices.

Responsibility:
    Rank outstanding invoices as candidates for an observed transaction,
    confirm an operator's chosen match (recording the payment on the
    invoice), and flag transactions as disputed.

Architecture position:
    Modules layer.  Delegates ranking to ledger_engines.matching and
    payment recording to ledger_modules.invoicing.payments.  No I/O: the
    caller loads invoices and persists the returned pair.

Invariants enforced:
    - A matched transaction is never matched again, whatever the target.
    - An invoice already settled by another transaction of the same
      amount is not matched a second time.
    - confirm_match returns the transaction and invoice together; the
      caller writes both in one unit of work or neither.
    - rank_candidates is read-only and deterministic.

Failure modes:
    - AlreadyMatchedError, InvoiceNotFoundError from confirm_match.
    - Any PaymentRecorder error (overpayment, illegal transition)
      propagates unchanged from confirm_match.
    - TransactionNotPendingError from mark_disputed.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, replace

from ledger_engines.matching import (
    DEFAULT_CLOSE_MATCH_PERCENT,
    DEFAULT_MATCH_WINDOW,
    MatchCandidate,
    MatchingEngine,
    MatchQuality,
)
from ledger_kernel.domain.money import Cents, PercentLike, to_percent
from ledger_kernel.exceptions import (
    AlreadyMatchedError,
    DuplicatePaymentError,
    InvoiceNotFoundError,
    TransactionNotPendingError,
)
from ledger_kernel.logging_config import get_logger
from ledger_modules.invoicing.models import Invoice, PaymentMethod
from ledger_modules.invoicing.payments import PaymentRecorder
from ledger_modules.reconciliation.models import (
    ReconciliationStatus,
    Transaction,
    TransactionSummary,
)

logger = get_logger("modules.reconciliation.matcher")


@dataclass(frozen=True)
class RankedCandidate:
    """An invoice ranked against a transaction amount."""
    invoice: Invoice
    amount_delta_cents: Cents
    match_quality: MatchQuality


class ReconciliationMatcher:
    """
    Rank, confirm and dispute transaction-to-invoice matches.

    Contract:
        Operates on frozen models and returns updated copies.
    """

    def __init__(
        self,
        recorder: PaymentRecorder | None = None,
        engine: MatchingEngine | None = None,
        close_match_percent: PercentLike = DEFAULT_CLOSE_MATCH_PERCENT,
        match_window: int = DEFAULT_MATCH_WINDOW,
    ):
        self._recorder = recorder or PaymentRecorder()
        self._engine = engine or MatchingEngine()
        self._close_match_percent = to_percent(close_match_percent, "close_match_percent")
        self._match_window = match_window

    def rank_candidates(
        self,
        transaction: Transaction,
        unmatched_invoices: Iterable[Invoice],
        limit: int | None = None,
    ) -> list[RankedCandidate]:
        """
        Invoices ordered by ``|total_amount - transaction.amount|``.

        ``limit`` defaults to the configured match window; exact matches
        beyond the window are still returned.
        """
        candidates = [
            MatchCandidate(
                document_id=invoice.id,
                amount=invoice.total_amount,
                due_date=invoice.due_date,
                payload=invoice,
            )
            for invoice in unmatched_invoices
        ]
        ranked = self._engine.rank(
            transaction.amount,
            candidates,
            close_match_percent=self._close_match_percent,
            limit=limit if limit is not None else self._match_window,
        )
        return [
            RankedCandidate(
                invoice=m.candidate.payload,
                amount_delta_cents=m.amount_delta,
                match_quality=m.quality,
            )
            for m in ranked
        ]

    def confirm_match(
        self,
        transaction: Transaction,
        invoice_id: str,
        invoices: Mapping[str, Invoice],
    ) -> tuple[Transaction, Invoice]:
        """
        Match ``transaction`` to invoice ``invoice_id`` and record the payment.

        Args:
            transaction: Current state of the transaction.
            invoice_id: Operator's chosen invoice.
            invoices: Invoice lookup; a missing key means not found.

        Returns:
            (matched transaction, invoice with the payment recorded).
        """
        if transaction.is_matched:
            logger.info("match_rejected_already_matched", extra={
                "transaction_id": transaction.id,
                "invoice_id": transaction.invoice_id,
            })
            raise AlreadyMatchedError(transaction.id, invoice_id=transaction.invoice_id)

        invoice = invoices.get(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)

        if invoice.remaining_balance == 0:
            for payment in invoice.payments:
                if (
                    payment.transaction_id is not None
                    and payment.transaction_id != transaction.id
                    and payment.amount == transaction.amount
                ):
                    logger.info("match_rejected_invoice_settled", extra={
                        "transaction_id": transaction.id,
                        "invoice_id": invoice_id,
                        "matched_transaction_id": payment.transaction_id,
                    })
                    raise AlreadyMatchedError(
                        transaction.id,
                        invoice_id=invoice_id,
                        matched_transaction_id=payment.transaction_id,
                    )

        try:
            invoice = self._recorder.record_payment(
                invoice,
                transaction.amount,
                transaction.payment_method,
                reference=transaction.reference,
                notes=f"Reconciled from transaction {transaction.id}",
                transaction_id=transaction.id,
            )
        except DuplicatePaymentError:
            # Payment landed earlier but the transaction was never marked.
            logger.info("match_payment_already_recorded", extra={
                "transaction_id": transaction.id,
                "invoice_id": invoice_id,
            })

        matched = replace(
            transaction,
            reconciliation_status=ReconciliationStatus.MATCHED,
            invoice_id=invoice_id,
        )
        logger.info("match_confirmed", extra={
            "transaction_id": transaction.id,
            "invoice_id": invoice_id,
            "amount": transaction.amount,
            "previous_status": transaction.reconciliation_status.value,
            "payment_status": invoice.payment_status.value,
        })
        return matched, invoice

    def mark_disputed(self, transaction: Transaction, reason: str | None = None) -> Transaction:
        """Flag a pending transaction for triage.  Invoices are not touched."""
        if transaction.reconciliation_status is not ReconciliationStatus.PENDING:
            raise TransactionNotPendingError(
                transaction.id, transaction.reconciliation_status.value
            )
        disputed = replace(
            transaction,
            reconciliation_status=ReconciliationStatus.DISPUTED,
            notes=reason if reason else transaction.notes,
        )
        logger.info("transaction_disputed", extra={
            "transaction_id": transaction.id,
            "reason": reason,
        })
        return disputed


def summarize_transactions(transactions: Sequence[Transaction]) -> TransactionSummary:
    """Totals by payment method and counts by reconciliation status."""
    by_method = {method: 0 for method in PaymentMethod}
    counts = {status: 0 for status in ReconciliationStatus}
    total = 0
    for txn in transactions:
        total += txn.amount
        by_method[txn.payment_method] += txn.amount
        counts[txn.reconciliation_status] += 1
    return TransactionSummary(
        total_amount=total,
        total_count=len(transactions),
        amount_by_method=by_method,
        pending_count=counts[ReconciliationStatus.PENDING],
        matched_count=counts[ReconciliationStatus.MATCHED],
        disputed_count=counts[ReconciliationStatus.DISPUTED],
    )
