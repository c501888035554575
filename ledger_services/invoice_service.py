"""
Invoice Service - Orchestrates invoice operations via modules + store.

Thin glue layer that:
1. Serializes operations per invoice with a keyed lock
2. Calls WorkflowStateMachine and PaymentRecorder for state changes
3. Calls InvoiceLedger and AgingCalculator for reporting
4. Writes through the LedgerStore and publishes events afterwards

All computation lives in engines and modules.  This service owns the
persistence boundary and turns every LedgerKernelError into an
explicit OperationResult.

Usage:
    service = InvoiceService(store, clock=clock)
    result = service.create_invoice("323501", "Wanjiku Stores", items)
    result = service.finalize("323501")
    result = service.record_payment("323501", 2088, PaymentMethod.MPESA, reference="SH12A3B4C5")
    result.status   # OperationStatus.SUCCESS
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import replace
from datetime import date

from ledger_config import LedgerConfig
from ledger_engines.aging import AgingCalculator, AgingInput, AgingReport
from ledger_engines.invoice_ledger import InvoiceItem, InvoiceLedger
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.money import Cents, PercentLike, to_percent
from ledger_kernel.exceptions import (
    DuplicatePaymentError,
    IllegalTransitionError,
    InvoiceAlreadyExistsError,
    InvoiceNotFoundError,
    LedgerKernelError,
    PersistenceError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_modules.invoicing.models import (
    DeliveryInfo,
    Invoice,
    PaymentMethod,
    PaymentStatus,
)
from ledger_modules.invoicing.payments import PaymentRecorder
from ledger_modules.invoicing.workflows import PAYMENT_WORKFLOW, WorkflowStateMachine
from ledger_services.locks import KeyedLockRegistry, invoice_key
from ledger_services.notifications import (
    LoggingDispatcher,
    NotificationDispatcher,
    invoice_change_events,
    publish_all,
)
from ledger_services.results import OperationResult
from ledger_services.store import LedgerStore

logger = get_logger("services.invoice")


class InvoiceService:
    """
    Orchestrates invoice lifecycle operations.

    Concurrency: mutating operations on one invoice id run one at a time;
    different invoices proceed in parallel.  The invoice is re-loaded
    inside the lock, so a caller's stale copy never reaches a module.

    Persistence boundary: the new invoice state is written before any
    event is published.  A failed write returns PERSISTENCE_FAILED with
    the computed invoice and publishes nothing.
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

        self._state_machine = WorkflowStateMachine(clock=self._clock)
        self._recorder = PaymentRecorder(state_machine=self._state_machine, clock=self._clock)

        # Stateless engines
        self._ledger = InvoiceLedger()
        self._aging = AgingCalculator()

    @property
    def locks(self) -> KeyedLockRegistry:
        return self._locks

    # =========================================================================
    # Internals
    # =========================================================================

    def _update(
        self,
        operation: str,
        invoice_id: str,
        change: Callable[[Invoice], Invoice],
    ) -> OperationResult:
        """Load, change, save and notify one invoice under its lock."""
        with LogContext.bind(invoice_id=invoice_id), self._locks.hold(invoice_key(invoice_id)):
            try:
                before = self._store.load_invoice(invoice_id)
            except PersistenceError as e:
                return OperationResult.persistence_failed(e)
            if before is None:
                return OperationResult.rejected(InvoiceNotFoundError(invoice_id))

            try:
                after = change(before)
            except DuplicatePaymentError as e:
                logger.info(f"{operation}_already_recorded", extra={
                    "payment_id": e.payment.id,
                })
                return OperationResult.already_recorded(before)
            except LedgerKernelError as e:
                logger.info(f"{operation}_rejected", extra={
                    "error_code": e.code,
                    "error_message": str(e),
                })
                return OperationResult.rejected(e)

            try:
                self._store.save_invoice(after)
            except PersistenceError as e:
                logger.error(f"{operation}_persistence_failed", extra={
                    "error_message": str(e),
                })
                return OperationResult.persistence_failed(e, after)

            logger.info(f"{operation}_committed", extra={
                "payment_status": after.payment_status.value,
                "fulfillment_status": after.fulfillment_status.value,
            })
            errors = publish_all(
                self._notifier, invoice_change_events(before, after, self._clock.now())
            )
            return OperationResult.success(after, notification_errors=errors)

    # =========================================================================
    # Invoices
    # =========================================================================

    def create_invoice(
        self,
        invoice_id: str,
        client_name: str,
        items: Sequence[InvoiceItem] = (),
        tax_rate_percent: PercentLike | None = None,
        due_date: date | None = None,
        delivery_info: DeliveryInfo | None = None,
        client_email: str | None = None,
        client_phone: str | None = None,
        notes: str | None = None,
    ) -> OperationResult:
        """Create a DRAFT invoice.  Tax rate defaults to the configured rate."""
        with LogContext.bind(invoice_id=invoice_id), self._locks.hold(invoice_key(invoice_id)):
            try:
                rate = to_percent(
                    tax_rate_percent
                    if tax_rate_percent is not None
                    else self._config.default_tax_rate_percent,
                    "tax_rate_percent",
                )
                if self._store.load_invoice(invoice_id) is not None:
                    raise InvoiceAlreadyExistsError(invoice_id)
            except PersistenceError as e:
                return OperationResult.persistence_failed(e)
            except LedgerKernelError as e:
                return OperationResult.rejected(e)

            now = self._clock.now()
            invoice = Invoice(
                id=invoice_id,
                client_name=client_name,
                items=tuple(items),
                tax_rate_percent=rate,
                due_date=due_date,
                client_email=client_email,
                client_phone=client_phone,
                notes=notes,
                created_at=now,
                updated_at=now,
            )
            if delivery_info is not None:
                invoice = self._state_machine.set_delivery_info(invoice, delivery_info)

            try:
                self._store.save_invoice(invoice)
            except PersistenceError as e:
                return OperationResult.persistence_failed(e, invoice)

            logger.info("invoice_created", extra={
                "item_count": len(invoice.items),
                "total_amount": invoice.total_amount,
            })
            return OperationResult.success(invoice)

    def update_items(self, invoice_id: str, items: Sequence[InvoiceItem]) -> OperationResult:
        """Replace the line items.  Only allowed while the invoice is DRAFT."""

        def change(invoice: Invoice) -> Invoice:
            if invoice.payment_status is not PaymentStatus.DRAFT:
                raise IllegalTransitionError(
                    PAYMENT_WORKFLOW.name,
                    invoice.payment_status.value,
                    "update_items",
                    "items are editable only in draft",
                )
            return replace(invoice, items=tuple(items), updated_at=self._clock.now())

        return self._update("invoice_items_update", invoice_id, change)

    def finalize(self, invoice_id: str) -> OperationResult:
        return self._update("invoice_finalize", invoice_id, self._state_machine.finalize)

    def cancel(self, invoice_id: str) -> OperationResult:
        return self._update("invoice_cancel", invoice_id, self._state_machine.cancel)

    # =========================================================================
    # Payments
    # =========================================================================

    def record_payment(
        self,
        invoice_id: str,
        amount: Cents,
        method: PaymentMethod | str,
        reference: str | None = None,
        notes: str | None = None,
        payment_id: str | None = None,
    ) -> OperationResult:
        """
        Record a payment against the current stored invoice.

        A replayed ``payment_id`` with the same payload returns
        ALREADY_RECORDED with the stored invoice.  Without a ``payment_id``
        every call records a new payment.
        """
        return self._update(
            "payment_record",
            invoice_id,
            lambda invoice: self._recorder.record_payment(
                invoice,
                amount,
                method,
                reference=reference,
                notes=notes,
                payment_id=payment_id,
            ),
        )

    def pay_in_full(
        self,
        invoice_id: str,
        method: PaymentMethod | str,
        reference: str | None = None,
        notes: str | None = None,
        payment_id: str | None = None,
    ) -> OperationResult:
        """Record a payment of exactly the remaining balance, read inside the lock."""
        return self._update(
            "payment_record",
            invoice_id,
            lambda invoice: self._recorder.pay_in_full(
                invoice,
                method,
                reference=reference,
                notes=notes,
                payment_id=payment_id,
            ),
        )

    # =========================================================================
    # Fulfillment
    # =========================================================================

    def update_delivery_info(self, invoice_id: str, delivery_info: DeliveryInfo) -> OperationResult:
        return self._update(
            "delivery_info_update",
            invoice_id,
            lambda invoice: self._state_machine.set_delivery_info(invoice, delivery_info),
        )

    def dispatch(self, invoice_id: str) -> OperationResult:
        return self._update("fulfillment_dispatch", invoice_id, self._state_machine.dispatch)

    def confirm_completion(self, invoice_id: str) -> OperationResult:
        return self._update(
            "fulfillment_complete", invoice_id, self._state_machine.confirm_completion
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def get_invoice(self, invoice_id: str) -> OperationResult:
        try:
            invoice = self._store.load_invoice(invoice_id)
        except PersistenceError as e:
            return OperationResult.persistence_failed(e)
        if invoice is None:
            return OperationResult.rejected(InvoiceNotFoundError(invoice_id))
        return OperationResult.success(invoice)

    def get_totals(self, invoice_id: str) -> OperationResult:
        """Totals recomputed from the stored items."""
        result = self.get_invoice(invoice_id)
        if not result.is_success:
            return result
        invoice = result.value
        return OperationResult.success(
            self._ledger.compute(invoice.items, invoice.tax_rate_percent)
        )

    def preview_totals(
        self,
        items: Sequence[InvoiceItem],
        tax_rate_percent: PercentLike | None = None,
    ) -> OperationResult:
        """Totals for items not yet on an invoice (order entry screens)."""
        rate: PercentLike = (
            tax_rate_percent if tax_rate_percent is not None
            else self._config.default_tax_rate_percent
        )
        try:
            return OperationResult.success(self._ledger.compute(items, rate))
        except LedgerKernelError as e:
            return OperationResult.rejected(e)

    def aging_report(self, as_of_date: date | None = None) -> OperationResult:
        """Outstanding balances of unmatched invoices, bucketed by days past due."""
        try:
            invoices = self._store.unmatched_invoices()
        except PersistenceError as e:
            return OperationResult.persistence_failed(e)
        report: AgingReport = self._aging.build_report(
            [
                AgingInput(
                    document_id=invoice.id,
                    amount=invoice.remaining_balance,
                    due_date=invoice.due_date,
                    counterparty_name=invoice.client_name,
                )
                for invoice in invoices
            ],
            as_of_date or self._clock.today(),
            bounds=self._config.aging_buckets,
        )
        return OperationResult.success(report)
