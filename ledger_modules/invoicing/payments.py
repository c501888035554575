"""
ledger_modules.invoicing.payments -- Record payments against invoices.

Responsibility:
    Validate a payment against the invoice's payment state and remaining
    balance, append it, and advance the payment axis.

Architecture position:
    Modules layer.  Pure domain logic over frozen models; no I/O.
    Persistence and notification belong to ledger_services.

Invariants enforced:
    - A payment never exceeds the remaining balance: overpayment is
      rejected, never clamped.
    - Payments are append-only; an accepted payment decreases the
      remaining balance by exactly its amount.
    - A payment id is recorded at most once per invoice.  Only explicit
      and transaction-derived ids can repeat; payments entered with just
      a reference get a fresh id, so instalments sharing a reference are
      all recorded.

Failure modes:
    - DuplicatePaymentError: the payment id is already recorded with the
      same amount, method and reference (idempotent replay).
    - PaymentIdConflictError: the payment id is already recorded with a
      different payload.
    - IllegalTransitionError: payment axis is not SENT or PARTIALLY_PAID.
    - InvalidAmountError: amount is not a positive integer of cents.
    - OverpaymentRejectedError: amount exceeds the remaining balance.

Usage:
    recorder = PaymentRecorder(clock=clock)
    invoice = recorder.record_payment(invoice, 2088, PaymentMethod.MPESA, reference="SH12A3B4C5")
    invoice.payment_status   # PaymentStatus.PAID
"""

from __future__ import annotations

from dataclasses import replace

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.money import Cents, validate_cents
from ledger_kernel.exceptions import (
    DuplicatePaymentError,
    IllegalTransitionError,
    InvalidAmountError,
    OverpaymentRejectedError,
    PaymentIdConflictError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.utils.idempotency import generate_payment_id
from ledger_modules.invoicing.models import Invoice, Payment, PaymentMethod
from ledger_modules.invoicing.workflows import PAYMENT_WORKFLOW, WorkflowStateMachine

logger = get_logger("modules.invoicing.payments")


def _resolve_method(method: PaymentMethod | str) -> PaymentMethod:
    try:
        return PaymentMethod(method)
    except ValueError as e:
        raise ValidationError(f"Unknown payment method {method!r}") from e


class PaymentRecorder:
    """
    Applies payments to invoices.

    Contract:
        ``record_payment`` returns a new Invoice with the payment appended
        and the payment axis advanced.  The input invoice is untouched,
        also when an error is raised.
    """

    def __init__(
        self,
        state_machine: WorkflowStateMachine | None = None,
        clock: Clock | None = None,
    ):
        self._clock = clock or SystemClock()
        self._state_machine = state_machine or WorkflowStateMachine(clock=self._clock)

    def record_payment(
        self,
        invoice: Invoice,
        amount: Cents,
        method: PaymentMethod | str,
        reference: str | None = None,
        notes: str | None = None,
        payment_id: str | None = None,
        transaction_id: str | None = None,
    ) -> Invoice:
        """
        Record a payment of ``amount`` cents on ``invoice``.

        Checked in order: replayed payment id, payment state, amount,
        remaining balance.

        Returns:
            The updated invoice.
        """
        method = _resolve_method(method)
        pid = generate_payment_id(payment_id, transaction_id)

        existing = invoice.find_payment(pid)
        if existing is not None:
            if existing.same_payload(amount, method, reference):
                logger.info("payment_replayed", extra={
                    "invoice_id": invoice.id,
                    "payment_id": pid,
                })
                raise DuplicatePaymentError(invoice.id, existing)
            logger.warning("payment_id_conflict", extra={
                "invoice_id": invoice.id,
                "payment_id": pid,
            })
            raise PaymentIdConflictError(invoice.id, pid)

        if not invoice.accepts_payments:
            raise IllegalTransitionError(
                PAYMENT_WORKFLOW.name,
                invoice.payment_status.value,
                "apply_payment",
                "invoice does not accept payments",
            )

        validate_cents(amount, "payment amount")
        if amount == 0:
            raise InvalidAmountError(amount, "payment amount must be positive")

        remaining = invoice.remaining_balance
        if amount > remaining:
            logger.warning("payment_overpayment_rejected", extra={
                "invoice_id": invoice.id,
                "amount": amount,
                "remaining_balance": remaining,
            })
            raise OverpaymentRejectedError(invoice.id, amount, remaining)

        payment = Payment(
            id=pid,
            amount=amount,
            method=method,
            processed_at=self._clock.now(),
            reference=reference,
            notes=notes,
            transaction_id=transaction_id,
        )
        updated = self._state_machine.apply_payment_transition(
            replace(invoice, payments=invoice.payments + (payment,))
        )

        logger.info("payment_recorded", extra={
            "invoice_id": invoice.id,
            "payment_id": pid,
            "amount": amount,
            "method": method.value,
            "remaining_balance": updated.remaining_balance,
            "payment_status": updated.payment_status.value,
        })
        return updated

    def pay_in_full(
        self,
        invoice: Invoice,
        method: PaymentMethod | str,
        reference: str | None = None,
        notes: str | None = None,
        payment_id: str | None = None,
    ) -> Invoice:
        """Record a payment of exactly the remaining balance."""
        return self.record_payment(
            invoice,
            invoice.remaining_balance,
            method,
            reference=reference,
            notes=notes,
            payment_id=payment_id,
        )
