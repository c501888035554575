"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers need to tell a stale view (refresh and retry) from bad input
(re-prompt) from a failed write (retry the write, the computation stands).
Parsing message strings for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        invoice = recorder.record_payment(invoice, 2500, PaymentMethod.CASH)
    except OverpaymentRejectedError as e:
        log.warning("overpayment", extra={"remaining": e.remaining_balance})
        api_response(code=e.code, remaining=e.remaining_balance)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from LedgerKernelError:

    LedgerKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidAmountError
    |   +-- OverpaymentRejectedError
    |   +-- InvoiceAlreadyExistsError
    |
    +-- WorkflowError
    |   +-- IllegalTransitionError
    |
    +-- PaymentError
    |   +-- DuplicatePaymentError
    |   +-- PaymentIdConflictError
    |
    +-- ReconciliationError
    |   +-- InvoiceNotFoundError
    |   +-- TransactionNotFoundError
    |   +-- AlreadyMatchedError
    |   +-- TransactionNotPendingError
    |
    +-- PersistenceError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | INVALID_AMOUNT              | Negative, zero, float or malformed amount
                | OVERPAYMENT_REJECTED        | Payment exceeds remaining balance
                | INVOICE_EXISTS              | Invoice id already in the store
----------------|-----------------------------|-----------------------------------------
Workflow        | ILLEGAL_TRANSITION          | Action not permitted from current state
----------------|-----------------------------|-----------------------------------------
Payment         | DUPLICATE_PAYMENT           | Same payment id replayed (idempotent)
                | PAYMENT_ID_CONFLICT         | Same payment id, different payload
----------------|-----------------------------|-----------------------------------------
Reconciliation  | INVOICE_NOT_FOUND           | Invoice id does not resolve
                | TRANSACTION_NOT_FOUND       | Transaction id does not resolve
                | ALREADY_MATCHED             | Transaction or invoice already matched
                | TRANSACTION_NOT_PENDING     | Dispute attempted on non-pending txn
----------------|-----------------------------|-----------------------------------------
Persistence     | PERSISTENCE_FAILED          | Store write failed after computation

===============================================================================
HANDLING PATTERNS
===============================================================================

1. VALIDATION ERRORS are recoverable: re-prompt the user.

2. STALE VIEW ERRORS (IllegalTransitionError, AlreadyMatchedError):
   reload the invoice / transaction and retry.

3. IDEMPOTENT REPLAY (DuplicatePaymentError is success):

    try:
        invoice = recorder.record_payment(..., payment_id=pid)
    except DuplicatePaymentError as e:
        payment = e.payment   # already on the invoice

4. PERSISTENCE ERRORS are distinct from validation: the ledger state
   computed in memory is correct, the write simply did not happen.
"""

from __future__ import annotations

from typing import Any


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_KERNEL_ERROR"


# Validation exceptions


class ValidationError(LedgerKernelError):
    """Base exception for rejected input."""

    code: str = "VALIDATION_ERROR"


class InvalidAmountError(ValidationError):
    """Monetary or percentage input is negative, non-integral, or malformed."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, value: Any, reason: str):
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid amount {value!r}: {reason}")


class OverpaymentRejectedError(ValidationError):
    """Payment amount exceeds the invoice's remaining balance."""

    code: str = "OVERPAYMENT_REJECTED"

    def __init__(self, invoice_id: str, amount: int, remaining_balance: int):
        self.invoice_id = invoice_id
        self.amount = amount
        self.remaining_balance = remaining_balance
        super().__init__(
            f"Payment of {amount} exceeds remaining balance {remaining_balance} "
            f"on invoice {invoice_id}"
        )


class InvoiceAlreadyExistsError(ValidationError):
    """An invoice with this id already exists."""

    code: str = "INVOICE_EXISTS"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice already exists: {invoice_id}")


# Workflow exceptions


class WorkflowError(LedgerKernelError):
    """Base exception for workflow state errors."""

    code: str = "WORKFLOW_ERROR"


class IllegalTransitionError(WorkflowError):
    """Workflow action is not permitted from the current state."""

    code: str = "ILLEGAL_TRANSITION"

    def __init__(self, workflow: str, from_state: str, action: str, reason: str | None = None):
        self.workflow = workflow
        self.from_state = from_state
        self.action = action
        self.reason = reason
        message = f"Cannot {action} from {from_state} in workflow {workflow}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


# Payment exceptions


class PaymentError(LedgerKernelError):
    """Base exception for payment recording errors."""

    code: str = "PAYMENT_ERROR"


class DuplicatePaymentError(PaymentError):
    """
    Payment id already recorded on the invoice with the same payload.

    This is an idempotent success, not a failure: the payment exists.
    """

    code: str = "DUPLICATE_PAYMENT"

    def __init__(self, invoice_id: str, payment: Any):
        self.invoice_id = invoice_id
        self.payment = payment
        super().__init__(
            f"Payment {payment.id} already recorded on invoice {invoice_id}"
        )


class PaymentIdConflictError(PaymentError):
    """
    Payment id already recorded on the invoice with a different payload.

    Payments are immutable - a reused id with new data is a client bug.
    """

    code: str = "PAYMENT_ID_CONFLICT"

    def __init__(self, invoice_id: str, payment_id: str):
        self.invoice_id = invoice_id
        self.payment_id = payment_id
        super().__init__(
            f"Payment id {payment_id} on invoice {invoice_id} was already "
            f"recorded with a different payload"
        )


# Reconciliation exceptions


class ReconciliationError(LedgerKernelError):
    """Base exception for transaction reconciliation errors."""

    code: str = "RECONCILIATION_ERROR"


class InvoiceNotFoundError(ReconciliationError):
    """Invoice with given id was not found."""

    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice not found: {invoice_id}")


class TransactionNotFoundError(ReconciliationError):
    """Transaction with given id was not found."""

    code: str = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction not found: {transaction_id}")


class AlreadyMatchedError(ReconciliationError):
    """Transaction is already matched, or the invoice is already settled by another one."""

    code: str = "ALREADY_MATCHED"

    def __init__(
        self,
        transaction_id: str,
        invoice_id: str | None = None,
        matched_transaction_id: str | None = None,
    ):
        self.transaction_id = transaction_id
        self.invoice_id = invoice_id
        self.matched_transaction_id = matched_transaction_id
        if matched_transaction_id is not None:
            message = (
                f"Invoice {invoice_id} is already matched to transaction "
                f"{matched_transaction_id}"
            )
        else:
            message = f"Transaction {transaction_id} is already matched"
            if invoice_id is not None:
                message = f"{message} to invoice {invoice_id}"
        super().__init__(message)


class TransactionNotPendingError(ReconciliationError):
    """Operation requires the transaction to be pending."""

    code: str = "TRANSACTION_NOT_PENDING"

    def __init__(self, transaction_id: str, status: str):
        self.transaction_id = transaction_id
        self.status = status
        super().__init__(
            f"Transaction {transaction_id} is {status}, expected pending"
        )


# Persistence exceptions


class PersistenceError(LedgerKernelError):
    """
    Store write failed after a successful in-memory computation.

    The computed ledger state is not wrong; the write did not happen.
    """

    code: str = "PERSISTENCE_FAILED"

    def __init__(self, entity: str, entity_id: str, reason: str):
        self.entity = entity
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Failed to persist {entity} {entity_id}: {reason}")
