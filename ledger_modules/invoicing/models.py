"""
Invoicing Domain Models (``ledger_modules.invoicing.models``).

Responsibility
--------------
Frozen dataclass value objects for the nouns of invoicing: invoices,
payments and delivery details, and the enums for the two workflow axes.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Consumed by
``PaymentRecorder``, ``WorkflowStateMachine`` and the services layer.

Invariants enforced
-------------------
* All models are ``frozen=True``; state changes produce a new instance
  via ``dataclasses.replace``.
* All monetary fields are integer cents -- NEVER ``float``.
* Invoice totals are derived from ``items`` on every read, never stored.
* ``remaining_balance`` is never negative.
* Payment axis and fulfillment axis are separate fields.  The single
  composite label is a projection (see ``workflows.display_status``).

Failure modes
-------------
* ``InvalidAmountError`` for a non-positive or non-integer payment amount.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from functools import cached_property

from ledger_engines.invoice_ledger import InvoiceItem, Totals, compute_totals
from ledger_kernel.domain.money import Cents, sum_cents, to_percent, validate_cents
from ledger_kernel.exceptions import InvalidAmountError
from ledger_kernel.logging_config import get_logger

logger = get_logger("modules.invoicing.models")


class PaymentMethod(str, Enum):
    """How a payment was received."""
    CASH = "cash"
    MPESA = "mpesa"
    BANK_TRANSFER = "bank_transfer"


class PaymentStatus(str, Enum):
    """Payment axis of the invoice lifecycle."""
    DRAFT = "draft"
    SENT = "sent"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    CANCELLED = "cancelled"


class FulfillmentStatus(str, Enum):
    """Fulfillment axis of the invoice lifecycle."""
    PENDING = "pending"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    PICKED_UP = "picked_up"


class WorkflowStatus(str, Enum):
    """Composite display label.  Derived, never stored."""
    DRAFT = "draft"
    SENT = "sent"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    PICKED_UP = "picked_up"
    CANCELLED = "cancelled"

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self]


_STATUS_LABELS = {
    WorkflowStatus.DRAFT: "Draft",
    WorkflowStatus.SENT: "Sent",
    WorkflowStatus.PARTIALLY_PAID: "Partially Paid",
    WorkflowStatus.PAID: "Paid",
    WorkflowStatus.OUT_FOR_DELIVERY: "Out for Delivery",
    WorkflowStatus.DELIVERED: "Delivered",
    WorkflowStatus.PICKED_UP: "Picked Up",
    WorkflowStatus.CANCELLED: "Cancelled",
}


class DeliveryType(str, Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    OUT_FOR_DELIVERY = "out_for_delivery"
    COMPLETED = "completed"


# Payment statuses that accept a new payment.
OPEN_PAYMENT_STATUSES = frozenset({PaymentStatus.SENT, PaymentStatus.PARTIALLY_PAID})


@dataclass(frozen=True)
class Payment:
    """
    A payment applied to an invoice.  Immutable and append-only.

    ``transaction_id`` is set when the payment came from reconciling an
    external transaction.
    """
    id: str
    amount: Cents
    method: PaymentMethod
    processed_at: datetime
    reference: str | None = None
    notes: str | None = None
    transaction_id: str | None = None

    def __post_init__(self):
        validate_cents(self.amount, "payment amount")
        if self.amount == 0:
            raise InvalidAmountError(self.amount, "payment amount must be positive")
        object.__setattr__(self, "method", PaymentMethod(self.method))

    def same_payload(self, amount: Cents, method: PaymentMethod, reference: str | None) -> bool:
        """True when a replay carries the same amount, method and reference."""
        return (
            self.amount == amount
            and self.method == PaymentMethod(method)
            and (self.reference or None) == (reference or None)
        )


@dataclass(frozen=True)
class DeliveryInfo:
    """Delivery or pickup details for an invoice."""
    type: DeliveryType
    status: DeliveryStatus = DeliveryStatus.PENDING
    scheduled_date: date | None = None
    completed_date: date | None = None
    recipient_name: str | None = None
    recipient_phone: str | None = None
    address: str | None = None
    notes: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "type", DeliveryType(self.type))
        object.__setattr__(self, "status", DeliveryStatus(self.status))

    @property
    def is_delivery(self) -> bool:
        return self.type is DeliveryType.DELIVERY


@dataclass(frozen=True)
class Invoice:
    """
    A customer invoice.

    Monetary totals are computed from ``items`` and ``tax_rate_percent``
    on first access; a replaced invoice recomputes them.
    """
    id: str
    client_name: str
    items: tuple[InvoiceItem, ...] = field(default_factory=tuple)
    tax_rate_percent: Decimal = Decimal("16")
    payment_status: PaymentStatus = PaymentStatus.DRAFT
    fulfillment_status: FulfillmentStatus = FulfillmentStatus.PENDING
    payments: tuple[Payment, ...] = field(default_factory=tuple)
    delivery_info: DeliveryInfo | None = None
    issue_date: date | None = None
    due_date: date | None = None
    client_email: str | None = None
    client_phone: str | None = None
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self):
        object.__setattr__(self, "items", tuple(self.items))
        object.__setattr__(self, "payments", tuple(self.payments))
        object.__setattr__(self, "tax_rate_percent", to_percent(self.tax_rate_percent, "tax_rate_percent"))
        object.__setattr__(self, "payment_status", PaymentStatus(self.payment_status))
        object.__setattr__(self, "fulfillment_status", FulfillmentStatus(self.fulfillment_status))

    @cached_property
    def totals(self) -> Totals:
        return compute_totals(self.items, self.tax_rate_percent)

    @property
    def subtotal_before_discount(self) -> Cents:
        return self.totals.subtotal_before_discount

    @property
    def total_discount(self) -> Cents:
        return self.totals.total_discount

    @property
    def subtotal_after_discount(self) -> Cents:
        return self.totals.subtotal_after_discount

    @property
    def tax_amount(self) -> Cents:
        return self.totals.tax_amount

    @property
    def total_amount(self) -> Cents:
        return self.totals.total_amount

    @property
    def amount_paid(self) -> Cents:
        return sum_cents(*(p.amount for p in self.payments))

    @property
    def remaining_balance(self) -> Cents:
        # Display floor only; payments beyond the total are rejected upstream.
        return max(0, self.total_amount - self.amount_paid)

    @property
    def accepts_payments(self) -> bool:
        return self.payment_status in OPEN_PAYMENT_STATUSES

    @property
    def is_unmatched(self) -> bool:
        """Open for payment with something left to pay."""
        return self.accepts_payments and self.remaining_balance > 0

    def find_payment(self, payment_id: str) -> Payment | None:
        for payment in self.payments:
            if payment.id == payment_id:
                return payment
        return None

    def payment_for_transaction(self, transaction_id: str) -> Payment | None:
        for payment in self.payments:
            if payment.transaction_id == transaction_id:
                return payment
        return None
