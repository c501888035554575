"""
Reconciliation Domain Models (``ledger_modules.reconciliation.models``).

Responsibility
--------------
Externally observed payment transactions (M-Pesa, bank transfer, cash
drop) and the aggregates shown on the reconciliation dashboard.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.

Invariants enforced
-------------------
* ``frozen=True``; the core changes only ``reconciliation_status``,
  ``invoice_id`` and ``notes``, always via ``dataclasses.replace``.
* ``amount`` is positive integer cents.
* A MATCHED transaction always carries an ``invoice_id``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from ledger_kernel.domain.money import Cents, validate_cents
from ledger_kernel.exceptions import InvalidAmountError
from ledger_modules.invoicing.models import PaymentMethod


class ReconciliationStatus(str, Enum):
    """Whether a transaction has been linked to the invoice it pays."""
    PENDING = "pending"
    MATCHED = "matched"
    DISPUTED = "disputed"


@dataclass(frozen=True)
class Transaction:
    """A payment event reported by an external feed."""
    id: str
    amount: Cents
    payment_method: PaymentMethod
    processed_at: datetime
    reference: str | None = None  # M-Pesa receipt number, bank reference
    reconciliation_status: ReconciliationStatus = ReconciliationStatus.PENDING
    invoice_id: str | None = None  # lookup key, not ownership
    notes: str | None = None

    def __post_init__(self):
        validate_cents(self.amount, "transaction amount")
        if self.amount == 0:
            raise InvalidAmountError(self.amount, "transaction amount must be positive")
        object.__setattr__(self, "payment_method", PaymentMethod(self.payment_method))
        object.__setattr__(
            self, "reconciliation_status", ReconciliationStatus(self.reconciliation_status)
        )
        if self.reconciliation_status is ReconciliationStatus.MATCHED and not self.invoice_id:
            raise ValueError("A matched transaction must reference an invoice")

    @property
    def is_matched(self) -> bool:
        return self.reconciliation_status is ReconciliationStatus.MATCHED


def _zero_by_method() -> dict[PaymentMethod, Cents]:
    return {method: 0 for method in PaymentMethod}


@dataclass(frozen=True)
class TransactionSummary:
    """Dashboard aggregates over a set of transactions."""
    total_amount: Cents = 0
    total_count: int = 0
    amount_by_method: dict[PaymentMethod, Cents] = field(default_factory=_zero_by_method)
    pending_count: int = 0
    matched_count: int = 0
    disputed_count: int = 0

    @property
    def unresolved_count(self) -> int:
        return self.pending_count + self.disputed_count
