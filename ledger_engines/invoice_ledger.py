"""
ledger_engines.invoice_ledger -- Invoice totals from line items, discounts and tax.

Responsibility:
    Compute subtotal, per-line and aggregate discount, tax and grand total
    from an ordered list of line items and a tax rate.  Totals are never
    stored independently of the items: every caller recomputes them here,
    so they cannot drift from their inputs.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import ledger_kernel/domain.

Invariants enforced:
    - Order of operations is fixed: discount is applied per line before
      summing; tax is applied once to the post-discount aggregate.
    - sum(line_total) == subtotal_after_discount for every item list.
    - tax_amount == apply_percent(subtotal_after_discount, tax_rate_percent).
    - Integer cents throughout; each percentage is rounded exactly once.
    - Replay safety: identical inputs produce identical outputs.

Failure modes:
    - InvalidAmountError on item construction: quantity < 1, negative unit
      price, discount outside 0..100, float inputs.
    - InvalidAmountError from ``compute`` for a negative or float tax rate.

Usage:
    from ledger_engines.invoice_ledger import InvoiceItem, InvoiceLedger

    totals = InvoiceLedger().compute(
        items=[InvoiceItem("Maize flour 2kg", 2, 1000, Decimal("10"))],
        tax_rate_percent=Decimal("16"),
    )
    totals.total_amount   # 2088
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from ledger_engines.tracer import traced_engine
from ledger_kernel.domain.money import (
    Cents,
    PercentLike,
    apply_percent,
    sum_cents,
    to_percent,
    validate_cents,
)
from ledger_kernel.exceptions import InvalidAmountError
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.invoice_ledger")

_MAX_DISCOUNT = Decimal("100")


@dataclass(frozen=True)
class InvoiceItem:
    """
    A single line item on an invoice.

    Contract:
        Frozen value object; validated on construction.
    Guarantees:
        - quantity is a positive int.
        - unit_price_cents is non-negative integer cents.
        - discount_percent is a Decimal in [0, 100].
        - line_total is never negative (a 100% discount yields zero).
    """

    description: str
    quantity: int
    unit_price_cents: Cents
    discount_percent: Decimal = Decimal("0")
    id: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise InvalidAmountError(self.quantity, "quantity must be an integer")
        if self.quantity < 1:
            raise InvalidAmountError(self.quantity, "quantity must be positive")
        validate_cents(self.unit_price_cents, "unit_price_cents")
        discount = to_percent(self.discount_percent, "discount_percent")
        if discount > _MAX_DISCOUNT:
            raise InvalidAmountError(self.discount_percent, "discount_percent cannot exceed 100")
        object.__setattr__(self, "discount_percent", discount)

    @property
    def line_subtotal(self) -> Cents:
        return self.quantity * self.unit_price_cents

    @property
    def line_discount(self) -> Cents:
        return apply_percent(self.line_subtotal, self.discount_percent)

    @property
    def line_total(self) -> Cents:
        return self.line_subtotal - self.line_discount


@dataclass(frozen=True)
class LineTotals:
    """Per-line breakdown, in item order."""

    index: int
    line_subtotal: Cents
    line_discount: Cents
    line_total: Cents


@dataclass(frozen=True)
class Totals:
    """
    Invoice totals.

    Guarantees:
        - subtotal_after_discount == subtotal_before_discount - total_discount
        - total_amount == subtotal_after_discount + tax_amount
    """

    subtotal_before_discount: Cents
    total_discount: Cents
    subtotal_after_discount: Cents
    tax_amount: Cents
    total_amount: Cents
    lines: tuple[LineTotals, ...] = ()

    @classmethod
    def zero(cls) -> Totals:
        return cls(0, 0, 0, 0, 0)


class InvoiceLedger:
    """
    Pure invoice totals calculator.

    Contract:
        No I/O, no stored state.  All inputs passed as parameters.
    Non-goals:
        - Does not look up tax rates by jurisdiction.
        - Does not convert currencies.
    """

    @traced_engine("invoice_ledger", "1.0", fingerprint_fields=("items", "tax_rate_percent"))
    def compute(
        self,
        items: Sequence[InvoiceItem],
        tax_rate_percent: PercentLike,
    ) -> Totals:
        """
        Compute totals for ``items`` at ``tax_rate_percent``.

        Returns:
            Totals with a per-line breakdown.  An empty item list yields
            all zeros.
        """
        tax_rate = to_percent(tax_rate_percent, "tax_rate_percent")

        lines = tuple(
            LineTotals(
                index=i,
                line_subtotal=item.line_subtotal,
                line_discount=item.line_discount,
                line_total=item.line_total,
            )
            for i, item in enumerate(items)
        )

        subtotal_before = sum_cents(*(line.line_subtotal for line in lines))
        total_discount = sum_cents(*(line.line_discount for line in lines))
        subtotal_after = subtotal_before - total_discount
        tax_amount = apply_percent(subtotal_after, tax_rate)
        total_amount = subtotal_after + tax_amount

        logger.debug("invoice_totals_computed", extra={
            "item_count": len(lines),
            "tax_rate_percent": str(tax_rate),
            "subtotal_after_discount": subtotal_after,
            "tax_amount": tax_amount,
            "total_amount": total_amount,
        })

        return Totals(
            subtotal_before_discount=subtotal_before,
            total_discount=total_discount,
            subtotal_after_discount=subtotal_after,
            tax_amount=tax_amount,
            total_amount=total_amount,
            lines=lines,
        )


_default_ledger = InvoiceLedger()


def compute_totals(items: Sequence[InvoiceItem], tax_rate_percent: PercentLike) -> Totals:
    """Module-level convenience wrapper around ``InvoiceLedger().compute``."""
    return _default_ledger.compute(items, tax_rate_percent)
