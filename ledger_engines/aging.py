"""
Module: ledger_engines.aging
Responsibility:
    Classify outstanding invoice balances into days-past-due buckets for
    the outstanding invoices report (Current, 1-30, 31-60, Over 60 by
    default).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import ledger_kernel/domain.

Invariants enforced:
    - Purity: no clock access; ``as_of_date`` is always passed in.
    - Integer cents for every bucket total.
    - Every item lands in exactly one bucket.

Failure modes:
    - ValueError for unsorted, duplicate or non-positive bucket bounds.
    - InvalidAmountError for a negative or non-integer item amount.

Usage:
    from ledger_engines.aging import AgingCalculator, AgingInput

    report = AgingCalculator().build_report(
        items=[AgingInput("323501", 1500, due_date=date(2024, 1, 1))],
        as_of_date=date(2024, 2, 15),
    )
    report.total_by_bucket()   # {"Current": 0, "1-30": 0, "31-60": 1500, "Over 60": 0}
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date

from ledger_engines.tracer import traced_engine
from ledger_kernel.domain.money import Cents, sum_cents, validate_cents
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.aging")

DEFAULT_BUCKET_BOUNDS: tuple[int, ...] = (30, 60)


@dataclass(frozen=True)
class AgeBucket:
    """
    A contiguous range of days past due.

    ``min_days=None`` is unbounded below; ``max_days=None``
    is unbounded above.
    """

    name: str
    min_days: int | None
    max_days: int | None

    def __post_init__(self) -> None:
        if (
            self.min_days is not None
            and self.max_days is not None
            and self.max_days < self.min_days
        ):
            raise ValueError("max_days cannot be less than min_days")

    def contains(self, days_past_due: int) -> bool:
        if self.min_days is not None and days_past_due < self.min_days:
            return False
        if self.max_days is not None and days_past_due > self.max_days:
            return False
        return True


def build_buckets(bounds: Sequence[int] = DEFAULT_BUCKET_BOUNDS) -> tuple[AgeBucket, ...]:
    """
    Build a bucket sequence from ascending upper bounds.

    ``(30, 60)`` yields Current (due today or later), 1-30, 31-60 and Over 60.
    """
    bounds = tuple(bounds)
    if list(bounds) != sorted(bounds) or len(bounds) != len(set(bounds)):
        raise ValueError("bucket bounds must be sorted ascending and unique")
    if any(b <= 0 for b in bounds):
        raise ValueError("bucket bounds must be positive")

    buckets = [AgeBucket("Current", None, 0)]
    lower = 1
    for upper in bounds:
        buckets.append(AgeBucket(f"{lower}-{upper}", lower, upper))
        lower = upper + 1
    last = bounds[-1] if bounds else 0
    buckets.append(AgeBucket(f"Over {last}", lower, None))
    return tuple(buckets)


@dataclass(frozen=True)
class AgingInput:
    """An outstanding balance to age."""

    document_id: str
    amount: Cents
    due_date: date | None = None
    counterparty_name: str | None = None

    def __post_init__(self) -> None:
        validate_cents(self.amount, "aging amount")


@dataclass(frozen=True)
class AgedItem:
    """An outstanding balance with its age classification."""

    document_id: str
    amount: Cents
    due_date: date | None
    days_past_due: int
    bucket: AgeBucket
    counterparty_name: str | None = None

    @property
    def is_overdue(self) -> bool:
        return self.due_date is not None and self.days_past_due > 0


@dataclass(frozen=True)
class AgingReport:
    """
    Snapshot aging report.

    Guarantees:
        - ``total_amount()`` equals the sum of all item amounts.
        - ``total_by_bucket()`` covers every bucket, zero-filled.
    """

    as_of_date: date
    buckets: tuple[AgeBucket, ...]
    items: tuple[AgedItem, ...]

    @property
    def item_count(self) -> int:
        return len(self.items)

    def total_amount(self) -> Cents:
        return sum_cents(*(i.amount for i in self.items))

    def total_by_bucket(self) -> dict[str, Cents]:
        return {
            b.name: sum_cents(*(i.amount for i in self.items if i.bucket.name == b.name))
            for b in self.buckets
        }

    def count_by_bucket(self) -> dict[str, int]:
        return {
            b.name: sum(1 for i in self.items if i.bucket.name == b.name)
            for b in self.buckets
        }

    def overdue_items(self) -> tuple[AgedItem, ...]:
        return tuple(i for i in self.items if i.is_overdue)

    def overdue_amount(self) -> Cents:
        return sum_cents(*(i.amount for i in self.overdue_items()))


class AgingCalculator:
    """
    Age outstanding balances.

    Contract:
        Pure functions -- no I/O, all dates passed as parameters.
    Guarantees:
        - Items without a due date are never overdue (Current bucket).
        - Report items are ordered by days past due, most overdue first.
    """

    def days_past_due(self, due_date: date | None, as_of_date: date) -> int:
        """Days since ``due_date``; zero or negative when not yet past due."""
        if due_date is None:
            return 0
        return (as_of_date - due_date).days

    def classify(self, days_past_due: int, buckets: Sequence[AgeBucket]) -> AgeBucket:
        for bucket in buckets:
            if bucket.contains(days_past_due):
                return bucket
        raise ValueError(f"No bucket for {days_past_due} days past due")

    @traced_engine("aging", "1.0", fingerprint_fields=("items", "as_of_date", "bounds"))
    def build_report(
        self,
        items: Sequence[AgingInput],
        as_of_date: date,
        bounds: Sequence[int] = DEFAULT_BUCKET_BOUNDS,
    ) -> AgingReport:
        buckets = build_buckets(bounds)
        aged = []
        for item in items:
            days = self.days_past_due(item.due_date, as_of_date)
            aged.append(AgedItem(
                document_id=item.document_id,
                amount=item.amount,
                due_date=item.due_date,
                days_past_due=days,
                bucket=self.classify(days, buckets),
                counterparty_name=item.counterparty_name,
            ))
        aged.sort(key=lambda a: (-a.days_past_due, a.document_id))

        report = AgingReport(as_of_date=as_of_date, buckets=buckets, items=tuple(aged))
        logger.info("aging_report_built", extra={
            "as_of_date": as_of_date.isoformat(),
            "item_count": report.item_count,
            "total_amount": report.total_amount(),
            "overdue_amount": report.overdue_amount(),
        })
        return report
