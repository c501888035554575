"""
ledger_engines.matching -- Amount-proximity ranking for payment reconciliation.

Responsibility:
    Rank candidate documents (outstanding invoices) against an observed
    payment amount by absolute amount difference, and classify each
    candidate as an EXACT, CLOSE or NONE match.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import ledger_kernel/domain.

Invariants enforced:
    - Replay safety: identical inputs produce identical order.  Ties on
      amount delta are broken by ascending due date (missing due dates
      last), then by document id.
    - Integer arithmetic only: the CLOSE threshold comparison
      ``delta < amount * percent / 100`` is evaluated as
      ``delta * 100 < amount * percent`` in exact Decimal.
    - The result window never drops an EXACT candidate: when more exact
      matches exist than the window allows, the window grows to hold them.

Failure modes:
    - InvalidAmountError for a negative target amount or threshold.
    - ValueError for a window limit below 1.

Usage:
    from ledger_engines.matching import MatchingEngine, MatchCandidate

    ranked = MatchingEngine().rank(
        target_amount=2088,
        candidates=[MatchCandidate("323501", 2088), MatchCandidate("323502", 2100)],
    )
    ranked[0].quality   # MatchQuality.EXACT
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from ledger_engines.tracer import traced_engine
from ledger_kernel.domain.money import Cents, PercentLike, to_percent, validate_cents
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.matching")

DEFAULT_CLOSE_MATCH_PERCENT = Decimal("10")
DEFAULT_MATCH_WINDOW = 10


class MatchQuality(str, Enum):
    """Classification of a candidate by amount delta."""

    EXACT = "exact"  # delta == 0
    CLOSE = "close"  # 0 < delta < threshold
    NONE = "none"    # listed, not flagged


@dataclass(frozen=True)
class MatchCandidate:
    """
    A document that can receive a payment.

    ``payload`` carries the caller's own object (e.g. the Invoice) through
    ranking untouched; it takes no part in ordering or equality.
    """

    document_id: str
    amount: Cents
    due_date: date | None = None
    payload: Any = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        validate_cents(self.amount, "candidate amount")


@dataclass(frozen=True)
class RankedMatch:
    """A candidate with its distance from the target amount."""

    candidate: MatchCandidate
    amount_delta: Cents
    quality: MatchQuality

    @property
    def is_exact(self) -> bool:
        return self.quality is MatchQuality.EXACT


def classify(
    target_amount: Cents,
    amount_delta: Cents,
    close_match_percent: PercentLike = DEFAULT_CLOSE_MATCH_PERCENT,
) -> MatchQuality:
    """
    Classify an amount delta against the target amount.

    EXACT when the delta is zero; CLOSE when strictly below
    ``close_match_percent`` of the target; NONE otherwise.
    """
    validate_cents(target_amount, "target_amount")
    validate_cents(amount_delta, "amount_delta")
    if amount_delta == 0:
        return MatchQuality.EXACT
    percent = to_percent(close_match_percent, "close_match_percent")
    if Decimal(amount_delta) * 100 < Decimal(target_amount) * percent:
        return MatchQuality.CLOSE
    return MatchQuality.NONE


def _sort_key(match: RankedMatch) -> tuple:
    due = match.candidate.due_date
    return (
        match.amount_delta,
        due is None,
        due or date.min,
        match.candidate.document_id,
    )


class MatchingEngine:
    """
    Amount-proximity matching engine.

    Contract:
        Pure functions -- no I/O, no database access.  Read-only over its
        inputs; safe to run concurrently against a stale snapshot.
    Guarantees:
        - ``rank`` returns candidates sorted ascending by amount delta.
        - The returned list is bounded by ``limit`` except that every
          EXACT candidate is always returned.
    Non-goals:
        - Does not filter candidates by status; callers pass only
          documents that may receive a payment.
        - Does not confirm matches; see the reconciliation module.
    """

    @traced_engine("matching", "1.0", fingerprint_fields=("target_amount", "candidates", "limit"))
    def rank(
        self,
        target_amount: Cents,
        candidates: Sequence[MatchCandidate],
        close_match_percent: PercentLike = DEFAULT_CLOSE_MATCH_PERCENT,
        limit: int | None = DEFAULT_MATCH_WINDOW,
    ) -> list[RankedMatch]:
        """
        Rank candidates by proximity to ``target_amount``.

        Args:
            target_amount: Observed payment amount in cents.
            candidates: Documents to rank.
            close_match_percent: CLOSE threshold as a percent of target.
            limit: Presentation window; ``None`` returns every candidate.

        Returns:
            List of RankedMatch, closest first.
        """
        validate_cents(target_amount, "target_amount")
        if limit is not None and limit < 1:
            raise ValueError(f"limit must be at least 1, got {limit}")

        t0 = time.monotonic()
        ranked = sorted(
            (
                RankedMatch(
                    candidate=c,
                    amount_delta=abs(c.amount - target_amount),
                    quality=classify(target_amount, abs(c.amount - target_amount), close_match_percent),
                )
                for c in candidates
            ),
            key=_sort_key,
        )

        exact_count = sum(1 for m in ranked if m.is_exact)
        if limit is not None:
            ranked = ranked[:max(limit, exact_count)]

        logger.info("match_ranking_completed", extra={
            "target_amount": target_amount,
            "candidates_evaluated": len(candidates),
            "returned": len(ranked),
            "exact_count": exact_count,
            "close_count": sum(1 for m in ranked if m.quality is MatchQuality.CLOSE),
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return ranked
