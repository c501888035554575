"""
Property-based tests for the ledger arithmetic and payment invariants.

Properties:
- Totals: line totals sum to the post-discount subtotal; tax is a single
  half-up rounding of the aggregate; totals never go negative.
- Payments: any sequence of attempted payments leaves
  amount_paid <= total_amount, and the payment status agrees with the
  remaining balance.
- Ranking: deterministic under input permutation; EXACT candidates are
  never cut by the window.
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from ledger_engines.invoice_ledger import InvoiceItem, InvoiceLedger
from ledger_engines.matching import MatchCandidate, MatchingEngine
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.domain.money import apply_percent, from_decimal, to_decimal
from ledger_kernel.exceptions import OverpaymentRejectedError
from ledger_modules.invoicing.models import Invoice, PaymentMethod, PaymentStatus
from ledger_modules.invoicing.payments import PaymentRecorder

percents = st.decimals(min_value=0, max_value=100, places=2, allow_nan=False, allow_infinity=False)

items_strategy = st.lists(
    st.builds(
        InvoiceItem,
        description=st.text(min_size=1, max_size=20),
        quantity=st.integers(min_value=1, max_value=1000),
        unit_price_cents=st.integers(min_value=0, max_value=10_000_000),
        discount_percent=percents,
    ),
    max_size=12,
)


@given(items=items_strategy, tax=percents)
@settings(max_examples=200)
def test_totals_consistent(items, tax):
    totals = InvoiceLedger().compute(items, tax)

    assert sum(line.line_total for line in totals.lines) == totals.subtotal_after_discount
    assert totals.subtotal_after_discount == totals.subtotal_before_discount - totals.total_discount
    assert totals.total_amount == totals.subtotal_after_discount + totals.tax_amount
    assert totals.subtotal_after_discount >= 0
    expected_tax = int(
        (Decimal(totals.subtotal_after_discount) * tax / 100).quantize(
            Decimal(1), rounding=ROUND_HALF_UP
        )
    )
    assert totals.tax_amount == expected_tax


@given(cents=st.integers(min_value=0, max_value=10**15))
def test_display_round_trip(cents):
    assert from_decimal(to_decimal(cents)) == cents


@given(cents=st.integers(min_value=0, max_value=10**12), percent=percents)
def test_apply_percent_bounded(cents, percent):
    result = apply_percent(cents, percent)
    assert 0 <= result <= cents


@given(
    amounts=st.lists(st.integers(min_value=1, max_value=5000), min_size=1, max_size=20),
)
@settings(max_examples=150, suppress_health_check=[HealthCheck.too_slow])
def test_payments_never_exceed_total(amounts):
    clock = DeterministicClock(datetime(2024, 3, 1, tzinfo=timezone.utc))
    recorder = PaymentRecorder(clock=clock)
    invoice = Invoice(
        id="323501",
        client_name="Wanjiku Stores",
        items=(InvoiceItem("Maize flour 2kg", 2, 1000, Decimal("10")),),
        payment_status=PaymentStatus.SENT,
    )

    for amount in amounts:
        if not invoice.accepts_payments:
            break
        try:
            invoice = recorder.record_payment(invoice, amount, PaymentMethod.CASH)
        except OverpaymentRejectedError as e:
            assert e.remaining_balance == invoice.remaining_balance
            assert amount > invoice.remaining_balance

        assert invoice.amount_paid <= invoice.total_amount
        assert invoice.remaining_balance == invoice.total_amount - invoice.amount_paid
        if invoice.remaining_balance == 0:
            assert invoice.payment_status is PaymentStatus.PAID
        elif invoice.amount_paid > 0:
            assert invoice.payment_status is PaymentStatus.PARTIALLY_PAID
        else:
            assert invoice.payment_status is PaymentStatus.SENT


candidate_amounts = st.lists(st.integers(min_value=0, max_value=5000), max_size=30)


@given(target=st.integers(min_value=0, max_value=5000), amounts=candidate_amounts, data=st.data())
def test_ranking_is_permutation_invariant(target, amounts, data):
    candidates = [MatchCandidate(f"inv-{i:03d}", a) for i, a in enumerate(amounts)]
    shuffled = data.draw(st.permutations(candidates))
    engine = MatchingEngine()

    assert engine.rank(target, candidates, limit=None) == engine.rank(target, shuffled, limit=None)


@given(
    target=st.integers(min_value=0, max_value=5000),
    amounts=candidate_amounts,
    limit=st.integers(min_value=1, max_value=10),
)
def test_window_keeps_every_exact_match(target, amounts, limit):
    candidates = [MatchCandidate(f"inv-{i:03d}", a) for i, a in enumerate(amounts)]
    ranked = MatchingEngine().rank(target, candidates, limit=limit)

    exact = sum(1 for a in amounts if a == target)
    assert sum(1 for m in ranked if m.is_exact) == exact
    assert len(ranked) == min(len(amounts), max(limit, exact))
    deltas = [m.amount_delta for m in ranked]
    assert deltas == sorted(deltas)
