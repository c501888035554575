"""
Tests for ReconciliationMatcher.

Covers:
- Candidate ranking against outstanding invoices
- Confirming a match records the payment and marks the transaction
- Double confirmation and settled-invoice rejection
- Dispute flagging and dashboard summary
"""

from dataclasses import replace
from decimal import Decimal

import pytest

from ledger_engines.matching import MatchQuality
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.exceptions import (
    AlreadyMatchedError,
    IllegalTransitionError,
    InvoiceNotFoundError,
    OverpaymentRejectedError,
    TransactionNotPendingError,
)
from ledger_modules.invoicing.models import PaymentMethod, PaymentStatus
from ledger_modules.invoicing.payments import PaymentRecorder
from ledger_modules.reconciliation.matcher import (
    ReconciliationMatcher,
    summarize_transactions,
)
from ledger_modules.reconciliation.models import ReconciliationStatus, Transaction


@pytest.fixture
def matcher(clock):
    return ReconciliationMatcher(recorder=PaymentRecorder(clock=clock))


@pytest.fixture
def three_invoices(make_invoice):
    return {
        "323501": make_invoice("323501"),
        "323502": make_invoice("323502", total=2100),
        "323503": make_invoice("323503", total=1900),
    }


class TestRankCandidates:
    """Tests for candidate ranking."""

    def test_reference_ranking(self, matcher, make_transaction, three_invoices):
        ranked = matcher.rank_candidates(make_transaction(amount=2088), three_invoices.values())

        assert [c.invoice.id for c in ranked] == ["323501", "323502", "323503"]
        assert [c.amount_delta_cents for c in ranked] == [0, 12, 188]
        assert ranked[0].match_quality is MatchQuality.EXACT
        assert ranked[1].match_quality is MatchQuality.CLOSE
        assert ranked[2].match_quality is MatchQuality.CLOSE

    def test_candidates_carry_invoices(self, matcher, make_transaction, three_invoices):
        ranked = matcher.rank_candidates(make_transaction(), three_invoices.values())
        assert ranked[0].invoice is three_invoices["323501"]

    def test_tighter_threshold(self, clock, make_transaction, three_invoices):
        matcher = ReconciliationMatcher(
            recorder=PaymentRecorder(clock=clock), close_match_percent=Decimal("5")
        )
        ranked = matcher.rank_candidates(make_transaction(), three_invoices.values())
        assert ranked[2].match_quality is MatchQuality.NONE

    def test_window(self, clock, make_transaction, make_invoice):
        matcher = ReconciliationMatcher(recorder=PaymentRecorder(clock=clock), match_window=3)
        invoices = [make_invoice(f"inv-{i}", total=2000 + i) for i in range(8)]
        assert len(matcher.rank_candidates(make_transaction(), invoices)) == 3
        assert len(matcher.rank_candidates(make_transaction(), invoices, limit=5)) == 5

    def test_read_only(self, matcher, make_transaction, three_invoices):
        txn = make_transaction()
        matcher.rank_candidates(txn, three_invoices.values())
        assert txn.reconciliation_status is ReconciliationStatus.PENDING
        assert all(inv.payments == () for inv in three_invoices.values())


class TestConfirmMatch:
    """Tests for confirming matches."""

    def test_confirm_records_payment(self, matcher, make_transaction, three_invoices):
        txn = make_transaction()
        matched, invoice = matcher.confirm_match(txn, "323501", three_invoices)

        assert matched.reconciliation_status is ReconciliationStatus.MATCHED
        assert matched.invoice_id == "323501"
        assert invoice.payment_status is PaymentStatus.PAID
        assert invoice.payments[0].id == "txn:QK7A1B2C3D"
        assert invoice.payments[0].transaction_id == "QK7A1B2C3D"
        assert invoice.payments[0].method is PaymentMethod.MPESA
        assert txn.reconciliation_status is ReconciliationStatus.PENDING

    def test_confirm_twice_rejected(self, matcher, make_transaction, three_invoices):
        matched, invoice = matcher.confirm_match(make_transaction(), "323501", three_invoices)
        invoices = {**three_invoices, "323501": invoice}

        with pytest.raises(AlreadyMatchedError) as exc_info:
            matcher.confirm_match(matched, "323501", invoices)
        assert exc_info.value.invoice_id == "323501"

    def test_matched_transaction_rejected_for_other_invoice(
        self, matcher, make_transaction, three_invoices
    ):
        matched, _ = matcher.confirm_match(make_transaction(), "323501", three_invoices)
        with pytest.raises(AlreadyMatchedError):
            matcher.confirm_match(matched, "323502", three_invoices)

    def test_settled_invoice_rejects_second_transaction(
        self, matcher, make_transaction, three_invoices
    ):
        _, invoice = matcher.confirm_match(make_transaction("TXN-A"), "323501", three_invoices)
        invoices = {**three_invoices, "323501": invoice}

        with pytest.raises(AlreadyMatchedError) as exc_info:
            matcher.confirm_match(make_transaction("TXN-B", reference="TXN-B"), "323501", invoices)
        assert exc_info.value.matched_transaction_id == "TXN-A"

    def test_unknown_invoice(self, matcher, make_transaction, three_invoices):
        with pytest.raises(InvoiceNotFoundError):
            matcher.confirm_match(make_transaction(), "999999", three_invoices)

    def test_amount_exceeding_balance(self, matcher, make_transaction, three_invoices):
        with pytest.raises(OverpaymentRejectedError):
            matcher.confirm_match(make_transaction(amount=2088), "323503", three_invoices)

    def test_draft_invoice(self, matcher, make_transaction, make_invoice):
        invoices = {"323501": make_invoice(status=PaymentStatus.DRAFT)}
        with pytest.raises(IllegalTransitionError):
            matcher.confirm_match(make_transaction(), "323501", invoices)

    def test_partial_match(self, matcher, make_transaction, three_invoices):
        _, invoice = matcher.confirm_match(make_transaction(amount=1000), "323502", three_invoices)
        assert invoice.payment_status is PaymentStatus.PARTIALLY_PAID
        assert invoice.remaining_balance == 1100

    def test_disputed_transaction_can_be_matched(self, matcher, make_transaction, three_invoices):
        disputed = matcher.mark_disputed(make_transaction(), "customer says paid twice")
        matched, _ = matcher.confirm_match(disputed, "323501", three_invoices)
        assert matched.reconciliation_status is ReconciliationStatus.MATCHED

    def test_recovers_when_payment_already_on_invoice(
        self, matcher, make_transaction, three_invoices
    ):
        """The payment landed but the transaction was never marked matched."""
        txn = make_transaction()
        _, invoice = matcher.confirm_match(txn, "323501", three_invoices)

        matched, again = matcher.confirm_match(txn, "323501", {"323501": invoice})
        assert matched.reconciliation_status is ReconciliationStatus.MATCHED
        assert len(again.payments) == 1

    def test_match_logged(self, matcher, make_transaction, three_invoices, captured_logs):
        matcher.confirm_match(make_transaction(), "323501", three_invoices)
        record = next(r for r in captured_logs() if r["message"] == "match_confirmed")
        assert record["amount"] == 2088
        assert record["previous_status"] == "pending"
        assert record["payment_status"] == "paid"


class TestMarkDisputed:
    """Tests for dispute flagging."""

    def test_mark_disputed(self, matcher, make_transaction):
        disputed = matcher.mark_disputed(make_transaction(), "amount does not match any invoice")
        assert disputed.reconciliation_status is ReconciliationStatus.DISPUTED
        assert disputed.notes == "amount does not match any invoice"

    def test_reason_optional(self, matcher, make_transaction):
        disputed = matcher.mark_disputed(make_transaction(notes="from feed"))
        assert disputed.notes == "from feed"

    def test_only_from_pending(self, matcher, make_transaction):
        disputed = matcher.mark_disputed(make_transaction())
        with pytest.raises(TransactionNotPendingError):
            matcher.mark_disputed(disputed)

        matched = make_transaction(
            reconciliation_status=ReconciliationStatus.MATCHED, invoice_id="323501"
        )
        with pytest.raises(TransactionNotPendingError) as exc_info:
            matcher.mark_disputed(matched)
        assert exc_info.value.status == "matched"


class TestTransactionModel:
    """Tests for Transaction validation."""

    def test_zero_amount_rejected(self, make_transaction):
        from ledger_kernel.exceptions import InvalidAmountError

        with pytest.raises(InvalidAmountError):
            make_transaction(amount=0)

    def test_matched_requires_invoice(self, make_transaction):
        with pytest.raises(ValueError):
            make_transaction(reconciliation_status=ReconciliationStatus.MATCHED)


class TestSummarizeTransactions:
    """Tests for dashboard aggregates."""

    def test_summary(self, make_transaction):
        txns = [
            make_transaction("T1", 2088, PaymentMethod.MPESA),
            make_transaction("T2", 1500, PaymentMethod.CASH, reference=None),
            make_transaction(
                "T3", 4000, PaymentMethod.BANK_TRANSFER,
                reconciliation_status=ReconciliationStatus.MATCHED, invoice_id="323501",
            ),
            make_transaction("T4", 700, PaymentMethod.MPESA, reconciliation_status="disputed"),
        ]
        summary = summarize_transactions(txns)

        assert summary.total_amount == 8288
        assert summary.total_count == 4
        assert summary.amount_by_method == {
            PaymentMethod.CASH: 1500,
            PaymentMethod.MPESA: 2788,
            PaymentMethod.BANK_TRANSFER: 4000,
        }
        assert summary.pending_count == 2
        assert summary.matched_count == 1
        assert summary.disputed_count == 1
        assert summary.unresolved_count == 3

    def test_empty_summary(self):
        summary = summarize_transactions([])
        assert summary.total_amount == 0
        assert summary.amount_by_method[PaymentMethod.MPESA] == 0


def test_matched_transaction_replace_keeps_invariant():
    """replace() on a matched transaction still validates."""
    txn = Transaction(
        id="T1",
        amount=100,
        payment_method=PaymentMethod.CASH,
        processed_at=DeterministicClock().now(),
        reconciliation_status=ReconciliationStatus.MATCHED,
        invoice_id="323501",
    )
    with pytest.raises(ValueError):
        replace(txn, invoice_id=None)
