"""
Tests for InvoiceService.

Covers:
- Explicit OperationResult for every outcome
- Events published only after a successful save
- Persistence failure keeps the computed value and publishes nothing
- Notification failure does not undo the change
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_config import LedgerConfig
from ledger_engines.invoice_ledger import InvoiceItem
from ledger_kernel.exceptions import PersistenceError
from ledger_modules.invoicing.models import (
    DeliveryInfo,
    DeliveryType,
    FulfillmentStatus,
    PaymentMethod,
    PaymentStatus,
)
from ledger_services.invoice_service import InvoiceService
from ledger_services.notifications import (
    FulfillmentStatusChanged,
    InvoiceStatusChanged,
    PaymentRecorded,
    RecordingDispatcher,
)
from ledger_services.results import OperationStatus
from ledger_services.store import InMemoryLedgerStore

ITEMS = (InvoiceItem("Maize flour 2kg", 2, 1000, Decimal("10")),)


class FailingSaveStore(InMemoryLedgerStore):
    """Store whose invoice writes fail once ``fail_saves`` is set."""

    def __init__(self):
        super().__init__()
        self.fail_saves = False

    def save_invoice(self, invoice):
        if self.fail_saves:
            raise PersistenceError("invoice", invoice.id, "disk full")
        super().save_invoice(invoice)


class ExplodingDispatcher:
    def publish(self, event):
        raise RuntimeError("sms gateway down")


def _sent_invoice(service, invoice_id="323501", **kwargs):
    service.create_invoice(invoice_id, "Wanjiku Stores", ITEMS, **kwargs)
    return service.finalize(invoice_id).value


class TestCreateInvoice:
    """Tests for invoice creation."""

    def test_create_draft(self, invoice_service, clock):
        result = invoice_service.create_invoice("323501", "Wanjiku Stores", ITEMS)
        assert result.status is OperationStatus.SUCCESS
        invoice = result.value
        assert invoice.payment_status is PaymentStatus.DRAFT
        assert invoice.total_amount == 2088
        assert invoice.created_at == clock.now()

    def test_default_tax_rate_from_config(self, store, clock):
        service = InvoiceService(
            store, config=LedgerConfig(default_tax_rate_percent=Decimal("0")), clock=clock
        )
        invoice = service.create_invoice("323501", "Wanjiku Stores", ITEMS).value
        assert invoice.tax_amount == 0
        assert invoice.total_amount == 1800

    def test_explicit_tax_rate(self, invoice_service):
        invoice = invoice_service.create_invoice(
            "323501", "Wanjiku Stores", ITEMS, tax_rate_percent="8"
        ).value
        assert invoice.tax_amount == 144

    def test_duplicate_id_rejected(self, invoice_service):
        invoice_service.create_invoice("323501", "Wanjiku Stores", ITEMS)
        result = invoice_service.create_invoice("323501", "Other", ITEMS)
        assert result.status is OperationStatus.REJECTED
        assert result.error_code == "INVOICE_EXISTS"

    def test_negative_tax_rejected(self, invoice_service):
        result = invoice_service.create_invoice("323501", "Wanjiku Stores", ITEMS, tax_rate_percent="-1")
        assert result.status is OperationStatus.REJECTED
        assert result.error_code == "INVALID_AMOUNT"

    def test_delivery_info_starts_pending(self, invoice_service):
        from ledger_modules.invoicing.models import DeliveryStatus

        info = DeliveryInfo(type=DeliveryType.DELIVERY, status=DeliveryStatus.COMPLETED)
        invoice = invoice_service.create_invoice("323501", "Wanjiku Stores", ITEMS, delivery_info=info).value
        assert invoice.delivery_info.status is DeliveryStatus.PENDING


class TestLifecycle:
    """Tests for finalize, items update and cancel."""

    def test_finalize(self, invoice_service, notifier, clock):
        invoice_service.create_invoice("323501", "Wanjiku Stores", ITEMS)
        result = invoice_service.finalize("323501")
        assert result.is_success
        assert result.value.payment_status is PaymentStatus.SENT
        assert result.value.issue_date == clock.today()

        [event] = notifier.of_type(InvoiceStatusChanged)
        assert (event.from_status, event.to_status) == ("draft", "sent")

    def test_update_items_only_in_draft(self, invoice_service):
        invoice_service.create_invoice("323501", "Wanjiku Stores", ITEMS)
        new_items = (InvoiceItem("Rice 5kg", 1, 2100),)
        assert invoice_service.update_items("323501", new_items).value.subtotal_after_discount == 2100

        invoice_service.finalize("323501")
        result = invoice_service.update_items("323501", ITEMS)
        assert result.status is OperationStatus.REJECTED
        assert result.error_code == "ILLEGAL_TRANSITION"

    def test_cancel_then_pay_rejected(self, invoice_service):
        _sent_invoice(invoice_service)
        assert invoice_service.cancel("323501").value.payment_status is PaymentStatus.CANCELLED
        result = invoice_service.record_payment("323501", 100, PaymentMethod.CASH)
        assert result.status is OperationStatus.REJECTED
        assert result.error_code == "ILLEGAL_TRANSITION"

    def test_unknown_invoice(self, invoice_service):
        result = invoice_service.finalize("missing")
        assert result.status is OperationStatus.REJECTED
        assert result.error_code == "INVOICE_NOT_FOUND"
        assert not result.is_success


class TestRecordPayment:
    """Tests for payments through the service."""

    def test_full_payment(self, invoice_service, notifier, store):
        _sent_invoice(invoice_service)
        notifier.events.clear()

        result = invoice_service.record_payment(
            "323501", 2088, PaymentMethod.MPESA, reference="SH12A3B4C5"
        )
        assert result.status is OperationStatus.SUCCESS
        assert result.value.payment_status is PaymentStatus.PAID
        assert store.load_invoice("323501").remaining_balance == 0

        assert [type(e) for e in notifier.events] == [PaymentRecorded, InvoiceStatusChanged]
        assert notifier.events[0].amount == 2088
        assert notifier.events[1].to_status == "paid"

    def test_overpayment_rejected_state_unchanged(self, invoice_service, notifier, store):
        _sent_invoice(invoice_service)
        notifier.events.clear()

        result = invoice_service.record_payment("323501", 2500, PaymentMethod.CASH)
        assert result.status is OperationStatus.REJECTED
        assert result.error_code == "OVERPAYMENT_REJECTED"
        assert store.load_invoice("323501").payments == ()
        assert notifier.events == []

    def test_replay_already_recorded(self, invoice_service, notifier):
        _sent_invoice(invoice_service)
        first = invoice_service.record_payment(
            "323501", 1000, PaymentMethod.MPESA, reference="SH1", payment_id="SH1"
        )
        notifier.events.clear()

        again = invoice_service.record_payment(
            "323501", 1000, PaymentMethod.MPESA, reference="SH1", payment_id="SH1"
        )
        assert again.status is OperationStatus.ALREADY_RECORDED
        assert again.is_success
        assert again.value == first.value
        assert notifier.events == []

    def test_shared_reference_instalments(self, invoice_service):
        _sent_invoice(invoice_service)
        results = [
            invoice_service.record_payment(
                "323501", amount, PaymentMethod.BANK_TRANSFER, reference="INV-323501"
            )
            for amount in (1000, 1000, 88)
        ]

        assert [r.status for r in results] == [OperationStatus.SUCCESS] * 3
        assert results[-1].value.amount_paid == 2088
        assert results[-1].value.payment_status is PaymentStatus.PAID

    def test_payment_id_conflict(self, invoice_service):
        _sent_invoice(invoice_service)
        invoice_service.record_payment("323501", 1000, PaymentMethod.CASH, payment_id="pay-1")
        result = invoice_service.record_payment("323501", 500, PaymentMethod.CASH, payment_id="pay-1")
        assert result.status is OperationStatus.REJECTED
        assert result.error_code == "PAYMENT_ID_CONFLICT"

    def test_pay_in_full_uses_stored_balance(self, invoice_service):
        _sent_invoice(invoice_service)
        invoice_service.record_payment("323501", 88, PaymentMethod.CASH)
        result = invoice_service.pay_in_full("323501", PaymentMethod.MPESA, reference="QK7")
        assert result.value.payments[-1].amount == 2000
        assert result.value.payment_status is PaymentStatus.PAID


class TestFulfillment:
    """Tests for delivery and pickup through the service."""

    def test_delivery_flow(self, invoice_service, notifier):
        _sent_invoice(invoice_service, delivery_info=DeliveryInfo(type=DeliveryType.DELIVERY))
        invoice_service.record_payment("323501", 2088, PaymentMethod.CASH)

        dispatched = invoice_service.dispatch("323501").value
        assert dispatched.fulfillment_status is FulfillmentStatus.OUT_FOR_DELIVERY
        delivered = invoice_service.confirm_completion("323501").value
        assert delivered.fulfillment_status is FulfillmentStatus.DELIVERED
        assert delivered.payment_status is PaymentStatus.PAID

        changes = [(e.from_status, e.to_status) for e in notifier.of_type(FulfillmentStatusChanged)]
        assert changes == [("pending", "out_for_delivery"), ("out_for_delivery", "delivered")]

    def test_update_delivery_info(self, invoice_service):
        _sent_invoice(invoice_service)
        result = invoice_service.update_delivery_info(
            "323501", DeliveryInfo(type=DeliveryType.PICKUP, recipient_name="Otieno")
        )
        assert result.value.delivery_info.recipient_name == "Otieno"
        assert invoice_service.confirm_completion("323501").value.fulfillment_status is \
            FulfillmentStatus.PICKED_UP

    def test_dispatch_without_delivery_info(self, invoice_service):
        _sent_invoice(invoice_service)
        result = invoice_service.dispatch("323501")
        assert result.status is OperationStatus.REJECTED
        assert result.error_code == "ILLEGAL_TRANSITION"


class TestQueries:
    """Tests for totals and aging queries."""

    def test_get_totals(self, invoice_service):
        invoice_service.create_invoice("323501", "Wanjiku Stores", ITEMS)
        totals = invoice_service.get_totals("323501").value
        assert (totals.subtotal_after_discount, totals.tax_amount, totals.total_amount) == (1800, 288, 2088)

    def test_get_totals_unknown(self, invoice_service):
        assert invoice_service.get_totals("missing").error_code == "INVOICE_NOT_FOUND"

    def test_preview_totals(self, invoice_service):
        assert invoice_service.preview_totals(ITEMS).value.total_amount == 2088
        assert invoice_service.preview_totals(ITEMS, tax_rate_percent=0).value.total_amount == 1800

    def test_preview_totals_rejects_float_rate(self, invoice_service):
        assert invoice_service.preview_totals(ITEMS, tax_rate_percent=16.0).status is \
            OperationStatus.REJECTED

    def test_aging_report(self, invoice_service):
        _sent_invoice(invoice_service, "323501", due_date=date(2024, 1, 15))
        _sent_invoice(invoice_service, "323502", due_date=date(2024, 3, 10))
        _sent_invoice(invoice_service, "323503")
        invoice_service.record_payment("323502", 88, PaymentMethod.CASH)
        invoice_service.record_payment("323503", 2088, PaymentMethod.CASH)
        invoice_service.create_invoice("323504", "Draft Co", ITEMS)

        report = invoice_service.aging_report().value
        assert report.as_of_date == date(2024, 3, 1)
        assert {i.document_id for i in report.items} == {"323501", "323502"}
        assert report.total_by_bucket()["31-60"] == 2088
        assert report.total_by_bucket()["Current"] == 2000


class TestFailureHandling:
    """Tests for persistence and notification failures."""

    def test_persistence_failure(self, clock):
        store = FailingSaveStore()
        notifier = RecordingDispatcher()
        service = InvoiceService(store, clock=clock, notifier=notifier)
        _sent_invoice(service)
        notifier.events.clear()

        store.fail_saves = True
        result = service.record_payment("323501", 2088, PaymentMethod.CASH)

        assert result.status is OperationStatus.PERSISTENCE_FAILED
        assert result.error_code == "PERSISTENCE_FAILED"
        assert not result.is_success
        assert result.value.payment_status is PaymentStatus.PAID
        assert store.load_invoice("323501").payment_status is PaymentStatus.SENT
        assert notifier.events == []

    def test_create_persistence_failure(self, clock):
        store = FailingSaveStore()
        store.fail_saves = True
        result = InvoiceService(store, clock=clock).create_invoice("323501", "Wanjiku Stores", ITEMS)
        assert result.status is OperationStatus.PERSISTENCE_FAILED
        assert result.value.id == "323501"

    def test_notification_failure_keeps_change(self, store, clock, captured_logs):
        service = InvoiceService(store, clock=clock, notifier=ExplodingDispatcher())
        _sent_invoice(service)

        result = service.record_payment("323501", 2088, PaymentMethod.CASH)
        assert result.status is OperationStatus.SUCCESS
        assert len(result.notification_errors) == 2
        assert "sms gateway down" in result.notification_errors[0]
        assert store.load_invoice("323501").payment_status is PaymentStatus.PAID
        assert any(r["message"] == "notification_failed" for r in captured_logs())


@pytest.mark.parametrize("method", ["cash", "mpesa", "bank_transfer"])
def test_methods_accepted_as_strings(invoice_service, method):
    _sent_invoice(invoice_service)
    result = invoice_service.record_payment("323501", 100, method)
    assert result.value.payments[0].method.value == method
