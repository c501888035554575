"""
Pytest fixtures for the invoice ledger test suite.

Provides:
- Structured log capture
- Deterministic clock
- In-memory and SQLite-backed stores
- Invoice and transaction builders
- Services wired to a recording notification dispatcher
"""

import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO

import pytest

from ledger_engines.invoice_ledger import InvoiceItem
from ledger_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ledger_modules.invoicing.models import (
    DeliveryInfo,
    DeliveryType,
    Invoice,
    PaymentMethod,
    PaymentStatus,
)
from ledger_modules.reconciliation.models import Transaction
from ledger_services.invoice_service import InvoiceService
from ledger_services.locks import KeyedLockRegistry
from ledger_services.notifications import RecordingDispatcher
from ledger_services.reconciliation_service import ReconciliationService
from ledger_services.store import InMemoryLedgerStore

FIXED_TIME = datetime(2024, 3, 1, 9, 30, 0, tzinfo=timezone.utc)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "concurrency: mark test as exercising threads"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture ledger_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, recorder):
            recorder.record_payment(...)
            logs = captured_logs()
            assert any(r["message"] == "payment_recorded" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ledger_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Clock
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock(FIXED_TIME)


# =============================================================================
# Builders
# =============================================================================


def scenario_a_items() -> tuple[InvoiceItem, ...]:
    """2 x 10.00 at 10% discount: total 20.88 at 16% tax."""
    return (InvoiceItem("Maize flour 2kg", 2, 1000, Decimal("10")),)


def items_totalling(total_cents: int) -> tuple[InvoiceItem, ...]:
    """A single untaxed line whose invoice total is ``total_cents``."""
    return (InvoiceItem("Assorted goods", 1, total_cents),)


@pytest.fixture
def make_invoice(clock):
    """
    Build an Invoice directly, bypassing services.

    Usage::

        invoice = make_invoice(status=PaymentStatus.SENT)
        invoice = make_invoice("323502", total=2100)   # one untaxed line
    """

    def _make(
        invoice_id: str = "323501",
        items=None,
        tax_rate_percent=Decimal("16"),
        status: PaymentStatus = PaymentStatus.SENT,
        due_date: date | None = None,
        delivery_type: DeliveryType | None = None,
        client_name: str = "Wanjiku Stores",
        total: int | None = None,
    ) -> Invoice:
        if total is not None:
            items, tax_rate_percent = items_totalling(total), Decimal("0")
        return Invoice(
            id=invoice_id,
            client_name=client_name,
            items=items if items is not None else scenario_a_items(),
            tax_rate_percent=Decimal(str(tax_rate_percent)),
            payment_status=status,
            delivery_info=DeliveryInfo(type=delivery_type) if delivery_type else None,
            due_date=due_date,
            created_at=clock.now(),
            updated_at=clock.now(),
        )

    return _make


@pytest.fixture
def make_transaction(clock):
    """Build a pending Transaction."""

    def _make(
        transaction_id: str = "QK7A1B2C3D",
        amount: int = 2088,
        method: PaymentMethod = PaymentMethod.MPESA,
        reference: str | None = "QK7A1B2C3D",
        **kwargs,
    ) -> Transaction:
        return Transaction(
            id=transaction_id,
            amount=amount,
            payment_method=method,
            processed_at=clock.now(),
            reference=reference,
            **kwargs,
        )

    return _make


# =============================================================================
# Stores and services
# =============================================================================


@pytest.fixture
def store():
    return InMemoryLedgerStore()


@pytest.fixture
def notifier():
    return RecordingDispatcher()


@pytest.fixture
def locks():
    return KeyedLockRegistry()


@pytest.fixture
def invoice_service(store, clock, notifier, locks):
    return InvoiceService(store, clock=clock, notifier=notifier, locks=locks)


@pytest.fixture
def reconciliation_service(store, clock, notifier, locks):
    return ReconciliationService(store, clock=clock, notifier=notifier, locks=locks)


@pytest.fixture
def sqlite_session_factory():
    """Fresh in-memory SQLite database with all ledger tables."""
    import ledger_services.orm  # noqa: F401  -- registers models on Base.metadata

    init_engine_from_url("sqlite://")
    create_tables()
    yield get_session_factory()
    drop_tables()
    reset_engine()
