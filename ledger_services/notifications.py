"""
ledger_services.notifications -- Events emitted after state changes.

Responsibility:
    Define the events the ledger emits after a successful, persisted
    state change, and the dispatcher protocol an external fan-out
    (email, SMS, push) implements.

Invariants enforced:
    - Events are published only after the change is persisted.
    - A dispatcher failure is logged and reported; it never undoes the
      change that produced the event.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable

from ledger_kernel.logging_config import get_logger

logger = get_logger("services.notifications")


@dataclass(frozen=True)
class PaymentRecorded:
    invoice_id: str
    payment_id: str
    amount: int
    method: str
    reference: str | None
    occurred_at: datetime
    event_type: str = "payment_recorded"


@dataclass(frozen=True)
class InvoiceStatusChanged:
    invoice_id: str
    from_status: str
    to_status: str
    occurred_at: datetime
    event_type: str = "invoice_status_changed"


@dataclass(frozen=True)
class FulfillmentStatusChanged:
    invoice_id: str
    from_status: str
    to_status: str
    occurred_at: datetime
    event_type: str = "fulfillment_status_changed"


@dataclass(frozen=True)
class TransactionMatched:
    transaction_id: str
    invoice_id: str
    amount: int
    occurred_at: datetime
    event_type: str = "transaction_matched"


@dataclass(frozen=True)
class TransactionDisputed:
    transaction_id: str
    reason: str | None
    occurred_at: datetime
    event_type: str = "transaction_disputed"


LedgerEvent = (
    PaymentRecorded
    | InvoiceStatusChanged
    | FulfillmentStatusChanged
    | TransactionMatched
    | TransactionDisputed
)


@runtime_checkable
class NotificationDispatcher(Protocol):
    """Fan-out for ledger events.  Delivery is the dispatcher's concern."""

    def publish(self, event: LedgerEvent) -> None:
        ...


class LoggingDispatcher:
    """Default dispatcher: writes each event to the structured log."""

    def publish(self, event: LedgerEvent) -> None:
        logger.info("ledger_event", extra={"event_type": event.event_type, "event": vars(event)})


class RecordingDispatcher:
    """Keeps published events in memory, in order."""

    def __init__(self) -> None:
        self.events: list[LedgerEvent] = []

    def publish(self, event: LedgerEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: type) -> list[LedgerEvent]:
        return [e for e in self.events if isinstance(e, event_type)]


def publish_all(dispatcher: NotificationDispatcher, events: Iterable[LedgerEvent]) -> tuple[str, ...]:
    """
    Publish ``events`` in order, continuing past failures.

    Returns:
        One message per failed publish; empty when all succeeded.
    """
    errors: list[str] = []
    for event in events:
        try:
            dispatcher.publish(event)
        except Exception as e:
            logger.warning(
                "notification_failed",
                extra={"event_type": event.event_type},
                exc_info=True,
            )
            errors.append(f"{event.event_type}: {e}")
    return tuple(errors)


def invoice_change_events(before, after, occurred_at: datetime) -> list[LedgerEvent]:
    """Events describing the difference between two states of one invoice."""
    events: list[LedgerEvent] = []
    for payment in after.payments[len(before.payments):]:
        events.append(PaymentRecorded(
            invoice_id=after.id,
            payment_id=payment.id,
            amount=payment.amount,
            method=payment.method.value,
            reference=payment.reference,
            occurred_at=occurred_at,
        ))
    if before.payment_status != after.payment_status:
        events.append(InvoiceStatusChanged(
            invoice_id=after.id,
            from_status=before.payment_status.value,
            to_status=after.payment_status.value,
            occurred_at=occurred_at,
        ))
    if before.fulfillment_status != after.fulfillment_status:
        events.append(FulfillmentStatusChanged(
            invoice_id=after.id,
            from_status=before.fulfillment_status.value,
            to_status=after.fulfillment_status.value,
            occurred_at=occurred_at,
        ))
    return events
