"""
Invoicing Module.

Invoices with line items, payments and delivery details; the payment and
fulfillment workflows; payment recording.
"""

from ledger_modules.invoicing.models import (
    DeliveryInfo,
    DeliveryStatus,
    DeliveryType,
    FulfillmentStatus,
    Invoice,
    Payment,
    PaymentMethod,
    PaymentStatus,
    WorkflowStatus,
)
from ledger_modules.invoicing.payments import PaymentRecorder
from ledger_modules.invoicing.workflows import (
    DELIVERY_WORKFLOW,
    PAYMENT_WORKFLOW,
    PICKUP_WORKFLOW,
    GuardExecutor,
    WorkflowStateMachine,
    display_status,
)

__all__ = [
    "DELIVERY_WORKFLOW",
    "PAYMENT_WORKFLOW",
    "PICKUP_WORKFLOW",
    "DeliveryInfo",
    "DeliveryStatus",
    "DeliveryType",
    "FulfillmentStatus",
    "GuardExecutor",
    "Invoice",
    "Payment",
    "PaymentMethod",
    "PaymentRecorder",
    "PaymentStatus",
    "WorkflowStateMachine",
    "WorkflowStatus",
    "display_status",
]
