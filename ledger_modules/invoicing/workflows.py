"""
Invoicing Workflows.

State machines for the two independent axes of an invoice: payment
progress and fulfillment (delivery or pickup) progress.  Workflows are
declared as data; ``WorkflowStateMachine`` evaluates guards against the
invoice and applies the selected transition.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.workflow import Guard, Transition, Workflow
from ledger_kernel.exceptions import IllegalTransitionError
from ledger_kernel.logging_config import get_logger
from ledger_modules.invoicing.models import (
    DeliveryInfo,
    DeliveryStatus,
    FulfillmentStatus,
    Invoice,
    PaymentStatus,
    WorkflowStatus,
)

logger = get_logger("modules.invoicing.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

PARTIAL_PAYMENT = Guard(
    name="partial_payment",
    description="Something has been paid and a balance remains",
)

BALANCE_ZERO = Guard(
    name="balance_zero",
    description="Invoice balance is zero",
)

logger.info(
    "invoicing_workflow_guards_defined",
    extra={"guards": [PARTIAL_PAYMENT.name, BALANCE_ZERO.name]},
)


# -----------------------------------------------------------------------------
# Payment Workflow
# -----------------------------------------------------------------------------

PAYMENT_WORKFLOW = Workflow(
    name="invoice_payment",
    description="Invoice payment lifecycle",
    initial_state="draft",
    states=(
        "draft",
        "sent",
        "partially_paid",
        "paid",
        "cancelled",
    ),
    transitions=(
        Transition("draft", "sent", action="finalize"),
        Transition("sent", "paid", action="apply_payment", guard=BALANCE_ZERO),
        Transition("sent", "partially_paid", action="apply_payment", guard=PARTIAL_PAYMENT),
        Transition("partially_paid", "paid", action="apply_payment", guard=BALANCE_ZERO),
        Transition("partially_paid", "partially_paid", action="apply_payment", guard=PARTIAL_PAYMENT),
        Transition("draft", "cancelled", action="cancel"),
        Transition("sent", "cancelled", action="cancel"),
        Transition("partially_paid", "cancelled", action="cancel"),
    ),
    terminal_states=("paid", "cancelled"),
)


# -----------------------------------------------------------------------------
# Fulfillment Workflows
# -----------------------------------------------------------------------------

DELIVERY_WORKFLOW = Workflow(
    name="invoice_delivery",
    description="Delivery fulfillment lifecycle",
    initial_state="pending",
    states=("pending", "out_for_delivery", "delivered"),
    transitions=(
        Transition("pending", "out_for_delivery", action="dispatch"),
        Transition("out_for_delivery", "delivered", action="confirm_completion"),
    ),
    terminal_states=("delivered",),
)

PICKUP_WORKFLOW = Workflow(
    name="invoice_pickup",
    description="Pickup fulfillment lifecycle",
    initial_state="pending",
    states=("pending", "picked_up"),
    transitions=(
        Transition("pending", "picked_up", action="confirm_completion"),
    ),
    terminal_states=("picked_up",),
)

for _workflow in (PAYMENT_WORKFLOW, DELIVERY_WORKFLOW, PICKUP_WORKFLOW):
    logger.info(
        "invoicing_workflow_registered",
        extra={
            "workflow_name": _workflow.name,
            "state_count": len(_workflow.states),
            "transition_count": len(_workflow.transitions),
            "initial_state": _workflow.initial_state,
        },
    )

FULFILLMENT_WORKFLOW_NAME = "invoice_fulfillment"

_COMPLETED_STATES = frozenset({FulfillmentStatus.DELIVERED, FulfillmentStatus.PICKED_UP})


# -----------------------------------------------------------------------------
# Guard evaluation
# -----------------------------------------------------------------------------


def _partial_payment(invoice: Invoice) -> bool:
    return 0 < invoice.amount_paid < invoice.total_amount


def _balance_zero(invoice: Invoice) -> bool:
    return invoice.amount_paid >= invoice.total_amount


class GuardExecutor:
    """
    Evaluates named guards against an invoice.

    Unknown guard names fail closed.
    """

    def __init__(self) -> None:
        self._guards: dict[str, Callable[[Invoice], bool]] = {
            PARTIAL_PAYMENT.name: _partial_payment,
            BALANCE_ZERO.name: _balance_zero,
        }

    def register(self, name: str, evaluator: Callable[[Invoice], bool]) -> None:
        self._guards[name] = evaluator

    def evaluate(self, guard: Guard | None, invoice: Invoice) -> bool:
        if guard is None:
            return True
        evaluator = self._guards.get(guard.name)
        if evaluator is None:
            logger.warning("guard_not_registered", extra={"guard": guard.name})
            return False
        return evaluator(invoice)


# -----------------------------------------------------------------------------
# State machine
# -----------------------------------------------------------------------------


def display_status(invoice: Invoice) -> WorkflowStatus:
    """
    Single composite label for an invoice.

    CANCELLED wins.  A PAID invoice shows its fulfillment progress once it
    has left PENDING.  Otherwise the payment axis is shown.
    """
    if invoice.payment_status is PaymentStatus.CANCELLED:
        return WorkflowStatus.CANCELLED
    if (
        invoice.payment_status is PaymentStatus.PAID
        and invoice.fulfillment_status is not FulfillmentStatus.PENDING
    ):
        return WorkflowStatus(invoice.fulfillment_status.value)
    return WorkflowStatus(invoice.payment_status.value)


def fulfillment_workflow_for(invoice: Invoice) -> Workflow | None:
    if invoice.delivery_info is None:
        return None
    return DELIVERY_WORKFLOW if invoice.delivery_info.is_delivery else PICKUP_WORKFLOW


class WorkflowStateMachine:
    """
    Applies payment and fulfillment transitions to invoices.

    Contract:
        Every method takes an Invoice and returns a new Invoice; the input
        is never mutated.  Illegal actions raise IllegalTransitionError.
    Guarantees:
        - The two axes advance independently.
        - ``completed_date`` is set exactly once, on entering DELIVERED or
          PICKED_UP.
    """

    def __init__(self, clock: Clock | None = None, guards: GuardExecutor | None = None):
        self._clock = clock or SystemClock()
        self._guards = guards or GuardExecutor()

    def _select(self, workflow: Workflow, state: str, action: str, invoice: Invoice) -> Transition:
        candidates = workflow.transitions_for(state, action)
        if not candidates:
            reason = "terminal state" if state in workflow.terminal_states else None
            logger.info("workflow_transition_rejected", extra={
                "workflow": workflow.name,
                "action": action,
                "from_state": state,
                "invoice_id": invoice.id,
            })
            raise IllegalTransitionError(workflow.name, state, action, reason)
        for transition in candidates:
            if self._guards.evaluate(transition.guard, invoice):
                return transition
        guard_names = [t.guard.name for t in candidates if t.guard is not None]
        logger.info("workflow_guard_failed", extra={
            "workflow": workflow.name,
            "action": action,
            "from_state": state,
            "invoice_id": invoice.id,
            "guards": guard_names,
        })
        raise IllegalTransitionError(
            workflow.name, state, action, f"guards not satisfied: {', '.join(guard_names)}"
        )

    def _log_transition(self, workflow: Workflow, transition: Transition, invoice: Invoice) -> None:
        logger.info("workflow_transition", extra={
            "workflow": workflow.name,
            "action": transition.action,
            "from_state": transition.from_state,
            "to_state": transition.to_state,
            "invoice_id": invoice.id,
        })

    # -- payment axis --------------------------------------------------------

    def _payment_transition(self, invoice: Invoice, action: str, **changes) -> Invoice:
        transition = self._select(
            PAYMENT_WORKFLOW, invoice.payment_status.value, action, invoice
        )
        self._log_transition(PAYMENT_WORKFLOW, transition, invoice)
        return replace(
            invoice,
            payment_status=PaymentStatus(transition.to_state),
            updated_at=self._clock.now(),
            **changes,
        )

    def finalize(self, invoice: Invoice) -> Invoice:
        """DRAFT -> SENT.  Sets ``issue_date`` to today when unset."""
        changes = {}
        if invoice.issue_date is None:
            changes["issue_date"] = self._clock.today()
        return self._payment_transition(invoice, "finalize", **changes)

    def cancel(self, invoice: Invoice) -> Invoice:
        return self._payment_transition(invoice, "cancel")

    def apply_payment_transition(self, invoice: Invoice) -> Invoice:
        """
        Move the payment axis to match the invoice's balance.

        Called after a payment has been appended: PARTIALLY_PAID while a
        balance remains, PAID when it reaches zero.
        """
        return self._payment_transition(invoice, "apply_payment")

    # -- fulfillment axis ----------------------------------------------------

    def _fulfillment_workflow(self, invoice: Invoice, action: str) -> Workflow:
        workflow = fulfillment_workflow_for(invoice)
        if workflow is None:
            raise IllegalTransitionError(
                FULFILLMENT_WORKFLOW_NAME,
                invoice.fulfillment_status.value,
                action,
                "invoice has no delivery info",
            )
        return workflow

    def _fulfillment_transition(self, invoice: Invoice, action: str) -> Invoice:
        workflow = self._fulfillment_workflow(invoice, action)
        transition = self._select(workflow, invoice.fulfillment_status.value, action, invoice)
        self._log_transition(workflow, transition, invoice)

        new_status = FulfillmentStatus(transition.to_state)
        info = invoice.delivery_info
        if new_status in _COMPLETED_STATES:
            info = replace(
                info,
                status=DeliveryStatus.COMPLETED,
                completed_date=self._clock.today(),
            )
        elif new_status is FulfillmentStatus.OUT_FOR_DELIVERY:
            info = replace(info, status=DeliveryStatus.OUT_FOR_DELIVERY)

        return replace(
            invoice,
            fulfillment_status=new_status,
            delivery_info=info,
            updated_at=self._clock.now(),
        )

    def dispatch(self, invoice: Invoice) -> Invoice:
        """PENDING -> OUT_FOR_DELIVERY (delivery only)."""
        return self._fulfillment_transition(invoice, "dispatch")

    def confirm_completion(self, invoice: Invoice) -> Invoice:
        """OUT_FOR_DELIVERY -> DELIVERED, or PENDING -> PICKED_UP for pickups."""
        return self._fulfillment_transition(invoice, "confirm_completion")

    def set_delivery_info(self, invoice: Invoice, delivery_info: DeliveryInfo) -> Invoice:
        """
        Attach or replace delivery details while fulfillment is PENDING.

        The status of the new details is always PENDING; it is advanced
        only by ``dispatch`` and ``confirm_completion``.
        """
        if invoice.fulfillment_status is not FulfillmentStatus.PENDING:
            raise IllegalTransitionError(
                FULFILLMENT_WORKFLOW_NAME,
                invoice.fulfillment_status.value,
                "update_delivery_info",
                "fulfillment already started",
            )
        info = replace(delivery_info, status=DeliveryStatus.PENDING, completed_date=None)
        return replace(invoice, delivery_info=info, updated_at=self._clock.now())

    # -- queries -------------------------------------------------------------

    def available_actions(self, invoice: Invoice) -> tuple[str, ...]:
        """
        Actions declared from the invoice's current states on both axes.

        Guards are not evaluated: ``apply_payment`` is listed whenever the
        invoice accepts payments.
        """
        actions = list(PAYMENT_WORKFLOW.actions_from(invoice.payment_status.value))
        workflow = fulfillment_workflow_for(invoice)
        if workflow is not None:
            actions.extend(
                a for a in workflow.actions_from(invoice.fulfillment_status.value)
                if a not in actions
            )
        return tuple(actions)

    def can_transition(self, invoice: Invoice, action: str) -> bool:
        return action in self.available_actions(invoice)
