"""Tests for workflow value types, idempotency keys and the clock."""

from datetime import date, datetime, timezone

import pytest

from ledger_kernel.domain.clock import DeterministicClock, SystemClock
from ledger_kernel.domain.workflow import Guard, Transition, Workflow
from ledger_kernel.utils.idempotency import (
    generate_payment_id,
    transaction_payment_id,
)


class TestWorkflowDefinition:
    """Tests for Workflow construction checks."""

    def test_valid_workflow(self):
        wf = Workflow(
            name="doc",
            description="",
            initial_state="open",
            states=("open", "closed"),
            transitions=(Transition("open", "closed", action="close"),),
            terminal_states=("closed",),
        )
        assert wf.transitions_for("open", "close")[0].to_state == "closed"
        assert wf.actions_from("closed") == ()

    def test_unknown_initial_state(self):
        with pytest.raises(ValueError, match="initial state"):
            Workflow("doc", "", "missing", ("open",), ())

    def test_unknown_transition_state(self):
        with pytest.raises(ValueError, match="unknown state"):
            Workflow("doc", "", "open", ("open",), (Transition("open", "gone", action="go"),))

    def test_transition_out_of_terminal_state(self):
        with pytest.raises(ValueError, match="terminal state"):
            Workflow(
                "doc", "", "open", ("open", "closed"),
                (Transition("closed", "open", action="reopen"),),
                terminal_states=("closed",),
            )

    def test_actions_are_distinct_and_ordered(self):
        guard = Guard("g", "guard")
        wf = Workflow(
            "doc", "", "a", ("a", "b", "c"),
            (
                Transition("a", "b", action="step", guard=guard),
                Transition("a", "c", action="step"),
                Transition("a", "c", action="jump"),
            ),
        )
        assert wf.actions_from("a") == ("step", "jump")
        assert len(wf.transitions_for("a", "step")) == 2


class TestPaymentKeys:
    """Tests for payment id derivation."""

    def test_explicit_id_first(self):
        assert generate_payment_id("pay-1", "QK7A1B2C3D") == "pay-1"

    def test_transaction_id_second(self):
        assert generate_payment_id(None, "QK7A1B2C3D") == "txn:QK7A1B2C3D"

    def test_otherwise_random(self):
        assert generate_payment_id() != generate_payment_id()
        assert generate_payment_id("", "") != generate_payment_id("", "")

    def test_transaction_payment_id(self):
        assert transaction_payment_id("QK7A1B2C3D") == "txn:QK7A1B2C3D"


class TestClock:
    """Tests for clock implementations."""

    def test_deterministic_clock_is_fixed(self):
        clock = DeterministicClock(datetime(2024, 3, 1, 23, 59, 59, tzinfo=timezone.utc))
        assert clock.now() == clock.now()
        assert clock.today() == date(2024, 3, 1)

    def test_advance_and_tick(self):
        clock = DeterministicClock(datetime(2024, 3, 1, 23, 59, 59, tzinfo=timezone.utc))
        assert clock.tick().date() == date(2024, 3, 2)
        clock.advance(86400)
        assert clock.today() == date(2024, 3, 3)

    def test_system_clock_is_utc(self):
        assert SystemClock().now().tzinfo is not None
