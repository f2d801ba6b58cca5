# Overview: Pytest coverage for the state machines.

import pytest

from criollo.errors import InvalidTransitionError, ValidationError
from criollo.services import lifecycle_service as lc


class TestTableMachine:

    @pytest.mark.parametrize("from_state,to_state", sorted(lc.TABLE_TRANSITIONS))
    def test_allowed(self, from_state, to_state):
        assert lc.can_transition("table", from_state, to_state)

    @pytest.mark.parametrize("from_state,to_state", [
        ("OCCUPIED", "RESERVED"),
        ("OCCUPIED", "MAINTENANCE"),
        ("MAINTENANCE", "OCCUPIED"),
        ("RESERVED", "MAINTENANCE"),
    ])
    def test_rejected(self, from_state, to_state):
        assert not lc.can_transition("table", from_state, to_state)
        with pytest.raises(InvalidTransitionError):
            lc.require_transition("table", 1, from_state, to_state)

    def test_unknown_state(self):
        with pytest.raises(ValidationError):
            lc.can_transition("table", "FREE", "BROKEN")


class TestOrderMachine:

    def test_progression(self):
        assert lc.next_order_state("PENDING") == "IN_PREPARATION"
        assert lc.next_order_state("IN_PREPARATION") == "READY"
        assert lc.next_order_state("READY") == "DELIVERED"
        assert lc.next_order_state("DELIVERED") is None
        assert lc.next_order_state("CANCELLED") is None

    def test_no_cancel_after_delivery(self):
        assert not lc.can_transition("order", "DELIVERED", "CANCELLED")
        assert not lc.can_transition("order", "INVOICED", "CANCELLED")

    def test_no_going_back(self):
        assert not lc.can_transition("order", "READY", "PENDING")
        assert not lc.can_transition("order", "INVOICED", "DELIVERED")

    def test_active_states_exclude_terminal(self):
        assert "CANCELLED" not in lc.ORDER_ACTIVE_STATES
        assert "INVOICED" not in lc.ORDER_ACTIVE_STATES
        assert "PARTIALLY_INVOICED" in lc.ORDER_ACTIVE_STATES


class TestInvoiceMachine:

    def test_only_pending_moves(self):
        assert lc.can_transition("invoice", "PENDING", "PAID")
        assert lc.can_transition("invoice", "PENDING", "VOIDED")
        assert not lc.can_transition("invoice", "PAID", "VOIDED")
        assert not lc.can_transition("invoice", "VOIDED", "PAID")


def test_enumerations_validated():
    with pytest.raises(ValidationError):
        lc.validate_order_kind("DRIVE_THRU")
    with pytest.raises(ValidationError):
        lc.validate_payment_method("CRYPTO")
    lc.validate_order_kind("TAKEOUT")
    lc.validate_payment_method("CARD")
