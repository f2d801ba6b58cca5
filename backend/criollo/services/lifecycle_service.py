# Overview: State machines for tables, orders and invoices.

"""
Lifecycle rules for the three stateful documents of the floor.

================================================================================
TABLE
    FREE <-> OCCUPIED, FREE <-> RESERVED, RESERVED -> OCCUPIED,
    FREE -> MAINTENANCE, MAINTENANCE -> FREE

ORDER
    PENDING -> IN_PREPARATION -> READY -> DELIVERED      (advance_state)
    DELIVERED -> PARTIALLY_INVOICED -> INVOICED          (invoice_service only)
    PENDING -> INVOICED                                  (ALLOW_INVOICE_PENDING_ORDERS)
    PENDING | IN_PREPARATION | READY -> CANCELLED        (cancel)

INVOICE
    PENDING -> PAID, PENDING -> VOIDED
================================================================================

States are closed enumerations: anything outside the sets below is rejected
before it can reach the database (the tables also carry CHECK constraints).
"""

from __future__ import annotations

from ..errors import InvalidTransitionError, ValidationError
from ..models import TABLE_STATES, ORDER_STATES, ORDER_KINDS, INVOICE_STATES, PAYMENT_METHODS


TABLE_TRANSITIONS = {
    ("FREE", "OCCUPIED"),
    ("FREE", "RESERVED"),
    ("FREE", "MAINTENANCE"),
    ("OCCUPIED", "FREE"),
    ("RESERVED", "FREE"),
    ("RESERVED", "OCCUPIED"),
    ("MAINTENANCE", "FREE"),
}

# Kitchen/floor progression driven by advance_state
ORDER_PROGRESSION = ("PENDING", "IN_PREPARATION", "READY", "DELIVERED")

ORDER_EDITABLE_STATES = frozenset({"PENDING", "IN_PREPARATION"})
ORDER_CANCELLABLE_STATES = frozenset({"PENDING", "IN_PREPARATION", "READY"})

# An order still "holds" its table in any of these states
ORDER_ACTIVE_STATES = frozenset(set(ORDER_STATES) - {"CANCELLED", "INVOICED"})

ORDER_TRANSITIONS = {
    ("PENDING", "IN_PREPARATION"),
    ("IN_PREPARATION", "READY"),
    ("READY", "DELIVERED"),
    ("DELIVERED", "PARTIALLY_INVOICED"),
    ("DELIVERED", "INVOICED"),
    ("PARTIALLY_INVOICED", "INVOICED"),
    ("PARTIALLY_INVOICED", "DELIVERED"),  # void reversal
    ("PENDING", "PARTIALLY_INVOICED"),
    ("PENDING", "INVOICED"),
    ("PENDING", "CANCELLED"),
    ("IN_PREPARATION", "CANCELLED"),
    ("READY", "CANCELLED"),
}

INVOICE_TRANSITIONS = {
    ("PENDING", "PAID"),
    ("PENDING", "VOIDED"),
}

_STATES = {
    "table": TABLE_STATES,
    "order": ORDER_STATES,
    "invoice": INVOICE_STATES,
}

_TRANSITIONS = {
    "table": TABLE_TRANSITIONS,
    "order": ORDER_TRANSITIONS,
    "invoice": INVOICE_TRANSITIONS,
}


def validate_state(entity: str, state: str) -> None:
    """Raise ValidationError unless ``state`` belongs to the entity's enumeration."""
    allowed = _STATES[entity]
    if state not in allowed:
        raise ValidationError(
            f"Invalid {entity} state '{state}'. Must be one of: {', '.join(allowed)}",
            details={"entity": entity, "state": state},
        )


def validate_order_kind(kind: str) -> None:
    if kind not in ORDER_KINDS:
        raise ValidationError(
            f"Invalid order kind '{kind}'. Must be one of: {', '.join(ORDER_KINDS)}",
            details={"kind": kind},
        )


def validate_payment_method(method: str) -> None:
    if method not in PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method '{method}'. Must be one of: {', '.join(PAYMENT_METHODS)}",
            details={"payment_method": method},
        )


def can_transition(entity: str, from_state: str, to_state: str) -> bool:
    """
    Check a state change against the entity's transition table.

    Same-state "transitions" are not transitions; idempotent no-ops are the
    caller's decision (table free, order cancel).
    """
    validate_state(entity, from_state)
    validate_state(entity, to_state)
    return (from_state, to_state) in _TRANSITIONS[entity]


def require_transition(entity: str, entity_id: int, from_state: str, to_state: str) -> None:
    if not can_transition(entity, from_state, to_state):
        raise InvalidTransitionError(entity, entity_id, from_state, to_state)


def next_order_state(current: str) -> str | None:
    """Successor of ``current`` on the kitchen progression, None past DELIVERED."""
    if current not in ORDER_PROGRESSION:
        return None
    idx = ORDER_PROGRESSION.index(current)
    if idx + 1 >= len(ORDER_PROGRESSION):
        return None
    return ORDER_PROGRESSION[idx + 1]
