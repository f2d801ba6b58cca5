# Overview: Table registry; owns occupancy state of every physical table.

"""
Table Registry

Public functions run as their own transaction (run_with_retry + commit).
The ``_occupy_locked`` / ``_free_locked`` helpers perform the same state
change without committing; order_service and invoice_service call them so
the table change commits atomically with the order or invoice change.
"""

from __future__ import annotations

import logging

from ..errors import InvalidTransitionError, NotFoundError, ValidationError
from ..extensions import db
from ..models import DiningTable, Order
from criollo.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import append_event
from .lifecycle_service import ORDER_ACTIVE_STATES, require_transition, validate_state

logger = logging.getLogger(__name__)


def _get_table_locked(table_id: int) -> DiningTable:
    table = lock_for_update(db.session.query(DiningTable).filter_by(id=table_id)).first()
    if table is None:
        raise NotFoundError("table", table_id)
    return table


def _set_state(table: DiningTable, new_state: str, *, motive: str | None, actor: str | None) -> DiningTable:
    previous = table.state
    require_transition("table", table.id, previous, new_state)

    table.state = new_state
    table.state_motive = motive
    table.state_changed_at = utcnow()
    if previous == "MAINTENANCE" and new_state == "FREE":
        table.last_cleaned_at = table.state_changed_at

    append_event(
        event_type=f"table.{new_state.lower()}",
        entity_type="table",
        entity_id=table.id,
        actor=actor,
        note=motive,
        payload=f"from={previous},to={new_state}",
    )
    db.session.flush()
    logger.info("Table %s: %s -> %s", table.number, previous, new_state)
    return table


def active_orders_for_table(table_id: int, *, exclude_order_id: int | None = None) -> list[Order]:
    q = db.session.query(Order).filter(
        Order.table_id == table_id,
        Order.state.in_(ORDER_ACTIVE_STATES),
    )
    if exclude_order_id is not None:
        q = q.filter(Order.id != exclude_order_id)
    return q.all()


def _occupy_locked(table: DiningTable, *, actor: str | None = None) -> DiningTable:
    if not table.is_active:
        raise InvalidTransitionError(
            "table", table.id, table.state, "OCCUPIED",
            message=f"Table {table.number} is deactivated",
        )
    if table.state not in ("FREE", "RESERVED"):
        raise InvalidTransitionError(
            "table", table.id, table.state, "OCCUPIED",
            message=f"Table {table.number} is {table.state} and cannot be occupied",
        )
    return _set_state(table, "OCCUPIED", motive=None, actor=actor)


def _free_locked(
    table: DiningTable,
    *,
    actor: str | None = None,
    exclude_order_id: int | None = None,
) -> DiningTable:
    """
    Free ``table`` unless an active order still sits on it.

    FREE -> FREE is a no-op without side effects.
    """
    if table.state == "FREE":
        return table
    if table.state == "MAINTENANCE":
        raise InvalidTransitionError(
            "table", table.id, table.state, "FREE",
            message=f"Table {table.number} is under maintenance; complete maintenance first",
        )
    holders = active_orders_for_table(table.id, exclude_order_id=exclude_order_id)
    if holders:
        raise InvalidTransitionError(
            "table", table.id, table.state, "FREE",
            message=f"Table {table.number} still has active order {holders[0].number}",
        )
    return _set_state(table, "FREE", motive=None, actor=actor)


# =============================================================================
# SETUP
# =============================================================================

def create_table(number: int, capacity: int, zone: str | None = None) -> DiningTable:
    """Register a physical table (setup time)."""
    def _op():
        if capacity is None or capacity < 1:
            raise ValidationError("capacity must be at least 1", details={"capacity": capacity})
        existing = db.session.query(DiningTable).filter_by(number=number).first()
        if existing:
            raise ValidationError(f"Table number {number} already exists", details={"number": number})

        table = DiningTable(
            number=number,
            capacity=capacity,
            zone=zone,
            state="FREE",
            state_changed_at=utcnow(),
            is_active=True,
        )
        db.session.add(table)
        db.session.commit()
        return table

    return run_with_retry(_op)


def deactivate_table(table_id: int, *, actor: str | None = None) -> DiningTable:
    """Retire a table. Only FREE tables can be deactivated; rows are never deleted."""
    def _op():
        table = _get_table_locked(table_id)
        if not table.is_active:
            return table
        if table.state != "FREE":
            raise InvalidTransitionError(
                "table", table.id, table.state, "INACTIVE",
                message=f"Table {table.number} must be FREE to be deactivated",
            )
        table.is_active = False
        append_event(event_type="table.deactivated", entity_type="table", entity_id=table.id, actor=actor)
        db.session.commit()
        return table

    return run_with_retry(_op)


# =============================================================================
# STATE TRANSITIONS
# =============================================================================

def occupy(table_id: int, *, actor: str | None = None) -> DiningTable:
    """FREE/RESERVED -> OCCUPIED."""
    def _op():
        table = _occupy_locked(_get_table_locked(table_id), actor=actor)
        db.session.commit()
        return table

    return run_with_retry(_op)


def free(table_id: int, *, actor: str | None = None) -> DiningTable:
    """OCCUPIED/RESERVED -> FREE. Idempotent on FREE tables; rejected under MAINTENANCE."""
    def _op():
        table = _free_locked(_get_table_locked(table_id), actor=actor)
        db.session.commit()
        return table

    return run_with_retry(_op)


def reserve(table_id: int, motive: str, *, actor: str | None = None) -> DiningTable:
    """FREE -> RESERVED. ``motive`` is kept on the table (e.g. guest name and time)."""
    def _op():
        table = _get_table_locked(table_id)
        if not table.is_active:
            raise InvalidTransitionError(
                "table", table.id, table.state, "RESERVED",
                message=f"Table {table.number} is deactivated",
            )
        _set_state(table, "RESERVED", motive=motive, actor=actor)
        db.session.commit()
        return table

    return run_with_retry(_op)


def mark_maintenance(table_id: int, motive: str, *, actor: str | None = None) -> DiningTable:
    """FREE -> MAINTENANCE."""
    def _op():
        table = _set_state(_get_table_locked(table_id), "MAINTENANCE", motive=motive, actor=actor)
        db.session.commit()
        return table

    return run_with_retry(_op)


def complete_maintenance(table_id: int, *, actor: str | None = None) -> DiningTable:
    """MAINTENANCE -> FREE; stamps last_cleaned_at."""
    def _op():
        table = _get_table_locked(table_id)
        if table.state != "MAINTENANCE":
            raise InvalidTransitionError(
                "table", table.id, table.state, "FREE",
                message=f"Table {table.number} is not under maintenance",
            )
        _set_state(table, "FREE", motive=None, actor=actor)
        db.session.commit()
        return table

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def query_state(table_id: int) -> dict:
    table = db.session.get(DiningTable, table_id)
    if table is None:
        raise NotFoundError("table", table_id)
    holders = active_orders_for_table(table.id)
    return {
        "table_id": table.id,
        "number": table.number,
        "state": table.state,
        "state_motive": table.state_motive,
        "state_changed_at": table.state_changed_at,
        "is_active": table.is_active,
        "active_order_id": holders[0].id if holders else None,
    }


def list_tables(state: str | None = None, zone: str | None = None, include_inactive: bool = False) -> list[DiningTable]:
    q = db.session.query(DiningTable)
    if state is not None:
        validate_state("table", state)
        q = q.filter(DiningTable.state == state)
    if zone is not None:
        q = q.filter(DiningTable.zone == zone)
    if not include_inactive:
        q = q.filter(DiningTable.is_active == True)  # noqa: E712
    return q.order_by(DiningTable.number).all()


def find_available(party_size: int, zone: str | None = None) -> list[DiningTable]:
    """
    FREE active tables that seat ``party_size``, smallest fitting table first.
    """
    if party_size < 1:
        raise ValidationError("party_size must be at least 1", details={"party_size": party_size})
    q = db.session.query(DiningTable).filter(
        DiningTable.state == "FREE",
        DiningTable.is_active == True,  # noqa: E712
        DiningTable.capacity >= party_size,
    )
    if zone is not None:
        q = q.filter(DiningTable.zone == zone)
    return q.order_by(DiningTable.capacity, DiningTable.number).all()
