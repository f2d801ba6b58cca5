# Overview: Order engine; order documents, their lines, totals and stock reservations.

"""
Order Engine - document-first order processing

Every public operation is one transaction: the order row, its lines, the
table occupancy and the stock reservations commit together or not at all.
Stock is reserved under the order number as the movement reference, so the
ledger can always tell which order holds which units.

LIFECYCLE:
    PENDING -> IN_PREPARATION -> READY -> DELIVERED    (advance_state)
    PENDING | IN_PREPARATION | READY -> CANCELLED      (cancel)
    DELIVERED -> PARTIALLY_INVOICED -> INVOICED        (invoice_service)

Lines can only be added, removed or re-quantified while PENDING or
IN_PREPARATION, and never while a non-VOIDED invoice exists for the order.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from ..errors import (
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import Combo, DiningTable, InventoryRecord, Invoice, Order, OrderLine, Product
from criollo.time_utils import utcnow
from . import inventory_service, table_service
from .concurrency import check_expected_version, lock_for_update, run_with_retry
from .ledger_service import append_event
from .lifecycle_service import (
    ORDER_ACTIVE_STATES,
    ORDER_CANCELLABLE_STATES,
    ORDER_EDITABLE_STATES,
    next_order_state,
    require_transition,
    validate_order_kind,
    validate_state,
)
from .sequence_service import next_number

logger = logging.getLogger(__name__)

# 18% IVA, in basis points
TAX_RATE_BPS = 1800

MIN_LINE_QUANTITY = 1
MAX_LINE_QUANTITY = 99


def compute_tax(amount_cents: int) -> int:
    """Tax on ``amount_cents`` rounded half-up to the cent."""
    return (amount_cents * TAX_RATE_BPS + 5000) // 10000


# =============================================================================
# ITEM RESOLUTION
# =============================================================================

def _validate_quantity(quantity) -> None:
    if (
        not isinstance(quantity, int)
        or isinstance(quantity, bool)
        or not MIN_LINE_QUANTITY <= quantity <= MAX_LINE_QUANTITY
    ):
        raise ValidationError(
            f"quantity must be between {MIN_LINE_QUANTITY} and {MAX_LINE_QUANTITY}",
            details={"quantity": quantity},
        )


def _resolve_item(item: dict) -> dict:
    """
    Validate one requested item and price it from the catalog.

    ``item`` = {"product_id" | "combo_id": int, "quantity": int,
    "discount_cents": int = 0, "notes": str = None}
    """
    product_id = item.get("product_id")
    combo_id = item.get("combo_id")
    if (product_id is None) == (combo_id is None):
        raise ValidationError(
            "Each item must reference exactly one of product_id or combo_id",
            details={"item": dict(item)},
        )

    quantity = item.get("quantity", 1)
    _validate_quantity(quantity)

    product = combo = None
    if product_id is not None:
        product = db.session.get(Product, product_id)
        if product is None:
            raise NotFoundError("product", product_id)
        if not product.is_active:
            raise ValidationError(f"Product {product_id} is not active", details={"product_id": product_id})
        unit_price = product.price_cents
    else:
        combo = db.session.get(Combo, combo_id)
        if combo is None:
            raise NotFoundError("combo", combo_id)
        if not combo.is_active:
            raise ValidationError(f"Combo {combo_id} is not active", details={"combo_id": combo_id})
        unit_price = combo.price_cents

    gross = unit_price * quantity
    discount = item.get("discount_cents", 0) or 0
    if not isinstance(discount, int) or discount < 0 or discount > gross:
        raise ValidationError(
            "discount_cents must be between 0 and the line amount",
            details={"discount_cents": discount, "line_amount_cents": gross},
        )

    return {
        "product": product,
        "combo": combo,
        "quantity": quantity,
        "unit_price_cents": unit_price,
        "discount_cents": discount,
        "subtotal_cents": gross - discount,
        "notes": item.get("notes"),
    }


def _units_per_item(product: Product | None, combo: Combo | None) -> dict[int, int]:
    """Stock units consumed by one unit of a product or combo."""
    if product is not None:
        return {product.id: 1}
    units: dict[int, int] = defaultdict(int)
    for comp in combo.components:
        units[comp.product_id] += comp.quantity
    return dict(units)


def _requirements(entries) -> dict[int, int]:
    """
    Aggregate stock units for (product, combo, quantity) triples.

    Combo lines expand to component quantity x line quantity.
    """
    totals: dict[int, int] = defaultdict(int)
    for product, combo, quantity in entries:
        for product_id, units in _units_per_item(product, combo).items():
            totals[product_id] += units * quantity
    return dict(totals)


def _line_entry(line: OrderLine, quantity: int | None = None):
    return (line.product, line.combo, line.quantity if quantity is None else quantity)


def _reserve_all(requirements: dict[int, int], *, actor: str, reference: str) -> None:
    # sorted: consistent lock order across concurrent orders
    for product_id in sorted(requirements):
        inventory_service._reserve_inner(product_id, requirements[product_id], actor=actor, reference=reference)


def _release_all(requirements: dict[int, int], *, actor: str, reference: str) -> None:
    for product_id in sorted(requirements):
        qty = requirements[product_id]
        if qty > 0:
            inventory_service._release_inner(product_id, qty, actor=actor, reference=reference)


def _recompute_totals(order: Order) -> None:
    subtotal = sum(line.subtotal_cents for line in order.lines)
    order.subtotal_cents = subtotal
    order.tax_cents = compute_tax(subtotal)
    order.total_cents = subtotal + order.tax_cents
    order.updated_at = utcnow()


def _get_order_locked(order_id: int) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if order is None:
        raise NotFoundError("order", order_id)
    return order


def _has_live_invoice(order: Order) -> bool:
    return (
        db.session.query(Invoice.id)
        .filter(Invoice.order_id == order.id, Invoice.state != "VOIDED")
        .first()
        is not None
    )


def _require_editable(order: Order) -> None:
    if order.state not in ORDER_EDITABLE_STATES:
        raise InvalidTransitionError(
            "order", order.id, order.state, "EDIT",
            message=f"Order {order.number} is {order.state}; lines can no longer change",
        )
    if _has_live_invoice(order):
        raise InvalidTransitionError(
            "order", order.id, order.state, "EDIT",
            message=f"Order {order.number} has a live invoice; void it before changing lines",
        )


def _get_line(order: Order, line_id: int) -> OrderLine:
    for line in order.lines:
        if line.id == line_id:
            return line
    raise NotFoundError("order_line", line_id, message=f"Line {line_id} is not part of order {order.number}")


def _build_line(resolved: dict, position: int) -> OrderLine:
    return OrderLine(
        position=position,
        product_id=resolved["product"].id if resolved["product"] is not None else None,
        combo_id=resolved["combo"].id if resolved["combo"] is not None else None,
        quantity=resolved["quantity"],
        unit_price_cents=resolved["unit_price_cents"],
        discount_cents=resolved["discount_cents"],
        subtotal_cents=resolved["subtotal_cents"],
        notes=resolved["notes"],
    )


# =============================================================================
# CREATE
# =============================================================================

def create_order(
    *,
    items: list[dict],
    created_by: str,
    table_id: int | None = None,
    customer_id: int | None = None,
    kind: str = "DINE_IN",
    notes: str | None = None,
) -> Order:
    """
    Open a new PENDING order.

    In one transaction: allocates an ORD- number, occupies the table (dine-in)
    and reserves stock for every item. Any failure (InsufficientStockError,
    occupied table, bad item) leaves no order, no reservation and the table
    untouched.
    """
    def _op():
        validate_order_kind(kind)
        if not created_by:
            raise ValidationError("created_by is required")
        if not items:
            raise ValidationError("An order needs at least one item")
        if kind == "DINE_IN" and table_id is None:
            raise ValidationError("DINE_IN orders require a table", details={"kind": kind})
        if kind != "DINE_IN" and table_id is not None:
            raise ValidationError(f"{kind} orders cannot hold a table", details={"kind": kind, "table_id": table_id})

        resolved = [_resolve_item(item) for item in items]

        number = next_number("ORDER")

        if table_id is not None:
            table = table_service._get_table_locked(table_id)
            table_service._occupy_locked(table, actor=created_by)

        _reserve_all(
            _requirements((r["product"], r["combo"], r["quantity"]) for r in resolved),
            actor=created_by,
            reference=number,
        )

        order = Order(
            number=number,
            table_id=table_id,
            customer_id=customer_id,
            created_by=created_by,
            state="PENDING",
            kind=kind,
            notes=notes,
        )
        for position, r in enumerate(resolved, start=1):
            order.lines.append(_build_line(r, position))
        _recompute_totals(order)

        db.session.add(order)
        db.session.flush()

        append_event(
            event_type="order.created",
            entity_type="order",
            entity_id=order.id,
            actor=created_by,
            payload=f"number={number},total_cents={order.total_cents}",
        )
        db.session.commit()
        logger.info("Order %s created (%s lines, total %s)", number, len(order.lines), order.total_cents)
        return order

    return run_with_retry(_op)


# =============================================================================
# LINE MUTATIONS
# =============================================================================

def add_item(
    order_id: int,
    item: dict,
    *,
    actor: str | None = None,
    expected_version: int | None = None,
) -> Order:
    """Append a line and reserve its stock."""
    def _op():
        order = _get_order_locked(order_id)
        check_expected_version("order", order, expected_version)
        _require_editable(order)

        resolved = _resolve_item(item)
        who = actor or order.created_by
        _reserve_all(
            _requirements([(resolved["product"], resolved["combo"], resolved["quantity"])]),
            actor=who,
            reference=order.number,
        )

        position = max((line.position for line in order.lines), default=0) + 1
        line = _build_line(resolved, position)
        order.lines.append(line)
        _recompute_totals(order)
        db.session.flush()

        append_event(
            event_type="order.item_added",
            entity_type="order",
            entity_id=order.id,
            actor=who,
            payload=f"line_id={line.id},quantity={line.quantity}",
        )
        db.session.commit()
        return order

    return run_with_retry(_op)


def remove_item(
    order_id: int,
    line_id: int,
    *,
    actor: str | None = None,
    expected_version: int | None = None,
) -> Order:
    """Drop a line and release its stock. The last line cannot be removed; cancel instead."""
    def _op():
        order = _get_order_locked(order_id)
        check_expected_version("order", order, expected_version)
        _require_editable(order)

        line = _get_line(order, line_id)
        if len(order.lines) == 1:
            raise ValidationError(
                f"Cannot remove the last line of order {order.number}; cancel the order instead",
                details={"order_id": order.id, "line_id": line_id},
            )

        who = actor or order.created_by
        _release_all(_requirements([_line_entry(line)]), actor=who, reference=order.number)

        order.lines.remove(line)
        _recompute_totals(order)
        db.session.flush()

        append_event(
            event_type="order.item_removed",
            entity_type="order",
            entity_id=order.id,
            actor=who,
            payload=f"line_id={line_id}",
        )
        db.session.commit()
        return order

    return run_with_retry(_op)


def update_quantity(
    order_id: int,
    line_id: int,
    quantity: int,
    *,
    actor: str | None = None,
    expected_version: int | None = None,
) -> Order:
    """
    Change a line's quantity, reserving or releasing only the difference.
    """
    def _op():
        _validate_quantity(quantity)
        order = _get_order_locked(order_id)
        check_expected_version("order", order, expected_version)
        _require_editable(order)

        line = _get_line(order, line_id)
        delta = quantity - line.quantity
        if delta == 0:
            return order

        gross = line.unit_price_cents * quantity
        if line.discount_cents > gross:
            raise ValidationError(
                "Line discount exceeds the new line amount",
                details={"discount_cents": line.discount_cents, "line_amount_cents": gross},
            )

        who = actor or order.created_by
        if delta > 0:
            _reserve_all(_requirements([_line_entry(line, delta)]), actor=who, reference=order.number)
        else:
            _release_all(_requirements([_line_entry(line, -delta)]), actor=who, reference=order.number)

        previous = line.quantity
        line.quantity = quantity
        line.subtotal_cents = gross - line.discount_cents
        _recompute_totals(order)

        append_event(
            event_type="order.quantity_changed",
            entity_type="order",
            entity_id=order.id,
            actor=who,
            payload=f"line_id={line_id},from={previous},to={quantity}",
        )
        db.session.commit()
        return order

    return run_with_retry(_op)


# =============================================================================
# STATE CHANGES
# =============================================================================

def advance_state(
    order_id: int,
    target_state: str | None = None,
    *,
    actor: str | None = None,
    expected_version: int | None = None,
) -> Order:
    """
    Move the order one step along PENDING -> IN_PREPARATION -> READY -> DELIVERED.

    ``target_state`` (optional) must be exactly the next step; skipping or
    going back raises InvalidTransitionError.
    """
    def _op():
        order = _get_order_locked(order_id)
        check_expected_version("order", order, expected_version)

        nxt = next_order_state(order.state)
        if target_state is not None:
            validate_state("order", target_state)
        attempted = target_state or nxt or "NEXT"
        if nxt is None or (target_state is not None and target_state != nxt):
            raise InvalidTransitionError("order", order.id, order.state, attempted)

        previous = order.state
        order.state = nxt
        order.updated_at = utcnow()
        append_event(
            event_type=f"order.{nxt.lower()}",
            entity_type="order",
            entity_id=order.id,
            actor=actor,
            payload=f"from={previous},to={nxt}",
        )
        db.session.commit()
        return order

    return run_with_retry(_op)


def cancel(
    order_id: int,
    reason: str,
    *,
    actor: str | None = None,
    expected_version: int | None = None,
) -> Order:
    """
    Cancel an order that has not been delivered.

    Releases every reserved unit, frees the table when no other active order
    sits on it and records ``reason``. Cancelling a CANCELLED order is a no-op.
    """
    def _op():
        order = _get_order_locked(order_id)
        if order.state == "CANCELLED":
            return order
        check_expected_version("order", order, expected_version)
        if not reason or not reason.strip():
            raise ValidationError("A cancellation reason is required", details={"order_id": order.id})
        if order.state not in ORDER_CANCELLABLE_STATES:
            raise InvalidTransitionError("order", order.id, order.state, "CANCELLED")
        if _has_live_invoice(order):
            raise InvalidTransitionError(
                "order", order.id, order.state, "CANCELLED",
                message=f"Order {order.number} has a live invoice; void it before cancelling",
            )
        require_transition("order", order.id, order.state, "CANCELLED")

        who = actor or order.created_by
        _release_all(
            _requirements(_line_entry(line) for line in order.lines),
            actor=who,
            reference=order.number,
        )

        previous = order.state
        order.state = "CANCELLED"
        order.cancel_reason = reason
        order.cancelled_at = utcnow()
        order.updated_at = order.cancelled_at
        db.session.flush()

        if order.table_id is not None:
            table = table_service._get_table_locked(order.table_id)
            if not table_service.active_orders_for_table(table.id, exclude_order_id=order.id):
                table_service._free_locked(table, actor=who, exclude_order_id=order.id)

        append_event(
            event_type="order.cancelled",
            entity_type="order",
            entity_id=order.id,
            actor=who,
            note=reason,
            payload=f"from={previous}",
        )
        db.session.commit()
        logger.info("Order %s cancelled from %s: %s", order.number, previous, reason)
        return order

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("order", order_id)
    return order


def get_order_by_number(number: str) -> Order:
    """Look an order up by its document number (ORD-YYYYMMDD-NNNN)."""
    order = db.session.query(Order).filter_by(number=number).first()
    if order is None:
        raise NotFoundError("order", number)
    return order


def list_orders(state: str | None = None, table_id: int | None = None) -> list[Order]:
    q = db.session.query(Order)
    if state is not None:
        validate_state("order", state)
        q = q.filter(Order.state == state)
    if table_id is not None:
        q = q.filter(Order.table_id == table_id)
    return q.order_by(Order.created_at.desc(), Order.id.desc()).all()


def active_order_for_table(table_id: int) -> Order | None:
    if db.session.get(DiningTable, table_id) is None:
        raise NotFoundError("table", table_id)
    return (
        db.session.query(Order)
        .filter(Order.table_id == table_id, Order.state.in_(ORDER_ACTIVE_STATES))
        .order_by(Order.id.desc())
        .first()
    )


def check_availability(items: list[dict]) -> dict:
    """
    Read-only stock check for a prospective order. Reserves nothing.
    """
    resolved = [_resolve_item(item) for item in items]
    needed = _requirements((r["product"], r["combo"], r["quantity"]) for r in resolved)

    shortages = []
    for product_id in sorted(needed):
        record = db.session.query(InventoryRecord).filter_by(product_id=product_id).first()
        available = record.available if record is not None else 0
        if available < needed[product_id]:
            shortages.append({
                "product_id": product_id,
                "requested": needed[product_id],
                "available": available,
            })
    return {"available": not shortages, "shortages": shortages}


def quote_items(items: list[dict]) -> dict:
    """Price a prospective order without persisting anything."""
    resolved = [_resolve_item(item) for item in items]
    subtotal = sum(r["subtotal_cents"] for r in resolved)
    tax = compute_tax(subtotal)
    return {
        "lines": [
            {
                "product_id": r["product"].id if r["product"] is not None else None,
                "combo_id": r["combo"].id if r["combo"] is not None else None,
                "quantity": r["quantity"],
                "unit_price_cents": r["unit_price_cents"],
                "discount_cents": r["discount_cents"],
                "subtotal_cents": r["subtotal_cents"],
            }
            for r in resolved
        ],
        "subtotal_cents": subtotal,
        "tax_cents": tax,
        "total_cents": subtotal + tax,
    }
