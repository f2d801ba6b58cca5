# Overview: Inventory ledger; per-product available quantity plus immutable movements.

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy import func

from ..errors import InsufficientStockError, InvalidMovementError, NotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryMovement, InventoryRecord, Product
from criollo.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry

logger = logging.getLogger(__name__)
"""
Inventory Ledger Invariants (authoritative)

Quantity model:
- InventoryRecord.available is the running balance; it is never negative
  (CHECK constraint + service validation).
- Every change appends exactly one InventoryMovement in the same DB
  transaction as the balance update.
- For a product, movements chain: quantity_after[n] == quantity_before[n+1],
  the first movement starts at 0, and SUM(quantity_delta) == available.

Movement types:
- OPENING  record creation (delta = initial quantity)
- RESERVE  stock taken by an order line (delta < 0)
- RELEASE  stock returned by an order edit/cancel (delta > 0)
- ADJUST   manual correction to a counted quantity (signed delta)
- RECEIVE  restock entry (delta > 0)

Concurrency:
- The record row is re-read under SELECT ... FOR UPDATE before the check;
  a lost version race re-runs the whole operation, so two reservations of
  the last unit cannot both succeed.

Alerts:
- low_stock / out_of_stock are pure reads. They never block a reservation.
"""

SYSTEM_ACTOR = "system"


def _require_positive(qty: int, field: str = "quantity") -> None:
    if not isinstance(qty, int) or isinstance(qty, bool) or qty < 1:
        raise ValidationError(f"{field} must be a positive integer", details={field: qty})


def _get_record_locked(product_id: int) -> InventoryRecord:
    record = lock_for_update(
        db.session.query(InventoryRecord).filter_by(product_id=product_id)
    ).first()
    if record is None:
        raise NotFoundError("inventory", product_id, message=f"No inventory record for product {product_id}")
    return record


def _apply(
    record: InventoryRecord,
    *,
    movement_type: str,
    delta: int,
    actor: str | None,
    reference: str | None = None,
    reason: str | None = None,
) -> InventoryMovement:
    before = record.available
    after = before + delta
    if after < 0:
        raise InvalidMovementError(
            f"Movement would leave product {record.product_id} at {after}",
            details={"product_id": record.product_id, "quantity_before": before, "quantity_delta": delta},
        )

    record.available = after
    record.updated_at = utcnow()

    movement = InventoryMovement(
        product_id=record.product_id,
        movement_type=movement_type,
        quantity_delta=delta,
        quantity_before=before,
        quantity_after=after,
        actor=actor or SYSTEM_ACTOR,
        reference=reference,
        reason=reason,
        occurred_at=utcnow(),
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def net_reserved(product_id: int, reference: str) -> int:
    """Units currently held under ``reference`` (reserved minus released)."""
    total = (
        db.session.query(func.coalesce(func.sum(InventoryMovement.quantity_delta), 0))
        .filter(
            InventoryMovement.product_id == product_id,
            InventoryMovement.reference == reference,
            InventoryMovement.movement_type.in_(["RESERVE", "RELEASE"]),
        )
        .scalar()
    )
    return -int(total or 0)


# =============================================================================
# INNER HELPERS (no commit; used by order_service inside its transaction)
# =============================================================================

def _reserve_inner(product_id: int, qty: int, *, actor: str | None, reference: str | None) -> InventoryMovement:
    _require_positive(qty)
    record = _get_record_locked(product_id)
    if record.available < qty:
        raise InsufficientStockError(product_id, qty, record.available)
    movement = _apply(record, movement_type="RESERVE", delta=-qty, actor=actor, reference=reference)
    if record.is_low:
        logger.info("Product %s is low on stock (%s left)", product_id, record.available)
    return movement


def _release_inner(product_id: int, qty: int, *, actor: str | None, reference: str | None) -> InventoryMovement:
    _require_positive(qty)
    record = _get_record_locked(product_id)
    if reference is not None:
        held = net_reserved(product_id, reference)
        if qty > held:
            raise InvalidMovementError(
                f"Release of {qty} exceeds {held} reserved under {reference}",
                details={"product_id": product_id, "reference": reference, "requested": qty, "reserved": held},
            )
    return _apply(record, movement_type="RELEASE", delta=qty, actor=actor, reference=reference)


# =============================================================================
# PUBLIC OPERATIONS
# =============================================================================

def create_record(
    product_id: int,
    initial_quantity: int = 0,
    minimum_threshold: int | None = None,
    *,
    actor: str | None = None,
) -> InventoryRecord:
    """Start tracking stock for a product; writes the OPENING movement."""
    def _op():
        if initial_quantity < 0:
            raise InvalidMovementError(
                "initial_quantity cannot be negative",
                details={"product_id": product_id, "initial_quantity": initial_quantity},
            )
        threshold = minimum_threshold
        if threshold is None:
            threshold = current_app.config.get("DEFAULT_LOW_STOCK_THRESHOLD", 5)
        if threshold < 0:
            raise ValidationError("minimum_threshold cannot be negative", details={"minimum_threshold": threshold})

        if db.session.get(Product, product_id) is None:
            raise NotFoundError("product", product_id)
        if db.session.query(InventoryRecord).filter_by(product_id=product_id).first() is not None:
            raise ValidationError(
                f"Inventory record for product {product_id} already exists",
                details={"product_id": product_id},
            )

        record = InventoryRecord(product_id=product_id, available=0, minimum_threshold=threshold)
        db.session.add(record)
        db.session.flush()
        _apply(record, movement_type="OPENING", delta=initial_quantity, actor=actor, reason="opening balance")
        db.session.commit()
        return record

    return run_with_retry(_op)


def reserve(product_id: int, qty: int, actor: str | None = None, reference: str | None = None) -> InventoryMovement:
    """Take ``qty`` units. InsufficientStockError if fewer are available."""
    def _op():
        movement = _reserve_inner(product_id, qty, actor=actor, reference=reference)
        db.session.commit()
        return movement

    return run_with_retry(_op)


def release(product_id: int, qty: int, actor: str | None = None, reference: str | None = None) -> InventoryMovement:
    """
    Return ``qty`` units.

    With a ``reference``, releasing more than is still reserved under that
    reference is an over-release and raises InvalidMovementError.
    """
    def _op():
        movement = _release_inner(product_id, qty, actor=actor, reference=reference)
        db.session.commit()
        return movement

    return run_with_retry(_op)


def receive(product_id: int, qty: int, actor: str | None = None, reference: str | None = None) -> InventoryMovement:
    """Restock entry (supplier delivery)."""
    def _op():
        _require_positive(qty)
        movement = _apply(
            _get_record_locked(product_id),
            movement_type="RECEIVE",
            delta=qty,
            actor=actor,
            reference=reference,
        )
        db.session.commit()
        return movement

    return run_with_retry(_op)


def adjust(product_id: int, new_qty: int, actor: str | None = None, motive: str | None = None) -> InventoryMovement:
    """
    Set the counted quantity. Always appends one ADJUST movement carrying the
    signed delta (zero when the count matches) and ``motive`` as its reason.
    """
    def _op():
        if not isinstance(new_qty, int) or isinstance(new_qty, bool) or new_qty < 0:
            raise InvalidMovementError(
                "Adjusted quantity cannot be negative",
                details={"product_id": product_id, "new_qty": new_qty},
            )
        record = _get_record_locked(product_id)
        movement = _apply(
            record,
            movement_type="ADJUST",
            delta=new_qty - record.available,
            actor=actor,
            reason=motive,
        )
        db.session.commit()
        logger.info("Stock of product %s adjusted to %s by %s", product_id, new_qty, movement.actor)
        return movement

    return run_with_retry(_op)


def set_threshold(product_id: int, minimum_threshold: int) -> InventoryRecord:
    def _op():
        if minimum_threshold < 0:
            raise ValidationError(
                "minimum_threshold cannot be negative",
                details={"minimum_threshold": minimum_threshold},
            )
        record = _get_record_locked(product_id)
        record.minimum_threshold = minimum_threshold
        record.updated_at = utcnow()
        db.session.commit()
        return record

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def query(product_id: int) -> InventoryRecord:
    record = db.session.query(InventoryRecord).filter_by(product_id=product_id).first()
    if record is None:
        raise NotFoundError("inventory", product_id, message=f"No inventory record for product {product_id}")
    return record


def low_stock() -> list[InventoryRecord]:
    """Records at or below their minimum threshold (includes out of stock)."""
    return (
        db.session.query(InventoryRecord)
        .filter(InventoryRecord.available <= InventoryRecord.minimum_threshold)
        .order_by(InventoryRecord.available, InventoryRecord.product_id)
        .all()
    )


def out_of_stock() -> list[InventoryRecord]:
    return (
        db.session.query(InventoryRecord)
        .filter(InventoryRecord.available == 0)
        .order_by(InventoryRecord.product_id)
        .all()
    )


def list_movements(product_id: int, reference: str | None = None) -> list[InventoryMovement]:
    q = db.session.query(InventoryMovement).filter_by(product_id=product_id)
    if reference is not None:
        q = q.filter_by(reference=reference)
    return q.order_by(InventoryMovement.id).all()


def verify_ledger(product_id: int) -> bool:
    """
    Check that the movement chain explains the current balance.

    Raises InvalidMovementError describing the first break found.
    """
    record = query(product_id)
    expected_before = 0
    total = 0
    for m in list_movements(product_id):
        if m.quantity_before != expected_before:
            raise InvalidMovementError(
                f"Ledger break at movement {m.id}",
                details={"movement_id": m.id, "expected_before": expected_before, "quantity_before": m.quantity_before},
            )
        if m.quantity_before + m.quantity_delta != m.quantity_after:
            raise InvalidMovementError(
                f"Movement {m.id} does not add up",
                details={"movement_id": m.id},
            )
        expected_before = m.quantity_after
        total += m.quantity_delta

    if total != record.available or expected_before != record.available:
        raise InvalidMovementError(
            f"Movements for product {product_id} sum to {total}, record shows {record.available}",
            details={"product_id": product_id, "movement_sum": total, "available": record.available},
        )
    return True
