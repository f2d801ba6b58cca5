# Overview: Invoice engine; whole and split billing, payment settlement and voids.

from __future__ import annotations

import logging

from flask import current_app

from ..errors import (
    DuplicateAssignmentError,
    IncompleteSplitError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import Invoice, InvoiceLine, Order, OrderLine
from criollo.time_utils import utcnow
from . import table_service
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import append_event
from .lifecycle_service import require_transition, validate_payment_method, validate_state
from .order_service import _get_order_locked, compute_tax
from .sequence_service import next_number

logger = logging.getLogger(__name__)
"""
Invoice Engine Invariants (authoritative)

Coverage:
- An order line is "billed" while it is covered by a non-VOIDED invoice.
- No line is ever covered by two non-VOIDED invoices.
- Billable lines = order lines minus billed lines.

Amounts (integer cents, frozen at creation):
- subtotal = SUM(covered line subtotals)
- 0 <= discount <= subtotal, tip >= 0
- tax      = round_half_up((subtotal - discount) * 18%)
- total    = subtotal - discount + tax + tip

Settlement (evaluated after every payment or void):
- every line billed AND every non-VOIDED invoice PAID -> order INVOICED,
  table freed
- otherwise any PAID invoice -> order PARTIALLY_INVOICED, table stays OCCUPIED
- no PAID invoice left on a PARTIALLY_INVOICED order -> back to DELIVERED,
  table re-occupied if it had been freed and no other order holds it
"""


def _billed_line_ids(order_id: int) -> set[int]:
    rows = (
        db.session.query(InvoiceLine.order_line_id)
        .join(Invoice, Invoice.id == InvoiceLine.invoice_id)
        .filter(Invoice.order_id == order_id, Invoice.state != "VOIDED")
        .all()
    )
    return {row[0] for row in rows}


def _billable_lines(order: Order) -> list[OrderLine]:
    billed = _billed_line_ids(order.id)
    return [line for line in order.lines if line.id not in billed]


def _require_invoiceable(order: Order) -> None:
    allowed = {"DELIVERED", "PARTIALLY_INVOICED"}
    if current_app.config.get("ALLOW_INVOICE_PENDING_ORDERS", False):
        allowed.add("PENDING")
    if order.state not in allowed:
        raise InvalidTransitionError(
            "order", order.id, order.state, "INVOICED",
            message=f"Order {order.number} is {order.state}; only {', '.join(sorted(allowed))} orders can be invoiced",
        )


def _is_cents(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _compute_amounts(subtotal: int, discount_cents: int, tip_cents: int) -> dict:
    if not _is_cents(discount_cents) or discount_cents < 0 or discount_cents > subtotal:
        raise ValidationError(
            "discount_cents must be between 0 and the invoice subtotal",
            details={"discount_cents": discount_cents, "subtotal_cents": subtotal},
        )
    if not _is_cents(tip_cents) or tip_cents < 0:
        raise ValidationError("tip_cents cannot be negative", details={"tip_cents": tip_cents})

    taxable = subtotal - discount_cents
    tax = compute_tax(taxable)
    return {
        "subtotal_cents": subtotal,
        "discount_cents": discount_cents,
        "tax_cents": tax,
        "tip_cents": tip_cents,
        "total_cents": taxable + tax + tip_cents,
    }


def _resolve_payer(order: Order, payer_customer_id, payer_name, payer_document) -> dict:
    if payer_customer_id is None and not payer_name:
        payer_customer_id = order.customer_id
        if payer_customer_id is None:
            payer_name = current_app.config.get("DEFAULT_PAYER_NAME")
    return {
        "payer_customer_id": payer_customer_id,
        "payer_name": payer_name,
        "payer_document": payer_document,
    }


def _create_invoice(
    order: Order,
    lines: list[OrderLine],
    *,
    payment_method: str,
    discount_cents: int,
    tip_cents: int,
    payer: dict,
    notes: str | None,
    is_split: bool,
    actor: str | None,
) -> Invoice:
    validate_payment_method(payment_method)
    amounts = _compute_amounts(sum(line.subtotal_cents for line in lines), discount_cents, tip_cents)

    invoice = Invoice(
        number=next_number("INVOICE"),
        order=order,
        payment_method=payment_method,
        state="PENDING",
        is_split=is_split,
        notes=notes,
        created_by=actor,
        **payer,
        **amounts,
    )
    for line in lines:
        invoice.lines.append(InvoiceLine(order_line_id=line.id, subtotal_cents=line.subtotal_cents))
    db.session.add(invoice)
    db.session.flush()

    append_event(
        event_type="invoice.created",
        entity_type="invoice",
        entity_id=invoice.id,
        actor=actor,
        payload=f"order={order.number},total_cents={invoice.total_cents}",
    )
    return invoice


def _mark_paid_locked(invoice: Invoice, payment_method: str | None, actor: str | None) -> None:
    require_transition("invoice", invoice.id, invoice.state, "PAID")
    if payment_method is not None:
        validate_payment_method(payment_method)
        invoice.payment_method = payment_method
    invoice.state = "PAID"
    invoice.paid_at = utcnow()
    append_event(
        event_type="invoice.paid",
        entity_type="invoice",
        entity_id=invoice.id,
        actor=actor,
        payload=f"method={invoice.payment_method},total_cents={invoice.total_cents}",
    )
    db.session.flush()


def _set_order_state(order: Order, new_state: str, actor: str | None) -> None:
    previous = order.state
    require_transition("order", order.id, previous, new_state)
    order.state = new_state
    order.updated_at = utcnow()
    append_event(
        event_type=f"order.{new_state.lower()}",
        entity_type="order",
        entity_id=order.id,
        actor=actor,
        payload=f"from={previous},to={new_state}",
    )
    db.session.flush()


def _settle(order: Order, actor: str | None) -> None:
    """Re-derive order (and table) state from the order's invoices."""
    live = [inv for inv in order.invoices if inv.state != "VOIDED"]
    billed = _billed_line_ids(order.id)
    all_billed = bool(live) and all(line.id in billed for line in order.lines)
    any_paid = any(inv.state == "PAID" for inv in live)
    all_paid = bool(live) and all(inv.state == "PAID" for inv in live)

    if all_billed and all_paid:
        _set_order_state(order, "INVOICED", actor)
        if order.table_id is not None:
            table = table_service._get_table_locked(order.table_id)
            table_service._free_locked(table, actor=actor, exclude_order_id=order.id)
        logger.info("Order %s fully invoiced", order.number)
    elif any_paid:
        if order.state != "PARTIALLY_INVOICED":
            _set_order_state(order, "PARTIALLY_INVOICED", actor)
    elif order.state in ("PARTIALLY_INVOICED", "INVOICED"):
        _set_order_state(order, "DELIVERED", actor)
        if order.table_id is not None:
            table = table_service._get_table_locked(order.table_id)
            held = table_service.active_orders_for_table(table.id, exclude_order_id=order.id)
            if table.state == "FREE" and not held:
                table_service._occupy_locked(table, actor=actor)


def _get_invoice_locked(invoice_id: int) -> Invoice:
    invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
    if invoice is None:
        raise NotFoundError("invoice", invoice_id)
    return invoice


# =============================================================================
# BILLING
# =============================================================================

def invoice_whole(
    order_id: int,
    payment_method: str = "CASH",
    discount_cents: int = 0,
    tip_cents: int = 0,
    notes: str | None = None,
    *,
    payer_customer_id: int | None = None,
    payer_name: str | None = None,
    payer_document: str | None = None,
    payment_confirmed: bool = True,
    actor: str | None = None,
) -> Invoice:
    """
    Bill every billable line of the order on one invoice.

    With ``payment_confirmed`` (default) the invoice is created PAID and the
    order settles immediately; otherwise it stays PENDING until mark_paid.
    """
    def _op():
        order = _get_order_locked(order_id)
        _require_invoiceable(order)

        lines = _billable_lines(order)
        if not lines:
            raise ValidationError(
                f"Order {order.number} has no lines left to invoice",
                details={"order_id": order.id},
            )

        invoice = _create_invoice(
            order,
            lines,
            payment_method=payment_method,
            discount_cents=discount_cents,
            tip_cents=tip_cents,
            payer=_resolve_payer(order, payer_customer_id, payer_name, payer_document),
            notes=notes,
            is_split=False,
            actor=actor,
        )
        if payment_confirmed:
            _mark_paid_locked(invoice, None, actor)
            _settle(order, actor)

        db.session.commit()
        logger.info("Invoice %s issued for order %s (%s)", invoice.number, order.number, invoice.state)
        return invoice

    return run_with_retry(_op)


def split_invoice(order_id: int, partitions: list[dict], *, actor: str | None = None) -> list[Invoice]:
    """
    Bill the order across several payers.

    Each partition = {"line_ids": [...], "payment_method": "CASH",
    "payer_customer_id" | "payer_name" | "payer_document", "discount_cents",
    "tip_cents", "notes"}. Every billable line must be assigned to exactly one
    partition. One PENDING invoice is created per partition.
    """
    def _op():
        order = _get_order_locked(order_id)
        _require_invoiceable(order)

        if not partitions:
            raise ValidationError("At least one partition is required", details={"order_id": order.id})

        order_line_ids = {line.id for line in order.lines}
        billable = {line.id: line for line in _billable_lines(order)}

        seen: set[int] = set()
        duplicates: set[int] = set()
        for idx, part in enumerate(partitions):
            line_ids = part.get("line_ids") or []
            if not line_ids:
                raise ValidationError(f"Partition {idx} has no lines", details={"partition": idx})
            unknown = sorted(lid for lid in line_ids if lid not in order_line_ids)
            if unknown:
                raise ValidationError(
                    f"Lines {unknown} do not belong to order {order.number}",
                    details={"partition": idx, "line_ids": unknown},
                )
            already = sorted(lid for lid in line_ids if lid not in billable)
            if already:
                raise ValidationError(
                    f"Lines {already} are already invoiced",
                    details={"partition": idx, "line_ids": already},
                )
            for lid in line_ids:
                if lid in seen:
                    duplicates.add(lid)
                seen.add(lid)

        if duplicates:
            raise DuplicateAssignmentError(order.id, sorted(duplicates))
        missing = sorted(set(billable) - seen)
        if missing:
            raise IncompleteSplitError(order.id, missing)

        invoices = []
        for part in partitions:
            invoices.append(
                _create_invoice(
                    order,
                    [billable[lid] for lid in part["line_ids"]],
                    payment_method=part.get("payment_method", "CASH"),
                    discount_cents=part.get("discount_cents", 0),
                    tip_cents=part.get("tip_cents", 0),
                    payer=_resolve_payer(
                        order,
                        part.get("payer_customer_id"),
                        part.get("payer_name"),
                        part.get("payer_document"),
                    ),
                    notes=part.get("notes"),
                    is_split=True,
                    actor=actor,
                )
            )

        db.session.commit()
        logger.info("Order %s split into %s invoices", order.number, len(invoices))
        return invoices

    return run_with_retry(_op)


def mark_paid(invoice_id: int, payment_method: str | None = None, *, actor: str | None = None) -> Invoice:
    """PENDING -> PAID, then settle the order."""
    def _op():
        invoice = _get_invoice_locked(invoice_id)
        order = _get_order_locked(invoice.order_id)
        _mark_paid_locked(invoice, payment_method, actor)
        _settle(order, actor)
        db.session.commit()
        return invoice

    return run_with_retry(_op)


def void(invoice_id: int, reason: str, *, actor: str | None = None) -> Invoice:
    """
    PENDING -> VOIDED. The covered lines become billable again.
    """
    def _op():
        if not reason or not reason.strip():
            raise ValidationError("A void reason is required", details={"invoice_id": invoice_id})
        invoice = _get_invoice_locked(invoice_id)
        order = _get_order_locked(invoice.order_id)
        require_transition("invoice", invoice.id, invoice.state, "VOIDED")

        invoice.state = "VOIDED"
        invoice.voided_at = utcnow()
        invoice.void_reason = reason
        append_event(
            event_type="invoice.voided",
            entity_type="invoice",
            entity_id=invoice.id,
            actor=actor,
            note=reason,
        )
        db.session.flush()

        _settle(order, actor)
        db.session.commit()
        logger.info("Invoice %s voided: %s", invoice.number, reason)
        return invoice

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_invoice(invoice_id: int) -> Invoice:
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFoundError("invoice", invoice_id)
    return invoice


def get_invoice_by_number(number: str) -> Invoice:
    invoice = db.session.query(Invoice).filter_by(number=number).first()
    if invoice is None:
        raise NotFoundError("invoice", number)
    return invoice


def list_invoices(order_id: int | None = None, state: str | None = None) -> list[Invoice]:
    q = db.session.query(Invoice)
    if order_id is not None:
        q = q.filter(Invoice.order_id == order_id)
    if state is not None:
        validate_state("invoice", state)
        q = q.filter(Invoice.state == state)
    return q.order_by(Invoice.id).all()


def preview_totals(order_id: int, discount_cents: int = 0, tip_cents: int = 0) -> dict:
    """Amounts an invoice_whole call would produce right now."""
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("order", order_id)
    lines = _billable_lines(order)
    amounts = _compute_amounts(sum(line.subtotal_cents for line in lines), discount_cents, tip_cents)
    amounts["order_line_ids"] = [line.id for line in lines]
    return amounts
