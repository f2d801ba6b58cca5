from __future__ import annotations

from ..extensions import db
from criollo.time_utils import to_utc_z


INVOICE_STATES = ("PENDING", "PAID", "VOIDED")
PAYMENT_METHODS = ("CASH", "CARD", "TRANSFER")


class Invoice(db.Model):
    """
    Billing document for an order, or for a subset of its lines when split.

    Amounts are frozen at creation; the covered order lines are recorded in
    invoice_lines.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("number", name="uq_invoices_number"),
        db.CheckConstraint("state IN ('PENDING', 'PAID', 'VOIDED')", name="ck_invoices_state"),
        db.CheckConstraint(
            "payment_method IN ('CASH', 'CARD', 'TRANSFER')",
            name="ck_invoices_payment_method",
        ),
        db.Index("ix_invoices_order_state", "order_id", "state"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "FACT-20261016-0001")
    number = db.Column(db.String(32), nullable=False)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    # Payer: registered customer or ad-hoc name/document pair
    payer_customer_id = db.Column(db.Integer, nullable=True)
    payer_name = db.Column(db.String(128), nullable=True)
    payer_document = db.Column(db.String(32), nullable=True)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False)
    tip_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    payment_method = db.Column(db.String(16), nullable=False, default="CASH")
    state = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    is_split = db.Column(db.Boolean, nullable=False, default=False)
    notes = db.Column(db.String(255), nullable=True)
    created_by = db.Column(db.String(64), nullable=True)

    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    order = db.relationship("Order", backref=db.backref("invoices", lazy=True))
    lines = db.relationship("InvoiceLine", backref="invoice", lazy=True, cascade="all, delete-orphan")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def order_line_ids(self) -> list[int]:
        return sorted(line.order_line_id for line in self.lines)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "number": self.number,
            "order_id": self.order_id,
            "payer_customer_id": self.payer_customer_id,
            "payer_name": self.payer_name,
            "payer_document": self.payer_document,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "tip_cents": self.tip_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "state": self.state,
            "is_split": self.is_split,
            "notes": self.notes,
            "order_line_ids": self.order_line_ids,
            "paid_at": to_utc_z(self.paid_at),
            "voided_at": to_utc_z(self.voided_at),
            "void_reason": self.void_reason,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class InvoiceLine(db.Model):
    """Order line covered by an invoice. Immutable once written."""
    __tablename__ = "invoice_lines"
    __table_args__ = (
        db.UniqueConstraint("invoice_id", "order_line_id", name="uq_invoice_lines_invoice_line"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    order_line_id = db.Column(db.Integer, db.ForeignKey("order_lines.id"), nullable=False, index=True)
    subtotal_cents = db.Column(db.Integer, nullable=False)
