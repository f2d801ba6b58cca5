from __future__ import annotations

from ..extensions import db
from criollo.time_utils import to_utc_z


ORDER_STATES = (
    "PENDING",
    "IN_PREPARATION",
    "READY",
    "DELIVERED",
    "PARTIALLY_INVOICED",
    "INVOICED",
    "CANCELLED",
)
ORDER_KINDS = ("DINE_IN", "TAKEOUT", "DELIVERY")


class Order(db.Model):
    """
    Customer order (document-first).

    Totals are cached on the row and recomputed by order_service on every line
    mutation; they are never edited directly.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("number", name="uq_orders_number"),
        db.CheckConstraint(
            "state IN ('PENDING', 'IN_PREPARATION', 'READY', 'DELIVERED', "
            "'PARTIALLY_INVOICED', 'INVOICED', 'CANCELLED')",
            name="ck_orders_state",
        ),
        db.CheckConstraint("kind IN ('DINE_IN', 'TAKEOUT', 'DELIVERY')", name="ck_orders_kind"),
        db.Index("ix_orders_table_state", "table_id", "state"),
        db.Index("ix_orders_state_created", "state", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "ORD-20261016-0001")
    number = db.Column(db.String(32), nullable=False)

    table_id = db.Column(db.Integer, db.ForeignKey("dining_tables.id"), nullable=True, index=True)
    customer_id = db.Column(db.Integer, nullable=True, index=True)
    created_by = db.Column(db.String(64), nullable=False)

    state = db.Column(db.String(24), nullable=False, default="PENDING", index=True)
    kind = db.Column(db.String(16), nullable=False, default="DINE_IN")
    notes = db.Column(db.Text, nullable=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    cancel_reason = db.Column(db.String(255), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    table = db.relationship("DiningTable", backref=db.backref("orders", lazy="dynamic"))
    lines = db.relationship(
        "OrderLine",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderLine.position",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.number!r} state={self.state}>"

    def to_dict(self, include_lines: bool = True) -> dict:
        rv = {
            "id": self.id,
            "number": self.number,
            "table_id": self.table_id,
            "customer_id": self.customer_id,
            "created_by": self.created_by,
            "state": self.state,
            "kind": self.kind,
            "notes": self.notes,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "cancel_reason": self.cancel_reason,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_lines:
            rv["lines"] = [line.to_dict() for line in self.lines]
        return rv


class OrderLine(db.Model):
    """One product or combo entry on an order, with a price snapshot."""
    __tablename__ = "order_lines"
    __table_args__ = (
        db.CheckConstraint(
            "(product_id IS NULL) <> (combo_id IS NULL)",
            name="ck_order_lines_product_xor_combo",
        ),
        db.CheckConstraint("quantity >= 1", name="ck_order_lines_quantity"),
        db.CheckConstraint("discount_cents >= 0", name="ck_order_lines_discount"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=1)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    combo_id = db.Column(db.Integer, db.ForeignKey("combos.id"), nullable=True, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    subtotal_cents = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product")
    combo = db.relationship("Combo")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def item_type(self) -> str:
        return "COMBO" if self.combo_id is not None else "PRODUCT"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "position": self.position,
            "item_type": self.item_type,
            "product_id": self.product_id,
            "combo_id": self.combo_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "subtotal_cents": self.subtotal_cents,
            "notes": self.notes,
            "version_id": self.version_id,
        }
