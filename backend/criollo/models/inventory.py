from __future__ import annotations

from ..extensions import db
from criollo.time_utils import to_utc_z


MOVEMENT_TYPES = ("OPENING", "RESERVE", "RELEASE", "ADJUST", "RECEIVE")


class InventoryRecord(db.Model):
    """
    Current available quantity for one product.

    The quantity is a cached running balance; inventory_movements is the
    audit trail that must explain it (see inventory_service.verify_ledger).
    """
    __tablename__ = "inventory_records"
    __table_args__ = (
        db.UniqueConstraint("product_id", name="uq_inventory_records_product"),
        db.CheckConstraint("available >= 0", name="ck_inventory_records_available"),
        db.CheckConstraint("minimum_threshold >= 0", name="ck_inventory_records_threshold"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    available = db.Column(db.Integer, nullable=False, default=0)
    minimum_threshold = db.Column(db.Integer, nullable=False, default=5)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product", backref=db.backref("inventory", uselist=False))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_low(self) -> bool:
        return self.available <= self.minimum_threshold

    @property
    def is_out(self) -> bool:
        return self.available == 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "available": self.available,
            "minimum_threshold": self.minimum_threshold,
            "is_low": self.is_low,
            "is_out": self.is_out,
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class InventoryMovement(db.Model):
    """
    Append-only record of a single quantity change.

    IMMUTABLE: rows are never updated or deleted. For a given product,
    quantity_after of movement n equals quantity_before of movement n+1.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.Index("ix_inventory_movements_product_id", "product_id", "id"),
        db.Index("ix_inventory_movements_reference", "product_id", "reference"),
        db.CheckConstraint(
            "movement_type IN ('OPENING', 'RESERVE', 'RELEASE', 'ADJUST', 'RECEIVE')",
            name="ck_inventory_movements_type",
        ),
        db.CheckConstraint("quantity_after >= 0", name="ck_inventory_movements_after"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    movement_type = db.Column(db.String(16), nullable=False, index=True)
    quantity_delta = db.Column(db.Integer, nullable=False)
    quantity_before = db.Column(db.Integer, nullable=False)
    quantity_after = db.Column(db.Integer, nullable=False)

    actor = db.Column(db.String(64), nullable=False)
    reference = db.Column(db.String(64), nullable=True)  # e.g. originating order number
    reason = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "movement_type": self.movement_type,
            "quantity_delta": self.quantity_delta,
            "quantity_before": self.quantity_before,
            "quantity_after": self.quantity_after,
            "actor": self.actor,
            "reference": self.reference,
            "reason": self.reason,
            "occurred_at": to_utc_z(self.occurred_at),
        }
