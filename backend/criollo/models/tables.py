from __future__ import annotations

from ..extensions import db
from criollo.time_utils import to_utc_z


TABLE_STATES = ("FREE", "OCCUPIED", "RESERVED", "MAINTENANCE")


class DiningTable(db.Model):
    """
    Physical table on the floor.

    State changes only through table_service transitions. Tables are never
    deleted; retired tables are deactivated (is_active=False) while FREE.
    """
    __tablename__ = "dining_tables"
    __table_args__ = (
        db.UniqueConstraint("number", name="uq_dining_tables_number"),
        db.CheckConstraint(
            "state IN ('FREE', 'OCCUPIED', 'RESERVED', 'MAINTENANCE')",
            name="ck_dining_tables_state",
        ),
        db.CheckConstraint("capacity > 0", name="ck_dining_tables_capacity"),
        db.Index("ix_dining_tables_state_zone", "state", "zone"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Number painted on the table (what staff call it)
    number = db.Column(db.Integer, nullable=False)
    capacity = db.Column(db.Integer, nullable=False)
    zone = db.Column(db.String(64), nullable=True)  # e.g. terraza, salon, barra

    state = db.Column(db.String(16), nullable=False, default="FREE", index=True)
    state_motive = db.Column(db.String(255), nullable=True)
    state_changed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_cleaned_at = db.Column(db.DateTime(timezone=True), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<DiningTable id={self.id} number={self.number} state={self.state}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "number": self.number,
            "capacity": self.capacity,
            "zone": self.zone,
            "state": self.state,
            "state_motive": self.state_motive,
            "state_changed_at": to_utc_z(self.state_changed_at),
            "last_cleaned_at": to_utc_z(self.last_cleaned_at),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
