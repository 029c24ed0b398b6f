from __future__ import annotations

from ..extensions import db
from bodega.time_utils import to_utc_z

WAREHOUSE_TYPES = ("main", "sub")

# Fixed sub-warehouse set created with every cost center, in display order
SUB_WAREHOUSE_TYPES = ("um2", "plataforma", "pem", "integrador")


class Warehouse(db.Model):
    """
    Physical or logical stock location.

    COST CENTERS:
    Every cost center that has warehouses owns exactly one main warehouse
    and the four fixed sub-warehouses (um2, plataforma, pem, integrador),
    each pointing to the main through parent_warehouse_id.
    See warehouse_service.ensure_principal_warehouse().
    """
    __tablename__ = "warehouses"
    __table_args__ = (
        db.Index("ix_warehouses_cost_center_type", "cost_center", "warehouse_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    location = db.Column(db.Text, nullable=True)
    cost_center = db.Column(db.String(100), nullable=False, index=True)

    warehouse_type = db.Column(db.String(16), nullable=False, default="sub")
    sub_warehouse_type = db.Column(db.String(32), nullable=True)
    parent_warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    parent = db.relationship(
        "Warehouse",
        remote_side=[id],
        backref=db.backref("sub_warehouses", lazy=True, order_by="Warehouse.id"),
    )

    def __repr__(self) -> str:
        return f"<Warehouse id={self.id} name={self.name!r} cost_center={self.cost_center!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "cost_center": self.cost_center,
            "warehouse_type": self.warehouse_type,
            "sub_warehouse_type": self.sub_warehouse_type,
            "parent_warehouse_id": self.parent_warehouse_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
