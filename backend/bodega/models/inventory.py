from __future__ import annotations

from ..extensions import db
from bodega.time_utils import to_utc_z

MOVEMENT_TYPES = ("in", "out")


class Inventory(db.Model):
    """
    Materialized on-hand balance per (product, warehouse).

    Derived from InventoryMovement; rewritten by inventory_service.apply_movement()
    in the same transaction that appends the movement. Never edited directly.
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.UniqueConstraint("product_id", "warehouse_id", name="uq_inventory_product_warehouse"),
        db.Index("ix_inventory_warehouse", "warehouse_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", lazy="joined")
    warehouse = db.relationship("Warehouse", lazy="joined")

    def to_dict(self, *, details: bool = True) -> dict:
        data = {
            "id": self.id,
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "quantity": self.quantity,
            "updated_at": to_utc_z(self.updated_at),
        }
        if details:
            data["product"] = self.product.to_dict() if self.product else None
            data["warehouse"] = self.warehouse.to_dict() if self.warehouse else None
        return data


class InventoryMovement(db.Model):
    """
    Append-only stock ledger.

    quantity is always positive; movement_type carries the direction.
    transfer_order_id is set when the movement was generated by approving
    a transfer order.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.Index("ix_movements_product_warehouse", "product_id", "warehouse_id"),
        db.Index("ix_movements_created", "created_at"),
        db.CheckConstraint("quantity > 0", name="ck_movements_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(10), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    applied_price = db.Column(db.Numeric(12, 2), nullable=True)
    serial_numbers = db.Column(db.JSON, nullable=True)

    reason = db.Column(db.Text, nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    transfer_order_id = db.Column(db.Integer, db.ForeignKey("transfer_orders.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", lazy="joined")
    warehouse = db.relationship("Warehouse", lazy="joined")
    user = db.relationship("User", lazy="joined")

    def to_dict(self, *, details: bool = False) -> dict:
        data = {
            "id": self.id,
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "applied_price": str(self.applied_price) if self.applied_price is not None else None,
            "serial_numbers": self.serial_numbers or [],
            "reason": self.reason,
            "user_id": self.user_id,
            "transfer_order_id": self.transfer_order_id,
            "created_at": to_utc_z(self.created_at),
        }
        if details:
            data["product"] = self.product.to_dict() if self.product else None
            data["warehouse"] = self.warehouse.to_dict() if self.warehouse else None
            data["user"] = {"id": self.user.id, "username": self.user.username} if self.user else None
        return data
