from __future__ import annotations

from ..extensions import db
from bodega.time_utils import to_utc_z

TRANSFER_STATUSES = ("pending", "approved", "rejected")


class TransferOrder(db.Model):
    """
    Request to move stock of one product between two warehouses.

    LIFECYCLE: pending -> approved | rejected. Both outcomes are terminal.
    order_number (OT-NNN) restarts every day, so it is unique per order_date.
    """
    __tablename__ = "transfer_orders"
    __table_args__ = (
        db.UniqueConstraint("order_date", "order_number", name="uq_transfer_orders_date_number"),
        db.Index("ix_transfer_orders_status", "status"),
        db.CheckConstraint("quantity > 0", name="ck_transfer_orders_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False)
    order_date = db.Column(db.Date, nullable=False)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    source_warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False)
    destination_warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False)
    cost_center = db.Column(db.String(100), nullable=False, index=True)

    requester_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    project_manager_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending")
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    product = db.relationship("Product")
    source_warehouse = db.relationship("Warehouse", foreign_keys=[source_warehouse_id])
    destination_warehouse = db.relationship("Warehouse", foreign_keys=[destination_warehouse_id])
    requester = db.relationship("User", foreign_keys=[requester_id])
    project_manager = db.relationship("User", foreign_keys=[project_manager_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "order_date": self.order_date.isoformat() if self.order_date else None,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "source_warehouse_id": self.source_warehouse_id,
            "source_warehouse_name": self.source_warehouse.name if self.source_warehouse else None,
            "destination_warehouse_id": self.destination_warehouse_id,
            "destination_warehouse_name": (
                self.destination_warehouse.name if self.destination_warehouse else None
            ),
            "cost_center": self.cost_center,
            "requester_id": self.requester_id,
            "project_manager_id": self.project_manager_id,
            "status": self.status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "decided_at": to_utc_z(self.decided_at),
        }


class DocumentSequence(db.Model):
    """
    Per-day counter for document numbers.

    next_number is incremented with a single UPDATE so two requests on the
    same day never receive the same number.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", "sequence_date", name="uq_document_sequences_type_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False)
    sequence_date = db.Column(db.Date, nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
