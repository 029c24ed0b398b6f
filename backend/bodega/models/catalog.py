from __future__ import annotations

from ..extensions import db
from bodega.time_utils import to_utc_z, today

PRODUCT_TYPES = ("tangible", "intangible")
SERIAL_STATUSES = ("active", "sold", "damaged")


class Product(db.Model):
    """
    Product master data.

    SKU is globally unique and required.

    BARCODE:
    Optional. Unique across ACTIVE products only, enforced by
    products_service at write time rather than by a table constraint, so a
    soft-deleted product does not hold on to its code.

    Products are never hard-deleted; is_active=False hides them from the
    catalog while keeping ledger history intact.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_barcode_active", "barcode", "is_active"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(200), nullable=False)
    sku = db.Column(db.String(50), nullable=False, unique=True)
    barcode = db.Column(db.String(128), nullable=True)
    description = db.Column(db.Text, nullable=True)

    product_type = db.Column(db.String(20), nullable=False, default="tangible")
    requires_serial = db.Column(db.Boolean, nullable=False, default=False)

    min_stock = db.Column(db.Integer, nullable=False, default=0)
    max_stock = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    prices = db.relationship(
        "ProductPrice",
        backref="product",
        lazy=True,
        order_by=lambda: [ProductPrice.year.desc(), ProductPrice.month.desc()],
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def current_price(self):
        """Price row for today's (year, month), or None."""
        now = today()
        for row in self.prices:
            if row.year == now.year and row.month == now.month:
                return row
        return None

    def to_dict(self) -> dict:
        price = self.current_price()
        return {
            "id": self.id,
            "name": self.name,
            "sku": self.sku,
            "barcode": self.barcode,
            "description": self.description,
            "product_type": self.product_type,
            "requires_serial": self.requires_serial,
            "min_stock": self.min_stock,
            "max_stock": self.max_stock,
            "is_active": self.is_active,
            "current_price": str(price.price) if price else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductPrice(db.Model):
    """Monthly price history. One row per (product, year, month)."""
    __tablename__ = "product_prices"
    __table_args__ = (
        db.UniqueConstraint("product_id", "year", "month", name="uq_product_prices_period"),
        db.CheckConstraint("month >= 1 AND month <= 12", name="ck_product_prices_month"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    year = db.Column(db.Integer, nullable=False)
    month = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "year": self.year,
            "month": self.month,
            "price": str(self.price),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductSerial(db.Model):
    """
    One row per physical unit of a serial-tracked product.

    movement_id points at the "in" movement that registered the unit.
    """
    __tablename__ = "product_serials"
    __table_args__ = (
        db.UniqueConstraint("product_id", "serial_number", name="uq_product_serials_product_serial"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    serial_number = db.Column(db.String(128), nullable=False)
    movement_id = db.Column(db.Integer, db.ForeignKey("inventory_movements.id"), nullable=True, index=True)
    status = db.Column(db.String(16), nullable=False, default="active", index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("serials", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "serial_number": self.serial_number,
            "movement_id": self.movement_id,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }
