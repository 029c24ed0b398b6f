from __future__ import annotations

from decimal import Decimal

from sqlalchemy import and_, func

from ..extensions import db
from ..models import Inventory, Product, ProductPrice, Warehouse
from bodega.time_utils import today
from . import inventory_service

RECENT_INVENTORY_LIMIT = 10


def inventory_value() -> Decimal:
    """Sum of quantity * current-month price over active products.

    Products without a price for this month contribute nothing.
    """
    now = today()
    total = (
        db.session.query(func.coalesce(func.sum(Inventory.quantity * ProductPrice.price), 0))
        .select_from(Inventory)
        .join(Product, Inventory.product_id == Product.id)
        .join(
            ProductPrice,
            and_(
                ProductPrice.product_id == Product.id,
                ProductPrice.year == now.year,
                ProductPrice.month == now.month,
            ),
        )
        .filter(Product.is_active.is_(True))
        .scalar()
    )
    return Decimal(str(total or 0)).quantize(Decimal("0.01"))


def get_metrics() -> dict:
    total_products = db.session.query(func.count(Product.id)).filter(Product.is_active.is_(True)).scalar()
    active_warehouses = db.session.query(func.count(Warehouse.id)).filter(Warehouse.is_active.is_(True)).scalar()

    return {
        "total_products": int(total_products or 0),
        "active_warehouses": int(active_warehouses or 0),
        "low_stock_count": len(inventory_service.low_stock_items()),
        "total_inventory_value": str(inventory_value()),
    }


def recent_inventory(limit: int = RECENT_INVENTORY_LIMIT) -> list[Inventory]:
    return inventory_service.list_inventory()[:limit]
