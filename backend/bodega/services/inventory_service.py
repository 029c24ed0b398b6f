# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

# backend/bodega/services/inventory_service.py
"""
Bodega Inventory Invariants (authoritative)

Ledger:
- InventoryMovement is append-only. quantity > 0; movement_type is 'in' or 'out'.
- Inventory holds the materialized on-hand balance per (product, warehouse).

Balance:
- After every movement, Inventory.quantity = max(0, SUM(in) - SUM(out)) for
  the pair, recomputed from the ledger rather than incremented in place.
- The movement insert and the balance update are flushed and committed in
  the same DB transaction. A failure in either rolls back both.

Serial tracking:
- For products with requires_serial, a stock entry ('in' recorded through
  this module) carries exactly `quantity` distinct serial numbers never
  registered for that product before. One ProductSerial row is created per
  number, linked to the movement.
- 'out' movements may name serial numbers; each must be registered and
  active and is moved to the given status (sold by default).
- Movements generated by transfer orders move already registered units and
  carry no serial numbers.
"""
from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import lazyload

from ..extensions import db
from ..models import (
    Inventory,
    InventoryMovement,
    Product,
    ProductSerial,
    Warehouse,
    MOVEMENT_TYPES,
)
from ..validation import ConflictError, ValidationError
from .concurrency import RetryableConflict, lock_for_update, run_with_retry
from . import products_service, warehouse_service

logger = logging.getLogger(__name__)

OUT_SERIAL_STATUSES = ("sold", "damaged")


def current_quantity(product_id: int, warehouse_id: int) -> int:
    """Materialized on-hand quantity; zero when the pair has no row yet."""
    qty = (
        db.session.query(Inventory.quantity)
        .filter_by(product_id=product_id, warehouse_id=warehouse_id)
        .scalar()
    )
    return int(qty or 0)


def ledger_balance(product_id: int, warehouse_id: int) -> int:
    """SUM(in) - SUM(out) straight from the movement log (may be negative)."""
    signed = case(
        (InventoryMovement.movement_type == "in", InventoryMovement.quantity),
        else_=-InventoryMovement.quantity,
    )
    total = (
        db.session.query(func.coalesce(func.sum(signed), 0))
        .filter(
            InventoryMovement.product_id == product_id,
            InventoryMovement.warehouse_id == warehouse_id,
        )
        .scalar()
    )
    return int(total or 0)


def lock_inventory_row(product_id: int, warehouse_id: int) -> Inventory:
    """
    Fetch the balance row FOR UPDATE, creating it at zero if missing.

    Writers touching the same (product, warehouse) serialize on this row.
    """
    row = lock_for_update(
        db.session.query(Inventory)
        .options(lazyload("*"))
        .filter_by(product_id=product_id, warehouse_id=warehouse_id)
    ).first()
    if row is not None:
        return row

    row = Inventory(product_id=product_id, warehouse_id=warehouse_id, quantity=0)
    db.session.add(row)
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise RetryableConflict("inventory row created concurrently") from exc
    return row


def _register_serials(product: Product, movement: InventoryMovement, serials: list[str]) -> None:
    if len(serials) != movement.quantity:
        raise ValidationError(
            f"Product {product.sku} requires {movement.quantity} serial numbers, got {len(serials)}"
        )
    if len(set(serials)) != len(serials):
        raise ValidationError("serial_numbers contains duplicates")

    taken = (
        db.session.query(ProductSerial.serial_number)
        .filter(
            ProductSerial.product_id == product.id,
            ProductSerial.serial_number.in_(serials),
        )
        .all()
    )
    if taken:
        used = ", ".join(sorted(s for (s,) in taken))
        raise ConflictError(f"Serial numbers already registered for {product.sku}: {used}")

    for serial in serials:
        db.session.add(
            ProductSerial(
                product_id=product.id,
                serial_number=serial,
                movement_id=movement.id,
                status="active",
            )
        )


def _release_serials(product: Product, movement: InventoryMovement, serials: list[str], status: str) -> None:
    if status not in OUT_SERIAL_STATUSES:
        raise ValidationError(f"serial_status must be one of: {', '.join(OUT_SERIAL_STATUSES)}")
    if len(serials) != movement.quantity:
        raise ValidationError(
            f"Product {product.sku} requires {movement.quantity} serial numbers, got {len(serials)}"
        )
    if len(set(serials)) != len(serials):
        raise ValidationError("serial_numbers contains duplicates")

    rows = (
        db.session.query(ProductSerial)
        .filter(
            ProductSerial.product_id == product.id,
            ProductSerial.serial_number.in_(serials),
        )
        .all()
    )
    found = {row.serial_number: row for row in rows}
    missing = [s for s in serials if s not in found]
    if missing:
        raise ValidationError(f"Unknown serial numbers for {product.sku}: {', '.join(missing)}")

    unavailable = [s for s in serials if found[s].status != "active"]
    if unavailable:
        raise ConflictError(f"Serial numbers are not active: {', '.join(unavailable)}")

    for serial in serials:
        found[serial].status = status


def append_movement(
    *,
    product: Product,
    warehouse: Warehouse,
    movement_type: str,
    quantity: int,
    user_id: int,
    reason: str | None = None,
    applied_price: Decimal | None = None,
    serial_numbers: list[str] | None = None,
    serial_status: str = "sold",
    transfer_order_id: int | None = None,
) -> InventoryMovement:
    """Core ledger append without retry or commit.

    Called by apply_movement(), the entry helpers below and transfer approval.
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError("movement_type must be 'in' or 'out'")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer")

    serials = list(serial_numbers or [])
    if serials and not product.requires_serial:
        raise ValidationError(f"Product {product.sku} does not track serial numbers")
    if (
        product.requires_serial
        and movement_type == "in"
        and transfer_order_id is None
        and not serials
    ):
        raise ValidationError(f"Product {product.sku} requires {quantity} serial numbers")

    inventory = lock_inventory_row(product.id, warehouse.id)

    movement = InventoryMovement(
        product_id=product.id,
        warehouse_id=warehouse.id,
        movement_type=movement_type,
        quantity=quantity,
        applied_price=applied_price,
        serial_numbers=serials or None,
        reason=reason,
        user_id=user_id,
        transfer_order_id=transfer_order_id,
    )
    db.session.add(movement)
    db.session.flush()

    if serials:
        if movement_type == "in":
            _register_serials(product, movement, serials)
        else:
            _release_serials(product, movement, serials, serial_status)

    previous = inventory.quantity
    inventory.quantity = max(0, ledger_balance(product.id, warehouse.id))
    db.session.flush()

    logger.info(
        "Movement %s %s x%s product=%s warehouse=%s balance %s -> %s",
        movement.id,
        movement_type,
        quantity,
        product.id,
        warehouse.id,
        previous,
        inventory.quantity,
    )
    return movement


def apply_movement(
    *,
    product_id: int,
    warehouse_id: int,
    movement_type: str,
    quantity: int,
    user_id: int,
    reason: str | None = None,
    applied_price: Decimal | None = None,
    serial_numbers: list[str] | None = None,
    serial_status: str = "sold",
    transfer_order_id: int | None = None,
) -> InventoryMovement:
    """
    Append a movement and refresh the (product, warehouse) balance atomically.

    Returns the created movement.
    """
    def _op():
        product = products_service.get_product(product_id, require_active=True)
        warehouse = warehouse_service.get_warehouse(warehouse_id, require_active=True)
        movement = append_movement(
            product=product,
            warehouse=warehouse,
            movement_type=movement_type,
            quantity=quantity,
            user_id=user_id,
            reason=reason,
            applied_price=applied_price,
            serial_numbers=serial_numbers,
            serial_status=serial_status,
            transfer_order_id=transfer_order_id,
        )
        db.session.commit()
        return movement

    return run_with_retry(_op)


def _record_entry(
    *,
    product: Product,
    warehouse: Warehouse,
    quantity: int,
    user_id: int,
    price: Decimal | None,
    serial_numbers: list[str] | None,
    reason: str | None,
) -> InventoryMovement:
    if price is not None:
        products_service.set_price(product_id=product.id, price=price, commit=False)

    return append_movement(
        product=product,
        warehouse=warehouse,
        movement_type="in",
        quantity=quantity,
        user_id=user_id,
        reason=reason,
        applied_price=price,
        serial_numbers=serial_numbers,
    )


def record_stock_entry(
    *,
    product_id: int,
    warehouse_id: int,
    quantity: int,
    user_id: int,
    price: Decimal | None = None,
    serial_numbers: list[str] | None = None,
    reason: str | None = None,
) -> InventoryMovement:
    """
    Receive stock of an existing product.

    When a price is given it becomes the movement's applied_price and the
    product's price for the current month.
    """
    def _op():
        product = products_service.get_product(product_id, require_active=True)
        warehouse = warehouse_service.get_warehouse(warehouse_id, require_active=True)
        movement = _record_entry(
            product=product,
            warehouse=warehouse,
            quantity=quantity,
            user_id=user_id,
            price=price,
            serial_numbers=serial_numbers,
            reason=reason or "Stock entry",
        )
        db.session.commit()
        return movement

    return run_with_retry(_op)


def record_product_entry(
    *,
    warehouse_id: int,
    quantity: int,
    user_id: int,
    product_id: int | None = None,
    product_patch: dict | None = None,
    price: Decimal | None = None,
    serial_numbers: list[str] | None = None,
    reason: str | None = None,
) -> tuple[Product, InventoryMovement]:
    """
    Receive stock, creating the product first when product_patch is given.

    Product creation, price and movement commit together: a rejected
    serial list leaves no orphan product behind.
    """
    if (product_id is None) == (product_patch is None):
        raise ValidationError("Provide either product_id or product")

    def _op():
        warehouse = warehouse_service.get_warehouse(warehouse_id, require_active=True)
        if product_patch is not None:
            product = products_service.create_product(patch=dict(product_patch), commit=False)
        else:
            product = products_service.get_product(product_id, require_active=True)

        movement = _record_entry(
            product=product,
            warehouse=warehouse,
            quantity=quantity,
            user_id=user_id,
            price=price,
            serial_numbers=serial_numbers,
            reason=reason or "Product entry",
        )
        db.session.commit()
        return product, movement

    return run_with_retry(_op)


def _inventory_query():
    return (
        db.session.query(Inventory)
        .join(Product, Inventory.product_id == Product.id)
        .join(Warehouse, Inventory.warehouse_id == Warehouse.id)
    )


def list_inventory(*, warehouse_id: int | None = None, product_id: int | None = None) -> list[Inventory]:
    query = _inventory_query()
    if warehouse_id is not None:
        query = query.filter(Inventory.warehouse_id == warehouse_id)
    if product_id is not None:
        query = query.filter(Inventory.product_id == product_id)
    return query.order_by(Inventory.updated_at.desc(), Inventory.id.desc()).all()


def low_stock_items() -> list[Inventory]:
    """Pairs whose on-hand quantity is at or below the product's min_stock."""
    return (
        _inventory_query()
        .filter(
            Inventory.quantity <= Product.min_stock,
            Product.is_active.is_(True),
            Warehouse.is_active.is_(True),
        )
        .order_by(Inventory.quantity.asc(), Product.name.asc())
        .all()
    )


def list_movements(
    *,
    limit: int | None = 50,
    product_id: int | None = None,
    warehouse_id: int | None = None,
    transfer_order_id: int | None = None,
) -> list[InventoryMovement]:
    query = db.session.query(InventoryMovement)
    if product_id is not None:
        query = query.filter(InventoryMovement.product_id == product_id)
    if warehouse_id is not None:
        query = query.filter(InventoryMovement.warehouse_id == warehouse_id)
    if transfer_order_id is not None:
        query = query.filter(InventoryMovement.transfer_order_id == transfer_order_id)
    query = query.order_by(InventoryMovement.created_at.desc(), InventoryMovement.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()
