# backend/bodega/services/products_service.py
"""
Products Service

Catalog writes with SKU and barcode uniqueness, soft delete, monthly
prices and serial listings.

BARCODE RULE:
A barcode may be attached to at most one ACTIVE product. The check runs on
every write path (create, update, set_barcode) because the table carries
no unique constraint on barcode.
"""
from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import or_

from ..extensions import db
from ..models import Product, ProductPrice, ProductSerial, SERIAL_STATUSES
from ..validation import ConflictError, ModelValidationPolicy, NotFoundError, ValidationError
from bodega.time_utils import today

logger = logging.getLogger(__name__)

PRODUCT_MUTABLE_FIELDS = {
    "name",
    "sku",
    "barcode",
    "description",
    "product_type",
    "requires_serial",
    "min_stock",
    "max_stock",
    "is_active",
}

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=set(PRODUCT_MUTABLE_FIELDS),
    required_on_create={"sku", "name"},
)


def normalize_barcode(value: str | None) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def get_product(product_id: int, *, require_active: bool = False) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    if require_active and not product.is_active:
        raise ValidationError("Product is inactive")
    return product


def list_products(*, search: str | None = None, include_inactive: bool = False) -> list[Product]:
    query = db.session.query(Product)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(Product.name.ilike(pattern), Product.sku.ilike(pattern), Product.barcode.ilike(pattern))
        )
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def list_products_without_barcode() -> list[Product]:
    """Active products that a freshly scanned code can be associated with."""
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.barcode.is_(None))
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )


def find_by_barcode(barcode: str) -> Product:
    code = normalize_barcode(barcode)
    if code is None:
        raise ValidationError("barcode is required")
    product = (
        db.session.query(Product)
        .filter(Product.barcode == code, Product.is_active.is_(True))
        .order_by(Product.id.asc())
        .first()
    )
    if product is None:
        raise NotFoundError("Product not found")
    return product


def _ensure_sku_available(sku: str, *, exclude_id: int | None = None) -> None:
    query = db.session.query(Product.id).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first() is not None:
        raise ConflictError(f"SKU {sku} already exists")


def _ensure_barcode_available(barcode: str, *, exclude_id: int | None = None) -> None:
    query = db.session.query(Product).filter(
        Product.barcode == barcode,
        Product.is_active.is_(True),
    )
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    owner = query.first()
    if owner is not None:
        raise ConflictError(f"Barcode {barcode} is already assigned to product {owner.sku}")


def create_product(*, patch: dict, commit: bool = True) -> Product:
    """
    Create product using a validated patch dict.

    Raises:
        ConflictError: SKU already used, or barcode held by an active product
    """
    sku = patch.get("sku")
    if not sku:
        raise ValidationError("sku is required")

    if "barcode" in patch:
        patch["barcode"] = normalize_barcode(patch["barcode"])

    _ensure_sku_available(sku)
    if patch.get("barcode"):
        _ensure_barcode_available(patch["barcode"])

    p = Product()
    apply_product_patch(p, patch)
    db.session.add(p)
    db.session.flush()

    logger.info("Created product id=%s sku=%s", p.id, p.sku)

    if commit:
        db.session.commit()
    return p


def update_product(*, product_id: int, patch: dict) -> Product:
    p = get_product(product_id)

    if "sku" in patch and patch["sku"] != p.sku:
        _ensure_sku_available(patch["sku"], exclude_id=p.id)

    if "barcode" in patch:
        patch["barcode"] = normalize_barcode(patch["barcode"])
        if patch["barcode"]:
            _ensure_barcode_available(patch["barcode"], exclude_id=p.id)

    # Reactivating a product must not create a second active holder of its code
    if patch.get("is_active") and not p.is_active:
        barcode = patch.get("barcode", p.barcode)
        if barcode:
            _ensure_barcode_available(barcode, exclude_id=p.id)

    apply_product_patch(p, patch)
    db.session.commit()
    return p


def set_barcode(*, product_id: int, barcode: str) -> Product:
    """
    Attach a scanned code to a product.

    Succeeds when the code is free or already on this product; raises
    ConflictError when another active product holds it.
    """
    code = normalize_barcode(barcode)
    if code is None:
        raise ValidationError("barcode is required")

    p = get_product(product_id, require_active=True)
    if p.barcode == code:
        return p

    _ensure_barcode_available(code, exclude_id=p.id)
    p.barcode = code
    db.session.commit()

    logger.info("Assigned barcode %s to product id=%s", code, p.id)
    return p


def delete_product(*, product_id: int) -> Product:
    """Soft-delete only: preserve IDs and historical references."""
    p = get_product(product_id)
    p.is_active = False
    db.session.commit()
    return p


def set_price(
    *,
    product_id: int,
    price: Decimal,
    year: int | None = None,
    month: int | None = None,
    commit: bool = True,
) -> ProductPrice:
    """
    Upsert the price for (product, year, month); defaults to the current month.

    Earlier months are left untouched so price history is retained.
    """
    product = get_product(product_id)
    now = today()
    year = year or now.year
    month = month or now.month
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12")

    row = (
        db.session.query(ProductPrice)
        .filter_by(product_id=product.id, year=year, month=month)
        .first()
    )
    if row is None:
        row = ProductPrice(product=product, year=year, month=month, price=price)
        db.session.add(row)
    else:
        row.price = price
    db.session.flush()

    if commit:
        db.session.commit()
    return row


def list_prices(product_id: int) -> list[ProductPrice]:
    get_product(product_id)
    return (
        db.session.query(ProductPrice)
        .filter_by(product_id=product_id)
        .order_by(ProductPrice.year.desc(), ProductPrice.month.desc())
        .all()
    )


def list_serials(product_id: int, *, status: str | None = None) -> list[ProductSerial]:
    get_product(product_id)
    query = db.session.query(ProductSerial).filter_by(product_id=product_id)
    if status is not None:
        if status not in SERIAL_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(SERIAL_STATUSES)}")
        query = query.filter_by(status=status)
    return query.order_by(ProductSerial.id.asc()).all()
