# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/bodega/routes/products.py
"""
Product catalog routes.

SECURITY: All routes require authentication.
- Read operations require view_products
- Create requires create_products; update and barcode/price changes require edit_products
- Delete (soft) requires delete_products
"""
from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_permission
from ..models import Product
from ..services import products_service
from ..services.products_service import PRODUCT_POLICY
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    coerce_int,
    enforce_rules_product,
    validate_payload,
    validate_price,
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _current_values(product: Product) -> dict:
    return {
        "product_type": product.product_type,
        "requires_serial": product.requires_serial,
        "min_stock": product.min_stock,
        "max_stock": product.max_stock,
    }


@products_bp.get("")
@require_auth
@require_permission("view_products")
def list_products_route():
    """
    List active products.

    Query params:
    - barcode: str (optional) - return the single active product with this code, or 404
    - search: str (optional) - substring match on name, SKU or barcode
    - include_inactive: "true" to include soft-deleted products
    """
    barcode = request.args.get("barcode")
    if barcode is not None:
        try:
            product = products_service.find_by_barcode(barcode)
        except ValidationError as e:
            return jsonify({"error": str(e)}), 400
        except NotFoundError as e:
            return jsonify({"error": str(e)}), 404
        return jsonify(product.to_dict())

    include_inactive = request.args.get("include_inactive", "").lower() == "true"
    products = products_service.list_products(
        search=request.args.get("search"),
        include_inactive=include_inactive,
    )
    return jsonify([p.to_dict() for p in products])


@products_bp.get("/without-barcode")
@require_auth
@require_permission("view_products")
def list_products_without_barcode_route():
    """Active products with no barcode yet; candidates for a scanned code."""
    return jsonify([p.to_dict() for p in products_service.list_products_without_barcode()])


@products_bp.get("/<int:product_id>")
@require_auth
@require_permission("view_products")
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(product.to_dict())


@products_bp.post("")
@require_auth
@require_permission("create_products")
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        created = products_service.create_product(patch=patch)
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify(created.to_dict()), 201


@products_bp.put("/<int:product_id>")
@require_auth
@require_permission("edit_products")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        product = products_service.get_product(product_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch, current=_current_values(product))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        updated = products_service.update_product(product_id=product_id, patch=patch)
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409

    return jsonify(updated.to_dict())


@products_bp.put("/<int:product_id>/barcode")
@require_auth
@require_permission("edit_products")
def set_barcode_route(product_id: int):
    """
    Attach a scanned barcode to a product.

    Returns:
        200: Barcode set (or already on this product)
        400: Missing barcode, or product inactive
        404: Product not found
        409: Barcode held by another active product
    """
    data = request.get_json(silent=True) or {}

    try:
        product = products_service.set_barcode(product_id=product_id, barcode=data.get("barcode"))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409

    return jsonify(product.to_dict())


@products_bp.delete("/<int:product_id>")
@require_auth
@require_permission("delete_products")
def delete_product_route(product_id: int):
    try:
        product = products_service.delete_product(product_id=product_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(product.to_dict())


@products_bp.get("/<int:product_id>/prices")
@require_auth
@require_permission("view_products")
def list_prices_route(product_id: int):
    try:
        prices = products_service.list_prices(product_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify([p.to_dict() for p in prices])


@products_bp.post("/<int:product_id>/prices")
@require_auth
@require_permission("edit_products")
def set_price_route(product_id: int):
    """
    Set the product's price for a month (current month when omitted).

    Request body:
    {
        "price": number | str,
        "year": int (optional),
        "month": int (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        price = validate_price(data.get("price"))
        if price is None:
            raise ValidationError("price is required")
        year = coerce_int(data["year"], "year") if data.get("year") is not None else None
        month = coerce_int(data["month"], "month") if data.get("month") is not None else None
        row = products_service.set_price(product_id=product_id, price=price, year=year, month=month)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    return jsonify(row.to_dict()), 201


@products_bp.get("/<int:product_id>/serials")
@require_auth
@require_permission("view_products")
def list_serials_route(product_id: int):
    try:
        serials = products_service.list_serials(product_id, status=request.args.get("status"))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify([s.to_dict() for s in serials])
