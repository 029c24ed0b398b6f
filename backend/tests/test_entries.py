"""
Stock entry and product entry tests.

Verifies:
- Serial-tracked products need exactly one unique, unregistered serial per unit
- A price on the entry becomes this month's product price
- Product entry creates the product and its stock in one transaction
"""
import pytest

from bodega.extensions import db
from bodega.models import InventoryMovement, Product, ProductSerial

from conftest import login, on_hand


def _stock_entry(client, product, warehouse, quantity, **extra):
    payload = {"product_id": product.id, "warehouse_id": warehouse.id, "quantity": quantity}
    payload.update(extra)
    return client.post("/api/stock-entry", json=payload)


class TestStockEntry:

    def test_plain_entry(self, operator_client, cost_center, widget):
        resp = _stock_entry(operator_client, widget, cost_center["main"], 12)
        assert resp.status_code == 201, resp.get_json()
        body = resp.get_json()
        assert body["quantity"] == 12
        assert body["movement"]["movement_type"] == "in"
        assert body["movement"]["reason"] == "Stock entry"
        assert on_hand(widget.id, cost_center["main"].id) == 12

    def test_entry_sets_monthly_price(self, operator_client, cost_center, widget):
        resp = _stock_entry(operator_client, widget, cost_center["main"], 3, price=100)
        assert resp.status_code == 201
        assert resp.get_json()["movement"]["applied_price"] == "100.00"

        _stock_entry(operator_client, widget, cost_center["main"], 1, price="120.5")
        product = operator_client.get(f"/api/products/{widget.id}").get_json()
        assert product["current_price"] == "120.50"
        assert len(operator_client.get(f"/api/products/{widget.id}/prices").get_json()) == 1

    def test_serials_registered(self, operator_client, cost_center, serial_product):
        resp = _stock_entry(
            operator_client, serial_product, cost_center["main"], 2, serial_numbers=["SN-1", "SN-2"]
        )
        assert resp.status_code == 201, resp.get_json()
        assert resp.get_json()["movement"]["serial_numbers"] == ["SN-1", "SN-2"]

        serials = db.session.query(ProductSerial).filter_by(product_id=serial_product.id).all()
        assert {s.serial_number for s in serials} == {"SN-1", "SN-2"}
        assert all(s.status == "active" for s in serials)

    @pytest.mark.parametrize("serials", [
        None,
        [],
        ["SN-1"],
        ["SN-1", "SN-2", "SN-3"],
        ["SN-1", "SN-1"],
        ["SN-1", "  "],
        "SN-1,SN-2",
    ])
    def test_serial_validation(self, operator_client, cost_center, serial_product, serials):
        extra = {} if serials is None else {"serial_numbers": serials}
        resp = _stock_entry(operator_client, serial_product, cost_center["main"], 2, **extra)
        assert resp.status_code == 400
        assert db.session.query(InventoryMovement).count() == 0
        assert on_hand(serial_product.id, cost_center["main"].id) == 0

    def test_serial_already_registered(self, operator_client, cost_center, serial_product):
        _stock_entry(operator_client, serial_product, cost_center["main"], 1, serial_numbers=["SN-1"])

        resp = _stock_entry(
            operator_client, serial_product, cost_center["um2"], 2, serial_numbers=["SN-2", "SN-1"]
        )
        assert resp.status_code == 409
        assert "SN-1" in resp.get_json()["error"]
        assert on_hand(serial_product.id, cost_center["um2"].id) == 0
        assert db.session.query(ProductSerial).count() == 1

    def test_failed_entry_keeps_previous_price(self, operator_client, cost_center, serial_product):
        _stock_entry(operator_client, serial_product, cost_center["main"], 1, serial_numbers=["SN-1"], price=50)

        resp = _stock_entry(operator_client, serial_product, cost_center["main"], 1, serial_numbers=["SN-1"], price=99)
        assert resp.status_code == 409
        product = operator_client.get(f"/api/products/{serial_product.id}").get_json()
        assert product["current_price"] == "50.00"

    def test_serials_on_plain_product(self, operator_client, cost_center, widget):
        resp = _stock_entry(operator_client, widget, cost_center["main"], 1, serial_numbers=["X"])
        assert resp.status_code == 400

    def test_inactive_product(self, operator_client, cost_center, widget):
        widget.is_active = False
        db.session.commit()
        assert _stock_entry(operator_client, widget, cost_center["main"], 1).status_code == 400

    def test_unknown_warehouse(self, operator_client, widget):
        resp = operator_client.post("/api/stock-entry", json={
            "product_id": widget.id, "warehouse_id": 9999, "quantity": 1,
        })
        assert resp.status_code == 404

    def test_viewer_forbidden(self, viewer_client, cost_center, widget):
        assert _stock_entry(viewer_client, widget, cost_center["main"], 1).status_code == 403


class TestProductEntry:

    def test_creates_product_with_stock(self, operator_client, cost_center):
        resp = operator_client.post("/api/product-entry", json={
            "warehouse_id": cost_center["main"].id,
            "quantity": 5,
            "price": 2500,
            "product": {"name": "Switch 8p", "sku": "SW-8", "barcode": "7800001"},
        })
        assert resp.status_code == 201, resp.get_json()
        body = resp.get_json()
        assert body["product"]["sku"] == "SW-8"
        assert body["product"]["current_price"] == "2500.00"
        assert body["quantity"] == 5
        assert body["movement"]["reason"] == "Product entry"
        assert on_hand(body["product"]["id"], cost_center["main"].id) == 5

    def test_existing_product(self, operator_client, cost_center, widget):
        resp = operator_client.post("/api/product-entry", json={
            "warehouse_id": cost_center["main"].id,
            "quantity": 2,
            "product_id": widget.id,
        })
        assert resp.status_code == 201
        assert resp.get_json()["product"]["id"] == widget.id

    def test_bad_serials_leave_no_product(self, operator_client, cost_center):
        resp = operator_client.post("/api/product-entry", json={
            "warehouse_id": cost_center["main"].id,
            "quantity": 2,
            "serial_numbers": ["ONLY-ONE"],
            "product": {"name": "Router", "sku": "RT-9", "requires_serial": True},
        })
        assert resp.status_code == 400
        assert db.session.query(Product).filter_by(sku="RT-9").count() == 0
        assert db.session.query(InventoryMovement).count() == 0

    def test_duplicate_sku(self, operator_client, cost_center, widget):
        resp = operator_client.post("/api/product-entry", json={
            "warehouse_id": cost_center["main"].id,
            "quantity": 1,
            "product": {"name": "Again", "sku": "W-1"},
        })
        assert resp.status_code == 409

    @pytest.mark.parametrize("extra", [
        {},
        {"product": "W-1"},
        {"product": {"name": "No sku"}},
    ])
    def test_product_reference_required(self, operator_client, cost_center, extra):
        payload = {"warehouse_id": cost_center["main"].id, "quantity": 1}
        payload.update(extra)
        assert operator_client.post("/api/product-entry", json=payload).status_code == 400

    def test_creating_product_needs_permission(self, app, make_user, cost_center):
        clerk = make_user("clerk", role="user", permissions=["create_inventory"])
        client = app.test_client()
        login(client, clerk.username)

        resp = client.post("/api/product-entry", json={
            "warehouse_id": cost_center["main"].id,
            "quantity": 1,
            "product": {"name": "X", "sku": "X-1"},
        })
        assert resp.status_code == 403
        assert resp.get_json()["required_permission"] == "create_products"
