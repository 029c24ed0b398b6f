"""
Inventory ledger tests.

Verifies:
- Balance equals max(0, sum(in) - sum(out)) after any movement sequence
- A failed movement leaves neither a ledger row nor a balance change
- Movement and inventory endpoints
"""

import pytest
from sqlalchemy import func

from bodega.extensions import db
from bodega.models import Inventory, InventoryMovement
from bodega.services import inventory_service
from bodega.validation import ConflictError, ValidationError

from conftest import on_hand


def _ledger_sum(product_id, warehouse_id):
    total_in = db.session.query(func.coalesce(func.sum(InventoryMovement.quantity), 0)).filter_by(
        product_id=product_id, warehouse_id=warehouse_id, movement_type="in"
    ).scalar()
    total_out = db.session.query(func.coalesce(func.sum(InventoryMovement.quantity), 0)).filter_by(
        product_id=product_id, warehouse_id=warehouse_id, movement_type="out"
    ).scalar()
    return total_in - total_out


def _move(product, warehouse, movement_type, quantity, user):
    return inventory_service.apply_movement(
        product_id=product.id,
        warehouse_id=warehouse.id,
        movement_type=movement_type,
        quantity=quantity,
        user_id=user.id,
    )


class TestBalanceInvariant:

    @pytest.mark.parametrize(
        "sequence",
        [
            [("in", 10)],
            [("in", 10), ("out", 4)],
            [("in", 5), ("out", 5)],
            [("in", 3), ("out", 5)],
            [("in", 3), ("out", 5), ("in", 4)],
            [("out", 2), ("in", 1), ("in", 7), ("out", 3), ("out", 1)],
        ],
    )
    def test_balance_matches_clamped_ledger(self, cost_center, widget, admin_user, sequence):
        main = cost_center["main"]
        for movement_type, quantity in sequence:
            _move(widget, main, movement_type, quantity, admin_user)
            expected = max(0, _ledger_sum(widget.id, main.id))
            assert on_hand(widget.id, main.id) == expected

    def test_out_below_zero_clamps(self, cost_center, widget, admin_user):
        main = cost_center["main"]
        _move(widget, main, "in", 3, admin_user)
        _move(widget, main, "out", 5, admin_user)
        assert on_hand(widget.id, main.id) == 0

        # The ledger still remembers the overdraw
        _move(widget, main, "in", 4, admin_user)
        assert on_hand(widget.id, main.id) == 2

    def test_receipt_covers_shortfall_first(self, cost_center, widget, admin_user):
        main = cost_center["main"]
        _move(widget, main, "in", 5, admin_user)
        _move(widget, main, "out", 10, admin_user)
        _move(widget, main, "in", 3, admin_user)
        assert on_hand(widget.id, main.id) == 0
        assert _ledger_sum(widget.id, main.id) == -2

        _move(widget, main, "in", 3, admin_user)
        assert on_hand(widget.id, main.id) == 1

    def test_pairs_are_independent(self, cost_center, widget, admin_user):
        main, um2 = cost_center["main"], cost_center["um2"]
        _move(widget, main, "in", 8, admin_user)
        _move(widget, um2, "in", 1, admin_user)
        _move(widget, main, "out", 3, admin_user)

        assert on_hand(widget.id, main.id) == 5
        assert on_hand(widget.id, um2.id) == 1

    def test_current_quantity_zero_without_row(self, cost_center, widget):
        assert inventory_service.current_quantity(widget.id, cost_center["pem"].id) == 0


class TestMovementValidation:

    def test_rejects_unknown_type(self, cost_center, widget, admin_user):
        with pytest.raises(ValidationError):
            _move(widget, cost_center["main"], "adjust", 1, admin_user)

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_rejects_non_positive_quantity(self, cost_center, widget, admin_user, quantity):
        with pytest.raises(ValidationError):
            _move(widget, cost_center["main"], "in", quantity, admin_user)

    def test_failed_movement_rolls_back(self, cost_center, serial_product, admin_user):
        main = cost_center["main"]
        inventory_service.record_stock_entry(
            product_id=serial_product.id,
            warehouse_id=main.id,
            quantity=2,
            user_id=admin_user.id,
            serial_numbers=["SN-A", "SN-B"],
        )

        with pytest.raises(ValidationError):
            inventory_service.apply_movement(
                product_id=serial_product.id,
                warehouse_id=main.id,
                movement_type="out",
                quantity=1,
                user_id=admin_user.id,
                serial_numbers=["SN-UNKNOWN"],
            )

        assert db.session.query(InventoryMovement).count() == 1
        assert on_hand(serial_product.id, main.id) == 2

    def test_one_inventory_row_per_pair(self, cost_center, widget, admin_user):
        main = cost_center["main"]
        for _ in range(3):
            _move(widget, main, "in", 1, admin_user)
        assert db.session.query(Inventory).filter_by(product_id=widget.id, warehouse_id=main.id).count() == 1

    def test_sold_serial_cannot_leave_twice(self, cost_center, serial_product, admin_user):
        main = cost_center["main"]
        inventory_service.record_stock_entry(
            product_id=serial_product.id,
            warehouse_id=main.id,
            quantity=1,
            user_id=admin_user.id,
            serial_numbers=["SN-1"],
        )
        inventory_service.apply_movement(
            product_id=serial_product.id,
            warehouse_id=main.id,
            movement_type="out",
            quantity=1,
            user_id=admin_user.id,
            serial_numbers=["SN-1"],
        )
        with pytest.raises(ConflictError):
            inventory_service.apply_movement(
                product_id=serial_product.id,
                warehouse_id=main.id,
                movement_type="out",
                quantity=1,
                user_id=admin_user.id,
                serial_numbers=["SN-1"],
            )


class TestMovementRoutes:

    def test_post_movement(self, operator_client, cost_center, widget):
        main = cost_center["main"]
        resp = operator_client.post("/api/inventory-movements", json={
            "product_id": widget.id,
            "warehouse_id": main.id,
            "movement_type": "in",
            "quantity": 7,
            "reason": "Initial load",
        })
        assert resp.status_code == 201, resp.get_json()
        body = resp.get_json()
        assert body["movement_type"] == "in"
        assert body["quantity"] == 7
        assert body["product"]["sku"] == "W-1"
        assert on_hand(widget.id, main.id) == 7

    @pytest.mark.parametrize(
        "override",
        [
            {"movement_type": "sideways"},
            {"quantity": 0},
            {"quantity": "abc"},
            {"quantity": 1.5},
            {"serial_numbers": ["SN-1"]},
        ],
    )
    def test_post_movement_validation(self, operator_client, cost_center, widget, override):
        body = {
            "product_id": widget.id,
            "warehouse_id": cost_center["main"].id,
            "movement_type": "in",
            "quantity": 1,
        }
        body.update(override)
        resp = operator_client.post("/api/inventory-movements", json=body)
        assert resp.status_code == 400

    def test_post_movement_missing_fields(self, operator_client):
        resp = operator_client.post("/api/inventory-movements", json={"movement_type": "in"})
        assert resp.status_code == 400

    def test_post_movement_unknown_product(self, operator_client, cost_center):
        resp = operator_client.post("/api/inventory-movements", json={
            "product_id": 9999,
            "warehouse_id": cost_center["main"].id,
            "movement_type": "in",
            "quantity": 1,
        })
        assert resp.status_code == 404

    def test_viewer_cannot_post_movement(self, viewer_client, cost_center, widget):
        resp = viewer_client.post("/api/inventory-movements", json={
            "product_id": widget.id,
            "warehouse_id": cost_center["main"].id,
            "movement_type": "in",
            "quantity": 1,
        })
        assert resp.status_code == 403

    def test_list_movements_newest_first_with_limit(self, admin_client, cost_center, widget, admin_user):
        main = cost_center["main"]
        for qty in (1, 2, 3):
            _move(widget, main, "in", qty, admin_user)

        resp = admin_client.get("/api/inventory-movements?limit=2")
        assert resp.status_code == 200
        quantities = [m["quantity"] for m in resp.get_json()]
        assert quantities == [3, 2]

        resp = admin_client.get(f"/api/inventory-movements/product/{widget.id}")
        assert [m["quantity"] for m in resp.get_json()] == [3, 2, 1]

    def test_bad_limit(self, admin_client):
        assert admin_client.get("/api/inventory-movements?limit=0").status_code == 400


class TestInventoryRoutes:

    def test_inventory_views(self, viewer_client, cost_center, widget, admin_user):
        main, um2 = cost_center["main"], cost_center["um2"]
        _move(widget, main, "in", 10, admin_user)
        _move(widget, um2, "in", 1, admin_user)

        all_rows = viewer_client.get("/api/inventory").get_json()
        assert {(r["warehouse_id"], r["quantity"]) for r in all_rows} == {(main.id, 10), (um2.id, 1)}

        by_wh = viewer_client.get(f"/api/inventory/warehouse/{main.id}").get_json()
        assert len(by_wh) == 1
        assert by_wh[0]["product"]["sku"] == "W-1"
        assert by_wh[0]["quantity"] == 10

        by_product = viewer_client.get(f"/api/inventory/product/{widget.id}").get_json()
        assert len(by_product) == 2

    def test_low_stock(self, viewer_client, cost_center, widget, admin_user):
        # widget.min_stock == 2
        _move(widget, cost_center["main"], "in", 10, admin_user)
        _move(widget, cost_center["um2"], "in", 2, admin_user)

        rows = viewer_client.get("/api/inventory/low-stock").get_json()
        assert [(r["warehouse_id"], r["quantity"]) for r in rows] == [(cost_center["um2"].id, 2)]

    def test_unknown_warehouse(self, viewer_client, db_session):
        assert viewer_client.get("/api/inventory/warehouse/9999").status_code == 404
