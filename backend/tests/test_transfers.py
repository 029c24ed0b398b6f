"""
Transfer order tests.

Verifies:
- Daily OT-NNN numbering
- Approval moves stock atomically; rejection has no inventory effect
- Decided orders cannot be decided again
- Stock is re-checked at approval time
- Project managers restricted to their managed warehouses
"""
from datetime import date

import pytest

from bodega.extensions import db
from bodega.models import InventoryMovement, TransferOrder
from bodega.services import inventory_service, transfer_service
from bodega.services.document_service import format_document_number, next_document_number

from conftest import login, on_hand


@pytest.fixture
def stocked(cost_center, widget, admin_user):
    """10 widgets in the main warehouse of CC001."""
    inventory_service.record_stock_entry(
        product_id=widget.id,
        warehouse_id=cost_center["main"].id,
        quantity=10,
        user_id=admin_user.id,
    )
    return cost_center


def _order_payload(widget, source, destination, quantity):
    return {
        "product_id": widget.id,
        "quantity": quantity,
        "source_warehouse_id": source.id,
        "destination_warehouse_id": destination.id,
    }


class TestDocumentNumbers:

    def test_format(self):
        assert format_document_number("OT", 1) == "OT-001"
        assert format_document_number("OT", 42) == "OT-042"
        assert format_document_number("OT", 1234) == "OT-1234"

    def test_counter_restarts_each_day(self, db_session):
        day_one = date(2026, 3, 1)
        day_two = date(2026, 3, 2)

        numbers = [
            next_document_number(document_type="TRANSFER_ORDER", prefix="OT", on_date=day_one),
            next_document_number(document_type="TRANSFER_ORDER", prefix="OT", on_date=day_one),
            next_document_number(document_type="TRANSFER_ORDER", prefix="OT", on_date=day_two),
        ]
        db_session.commit()

        assert numbers == ["OT-001", "OT-002", "OT-001"]


class TestCreateTransferOrder:

    def test_creates_pending_order(self, operator_client, stocked, widget):
        resp = operator_client.post(
            "/api/transfer-orders",
            json=_order_payload(widget, stocked["main"], stocked["um2"], 4),
        )
        assert resp.status_code == 201, resp.get_json()
        body = resp.get_json()
        assert body["order_number"] == "OT-001"
        assert body["status"] == "pending"
        assert body["cost_center"] == "CC001"
        assert body["project_manager_id"] is None

        # Nothing moves until approval
        assert on_hand(widget.id, stocked["main"].id) == 10
        assert on_hand(widget.id, stocked["um2"].id) == 0

    def test_numbers_increase_within_day(self, operator_client, stocked, widget):
        numbers = []
        for _ in range(3):
            resp = operator_client.post(
                "/api/transfer-orders",
                json=_order_payload(widget, stocked["main"], stocked["pem"], 1),
            )
            numbers.append(resp.get_json()["order_number"])
        assert numbers == ["OT-001", "OT-002", "OT-003"]

    def test_same_source_and_destination(self, operator_client, stocked, widget):
        resp = operator_client.post(
            "/api/transfer-orders",
            json=_order_payload(widget, stocked["main"], stocked["main"], 1),
        )
        assert resp.status_code == 400

    def test_quantity_above_stock(self, operator_client, stocked, widget):
        resp = operator_client.post(
            "/api/transfer-orders",
            json=_order_payload(widget, stocked["main"], stocked["um2"], 11),
        )
        assert resp.status_code == 400
        assert "Insufficient" in resp.get_json()["error"]
        assert db.session.query(TransferOrder).count() == 0

    @pytest.mark.parametrize("quantity", [0, -3])
    def test_non_positive_quantity(self, operator_client, stocked, widget, quantity):
        resp = operator_client.post(
            "/api/transfer-orders",
            json=_order_payload(widget, stocked["main"], stocked["um2"], quantity),
        )
        assert resp.status_code == 400

    def test_unknown_product(self, operator_client, stocked):
        resp = operator_client.post("/api/transfer-orders", json={
            "product_id": 9999,
            "quantity": 1,
            "source_warehouse_id": stocked["main"].id,
            "destination_warehouse_id": stocked["um2"].id,
        })
        assert resp.status_code == 404

    def test_viewer_cannot_create(self, viewer_client, stocked, widget):
        resp = viewer_client.post(
            "/api/transfer-orders",
            json=_order_payload(widget, stocked["main"], stocked["um2"], 1),
        )
        assert resp.status_code == 403


class TestDecideTransferOrder:

    def _create(self, stocked, widget, user, quantity=4, destination="um2"):
        return transfer_service.create_transfer_order(
            product_id=widget.id,
            quantity=quantity,
            source_warehouse_id=stocked["main"].id,
            destination_warehouse_id=stocked[destination].id,
            requester_id=user.id,
        )

    def test_approve_moves_stock(self, manager_client, manager_user, operator_user, stocked, widget):
        order = self._create(stocked, widget, operator_user)

        resp = manager_client.patch(f"/api/transfer-orders/{order.id}/status", json={"status": "approved"})
        assert resp.status_code == 200, resp.get_json()
        body = resp.get_json()
        assert body["status"] == "approved"
        assert body["project_manager_id"] == manager_user.id
        assert body["decided_at"] is not None

        assert on_hand(widget.id, stocked["main"].id) == 6
        assert on_hand(widget.id, stocked["um2"].id) == 4

        movements = db.session.query(InventoryMovement).filter_by(transfer_order_id=order.id).all()
        assert sorted((m.movement_type, m.quantity) for m in movements) == [("in", 4), ("out", 4)]

    def test_reject_has_no_effect(self, manager_client, operator_user, stocked, widget):
        order = self._create(stocked, widget, operator_user)

        resp = manager_client.patch(f"/api/transfer-orders/{order.id}/status", json={"status": "rejected"})
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "rejected"

        assert on_hand(widget.id, stocked["main"].id) == 10
        assert on_hand(widget.id, stocked["um2"].id) == 0
        assert db.session.query(InventoryMovement).filter_by(transfer_order_id=order.id).count() == 0

    @pytest.mark.parametrize("first,second", [
        ("approved", "approved"),
        ("approved", "rejected"),
        ("rejected", "approved"),
    ])
    def test_decision_is_final(self, manager_client, operator_user, stocked, widget, first, second):
        order = self._create(stocked, widget, operator_user)

        assert manager_client.patch(
            f"/api/transfer-orders/{order.id}/status", json={"status": first}
        ).status_code == 200
        resp = manager_client.patch(f"/api/transfer-orders/{order.id}/status", json={"status": second})
        assert resp.status_code == 409

        expected_main = 6 if first == "approved" else 10
        assert on_hand(widget.id, stocked["main"].id) == expected_main

    @pytest.mark.parametrize("status", ["pending", "cancelled", ""])
    def test_invalid_status(self, manager_client, operator_user, stocked, widget, status):
        order = self._create(stocked, widget, operator_user)
        resp = manager_client.patch(f"/api/transfer-orders/{order.id}/status", json={"status": status})
        assert resp.status_code == 400

    def test_unknown_order(self, manager_client, db_session):
        resp = manager_client.patch("/api/transfer-orders/9999/status", json={"status": "approved"})
        assert resp.status_code == 404

    def test_stock_rechecked_on_approval(self, manager_client, operator_user, stocked, widget):
        first = self._create(stocked, widget, operator_user, quantity=6)
        second = self._create(stocked, widget, operator_user, quantity=6, destination="pem")

        assert manager_client.patch(
            f"/api/transfer-orders/{first.id}/status", json={"status": "approved"}
        ).status_code == 200

        resp = manager_client.patch(f"/api/transfer-orders/{second.id}/status", json={"status": "approved"})
        assert resp.status_code == 409

        db.session.expire_all()
        assert db.session.get(TransferOrder, second.id).status == "pending"
        assert on_hand(widget.id, stocked["main"].id) == 4
        assert on_hand(widget.id, stocked["pem"].id) == 0

    def test_operator_cannot_approve(self, operator_client, operator_user, stocked, widget):
        order = self._create(stocked, widget, operator_user)
        resp = operator_client.patch(f"/api/transfer-orders/{order.id}/status", json={"status": "approved"})
        assert resp.status_code == 403
        assert resp.get_json()["required_permission"] == "approve_transfer_orders"

    def test_service_rejects_approver_without_permission(self, operator_user, stocked, widget):
        order = self._create(stocked, widget, operator_user)
        with pytest.raises(transfer_service.TransferNotAllowed):
            transfer_service.set_status(
                order_id=order.id, new_status="approved", project_manager_id=operator_user.id
            )
        assert on_hand(widget.id, stocked["main"].id) == 10

    def test_manager_scope(self, app, make_user, operator_user, stocked, widget):
        outsider = make_user(
            "pm-other", role="project_manager", managed_warehouses=[stocked["integrador"].id]
        )
        insider = make_user(
            "pm-main", role="project_manager", managed_warehouses=[stocked["main"].id]
        )
        order = self._create(stocked, widget, operator_user)

        outsider_client = app.test_client()
        login(outsider_client, outsider.username)
        resp = outsider_client.patch(f"/api/transfer-orders/{order.id}/status", json={"status": "approved"})
        assert resp.status_code == 403

        insider_client = app.test_client()
        login(insider_client, insider.username)
        resp = insider_client.patch(f"/api/transfer-orders/{order.id}/status", json={"status": "approved"})
        assert resp.status_code == 200

    def test_serial_product_transfer(self, manager_client, operator_user, cost_center, serial_product, admin_user):
        inventory_service.record_stock_entry(
            product_id=serial_product.id,
            warehouse_id=cost_center["main"].id,
            quantity=2,
            user_id=admin_user.id,
            serial_numbers=["RT-A", "RT-B"],
        )
        order = self._create(cost_center, serial_product, operator_user, quantity=1)

        resp = manager_client.patch(f"/api/transfer-orders/{order.id}/status", json={"status": "approved"})
        assert resp.status_code == 200
        assert on_hand(serial_product.id, cost_center["main"].id) == 1
        assert on_hand(serial_product.id, cost_center["um2"].id) == 1


class TestListTransferOrders:

    def test_filters(self, manager_client, operator_user, stocked, widget):
        a = transfer_service.create_transfer_order(
            product_id=widget.id, quantity=1,
            source_warehouse_id=stocked["main"].id, destination_warehouse_id=stocked["um2"].id,
            requester_id=operator_user.id,
        )
        transfer_service.create_transfer_order(
            product_id=widget.id, quantity=1,
            source_warehouse_id=stocked["main"].id, destination_warehouse_id=stocked["pem"].id,
            requester_id=operator_user.id,
        )
        manager_client.patch(f"/api/transfer-orders/{a.id}/status", json={"status": "rejected"})

        all_orders = manager_client.get("/api/transfer-orders").get_json()
        assert len(all_orders) == 2

        pending = manager_client.get("/api/transfer-orders?status=pending").get_json()
        assert [o["order_number"] for o in pending] == ["OT-002"]

        by_cc = manager_client.get("/api/transfer-orders?cost_center=CC999").get_json()
        assert by_cc == []

        assert manager_client.get("/api/transfer-orders?status=weird").status_code == 400

    def test_get_one(self, manager_client, operator_user, stocked, widget):
        order = transfer_service.create_transfer_order(
            product_id=widget.id, quantity=2,
            source_warehouse_id=stocked["main"].id, destination_warehouse_id=stocked["um2"].id,
            requester_id=operator_user.id,
        )
        resp = manager_client.get(f"/api/transfer-orders/{order.id}")
        assert resp.status_code == 200
        assert resp.get_json()["product_name"] == "Widget"
        assert manager_client.get("/api/transfer-orders/9999").status_code == 404
