# backend/bodega/services/transfer_service.py
"""
Inter-warehouse transfer order service.

Move stock of one product from a source warehouse to a destination
warehouse once a project manager (or admin) approves the request.

LIFECYCLE:
1. pending: Order created with an OT-NNN number for the day
2. approved: Source 'out' and destination 'in' movements applied (terminal)
3. rejected: No inventory effect (terminal)

CONCURRENCY:
Approval locks the source Inventory row and re-checks on-hand stock before
writing either movement, so two approvals drawing on the same
(product, source warehouse) pair are serialized and the second one fails
with TransferConflict when stock ran out.
"""
from __future__ import annotations

import logging

from flask import current_app

from ..extensions import db
from ..models import TransferOrder, User
from ..permissions import has_permission
from ..validation import ConflictError, ForbiddenError, NotFoundError, ValidationError
from bodega.time_utils import today, utcnow
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from . import inventory_service, products_service, warehouse_service

logger = logging.getLogger(__name__)


# Transfer status constants
TRANSFER_STATUS_PENDING = "pending"
TRANSFER_STATUS_APPROVED = "approved"
TRANSFER_STATUS_REJECTED = "rejected"

DECISION_STATUSES = (TRANSFER_STATUS_APPROVED, TRANSFER_STATUS_REJECTED)

DOCUMENT_TYPE = "TRANSFER_ORDER"


class TransferError(ValidationError):
    """Raised when a transfer request is invalid."""
    pass


class TransferNotFound(NotFoundError):
    pass


class TransferConflict(ConflictError):
    """Order already decided, or stock no longer available at approval."""
    pass


class TransferNotAllowed(ForbiddenError):
    pass


def get_transfer_order(order_id: int) -> TransferOrder:
    order = db.session.get(TransferOrder, order_id)
    if order is None:
        raise TransferNotFound(f"Transfer order {order_id} not found")
    return order


def list_transfer_orders(*, status: str | None = None, cost_center: str | None = None) -> list[TransferOrder]:
    query = db.session.query(TransferOrder)
    if status:
        if status not in (TRANSFER_STATUS_PENDING,) + DECISION_STATUSES:
            raise TransferError(f"Unknown status: {status}")
        query = query.filter(TransferOrder.status == status)
    if cost_center:
        query = query.filter(TransferOrder.cost_center == cost_center)
    return query.order_by(TransferOrder.created_at.desc(), TransferOrder.id.desc()).all()


def create_transfer_order(
    *,
    product_id: int,
    quantity: int,
    source_warehouse_id: int,
    destination_warehouse_id: int,
    requester_id: int,
    cost_center: str | None = None,
    notes: str | None = None,
) -> TransferOrder:
    """
    Create a pending transfer order.

    Raises:
        TransferError: same source/destination, bad quantity, not enough stock
        NotFoundError: unknown product or warehouse
    """
    if source_warehouse_id == destination_warehouse_id:
        raise TransferError("Source and destination warehouses must be different")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise TransferError("Quantity must be positive")

    def _op():
        product = products_service.get_product(product_id, require_active=True)
        source = warehouse_service.get_warehouse(source_warehouse_id, require_active=True)
        destination = warehouse_service.get_warehouse(destination_warehouse_id, require_active=True)

        on_hand = inventory_service.current_quantity(product.id, source.id)
        if on_hand < quantity:
            raise TransferError(
                f"Insufficient inventory for {product.sku} at {source.name}. "
                f"On-hand: {on_hand}, requested: {quantity}"
            )

        order_date = today()
        order_number = next_document_number(
            document_type=DOCUMENT_TYPE,
            prefix=current_app.config["TRANSFER_ORDER_PREFIX"],
            on_date=order_date,
        )

        order = TransferOrder(
            order_number=order_number,
            order_date=order_date,
            product_id=product.id,
            quantity=quantity,
            source_warehouse_id=source.id,
            destination_warehouse_id=destination.id,
            cost_center=cost_center or source.cost_center,
            requester_id=requester_id,
            status=TRANSFER_STATUS_PENDING,
            notes=notes,
        )
        db.session.add(order)
        db.session.commit()

        logger.info(
            "Transfer order %s created: %s x%s from %s to %s",
            order.order_number, product.sku, quantity, source.id, destination.id,
        )
        return order

    return run_with_retry(_op)


def _check_approver(order: TransferOrder, approver: User) -> None:
    """
    The approver must hold approve_transfer_orders. A project manager with
    managed_warehouses may only decide orders that touch one of them. An empty
    list means no restriction.
    """
    if not has_permission(approver, "approve_transfer_orders"):
        raise TransferNotAllowed("User is not allowed to decide transfer orders")
    if approver.role != "project_manager":
        return
    managed = set(approver.managed_warehouses or [])
    if not managed:
        return
    if order.source_warehouse_id not in managed and order.destination_warehouse_id not in managed:
        raise TransferNotAllowed("You do not manage the warehouses on this transfer order")


def set_status(*, order_id: int, new_status: str, project_manager_id: int) -> TransferOrder:
    """
    Approve or reject a pending order.

    On approval the source 'out' and destination 'in' movements are applied
    in the same transaction as the status change.

    Raises:
        TransferError: new_status is not approved/rejected
        TransferConflict: order already decided, or insufficient stock
        TransferNotAllowed: approver does not manage these warehouses
    """
    if new_status not in DECISION_STATUSES:
        raise TransferError("Status must be 'approved' or 'rejected'")

    def _op():
        order = lock_for_update(db.session.query(TransferOrder).filter_by(id=order_id)).first()
        if order is None:
            raise TransferNotFound(f"Transfer order {order_id} not found")

        if order.status != TRANSFER_STATUS_PENDING:
            raise TransferConflict(f"Transfer order {order.order_number} is already {order.status}")

        approver = db.session.get(User, project_manager_id)
        if approver is None:
            raise NotFoundError("User not found")
        _check_approver(order, approver)

        if new_status == TRANSFER_STATUS_APPROVED:
            _apply_approval(order, approver)

        order.status = new_status
        order.project_manager_id = approver.id
        order.decided_at = utcnow()
        db.session.commit()

        logger.info("Transfer order %s %s by user %s", order.order_number, new_status, approver.id)
        return order

    return run_with_retry(_op)


def _apply_approval(order: TransferOrder, approver: User) -> None:
    # Lock the source balance first; concurrent approvals on the pair wait here
    source_row = inventory_service.lock_inventory_row(order.product_id, order.source_warehouse_id)
    if source_row.quantity < order.quantity:
        raise TransferConflict(
            f"Insufficient inventory to approve {order.order_number}. "
            f"On-hand: {source_row.quantity}, required: {order.quantity}"
        )

    product = products_service.get_product(order.product_id)
    source = warehouse_service.get_warehouse(order.source_warehouse_id, require_active=True)
    destination = warehouse_service.get_warehouse(order.destination_warehouse_id, require_active=True)
    reason = f"Transfer order {order.order_number}"

    inventory_service.append_movement(
        product=product,
        warehouse=source,
        movement_type="out",
        quantity=order.quantity,
        user_id=approver.id,
        reason=reason,
        transfer_order_id=order.id,
    )
    inventory_service.append_movement(
        product=product,
        warehouse=destination,
        movement_type="in",
        quantity=order.quantity,
        user_id=approver.id,
        reason=reason,
        transfer_order_id=order.id,
    )
