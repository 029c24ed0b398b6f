from flask import Blueprint, jsonify

from ..decorators import require_auth, require_permission
from ..services import dashboard_service, inventory_service

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("/metrics")
@require_auth
@require_permission("view_dashboard")
def metrics_route():
    return jsonify(dashboard_service.get_metrics())


@dashboard_bp.get("/recent-inventory")
@require_auth
@require_permission("view_dashboard")
def recent_inventory_route():
    return jsonify([row.to_dict() for row in dashboard_service.recent_inventory()])


@dashboard_bp.get("/low-stock")
@require_auth
@require_permission("view_dashboard")
def low_stock_route():
    return jsonify([row.to_dict() for row in inventory_service.low_stock_items()])
