# Overview: Flask API routes for admin dashboard operations; parses input and returns JSON responses.

# backend/orderdesk/routes/dashboard.py
"""Admin dashboard statistics. Every route requires an admin session."""
from flask import Blueprint

from ..decorators import require_admin, require_auth
from ..services import dashboard_service

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("/stats")
@require_auth
@require_admin
def dashboard_stats():
    return {"success": True, "data": dashboard_service.get_dashboard_stats()}


@dashboard_bp.get("/today-orders")
@require_auth
@require_admin
def today_orders():
    orders = dashboard_service.get_today_orders()
    return {"success": True, "data": [o.to_dict() for o in orders], "count": len(orders)}


@dashboard_bp.get("/quick-stats")
@require_auth
@require_admin
def quick_stats():
    return {"success": True, "data": dashboard_service.get_quick_stats()}
