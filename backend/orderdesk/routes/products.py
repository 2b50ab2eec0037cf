# Overview: Flask API routes for product operations; parses input and returns JSON responses.

# backend/orderdesk/routes/products.py
"""
Product catalog routes.

Reads are public: anonymous and business callers only see orderable
products, admins see everything. Writes, publishing, the stock override and
the stock history require an admin session.
"""
from flask import Blueprint, g, request

from ..decorators import is_admin_request, require_admin, require_auth
from ..models import Product
from ..services import products_service, realtime_service
from ..services.concurrency import PersistenceError
from ..services.stock_ledger_service import list_stock_history
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_product,
    validate_payload,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=set(products_service.PRODUCT_MUTABLE_FIELDS),
    required_on_create={"name", "sku", "category_id"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    Query params:
    - category_id: int (optional)
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    return products_service.list_products(
        include_unavailable=is_admin_request(),
        category_id=request.args.get("category_id", type=int),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@products_bp.get("/<int:product_id>")
def get_product(product_id: int):
    try:
        p = products_service.get_product(product_id, include_unavailable=is_admin_request())
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return p.to_dict()


@products_bp.get("/sku/<string:sku>")
def get_product_by_sku(sku: str):
    try:
        p = products_service.get_product_by_sku(sku, include_unavailable=is_admin_request())
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return p.to_dict()


@products_bp.get("/<int:product_id>/availability")
def product_availability(product_id: int):
    return {
        "product_id": product_id,
        "available": products_service.is_available_for_order(product_id),
        "stock_status": products_service.get_stock_status(product_id),
    }


@products_bp.post("")
@require_auth
@require_admin
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        p = products_service.create_product(patch=patch)
    except ConflictError as e:
        return {"error": str(e)}, 409
    except ValidationError as e:
        return {"error": str(e)}, 400

    realtime_service.emit_to_all("product-update", {"action": "created", "product": p.to_dict()})
    return p.to_dict(), 201


@products_bp.put("/<int:product_id>")
@require_auth
@require_admin
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        p = products_service.update_product(product_id=product_id, patch=patch)
    except ConflictError as e:
        return {"error": str(e)}, 409
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404

    realtime_service.emit_to_all("product-update", {"action": "updated", "product": p.to_dict()})
    return p.to_dict()


@products_bp.delete("/<int:product_id>")
@require_auth
@require_admin
def delete_product_route(product_id: int):
    try:
        products_service.delete_product(product_id=product_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409

    realtime_service.emit_to_all("product-update", {"action": "deleted", "product": {"id": product_id}})
    return {"ok": True}, 200


def _set_status(product_id: int, status: str):
    try:
        p = products_service.set_publish_status(product_id=product_id, status=status)
    except NotFoundError as e:
        return {"error": str(e)}, 404

    realtime_service.emit_to_all("product-update", {"action": "status-changed", "product": p.to_dict()})
    return p.to_dict()


@products_bp.post("/<int:product_id>/publish")
@require_auth
@require_admin
def publish_product(product_id: int):
    return _set_status(product_id, "active")


@products_bp.post("/<int:product_id>/unpublish")
@require_auth
@require_admin
def unpublish_product(product_id: int):
    return _set_status(product_id, "draft")


@products_bp.patch("/<int:product_id>/stock-status")
@require_auth
@require_admin
def override_stock_status(product_id: int):
    """Body: {stock_status: available|out_of_stock|reserved, notes?}"""
    data = request.get_json(silent=True) or {}

    try:
        result = products_service.override_stock_status(
            product_id=product_id,
            stock_status=data.get("stock_status"),
            user_id=g.current_user.id,
            notes=data.get("notes"),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except PersistenceError as e:
        return {"error": str(e)}, 500

    realtime_service.emit_to_all("product-update", {"action": "stock-status-changed", "product": result})
    return result


@products_bp.get("/<int:product_id>/stock-history")
@require_auth
@require_admin
def stock_history(product_id: int):
    """Newest first. Query param: limit (default 100)."""
    entries = list_stock_history(product_id=product_id, limit=request.args.get("limit", 100, type=int))
    return {"items": [e.to_dict() for e in entries], "count": len(entries)}
