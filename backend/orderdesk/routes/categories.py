# Overview: Flask API routes for category operations; parses input and returns JSON responses.

# backend/orderdesk/routes/categories.py
from flask import Blueprint, request

from ..decorators import is_admin_request, require_admin, require_auth
from ..models import Category
from ..models.catalog import CATEGORY_STATUSES
from ..services import categories_service, realtime_service
from ..services.concurrency import PersistenceError
from ..validation import ModelValidationPolicy, NotFoundError, ValidationError, validate_payload

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "image", "status"},
    required_on_create={"name"},
    choices={"status": CATEGORY_STATUSES},
)

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("")
def list_categories():
    """Admins see drafts too; everyone else only active categories."""
    items = categories_service.list_categories(include_drafts=is_admin_request())
    return {"items": [c.to_dict() for c in items], "count": len(items)}


@categories_bp.get("/<int:category_id>")
def get_category(category_id: int):
    try:
        c = categories_service.get_category(category_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    if c.status != "active" and not is_admin_request():
        return {"error": "Category not found"}, 404
    return c.to_dict()


@categories_bp.post("")
@require_auth
@require_admin
def create_category():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
        c = categories_service.create_category(patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    realtime_service.emit_to_all("category-update", {"action": "created", "category": c.to_dict()})
    return c.to_dict(), 201


@categories_bp.put("/<int:category_id>")
@require_auth
@require_admin
def update_category(category_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)
        c = categories_service.update_category(category_id=category_id, patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404

    realtime_service.emit_to_all("category-update", {"action": "updated", "category": c.to_dict()})
    return c.to_dict()


@categories_bp.delete("/<int:category_id>")
@require_auth
@require_admin
def delete_category(category_id: int):
    try:
        categories_service.delete_category(category_id=category_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except PersistenceError as e:
        return {"error": str(e)}, 500

    realtime_service.emit_to_all("category-update", {"action": "deleted", "category": {"id": category_id}})
    return {"ok": True}, 200
