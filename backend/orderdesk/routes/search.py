# Overview: Flask API routes for catalog search operations; parses input and returns JSON responses.

# backend/orderdesk/routes/search.py
"""Catalog search routes. Public; admins also see out-of-stock products."""
from flask import Blueprint, request

from ..decorators import is_admin_request
from ..services import search_service
from ..validation import ValidationError

search_bp = Blueprint("search", __name__, url_prefix="/api/search")


def _query() -> str | None:
    return request.args.get("query")


@search_bp.get("/all")
def search_all():
    term = _query()
    try:
        data = search_service.search_all(term, include_out_of_stock=is_admin_request())
    except ValidationError as e:
        return {"success": False, "error": str(e)}, 400
    return {"success": True, "data": data, "searchQuery": term}


@search_bp.get("/categories")
def search_categories():
    term = _query()
    try:
        categories = search_service.search_categories(term)
    except ValidationError as e:
        return {"success": False, "error": str(e)}, 400
    return {
        "success": True,
        "data": [c.to_dict() for c in categories],
        "totalResults": len(categories),
        "searchQuery": term,
    }


@search_bp.get("/products")
def search_products():
    term = _query()
    try:
        products = search_service.search_products(term, include_out_of_stock=is_admin_request())
    except ValidationError as e:
        return {"success": False, "error": str(e)}, 400
    return {
        "success": True,
        "data": [p.to_dict() for p in products],
        "totalResults": len(products),
        "searchQuery": term,
    }
