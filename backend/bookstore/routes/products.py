# Overview: Flask API routes for catalog operations; parses input and returns JSON responses.

"""
Product catalog routes.

Reads are public. Writes require a staff role (manager/admin).
Stock is read-only here; it changes through /api/inventory.
"""
from flask import Blueprint, request, g

from ..decorators import require_auth, require_staff
from ..errors import success_response
from ..models import Product
from ..services import product_service, price_history_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "name", "author", "publisher", "description", "image_url", "price", "category_id", "is_active",
    },
    required_on_create={"sku", "name", "price"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    Query params:
    - search: matches name, sku or author
    - category_id: int
    - include_subcategories: "true" to also match products anywhere below category_id
    - include_inactive: "true" to include hidden products
    - page / per_page: optional pagination (per_page max 100)
    """
    result = product_service.list_products(
        search=request.args.get("search"),
        category_id=request.args.get("category_id", type=int),
        include_subcategories=request.args.get("include_subcategories", "false").lower() == "true",
        active_only=request.args.get("include_inactive", "false").lower() != "true",
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return success_response(result)


@products_bp.get("/<int:product_id>")
def get_product(product_id: int):
    return success_response(product_service.get_product(product_id).to_dict())


@products_bp.post("")
@require_auth
@require_staff
def create_product_route():
    payload = request.get_json(silent=True) or {}

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    created = product_service.create_product(patch=patch)
    return success_response(created.to_dict(), message="Product created", status=201)


@products_bp.put("/<int:product_id>")
@require_auth
@require_staff
def update_product_route(product_id: int):
    """
    Update a product. A price change is recorded in the price history;
    an optional "reason" field is stored with it.
    """
    payload = dict(request.get_json(silent=True) or {})
    reason = payload.pop("reason", None)

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)

    updated = product_service.update_product(
        product_id=product_id,
        patch=patch,
        changed_by_user_id=g.current_user.id,
        reason=reason,
    )
    return success_response(updated.to_dict())


@products_bp.delete("/<int:product_id>")
@require_auth
@require_staff
def delete_product_route(product_id: int):
    """Products are deactivated, never removed."""
    product = product_service.deactivate_product(product_id)
    return success_response(product.to_dict(), message="Product deactivated")


@products_bp.get("/<int:product_id>/price-history")
def price_history_route(product_id: int):
    rows = price_history_service.get_price_history(product_id, limit=request.args.get("limit", type=int))
    return success_response([row.to_dict() for row in rows])


@products_bp.get("/<int:product_id>/price-trend")
def price_trend_route(product_id: int):
    trend = price_history_service.get_price_trend(product_id)
    return success_response({"product_id": product_id, "trend": trend.value})

