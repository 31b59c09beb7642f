# Overview: Flask API routes for the category tree; parses input and returns JSON responses.

"""
Category routes.

Reads are public and only show active categories unless include_inactive=true.
Writes require a staff role.
"""
from flask import Blueprint, request

from ..decorators import require_auth, require_staff
from ..errors import success_response
from ..models import Category
from ..services import category_service
from ..validation import ModelValidationPolicy, ValidationError, parse_int, validate_payload

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "slug", "description", "parent_id", "is_active"},
    required_on_create={"name"},
)

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


def _flag(name: str) -> bool:
    return request.args.get(name, "false").lower() == "true"


@categories_bp.get("")
def list_categories_route():
    """Flat list ordered by name. include_inactive=true shows hidden ones too."""
    categories = category_service.list_categories(active_only=not _flag("include_inactive"))
    return success_response([c.to_dict() for c in categories])


@categories_bp.get("/tree")
def category_tree_route():
    return success_response(category_service.category_tree(active_only=not _flag("include_inactive")))


@categories_bp.get("/roots")
def root_categories_route():
    return success_response([c.to_dict() for c in category_service.list_children(None)])


@categories_bp.get("/<int:category_id>")
def get_category_route(category_id: int):
    return success_response(category_service.get_category(category_id).to_dict())


@categories_bp.get("/slug/<slug>")
def get_category_by_slug_route(slug: str):
    return success_response(category_service.get_category_by_slug(slug).to_dict())


@categories_bp.get("/<int:category_id>/children")
def category_children_route(category_id: int):
    children = category_service.list_children(category_id)
    return success_response([c.to_dict() for c in children])


@categories_bp.post("")
@require_auth
@require_staff
def create_category_route():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
    if not patch.get("name"):
        raise ValidationError("name is required")

    category = category_service.create_category(**patch)
    return success_response(category.to_dict(), message="Category created", status=201)


@categories_bp.put("/<int:category_id>")
@require_auth
@require_staff
def update_category_route(category_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)

    category = category_service.update_category(category_id, patch)
    return success_response(category.to_dict())


@categories_bp.patch("/<int:category_id>/move")
@require_auth
@require_staff
def move_category_route(category_id: int):
    """Body: {"parent_id": <id> | null}; null makes the category a root."""
    payload = request.get_json(silent=True) or {}
    if "parent_id" not in payload:
        raise ValidationError("parent_id is required (null for a root)")
    parent_id = payload["parent_id"]
    if parent_id is not None:
        parent_id = parse_int(parent_id, "parent_id")

    category = category_service.move_category(category_id, parent_id)
    return success_response(category.to_dict(), message="Category moved")


@categories_bp.patch("/<int:category_id>/toggle-status")
@require_auth
@require_staff
def toggle_category_route(category_id: int):
    category = category_service.toggle_status(category_id)
    return success_response(category.to_dict())


@categories_bp.delete("/<int:category_id>")
@require_auth
@require_staff
def delete_category_route(category_id: int):
    """?force=true also deletes the subtree (still refused while any of it has products)."""
    result = category_service.delete_category(category_id, force=_flag("force"))
    return success_response(result, message="Category deleted")


@categories_bp.post("/bulk-delete")
@require_auth
@require_staff
def bulk_delete_categories_route():
    """Body: {"ids": [..], "force": bool}. Per-id failures are reported, not raised."""
    payload = request.get_json(silent=True) or {}
    ids = payload.get("ids")
    if not isinstance(ids, list) or not ids:
        raise ValidationError("ids must be a non-empty list")
    ids = [parse_int(value, "ids") for value in ids]
    force = payload.get("force", False)
    if not isinstance(force, bool):
        raise ValidationError("force must be a boolean")

    result = category_service.bulk_delete(ids, force=force)
    return success_response(result)
