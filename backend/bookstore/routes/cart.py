# Overview: Flask API routes for the shopping cart; parses input and returns JSON responses.

from flask import Blueprint, request, g

from ..decorators import require_auth
from ..errors import success_response
from ..services import cart_service
from ..validation import ValidationError


cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


def _summary():
    return success_response(cart_service.summarize(cart_service.get_cart(g.current_user.id)))


@cart_bp.get("")
@require_auth
def get_cart_route():
    return _summary()


@cart_bp.post("/items")
@require_auth
def add_item_route():
    data = request.get_json(silent=True) or {}
    product_id = data.get("product_id")
    if not isinstance(product_id, int) or isinstance(product_id, bool):
        raise ValidationError("product_id must be an integer")

    cart_service.add_item(g.current_user.id, product_id, data.get("quantity", 1))
    return _summary()


@cart_bp.patch("/items/<int:item_id>")
@require_auth
def update_item_route(item_id: int):
    data = request.get_json(silent=True) or {}
    if "quantity" not in data and "is_selected" not in data:
        raise ValidationError("quantity or is_selected is required")
    is_selected = data.get("is_selected")
    if is_selected is not None and not isinstance(is_selected, bool):
        raise ValidationError("is_selected must be a boolean")

    cart_service.update_item(
        g.current_user.id,
        item_id,
        quantity=data.get("quantity"),
        is_selected=is_selected,
    )
    return _summary()


@cart_bp.delete("/items/<int:item_id>")
@require_auth
def remove_item_route(item_id: int):
    cart_service.remove_item(g.current_user.id, item_id)
    return _summary()


@cart_bp.post("/select-all")
@require_auth
def select_all_route():
    data = request.get_json(silent=True) or {}
    selected = data.get("selected", True)
    if not isinstance(selected, bool):
        raise ValidationError("selected must be a boolean")

    cart_service.select_all(g.current_user.id, selected)
    return _summary()
