# Overview: Flask API routes for shipping quotes; parses input and returns JSON responses.

from flask import Blueprint, request

from ..errors import success_response
from ..services import shipping_service
from ..validation import ValidationError


shipping_bp = Blueprint("shipping", __name__, url_prefix="/api/shipping")


@shipping_bp.post("/quote")
def quote_route():
    """
    Body: subtotal, and either distance_km or address (resolved through the
    configured route provider).
    """
    data = request.get_json(silent=True) or {}
    if data.get("subtotal") is None:
        raise ValidationError("subtotal is required")

    quote = shipping_service.quote(
        data["subtotal"],
        distance_km=data.get("distance_km"),
        address=data.get("address"),
    )
    return success_response(quote.to_dict())
