# Overview: Flask API routes for the inventory ledger; parses input and returns JSON responses.

"""
Inventory ledger routes (staff only).

Manual movements (IN, DAMAGED, STOCKTAKE, manual OUT) go through
POST /transactions. Order deductions are normally written by checkout;
POST /out-from-order exists for orders placed outside the cart flow and
fails with DUPLICATE_OUT_TRANSACTION when stock was already deducted.
"""

from flask import Blueprint, request, g

from ..decorators import require_auth, require_staff
from ..errors import success_response
from ..services import inventory_service
from ..validation import ValidationError


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _optional_int(data: dict, key: str) -> int | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    return value


@inventory_bp.post("/transactions")
@require_auth
@require_staff
def create_transaction_route():
    """
    Body:
      transaction_type: IN | OUT | DAMAGED | STOCKTAKE
      reference_type: MANUAL | STOCKTAKE (default MANUAL)
      reference_id?: int
      note?: str
      items: [{product_id, quantity, change_type?, unit_price?}]
    """
    data = request.get_json(silent=True) or {}
    items = data.get("items")
    if not isinstance(items, list):
        raise ValidationError("items must be a list")
    if not data.get("transaction_type"):
        raise ValidationError("transaction_type is required")

    header = inventory_service.apply_transaction(
        transaction_type=data["transaction_type"],
        reference_type=data.get("reference_type") or "MANUAL",
        reference_id=_optional_int(data, "reference_id"),
        items=items,
        note=data.get("note"),
        created_by_user_id=g.current_user.id,
    )
    return success_response(header.to_dict(), message="Inventory transaction recorded", status=201)


@inventory_bp.post("/out-from-order")
@require_auth
@require_staff
def out_from_order_route():
    data = request.get_json(silent=True) or {}
    order_id = _optional_int(data, "order_id")
    if order_id is None:
        raise ValidationError("order_id is required")

    header = inventory_service.apply_out_for_order(
        order_id,
        note=data.get("note"),
        created_by_user_id=g.current_user.id,
    )
    return success_response(header.to_dict(), message="Stock deducted for order", status=201)


@inventory_bp.post("/stocktake")
@require_auth
@require_staff
def stocktake_route():
    """
    Body: {"counts": [{"product_id": int, "counted": int}, ...], "note"?: str}

    Returns the adjustment header, or null when every count already matched.
    """
    data = request.get_json(silent=True) or {}
    rows = data.get("counts")
    if not isinstance(rows, list) or not rows:
        raise ValidationError("counts must be a non-empty list")

    counts = {}
    for i, row in enumerate(rows):
        if not isinstance(row, dict):
            raise ValidationError(f"counts[{i}] must be an object")
        product_id = _optional_int(row, "product_id")
        if product_id is None:
            raise ValidationError(f"counts[{i}].product_id is required")
        if product_id in counts:
            raise ValidationError(f"counts[{i}]: duplicate product_id {product_id}")
        counts[product_id] = row.get("counted")

    header = inventory_service.apply_stocktake(
        counts=counts,
        note=data.get("note"),
        created_by_user_id=g.current_user.id,
    )
    if header is None:
        return success_response(None, message="No differences; nothing recorded")
    return success_response(header.to_dict(), message="Stocktake adjustment recorded", status=201)


@inventory_bp.get("/transactions")
@require_auth
@require_staff
def list_transactions_route():
    limit = request.args.get("limit", 50, type=int)
    offset = request.args.get("offset", 0, type=int)
    if limit < 1 or limit > 200:
        raise ValidationError("limit must be between 1 and 200")

    rows, total = inventory_service.list_transactions(
        transaction_type=request.args.get("transaction_type"),
        reference_type=request.args.get("reference_type"),
        reference_id=request.args.get("reference_id", type=int),
        product_id=request.args.get("product_id", type=int),
        limit=limit,
        offset=max(offset, 0),
    )
    return success_response({
        "items": [h.to_dict(include_items=False) for h in rows],
        "total": total,
        "limit": limit,
        "offset": max(offset, 0),
    })


@inventory_bp.get("/transactions/<int:transaction_id>")
@require_auth
@require_staff
def get_transaction_route(transaction_id: int):
    return success_response(inventory_service.get_transaction(transaction_id).to_dict())


@inventory_bp.get("/stock/<int:product_id>")
@require_auth
@require_staff
def stock_summary_route(product_id: int):
    return success_response(inventory_service.get_stock_summary(product_id))


@inventory_bp.get("/consistency")
@require_auth
@require_staff
def consistency_route():
    drift = inventory_service.check_stock_consistency()
    return success_response({"consistent": not drift, "drift": drift})
