# Overview: Flask API routes for orders and checkout; parses input and returns JSON responses.

"""
Order routes.

Customers: checkout, list/view own orders, cancel, reorder, invoice.
Staff: list all orders, change status axes, confirm payment.
"""

from flask import Blueprint, request, g, current_app

from ..decorators import require_auth, require_staff
from ..errors import success_response
from ..services import checkout_service, invoice_service, order_service
from ..services.concurrency import run_with_retry
from ..validation import ValidationError


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _page_args() -> tuple[int, int]:
    limit = request.args.get("limit", 50, type=int)
    offset = request.args.get("offset", 0, type=int)
    if limit < 1 or limit > 200:
        raise ValidationError("limit must be between 1 and 200")
    if offset < 0:
        raise ValidationError("offset must be >= 0")
    return limit, offset


def _status_filters() -> dict:
    return {
        "payment_status": request.args.get("payment_status"),
        "fulfillment_status": request.args.get("fulfillment_status"),
        "order_status": request.args.get("order_status"),
    }


def _page(rows, total, limit, offset):
    return {
        "items": [order.to_dict(include_items=False) for order in rows],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@orders_bp.post("/checkout")
@require_auth
def checkout_route():
    """
    Create an order from the selected cart lines.

    Body: payment_method (cod|prepaid), fulfillment_method (delivery|pickup),
    voucher_code?, shipping_fee?, receiver_name?, receiver_phone?,
    receiver_address?, note?

    A transient store failure (database locked, stale row) is retried with
    backoff; business errors are returned as-is.
    """
    data = request.get_json(silent=True) or {}
    user_id = g.current_user.id

    order = run_with_retry(
        lambda: checkout_service.checkout(
            user_id=user_id,
            payment_method=data.get("payment_method"),
            fulfillment_method=data.get("fulfillment_method"),
            voucher_code=data.get("voucher_code"),
            shipping_fee=data.get("shipping_fee"),
            receiver_name=data.get("receiver_name"),
            receiver_phone=data.get("receiver_phone"),
            receiver_address=data.get("receiver_address"),
            note=data.get("note"),
        )
    )
    return success_response(order.to_dict(), message="Order placed", status=201)


@orders_bp.get("/mine")
@require_auth
def my_orders_route():
    limit, offset = _page_args()
    rows, total = order_service.list_user_orders(
        g.current_user.id, limit=limit, offset=offset, **_status_filters()
    )
    return success_response(_page(rows, total, limit, offset))


@orders_bp.get("")
@require_auth
@require_staff
def list_orders_route():
    limit, offset = _page_args()
    rows, total = order_service.list_orders(
        user_id=request.args.get("user_id", type=int),
        limit=limit,
        offset=offset,
        **_status_filters(),
    )
    return success_response(_page(rows, total, limit, offset))


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    order = order_service.get_order(order_id, user=g.current_user)
    return success_response(order.to_dict())


@orders_bp.post("/<int:order_id>/cancel")
@require_auth
def cancel_order_route(order_id: int):
    data = request.get_json(silent=True) or {}
    order = order_service.cancel_order(user=g.current_user, order_id=order_id, reason=data.get("reason"))
    return success_response(order.to_dict(), message="Order cancelled")


@orders_bp.post("/<int:order_id>/reorder")
@require_auth
def reorder_route(order_id: int):
    result = order_service.reorder(user=g.current_user, order_id=order_id)
    return success_response(result)


@orders_bp.patch("/<int:order_id>/status")
@require_auth
@require_staff
def update_status_route(order_id: int):
    """
    Body: any of payment_status, fulfillment_status, order_status, plus an
    optional reason (stored on cancellation). All given axes change together
    or not at all.
    """
    data = request.get_json(silent=True) or {}
    order = order_service.update_order_status(
        order_id,
        payment_status=data.get("payment_status"),
        fulfillment_status=data.get("fulfillment_status"),
        order_status=data.get("order_status"),
        reason=data.get("reason"),
        actor_user_id=g.current_user.id,
    )
    return success_response(order.to_dict())


@orders_bp.post("/<int:order_id>/confirm-payment")
@require_auth
@require_staff
def confirm_payment_route(order_id: int):
    order = order_service.confirm_payment(order_id, actor_user_id=g.current_user.id)
    current_app.logger.info(f"Payment confirmed for order {order_id} by user {g.current_user.id}")
    return success_response(order.to_dict(), message="Payment confirmed")


@orders_bp.get("/<int:order_id>/invoice")
@require_auth
def invoice_route(order_id: int):
    order_service.get_order(order_id, user=g.current_user)
    invoice = invoice_service.get_invoice_for_order(order_id)
    return success_response(invoice.to_dict())
