# Overview: Service-layer operations for orders; drives the three status axes and their side effects.

"""
Order State Machine

Per-axis tables live in order_status. This module adds the rules that span
axes and the side effects of each change, all inside one DB transaction:

- Once order_status is cancelled or closed, nothing changes on any axis.
- order -> cancelled requires payment != paid (CANNOT_CANCEL_ORDER).
  Side effects: stock returned through an inventory compensation header;
  voucher usage stays consumed.
- order -> closed requires payment == paid and fulfillment == delivered
  (ORDER_CANNOT_CLOSE). Side effect: loyalty points (1 per 1000 of total).
- payment paid -> refunded is refused when the order is (being) closed.
- payment -> paid issues the invoice and adds the total to the customer's
  total_purchase; paid -> refunded takes it back.
  Crossing a spend threshold raises the membership level (never lowered).
- Every change notifies the order owner.

All requested axes are validated before anything is written, so a request
either applies completely or not at all.
"""

from __future__ import annotations

from flask import current_app

from ..enums import FulfillmentStatus, NotificationType, OrderStatus, PaymentStatus
from ..errors import AppError, ErrorCode
from ..extensions import db
from ..models import Order, User
from ..money import ZERO, floor_div
from ..time_utils import utcnow
from ..validation import ValidationError
from .concurrency import lock_for_update, run_in_transaction
from .order_status import StatusAxis, parse_status, validate_transition
from . import cart_service, inventory_service, invoice_service, membership_service, notification_service

POINTS_UNIT = 1000


def _load_order(order_id: int, *, lock: bool = False) -> Order:
    q = db.session.query(Order).filter_by(id=order_id)
    if lock:
        q = lock_for_update(q)
    order = q.first()
    if order is None:
        raise AppError(ErrorCode.ORDER_NOT_FOUND, details={"order_id": order_id})
    return order


def _check_access(order: Order, user: User | None) -> None:
    if user is not None and not user.is_staff and order.user_id != user.id:
        raise AppError(ErrorCode.ORDER_ACCESS_DENIED, details={"order_id": order.id})


def get_order(order_id: int, *, user: User | None = None) -> Order:
    """Fetch an order; customers may only see their own."""
    order = _load_order(order_id)
    _check_access(order, user)
    return order


def list_orders(
    *,
    user_id: int | None = None,
    payment_status=None,
    fulfillment_status=None,
    order_status=None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Order], int]:
    """Newest first, filterable by owner and by any status axis."""
    q = db.session.query(Order)
    if user_id is not None:
        q = q.filter(Order.user_id == user_id)
    if payment_status is not None:
        q = q.filter(Order.payment_status == parse_status(StatusAxis.PAYMENT, payment_status).value)
    if fulfillment_status is not None:
        q = q.filter(Order.fulfillment_status == parse_status(StatusAxis.FULFILLMENT, fulfillment_status).value)
    if order_status is not None:
        q = q.filter(Order.order_status == parse_status(StatusAxis.ORDER, order_status).value)

    total = q.count()
    rows = q.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).offset(offset).all()
    return rows, total


def list_user_orders(user_id: int, **filters) -> tuple[list[Order], int]:
    return list_orders(user_id=user_id, **filters)


def _notify_owner(order: Order, title: str, message: str, notification_type=NotificationType.ORDER) -> None:
    notification_service.notify(
        user_id=order.user_id,
        title=title,
        message=message,
        notification_type=notification_type,
        reference_id=order.id,
        commit=False,
    )


def _apply_status_changes(
    order: Order,
    *,
    payment_status=None,
    fulfillment_status=None,
    order_status=None,
    reason: str | None = None,
    actor_user_id: int | None = None,
) -> Order:
    requested = {
        StatusAxis.PAYMENT: payment_status,
        StatusAxis.FULFILLMENT: fulfillment_status,
        StatusAxis.ORDER: order_status,
    }
    requested = {axis: value for axis, value in requested.items() if value is not None}
    if not requested:
        raise ValidationError("At least one of payment_status, fulfillment_status, order_status is required")

    current = {
        StatusAxis.PAYMENT: order.payment_status,
        StatusAxis.FULFILLMENT: order.fulfillment_status,
        StatusAxis.ORDER: order.order_status,
    }

    # Per-axis table checks
    for axis, target in requested.items():
        validate_transition(axis, current[axis], target)

    if order.is_terminal:
        axis, target = next(iter(requested.items()))
        raise AppError(
            ErrorCode.INVALID_STATUS_TRANSITION,
            message=f"Order is {order.order_status}; no further status changes are allowed",
            details={"axis": axis.value, "from": current[axis], "to": str(target)},
        )

    new_payment = parse_status(StatusAxis.PAYMENT, requested.get(StatusAxis.PAYMENT, order.payment_status))
    new_fulfillment = parse_status(
        StatusAxis.FULFILLMENT, requested.get(StatusAxis.FULFILLMENT, order.fulfillment_status)
    )
    new_order = parse_status(StatusAxis.ORDER, requested.get(StatusAxis.ORDER, order.order_status))

    # Cross-axis rules
    if new_payment == PaymentStatus.REFUNDED and new_order == OrderStatus.CLOSED:
        raise AppError(
            ErrorCode.INVALID_STATUS_TRANSITION,
            message="A closed order cannot be refunded",
            details={"axis": StatusAxis.PAYMENT.value, "from": order.payment_status, "to": new_payment.value},
        )
    if new_order == OrderStatus.CANCELLED and new_payment == PaymentStatus.PAID:
        raise AppError(ErrorCode.CANNOT_CANCEL_ORDER, message="A paid order cannot be cancelled",
                       details={"order_id": order.id, "payment_status": new_payment.value})
    if new_order == OrderStatus.CLOSED and (
        new_payment != PaymentStatus.PAID or new_fulfillment != FulfillmentStatus.DELIVERED
    ):
        raise AppError(
            ErrorCode.ORDER_CANNOT_CLOSE,
            details={
                "order_id": order.id,
                "payment_status": new_payment.value,
                "fulfillment_status": new_fulfillment.value,
            },
        )

    now = utcnow()
    owner = db.session.get(User, order.user_id)

    if StatusAxis.PAYMENT in requested:
        previous = order.payment_status
        order.payment_status = new_payment.value
        if new_payment == PaymentStatus.PAID:
            order.paid_at = now
            owner.total_purchase = (owner.total_purchase or ZERO) + order.total_amount
            membership_service.refresh_level(owner)
            invoice_service.issue_invoice(order, commit=False)
        elif new_payment == PaymentStatus.REFUNDED:
            owner.total_purchase = max((owner.total_purchase or ZERO) - order.total_amount, ZERO)
        _notify_owner(
            order,
            f"Order #{order.id} payment {new_payment.value}",
            f"Payment status changed from {previous} to {new_payment.value}.",
            notification_type=NotificationType.PAYMENT,
        )

    if StatusAxis.FULFILLMENT in requested:
        previous = order.fulfillment_status
        order.fulfillment_status = new_fulfillment.value
        _notify_owner(
            order,
            f"Order #{order.id} {new_fulfillment.value}",
            f"Fulfillment status changed from {previous} to {new_fulfillment.value}.",
        )

    if StatusAxis.ORDER in requested:
        order.order_status = new_order.value
        if new_order == OrderStatus.CANCELLED:
            order.cancelled_at = now
            order.cancel_reason = reason
            inventory_service.compensate_order_out(
                order.id,
                created_by_user_id=actor_user_id,
                commit=False,
            )
            _notify_owner(
                order,
                f"Order #{order.id} cancelled",
                f"Your order was cancelled.{' Reason: ' + reason if reason else ''}",
            )
        elif new_order == OrderStatus.CLOSED:
            order.closed_at = now
            earned = floor_div(order.total_amount, POINTS_UNIT)
            owner.points = (owner.points or 0) + earned
            _notify_owner(
                order,
                f"Order #{order.id} completed",
                f"Thank you for your purchase. You earned {earned} point(s).",
            )

    current_app.logger.info(
        f"Order {order.id} status -> payment={order.payment_status} "
        f"fulfillment={order.fulfillment_status} order={order.order_status} (actor={actor_user_id})"
    )
    return order


def update_order_status(
    order_id: int,
    *,
    payment_status=None,
    fulfillment_status=None,
    order_status=None,
    reason: str | None = None,
    actor_user_id: int | None = None,
    commit: bool = True,
) -> Order:
    """
    Staff/payment-callback entry point. Any subset of the three axes may be
    changed in one call.

    Raises INVALID_STATUS_TRANSITION, CANNOT_CANCEL_ORDER, ORDER_CANNOT_CLOSE
    or ORDER_NOT_FOUND with nothing persisted.
    """
    def _op():
        order = _load_order(order_id, lock=True)
        return _apply_status_changes(
            order,
            payment_status=payment_status,
            fulfillment_status=fulfillment_status,
            order_status=order_status,
            reason=reason,
            actor_user_id=actor_user_id,
        )

    return run_in_transaction(_op, commit=commit)


def cancel_order(*, user: User, order_id: int, reason: str | None = None) -> Order:
    """
    Customer cancellation: own order, still confirmed, not paid.
    Staff may cancel any order.
    """
    def _op():
        order = _load_order(order_id, lock=True)
        _check_access(order, user)
        if order.order_status == OrderStatus.CANCELLED.value:
            raise AppError(ErrorCode.ORDER_ALREADY_CANCELLED, details={"order_id": order_id})
        if order.order_status != OrderStatus.CONFIRMED.value:
            raise AppError(
                ErrorCode.CANNOT_CANCEL_ORDER,
                message=f"Order is {order.order_status} and can no longer be cancelled",
                details={"order_id": order_id, "order_status": order.order_status},
            )
        if order.payment_status == PaymentStatus.PAID.value:
            raise AppError(
                ErrorCode.CANNOT_CANCEL_ORDER,
                message="A paid order cannot be cancelled",
                details={"order_id": order_id, "payment_status": order.payment_status},
            )
        return _apply_status_changes(
            order,
            order_status=OrderStatus.CANCELLED,
            reason=reason,
            actor_user_id=user.id,
        )

    return run_in_transaction(_op)


def confirm_payment(order_id: int, *, actor_user_id: int | None = None) -> Order:
    """
    Payment callback: pending -> paid. Repeating the callback for a paid
    order is a no-op.
    """
    def _op():
        order = _load_order(order_id, lock=True)
        if order.order_status == OrderStatus.CANCELLED.value:
            raise AppError(ErrorCode.ORDER_ALREADY_CANCELLED, details={"order_id": order_id})
        if order.payment_status == PaymentStatus.PAID.value:
            return order
        return _apply_status_changes(order, payment_status=PaymentStatus.PAID, actor_user_id=actor_user_id)

    return run_in_transaction(_op)


def reorder(*, user: User, order_id: int) -> dict:
    """Put the products of a past order back into the customer's cart."""
    order = get_order(order_id, user=user)
    return cart_service.add_items_from_order(user.id, order)
