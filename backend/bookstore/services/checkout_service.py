# Overview: Checkout orchestration; turns the selected cart lines into an order in one transaction.

"""
Checkout

One call, one transaction. In order:
1. selected cart lines (CART_EMPTY when there are none)
2. payment/fulfillment method, receiver info for delivery, shipping fee
3. subtotal from current prices, voucher validation
4. total = subtotal - discount + shipping_fee
5. Order + OrderItem snapshots
6. stock deduction through the inventory ledger (OUT header)
7. voucher usage
8. selected cart lines removed

Any failure leaves nothing behind: no order, no ledger rows, no voucher
usage, and the cart untouched. Nothing here retries; see run_with_retry
for the caller-side policy.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

from flask import current_app

from ..enums import FulfillmentMethod, FulfillmentStatus, OrderStatus, PaymentMethod, PaymentStatus
from ..errors import AppError, ErrorCode
from ..extensions import db
from ..models import Order, OrderItem
from ..money import ZERO, quantize_money
from ..time_utils import utcnow
from ..validation import parse_decimal
from .concurrency import run_in_transaction
from . import cart_service, inventory_service, notification_service, voucher_service

EXPECTED_DELIVERY_DAYS = 3


def transfer_content_for(order_id: int) -> str:
    return f"BSORD{order_id}"


def _parse_methods(payment_method, fulfillment_method) -> tuple[PaymentMethod, FulfillmentMethod]:
    payment = PaymentMethod.parse(payment_method)
    if payment is None:
        raise AppError(
            ErrorCode.INVALID_PAYMENT_METHOD,
            details={"payment_method": payment_method, "allowed": PaymentMethod.values()},
        )
    fulfillment = FulfillmentMethod.parse(fulfillment_method)
    if fulfillment is None:
        raise AppError(
            ErrorCode.INVALID_FULFILLMENT_METHOD,
            details={"fulfillment_method": fulfillment_method, "allowed": FulfillmentMethod.values()},
        )
    return payment, fulfillment


def _resolve_shipping_fee(fulfillment: FulfillmentMethod, shipping_fee) -> Decimal:
    if fulfillment == FulfillmentMethod.PICKUP:
        return ZERO
    if shipping_fee is None:
        return quantize_money(current_app.config["DEFAULT_SHIPPING_FEE"])
    fee = parse_decimal(shipping_fee, "shipping_fee")
    if fee < 0:
        raise AppError(ErrorCode.VALIDATION_ERROR, message="shipping_fee must be >= 0")
    return quantize_money(fee)


def checkout(
    *,
    user_id: int,
    payment_method,
    fulfillment_method,
    voucher_code: str | None = None,
    shipping_fee=None,
    receiver_name: str | None = None,
    receiver_phone: str | None = None,
    receiver_address: str | None = None,
    note: str | None = None,
) -> Order:
    """
    Create an order from the user's selected cart lines.

    Raises (nothing persisted in every case):
      CART_EMPTY, INVALID_PAYMENT_METHOD, INVALID_FULFILLMENT_METHOD,
      RECEIVER_INFO_REQUIRED, any voucher validation error,
      INSUFFICIENT_INVENTORY, VOUCHER_USAGE_LIMIT_REACHED /
      VOUCHER_USER_LIMIT_EXCEEDED (lost a race at commit time).
    """
    def _op():
        cart_items = cart_service.get_selected_items(user_id)
        if not cart_items:
            raise AppError(ErrorCode.CART_EMPTY, details={"user_id": user_id})

        payment, fulfillment = _parse_methods(payment_method, fulfillment_method)
        if fulfillment == FulfillmentMethod.DELIVERY and not (receiver_name and receiver_phone and receiver_address):
            raise AppError(ErrorCode.RECEIVER_INFO_REQUIRED)
        fee = _resolve_shipping_fee(fulfillment, shipping_fee)

        for item in cart_items:
            if not item.product.is_active:
                raise AppError(ErrorCode.PRODUCT_UNAVAILABLE, details={"product_id": item.product_id})

        subtotal = cart_service.selected_subtotal(cart_items)

        discount = ZERO
        voucher_validation = None
        if voucher_code:
            voucher_validation = voucher_service.validate(
                voucher_code,
                subtotal,
                shipping_fee=fee,
                user_id=user_id,
            )
            voucher_validation.raise_if_invalid()
            discount = voucher_validation.discount_value

        total = quantize_money(subtotal - discount + fee)

        order = Order(
            user_id=user_id,
            subtotal=subtotal,
            discount_amount=discount,
            shipping_fee=fee,
            total_amount=total,
            payment_status=PaymentStatus.PENDING.value,
            fulfillment_status=(
                FulfillmentStatus.SHIPPING.value
                if fulfillment == FulfillmentMethod.DELIVERY
                else FulfillmentStatus.PICKUP.value
            ),
            order_status=OrderStatus.CONFIRMED.value,
            payment_method=payment.value,
            fulfillment_method=fulfillment.value,
            voucher_id=voucher_validation.voucher_id if voucher_validation else None,
            voucher_code=voucher_validation.code if voucher_validation else None,
            receiver_name=receiver_name,
            receiver_phone=receiver_phone,
            receiver_address=receiver_address,
            note=note,
        )
        for item in cart_items:
            product = item.product
            unit_price = quantize_money(product.price)
            order.items.append(
                OrderItem(
                    product_id=product.id,
                    product_name=product.name,
                    sku=product.sku,
                    category_name=product.category.name if product.category else None,
                    quantity=item.quantity,
                    unit_price=unit_price,
                    line_total=quantize_money(unit_price * item.quantity),
                )
            )
        db.session.add(order)
        db.session.flush()

        order.transfer_content = transfer_content_for(order.id)
        if fulfillment == FulfillmentMethod.DELIVERY:
            order.expected_delivery_at = utcnow() + timedelta(days=EXPECTED_DELIVERY_DAYS)

        inventory_service.apply_out_for_order(order.id, created_by_user_id=user_id, commit=False)

        if voucher_validation is not None:
            voucher_service.commit_usage(
                voucher_id=voucher_validation.voucher_id,
                user_id=user_id,
                order_id=order.id,
                discount_amount=discount,
                commit=False,
            )

        cart_service.clear_selected(user_id, commit=False)

        notification_service.notify(
            user_id=user_id,
            title=f"Order #{order.id} placed",
            message=f"Your order total is {total}. Transfer content: {order.transfer_content}.",
            reference_id=order.id,
            commit=False,
        )

        current_app.logger.info(
            f"Checkout: order {order.id} for user {user_id}, {len(order.items)} line(s), "
            f"subtotal={subtotal} discount={discount} shipping={fee} total={total}"
        )
        return order

    return run_in_transaction(_op)
