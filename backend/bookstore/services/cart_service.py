# Overview: Service-layer operations for shopping carts.

from __future__ import annotations

from decimal import Decimal

from ..errors import AppError, ErrorCode
from ..extensions import db
from ..models import Cart, CartItem, Product
from ..money import ZERO, quantize_money, to_money_str
from .concurrency import run_in_transaction


def _get_or_create_cart(user_id: int) -> Cart:
    cart = db.session.query(Cart).filter_by(user_id=user_id).first()
    if cart is None:
        cart = Cart(user_id=user_id)
        db.session.add(cart)
        db.session.flush()
    return cart


def _get_item(user_id: int, item_id: int) -> CartItem:
    item = (
        db.session.query(CartItem)
        .join(Cart, Cart.id == CartItem.cart_id)
        .filter(Cart.user_id == user_id, CartItem.id == item_id)
        .first()
    )
    if item is None:
        raise AppError(ErrorCode.CART_ITEM_NOT_FOUND, details={"item_id": item_id})
    return item


def _check_quantity(quantity) -> int:
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        raise AppError(ErrorCode.INVALID_QUANTITY, details={"quantity": quantity})
    return quantity


def _check_sellable(product: Product | None, product_id: int, quantity: int) -> Product:
    if product is None:
        raise AppError(ErrorCode.PRODUCT_NOT_FOUND, details={"product_id": product_id})
    if not product.is_active:
        raise AppError(ErrorCode.PRODUCT_UNAVAILABLE, details={"product_id": product_id})
    if product.stock_quantity < quantity:
        raise AppError(
            ErrorCode.PRODUCT_OUT_OF_STOCK,
            details={"product_id": product_id, "requested_quantity": quantity, "available": product.stock_quantity},
        )
    return product


def get_cart(user_id: int) -> Cart:
    return run_in_transaction(lambda: _get_or_create_cart(user_id))


def summarize(cart: Cart) -> dict:
    items = [item.to_dict() for item in cart.items]
    total = sum((item.product.price * item.quantity for item in cart.items), ZERO)
    selected = [item for item in cart.items if item.is_selected]
    selected_total = sum((item.product.price * item.quantity for item in selected), ZERO)
    return {
        "id": cart.id,
        "user_id": cart.user_id,
        "items": items,
        "item_count": len(cart.items),
        "total_quantity": sum(item.quantity for item in cart.items),
        "total_amount": to_money_str(total),
        "selected_count": len(selected),
        "selected_amount": to_money_str(selected_total),
    }


def add_item(user_id: int, product_id: int, quantity: int = 1) -> CartItem:
    quantity = _check_quantity(quantity)

    def _op():
        product = _check_sellable(db.session.get(Product, product_id), product_id, quantity)
        cart = _get_or_create_cart(user_id)
        if any(item.product_id == product.id for item in cart.items):
            raise AppError(ErrorCode.PRODUCT_ALREADY_IN_CART, details={"product_id": product_id})
        item = CartItem(product_id=product.id, quantity=quantity, is_selected=True)
        cart.items.append(item)
        db.session.flush()
        return item

    return run_in_transaction(_op)


def add_items_from_order(user_id: int, order) -> dict:
    """
    Re-add an order's products to the cart. Lines already in the cart, and
    products that are inactive or out of stock, are reported and skipped.
    Quantities are capped at current stock.
    """
    def _op():
        cart = _get_or_create_cart(user_id)
        in_cart = {item.product_id for item in cart.items}
        added, skipped = [], []
        for line in order.items:
            product = db.session.get(Product, line.product_id)
            if product is None or not product.is_active:
                skipped.append({"product_id": line.product_id, "reason": "unavailable"})
                continue
            if product.stock_quantity <= 0:
                skipped.append({"product_id": line.product_id, "reason": "out_of_stock"})
                continue
            if product.id in in_cart:
                skipped.append({"product_id": line.product_id, "reason": "already_in_cart"})
                continue
            quantity = min(line.quantity, product.stock_quantity)
            cart.items.append(CartItem(product_id=product.id, quantity=quantity, is_selected=True))
            in_cart.add(product.id)
            added.append({"product_id": product.id, "quantity": quantity})
        db.session.flush()
        return {"added": added, "skipped": skipped}

    return run_in_transaction(_op)


def update_item(
    user_id: int,
    item_id: int,
    *,
    quantity: int | None = None,
    is_selected: bool | None = None,
) -> CartItem:
    if quantity is not None:
        quantity = _check_quantity(quantity)

    def _op():
        item = _get_item(user_id, item_id)
        if quantity is not None:
            _check_sellable(item.product, item.product_id, quantity)
            item.quantity = quantity
        if is_selected is not None:
            item.is_selected = bool(is_selected)
        return item

    return run_in_transaction(_op)


def select_all(user_id: int, selected: bool = True) -> Cart:
    def _op():
        cart = _get_or_create_cart(user_id)
        for item in cart.items:
            item.is_selected = bool(selected)
        return cart

    return run_in_transaction(_op)


def remove_item(user_id: int, item_id: int) -> None:
    def _op():
        item = _get_item(user_id, item_id)
        db.session.delete(item)

    run_in_transaction(_op)


def get_selected_items(user_id: int) -> list[CartItem]:
    return (
        db.session.query(CartItem)
        .join(Cart, Cart.id == CartItem.cart_id)
        .filter(Cart.user_id == user_id, CartItem.is_selected.is_(True))
        .order_by(CartItem.id)
        .all()
    )


def selected_subtotal(items: list[CartItem]) -> Decimal:
    return quantize_money(sum((item.product.price * item.quantity for item in items), ZERO))


def clear_selected(user_id: int, *, commit: bool = True) -> int:
    """Remove selected lines (used once checkout has turned them into an order)."""
    def _op():
        items = get_selected_items(user_id)
        for item in items:
            db.session.delete(item)
        return len(items)

    return run_in_transaction(_op, commit=commit)
