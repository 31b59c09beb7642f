# Overview: Service-layer operations for the product price audit log.

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..enums import PriceTrend
from ..errors import AppError, ErrorCode
from ..extensions import db
from ..models import PriceHistory, Product
from ..money import quantize_money
from ..time_utils import utcnow

HUNDRED = Decimal("100")


def compute_change_percentage(old_price: Decimal, new_price: Decimal) -> Decimal | None:
    """
    ((new - old) / old) * 100, rounded half-up to 2 places.

    None when old is zero (the change is not expressible as a percentage).
    """
    old_price = Decimal(old_price)
    new_price = Decimal(new_price)
    if old_price == 0:
        return None
    return quantize_money((new_price - old_price) / old_price * HUNDRED)


def record_price_change(
    *,
    product_id: int,
    old_price: Decimal,
    new_price: Decimal,
    changed_by_user_id: int | None = None,
    reason: str | None = None,
) -> PriceHistory | None:
    """
    Append a history row inside the caller's transaction. Returns None (and
    writes nothing) when the price did not actually change.
    """
    old_price = quantize_money(old_price)
    new_price = quantize_money(new_price)
    if old_price == new_price:
        return None

    entry = PriceHistory(
        product_id=product_id,
        old_price=old_price,
        new_price=new_price,
        change_percentage=compute_change_percentage(old_price, new_price),
        changed_by_user_id=changed_by_user_id,
        reason=reason,
        changed_at=utcnow(),
    )
    db.session.add(entry)
    current_app.logger.info(f"Price of product {product_id} changed {old_price} -> {new_price}")
    return entry


def _require_product(product_id: int) -> None:
    if db.session.get(Product, product_id) is None:
        raise AppError(ErrorCode.PRODUCT_NOT_FOUND, details={"product_id": product_id})


def get_price_history(product_id: int, *, limit: int | None = None) -> list[PriceHistory]:
    """Newest first."""
    _require_product(product_id)
    q = (
        db.session.query(PriceHistory)
        .filter_by(product_id=product_id)
        .order_by(PriceHistory.changed_at.desc(), PriceHistory.id.desc())
    )
    if limit is not None:
        q = q.limit(limit)
    return q.all()


def get_price_trend(product_id: int) -> PriceTrend:
    """Direction of the most recent price change."""
    history = get_price_history(product_id, limit=1)
    if not history:
        return PriceTrend.NO_HISTORY
    latest = history[0]
    if latest.new_price > latest.old_price:
        return PriceTrend.INCREASED
    if latest.new_price < latest.old_price:
        return PriceTrend.DECREASED
    return PriceTrend.UNCHANGED
