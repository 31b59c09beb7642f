# Overview: Service-layer operations for reporting; read-only aggregates over orders, vouchers and products.

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import func

from ..enums import OrderStatus, PaymentStatus
from ..errors import AppError, ErrorCode
from ..extensions import db
from ..models import Order, OrderItem, Voucher, VoucherUsage
from ..money import ZERO, to_money_str
from ..time_utils import parse_iso_datetime, to_utc_z

GROUP_BY_FORMATS = {
    "day": ("%Y-%m-%d", "YYYY-MM-DD"),
    "month": ("%Y-%m", "YYYY-MM"),
}


def _parse_range(start, end) -> tuple[datetime | None, datetime | None]:
    try:
        start_dt = start if isinstance(start, datetime) else parse_iso_datetime(start)
        end_dt = end if isinstance(end, datetime) else parse_iso_datetime(end)
    except ValueError as exc:
        raise AppError(ErrorCode.VALIDATION_ERROR, message="start/end must be ISO-8601 datetimes") from exc
    if start_dt and end_dt and end_dt < start_dt:
        raise AppError(ErrorCode.VALIDATION_ERROR, message="end must not be before start")
    return start_dt, end_dt


def _period_expr(column, group_by: str):
    if group_by not in GROUP_BY_FORMATS:
        raise AppError(
            ErrorCode.VALIDATION_ERROR,
            message="group_by must be day or month",
            details={"group_by": group_by},
        )
    sqlite_format, pg_format = GROUP_BY_FORMATS[group_by]
    if db.engine.dialect.name == "postgresql":
        return func.to_char(column, pg_format)
    return func.strftime(sqlite_format, column)


def _apply_range(query, column, start_dt, end_dt):
    if start_dt:
        query = query.filter(column >= start_dt)
    if end_dt:
        query = query.filter(column <= end_dt)
    return query


def revenue_report(*, start=None, end=None, group_by: str = "day") -> dict:
    """Revenue from paid, non-cancelled orders, bucketed by payment date."""
    start_dt, end_dt = _parse_range(start, end)
    period = _period_expr(Order.paid_at, group_by)

    query = db.session.query(
        period.label("period"),
        func.count(Order.id).label("order_count"),
        func.coalesce(func.sum(Order.subtotal), 0).label("subtotal"),
        func.coalesce(func.sum(Order.discount_amount), 0).label("discount"),
        func.coalesce(func.sum(Order.shipping_fee), 0).label("shipping"),
        func.coalesce(func.sum(Order.total_amount), 0).label("revenue"),
    ).filter(
        Order.payment_status == PaymentStatus.PAID.value,
        Order.order_status != OrderStatus.CANCELLED.value,
    )
    query = _apply_range(query, Order.paid_at, start_dt, end_dt)
    rows = query.group_by("period").order_by("period").all()

    total = sum((Decimal(str(row.revenue)) for row in rows), ZERO)
    return {
        "group_by": group_by,
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "total_revenue": to_money_str(total),
        "order_count": sum(int(row.order_count) for row in rows),
        "rows": [
            {
                "period": row.period,
                "order_count": int(row.order_count),
                "subtotal": to_money_str(row.subtotal),
                "discount": to_money_str(row.discount),
                "shipping": to_money_str(row.shipping),
                "revenue": to_money_str(row.revenue),
            }
            for row in rows
        ],
    }


def order_statistics(*, start=None, end=None) -> dict:
    """Order counts per state on each status axis, by creation date."""
    start_dt, end_dt = _parse_range(start, end)

    def _counts(column) -> dict[str, int]:
        query = db.session.query(column, func.count(Order.id))
        query = _apply_range(query, Order.created_at, start_dt, end_dt)
        return {value: int(count) for value, count in query.group_by(column).all()}

    total = _apply_range(db.session.query(func.count(Order.id)), Order.created_at, start_dt, end_dt).scalar()
    return {
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "total_orders": int(total or 0),
        "payment_status": _counts(Order.payment_status),
        "fulfillment_status": _counts(Order.fulfillment_status),
        "order_status": _counts(Order.order_status),
    }


def voucher_report() -> list[dict]:
    """Per voucher: uses, limit and total discount granted."""
    rows = (
        db.session.query(
            Voucher,
            func.count(VoucherUsage.id).label("used"),
            func.coalesce(func.sum(VoucherUsage.discount_amount), 0).label("discount_total"),
        )
        .outerjoin(VoucherUsage, VoucherUsage.voucher_id == Voucher.id)
        .group_by(Voucher.id)
        .order_by(Voucher.code.asc())
        .all()
    )
    return [
        {
            "voucher_id": voucher.id,
            "code": voucher.code,
            "discount_type": voucher.discount_type,
            "apply_to": voucher.apply_to,
            "is_active": voucher.is_active,
            "used_count": int(used),
            "usage_limit": voucher.usage_limit,
            "remaining": max(voucher.usage_limit - int(used), 0),
            "total_discount": to_money_str(discount_total),
        }
        for voucher, used, discount_total in rows
    ]


def top_products(*, limit: int = 10, start=None, end=None) -> list[dict]:
    """Best sellers by quantity over non-cancelled orders."""
    start_dt, end_dt = _parse_range(start, end)
    query = (
        db.session.query(
            OrderItem.product_id,
            func.max(OrderItem.product_name).label("product_name"),
            func.max(OrderItem.sku).label("sku"),
            func.sum(OrderItem.quantity).label("quantity"),
            func.sum(OrderItem.line_total).label("revenue"),
        )
        .join(Order, Order.id == OrderItem.order_id)
        .filter(Order.order_status != OrderStatus.CANCELLED.value)
    )
    query = _apply_range(query, Order.created_at, start_dt, end_dt)
    rows = (
        query.group_by(OrderItem.product_id)
        .order_by(func.sum(OrderItem.quantity).desc(), OrderItem.product_id.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "product_id": row.product_id,
            "product_name": row.product_name,
            "sku": row.sku,
            "quantity_sold": int(row.quantity or 0),
            "revenue": to_money_str(row.revenue or ZERO),
        }
        for row in rows
    ]
