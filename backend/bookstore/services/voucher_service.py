# Overview: Service-layer operations for vouchers; validation, discount computation and usage ledger.

"""
Voucher Ledger

- Usage is recorded as VoucherUsage rows (voucher, user, order). Counts are
  always read from that table; vouchers carry no counter of their own.
- validate() never raises for business outcomes. It returns a
  VoucherValidation whose error names the first failed check, in order:
  existence, active flag, validity window, minimum order amount, global
  usage limit, per-user limit, non-zero discount.
- commit_usage() serializes on the voucher row, re-checks both limits and
  inserts the usage row. (voucher, order) is unique, so committing twice for
  one order fails instead of counting twice.
- Cancelling an order does not give the usage back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..enums import ApplyTo, DiscountType
from ..errors import AppError, ErrorCode
from ..extensions import db
from ..models import Voucher, VoucherUsage
from ..money import ZERO, quantize_money
from ..time_utils import as_utc_naive, utcnow
from ..validation import ValidationError
from .concurrency import lock_for_update, run_in_transaction


HUNDRED = Decimal("100")


@dataclass
class VoucherValidation:
    valid: bool
    discount_value: Decimal = ZERO
    apply_to: str | None = None
    voucher_id: int | None = None
    code: str | None = None
    error: ErrorCode | None = None
    details: dict = field(default_factory=dict)

    @property
    def message(self) -> str:
        if self.error is None:
            return "Voucher is valid"
        return self.error.message

    def raise_if_invalid(self) -> None:
        if not self.valid:
            raise AppError(self.error, details={"code": self.code, **self.details})

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "code": self.code,
            "voucher_id": self.voucher_id,
            "discount_value": str(quantize_money(self.discount_value)),
            "apply_to": self.apply_to,
            "error": self.error.name if self.error else None,
            "error_code": self.error.code if self.error else None,
            "message": self.message,
        }


def normalize_code(code) -> str:
    if code is None:
        return ""
    if not isinstance(code, str):
        raise ValidationError("voucher code must be a string")
    return code.strip().upper()


def used_count(voucher_id: int) -> int:
    return db.session.query(VoucherUsage).filter_by(voucher_id=voucher_id).count()


def user_usage_count(voucher_id: int, user_id: int) -> int:
    return db.session.query(VoucherUsage).filter_by(voucher_id=voucher_id, user_id=user_id).count()


def usage_counts(voucher_ids: list[int]) -> dict[int, int]:
    if not voucher_ids:
        return {}
    rows = (
        db.session.query(VoucherUsage.voucher_id, func.count(VoucherUsage.id))
        .filter(VoucherUsage.voucher_id.in_(voucher_ids))
        .group_by(VoucherUsage.voucher_id)
        .all()
    )
    counts = {voucher_id: 0 for voucher_id in voucher_ids}
    counts.update({voucher_id: int(count) for voucher_id, count in rows})
    return counts


def _has_user_limit(voucher: Voucher) -> bool:
    return voucher.per_user_limit is not None and voucher.per_user_limit > 0


def compute_discount(voucher: Voucher, order_total: Decimal, shipping_fee: Decimal) -> Decimal:
    """
    Discount granted by a voucher.

    The base is the order total for ORDER vouchers and the shipping fee for
    SHIPPING vouchers. FIXED: discount_amount capped at the base. PERCENT:
    base * discount_amount / 100 (half-up, 2 places), capped by max_discount
    when set, then by the base.
    """
    base = Decimal(order_total) if voucher.apply_to == ApplyTo.ORDER.value else Decimal(shipping_fee)
    if base <= 0:
        return ZERO

    if voucher.discount_type == DiscountType.FIXED.value:
        discount = Decimal(voucher.discount_amount)
    else:
        discount = quantize_money(base * Decimal(voucher.discount_amount) / HUNDRED)
        if voucher.max_discount is not None and discount > voucher.max_discount:
            discount = Decimal(voucher.max_discount)

    return quantize_money(min(discount, base))


def validate(
    code: str,
    order_total,
    shipping_fee=ZERO,
    user_id: int | None = None,
    now: datetime | None = None,
) -> VoucherValidation:
    normalized = normalize_code(code)
    order_total = Decimal(order_total)
    shipping_fee = Decimal(shipping_fee or 0)
    now = as_utc_naive(now) or utcnow()

    voucher = db.session.query(Voucher).filter_by(code=normalized).first()
    if voucher is None:
        return VoucherValidation(valid=False, code=normalized, error=ErrorCode.VOUCHER_NOT_FOUND)

    def _fail(error: ErrorCode, **details) -> VoucherValidation:
        current_app.logger.info(f"Voucher {normalized} rejected: {error.name}")
        return VoucherValidation(
            valid=False,
            voucher_id=voucher.id,
            code=normalized,
            apply_to=voucher.apply_to,
            error=error,
            details=details,
        )

    if not voucher.is_active:
        return _fail(ErrorCode.VOUCHER_INACTIVE)
    if now < as_utc_naive(voucher.valid_from):
        return _fail(ErrorCode.VOUCHER_NOT_YET_VALID)
    if now > as_utc_naive(voucher.valid_to):
        return _fail(ErrorCode.VOUCHER_EXPIRED)
    if order_total < voucher.min_order_amount:
        return _fail(
            ErrorCode.ORDER_BELOW_MIN_AMOUNT,
            min_order_amount=str(voucher.min_order_amount),
            order_total=str(order_total),
        )
    if used_count(voucher.id) >= voucher.usage_limit:
        return _fail(ErrorCode.VOUCHER_USAGE_LIMIT_REACHED)
    if user_id is not None and _has_user_limit(voucher):
        if user_usage_count(voucher.id, user_id) >= voucher.per_user_limit:
            return _fail(ErrorCode.VOUCHER_USER_LIMIT_EXCEEDED)

    discount = compute_discount(voucher, order_total, shipping_fee)
    if discount <= 0:
        return _fail(ErrorCode.VOUCHER_NOT_APPLICABLE)

    return VoucherValidation(
        valid=True,
        discount_value=discount,
        apply_to=voucher.apply_to,
        voucher_id=voucher.id,
        code=normalized,
    )


def commit_usage(
    *,
    voucher_id: int,
    user_id: int,
    order_id: int,
    discount_amount: Decimal | None = None,
    commit: bool = True,
) -> VoucherUsage:
    """
    Record that order_id consumed the voucher.

    Raises VOUCHER_NOT_FOUND, VOUCHER_ALREADY_USED_FOR_ORDER,
    VOUCHER_USAGE_LIMIT_REACHED or VOUCHER_USER_LIMIT_EXCEEDED.
    """
    def _op():
        voucher = lock_for_update(db.session.query(Voucher).filter_by(id=voucher_id)).first()
        if voucher is None:
            raise AppError(ErrorCode.VOUCHER_NOT_FOUND, details={"voucher_id": voucher_id})

        already = db.session.query(VoucherUsage).filter_by(voucher_id=voucher_id, order_id=order_id).first()
        if already is not None:
            raise AppError(
                ErrorCode.VOUCHER_ALREADY_USED_FOR_ORDER,
                details={"voucher_id": voucher_id, "order_id": order_id},
            )

        if used_count(voucher_id) >= voucher.usage_limit:
            raise AppError(ErrorCode.VOUCHER_USAGE_LIMIT_REACHED, details={"code": voucher.code})
        if _has_user_limit(voucher) and user_usage_count(voucher_id, user_id) >= voucher.per_user_limit:
            raise AppError(ErrorCode.VOUCHER_USER_LIMIT_EXCEEDED, details={"code": voucher.code})

        usage = VoucherUsage(
            voucher_id=voucher_id,
            user_id=user_id,
            order_id=order_id,
            discount_amount=discount_amount,
            used_at=utcnow(),
        )
        try:
            with db.session.begin_nested():
                db.session.add(usage)
        except IntegrityError as exc:
            raise AppError(
                ErrorCode.VOUCHER_ALREADY_USED_FOR_ORDER,
                details={"voucher_id": voucher_id, "order_id": order_id},
            ) from exc

        current_app.logger.info(f"Voucher {voucher.code} used by user {user_id} on order {order_id}")
        return usage

    return run_in_transaction(_op, commit=commit)


# CRUD

def _check_voucher_rules(values: dict) -> dict:
    """Normalize enums and enforce cross-field rules on a full set of voucher values."""
    discount_type = DiscountType.parse(values.get("discount_type"))
    if discount_type is None:
        raise AppError(ErrorCode.INVALID_DISCOUNT_TYPE, details={"discount_type": values.get("discount_type")})
    values["discount_type"] = discount_type.value

    apply_to = ApplyTo.parse(values.get("apply_to") or ApplyTo.ORDER.value)
    if apply_to is None:
        raise AppError(ErrorCode.INVALID_APPLY_TO, details={"apply_to": values.get("apply_to")})
    values["apply_to"] = apply_to.value

    valid_from = as_utc_naive(values.get("valid_from"))
    valid_to = as_utc_naive(values.get("valid_to"))
    if valid_from is not None and valid_to is not None and valid_to < valid_from:
        raise AppError(ErrorCode.INVALID_VOUCHER_DATE_RANGE)

    if discount_type == DiscountType.PERCENT and Decimal(values["discount_amount"]) > HUNDRED:
        raise AppError(ErrorCode.INVALID_DISCOUNT_PERCENT, details={"discount_amount": str(values["discount_amount"])})
    if discount_type == DiscountType.FIXED and values.get("max_discount") is not None:
        raise AppError(ErrorCode.MAX_DISCOUNT_NOT_ALLOWED_FOR_FIXED)

    return values


def _ensure_code_available(code: str, exclude_id: int | None = None) -> None:
    q = db.session.query(Voucher).filter_by(code=code)
    if exclude_id is not None:
        q = q.filter(Voucher.id != exclude_id)
    if q.first() is not None:
        raise AppError(ErrorCode.VOUCHER_CODE_EXISTS, details={"code": code})


def create_voucher(patch: dict) -> Voucher:
    """patch is a validated payload (see routes.vouchers.VOUCHER_POLICY)."""
    values = dict(patch)
    values["code"] = normalize_code(values["code"])
    values.setdefault("min_order_amount", ZERO)
    values.setdefault("usage_limit", 1)
    values.setdefault("per_user_limit", 1)
    values.setdefault("is_active", True)
    _check_voucher_rules(values)

    def _op():
        _ensure_code_available(values["code"])
        voucher = Voucher(**values)
        db.session.add(voucher)
        db.session.flush()
        current_app.logger.info(f"Created voucher {voucher.code} (id={voucher.id})")
        return voucher

    return run_in_transaction(_op)


def get_voucher(voucher_id: int) -> Voucher:
    voucher = db.session.get(Voucher, voucher_id)
    if voucher is None:
        raise AppError(ErrorCode.VOUCHER_NOT_FOUND, details={"voucher_id": voucher_id})
    return voucher


def get_voucher_by_code(code: str) -> Voucher:
    voucher = db.session.query(Voucher).filter_by(code=normalize_code(code)).first()
    if voucher is None:
        raise AppError(ErrorCode.VOUCHER_NOT_FOUND, details={"code": code})
    return voucher


def update_voucher(voucher_id: int, patch: dict) -> Voucher:
    def _op():
        voucher = get_voucher(voucher_id)
        values = {
            "discount_type": voucher.discount_type,
            "discount_amount": voucher.discount_amount,
            "apply_to": voucher.apply_to,
            "max_discount": voucher.max_discount,
            "valid_from": voucher.valid_from,
            "valid_to": voucher.valid_to,
        }
        values.update(patch)
        if "code" in patch:
            values["code"] = normalize_code(patch["code"])
            _ensure_code_available(values["code"], exclude_id=voucher.id)
        _check_voucher_rules(values)

        for key in patch:
            setattr(voucher, key, values[key])
        return voucher

    return run_in_transaction(_op)


def deactivate_voucher(voucher_id: int) -> Voucher:
    def _op():
        voucher = get_voucher(voucher_id)
        voucher.is_active = False
        return voucher

    return run_in_transaction(_op)


def delete_voucher(voucher_id: int) -> bool:
    """
    Delete an unused voucher. A voucher with usage rows is deactivated
    instead, so the usage ledger keeps its references. Returns True when the
    row was physically deleted.
    """
    def _op():
        voucher = get_voucher(voucher_id)
        if used_count(voucher_id) > 0:
            voucher.is_active = False
            return False
        db.session.delete(voucher)
        return True

    return run_in_transaction(_op)


def list_vouchers(*, active: bool | None = None, apply_to=None) -> list[Voucher]:
    q = db.session.query(Voucher)
    if active is not None:
        q = q.filter(Voucher.is_active == active)
    if apply_to is not None:
        parsed = ApplyTo.parse(apply_to)
        if parsed is None:
            raise AppError(ErrorCode.INVALID_APPLY_TO, details={"apply_to": apply_to})
        q = q.filter(Voucher.apply_to == parsed.value)
    return q.order_by(Voucher.created_at.desc(), Voucher.id.desc()).all()


def list_available_vouchers(*, user_id: int | None = None, now: datetime | None = None) -> list[Voucher]:
    """Active vouchers inside their validity window with uses remaining (for this user, if given)."""
    now = now or utcnow()
    candidates = (
        db.session.query(Voucher)
        .filter(Voucher.is_active.is_(True), Voucher.valid_from <= now, Voucher.valid_to >= now)
        .order_by(Voucher.valid_to.asc(), Voucher.id.asc())
        .all()
    )
    counts = usage_counts([v.id for v in candidates])
    available = []
    for voucher in candidates:
        if counts[voucher.id] >= voucher.usage_limit:
            continue
        if user_id is not None and _has_user_limit(voucher):
            if user_usage_count(voucher.id, user_id) >= voucher.per_user_limit:
                continue
        available.append(voucher)
    return available
