# Overview: Input validation for catalog and voucher payloads; column-driven coercion plus domain rules.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Callable

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String, Text

from bookstore.time_utils import as_utc_naive, parse_iso_datetime


# Numeric(12, 2) ceiling
MAX_MONEY = Decimal("9999999999.99")

TRUE_STRINGS = ("true", "1")
FALSE_STRINGS = ("false", "0")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level conflict that has no dedicated error code."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Which columns a client may write, and which must be present on create.
    Anything outside writable_fields is rejected, never silently dropped.
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self):
        object.__setattr__(self, "writable_fields", frozenset(self.writable_fields))
        object.__setattr__(self, "required_on_create", frozenset(self.required_on_create or ()))


def parse_decimal(value: Any, field: str) -> Decimal:
    """Strict decimal parsing for money-like inputs (rejects bools, NaN, infinity)."""
    if isinstance(value, bool) or not isinstance(value, (Decimal, int, float, str)):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, str) and not value.strip():
        raise ValidationError(f"{field} must be a number")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return result


def parse_int(value: Any, field: str) -> int:
    """Whole numbers only: no bools, floats, decimals or exponents."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("+-").isdigit():
        return int(value.strip())
    raise ValidationError(f"{field} must be an integer")


def _to_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_STRINGS:
            return True
        if lowered in FALSE_STRINGS:
            return False
    raise ValidationError(f"{key} must be a boolean")


def _to_datetime(value: Any, key: str) -> datetime:
    if isinstance(value, datetime):
        return as_utc_naive(value)
    if isinstance(value, str):
        try:
            parsed = parse_iso_datetime(value)
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed
    raise ValidationError(f"{key} must be an ISO-8601 datetime")


def _to_money(column) -> Callable[[Any, str], Decimal]:
    scale = column.type.scale if column.type.scale is not None else 2
    exponent = Decimal(1).scaleb(-scale)

    def convert(value, key):
        return parse_decimal(value, key).quantize(exponent, rounding=ROUND_HALF_UP)

    return convert


def _to_text(value: Any, key: str) -> str:
    return str(value).strip()


def _converter_for(column) -> Callable[[Any, str], Any]:
    coltype = column.type
    if isinstance(coltype, Integer):
        return parse_int
    if isinstance(coltype, Numeric):
        return _to_money(column)
    if isinstance(coltype, Boolean):
        return _to_bool
    if isinstance(coltype, DateTime):
        return _to_datetime
    if isinstance(coltype, (String, Text)):
        return _to_text
    return lambda value, key: value


def validate_payload(*, model, payload, policy: ModelValidationPolicy, partial: bool) -> dict:
    """
    Check a JSON body against the policy and the model's columns and return
    a patch dict of coerced values.

    partial=False enforces required_on_create (POST); partial=True only
    validates the keys that were sent (PUT/PATCH).
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(policy.required_on_create.difference(payload))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    unknown = sorted(k for k in payload if k not in policy.writable_fields or k not in columns)
    if unknown:
        raise ValidationError(f"Field not allowed: {unknown[0]}")

    patch: dict = {}
    for key, raw in payload.items():
        column = columns[key]
        if raw is None:
            if not column.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
            continue

        value = _converter_for(column)(raw, key)
        if isinstance(value, str):
            if value == "" and not column.nullable:
                raise ValidationError(f"{key} cannot be blank")
            max_length = getattr(column.type, "length", None)
            if max_length and len(value) > max_length:
                raise ValidationError(f"{key} exceeds max length {max_length}")
        patch[key] = value

    return patch


def enforce_rules_product(patch: dict) -> None:
    """Price bounds; stock never changes through the catalog."""
    price = patch.get("price")
    if price is not None and not (0 <= price <= MAX_MONEY):
        raise ValidationError(f"price must be between 0 and {MAX_MONEY}")
    if "stock_quantity" in patch:
        raise ValidationError("stock_quantity can only change through inventory transactions")


def enforce_rules_voucher(patch: dict) -> None:
    for key in ("discount_amount", "min_order_amount", "max_discount"):
        value = patch.get(key)
        if value is not None and value < 0:
            raise ValidationError(f"{key} must be >= 0")
    if patch.get("discount_amount") == 0:
        raise ValidationError("discount_amount must be > 0")
    if "usage_limit" in patch and (patch["usage_limit"] is None or patch["usage_limit"] < 1):
        raise ValidationError("usage_limit must be >= 1")
    # per_user_limit: None or 0 means unlimited
    if patch.get("per_user_limit") is not None and patch["per_user_limit"] < 0:
        raise ValidationError("per_user_limit must be >= 0")
