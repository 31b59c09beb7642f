# Overview: Closed value sets stored as strings in the database.

from __future__ import annotations

from enum import Enum


class StrEnum(str, Enum):
    """Enum whose members compare equal to their stored string value."""

    def __str__(self) -> str:
        return self.value

    @classmethod
    def values(cls) -> list[str]:
        return [member.value for member in cls]

    @classmethod
    def parse(cls, value):
        """Return the member for value, or None when value is not a member."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        raw = value.strip()
        for candidate in (raw, raw.lower(), raw.upper()):
            try:
                return cls(candidate)
            except ValueError:
                continue
        return None


class UserRole(StrEnum):
    CUSTOMER = "customer"
    MANAGER = "manager"
    ADMIN = "admin"


STAFF_ROLES = (UserRole.MANAGER, UserRole.ADMIN)


class MembershipLevel(StrEnum):
    BASIC = "basic"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"


# Inventory ledger

class TransactionType(StrEnum):
    IN = "IN"
    OUT = "OUT"
    DAMAGED = "DAMAGED"
    STOCKTAKE = "STOCKTAKE"


class ReferenceType(StrEnum):
    ORDER = "ORDER"
    MANUAL = "MANUAL"
    STOCKTAKE = "STOCKTAKE"


class ChangeType(StrEnum):
    PLUS = "PLUS"
    MINUS = "MINUS"


# Orders

class PaymentStatus(StrEnum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class FulfillmentStatus(StrEnum):
    SHIPPING = "shipping"
    PICKUP = "pickup"
    DELIVERED = "delivered"
    RETURNED = "returned"


class OrderStatus(StrEnum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    CLOSED = "closed"


class PaymentMethod(StrEnum):
    COD = "cod"
    PREPAID = "prepaid"


class FulfillmentMethod(StrEnum):
    DELIVERY = "delivery"
    PICKUP = "pickup"


# Vouchers

class DiscountType(StrEnum):
    PERCENT = "PERCENT"
    FIXED = "FIXED"


class ApplyTo(StrEnum):
    ORDER = "ORDER"
    SHIPPING = "SHIPPING"


class NotificationType(StrEnum):
    ORDER = "ORDER"
    PAYMENT = "PAYMENT"
    REVIEW = "REVIEW"
    COMMENT = "COMMENT"
    MEMBERSHIP = "MEMBERSHIP"
    SYSTEM = "SYSTEM"


class PriceTrend(StrEnum):
    INCREASED = "INCREASED"
    DECREASED = "DECREASED"
    UNCHANGED = "UNCHANGED"
    NO_HISTORY = "NO_HISTORY"
