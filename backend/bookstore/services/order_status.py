# Overview: Transition tables for the three independent order status axes.

"""
Each axis has its own exhaustive table: every state maps to the set of states
it may move to. Anything not listed (including staying in the same state) is
rejected with INVALID_STATUS_TRANSITION.

    payment:     pending  -> paid, failed
                 failed   -> pending
                 paid     -> refunded   (only while the order is not closed)
                 refunded -> (terminal)

    fulfillment: shipping  -> delivered, returned
                 pickup    -> delivered, returned
                 delivered -> returned
                 returned  -> (terminal)

    order:       confirmed -> cancelled, closed
                 cancelled -> (terminal)
                 closed    -> (terminal)

Rules that involve more than one axis (close needs paid + delivered, cancel
needs not-paid, nothing moves once the order is terminal) live in
order_service.
"""

from __future__ import annotations

from enum import Enum

from ..enums import FulfillmentStatus, OrderStatus, PaymentStatus
from ..errors import AppError, ErrorCode


class StatusAxis(str, Enum):
    PAYMENT = "payment"
    FULFILLMENT = "fulfillment"
    ORDER = "order"


PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PAID, PaymentStatus.FAILED}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.PENDING}),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.REFUNDED: frozenset(),
}

FULFILLMENT_TRANSITIONS: dict[FulfillmentStatus, frozenset[FulfillmentStatus]] = {
    FulfillmentStatus.SHIPPING: frozenset({FulfillmentStatus.DELIVERED, FulfillmentStatus.RETURNED}),
    FulfillmentStatus.PICKUP: frozenset({FulfillmentStatus.DELIVERED, FulfillmentStatus.RETURNED}),
    FulfillmentStatus.DELIVERED: frozenset({FulfillmentStatus.RETURNED}),
    FulfillmentStatus.RETURNED: frozenset(),
}

ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.CONFIRMED: frozenset({OrderStatus.CANCELLED, OrderStatus.CLOSED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.CLOSED: frozenset(),
}

_TABLES = {
    StatusAxis.PAYMENT: (PaymentStatus, PAYMENT_TRANSITIONS),
    StatusAxis.FULFILLMENT: (FulfillmentStatus, FULFILLMENT_TRANSITIONS),
    StatusAxis.ORDER: (OrderStatus, ORDER_TRANSITIONS),
}


def parse_status(axis: StatusAxis, value):
    """Parse a raw status string for an axis; unknown values are a transition error."""
    enum_cls, _ = _TABLES[axis]
    parsed = enum_cls.parse(value)
    if parsed is None:
        raise AppError(
            ErrorCode.INVALID_STATUS_TRANSITION,
            message=f"Unknown {axis.value} status: {value}",
            details={"axis": axis.value, "to": value, "allowed": enum_cls.values()},
        )
    return parsed


def allowed_transitions(axis: StatusAxis, current) -> frozenset:
    enum_cls, table = _TABLES[axis]
    return table[enum_cls(current)]


def can_transition(axis: StatusAxis, current, target) -> bool:
    enum_cls, table = _TABLES[axis]
    return enum_cls(target) in table[enum_cls(current)]


def validate_transition(axis: StatusAxis, current, target) -> None:
    """Raise INVALID_STATUS_TRANSITION(from, to) unless the table allows current -> target."""
    enum_cls, table = _TABLES[axis]
    source = enum_cls(current)
    destination = parse_status(axis, target)
    if destination not in table[source]:
        raise AppError(
            ErrorCode.INVALID_STATUS_TRANSITION,
            message=f"Cannot change {axis.value} status from {source.value} to {destination.value}",
            details={"axis": axis.value, "from": source.value, "to": destination.value},
        )
