# Overview: Membership levels derived from a customer's lifetime spend.

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..enums import MembershipLevel, NotificationType
from ..models import User
from ..money import ZERO, quantize_money, to_money_str
from . import notification_service


# Highest first; BASIC needs nothing
_THRESHOLD_KEYS = (
    (MembershipLevel.PLATINUM, "MEMBERSHIP_PLATINUM_THRESHOLD"),
    (MembershipLevel.GOLD, "MEMBERSHIP_GOLD_THRESHOLD"),
    (MembershipLevel.SILVER, "MEMBERSHIP_SILVER_THRESHOLD"),
)

_RANK = {level: rank for rank, level in enumerate(MembershipLevel)}


def thresholds() -> dict[str, Decimal]:
    config = current_app.config
    levels = {MembershipLevel.BASIC.value: ZERO}
    for level, key in reversed(_THRESHOLD_KEYS):
        levels[level.value] = Decimal(config[key])
    return levels


def progress(user: User) -> dict:
    """Current level plus how much more spend the next level needs (None at the top)."""
    current = MembershipLevel.parse(user.membership_level) or MembershipLevel.BASIC
    total = Decimal(user.total_purchase or 0)
    levels = thresholds()

    next_level = None
    remaining = None
    for level in MembershipLevel:
        if _RANK[level] > _RANK[current]:
            next_level = level.value
            remaining = quantize_money(max(levels[level.value] - total, ZERO))
            break
    return {
        "membership_level": current.value,
        "total_purchase": to_money_str(total),
        "next_level": next_level,
        "remaining_to_next": to_money_str(remaining) if remaining is not None else None,
        "thresholds": {name: to_money_str(amount) for name, amount in levels.items()},
    }


def level_for(total_purchase) -> MembershipLevel:
    total = Decimal(total_purchase or 0)
    for level, key in _THRESHOLD_KEYS:
        if total >= Decimal(current_app.config[key]):
            return level
    return MembershipLevel.BASIC


def refresh_level(user: User) -> bool:
    """
    Raise user.membership_level to what total_purchase now earns.

    Levels are never lowered (a refund keeps the level). Joins the caller's
    transaction; returns True when the level went up.
    """
    current = MembershipLevel.parse(user.membership_level) or MembershipLevel.BASIC
    earned = level_for(user.total_purchase)
    if _RANK[earned] <= _RANK[current]:
        return False

    user.membership_level = earned.value
    notification_service.notify(
        user_id=user.id,
        title="Membership upgraded",
        message=f"Congratulations, you are now a {earned.value} member.",
        notification_type=NotificationType.MEMBERSHIP,
        commit=False,
    )
    current_app.logger.info(f"User {user.id} membership {current.value} -> {earned.value}")
    return True
