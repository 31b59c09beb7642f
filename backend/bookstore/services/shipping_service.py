# Overview: Service-layer operations for shipping; distance-based fee formula and route lookups.

"""
Fee formula (all values from config):

    distance <= SHIPPING_BASE_DISTANCE_KM  -> SHIPPING_BASE_FEE
    otherwise                              -> base fee + extra km * SHIPPING_PER_KM_FEE
    free when SHIPPING_FREE_THRESHOLD > 0 and subtotal >= threshold

Distances come from the caller, or from a RouteProvider (geocode the
receiver address, then route from SHIPPING_ORIGIN). Provider failures
surface as GEOCODING_FAILED / ROUTE_CALCULATION_FAILED.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from flask import current_app

from ..errors import AppError, ErrorCode
from ..money import ZERO, quantize_money, to_money_str
from ..validation import ValidationError, parse_decimal


class RouteProviderError(Exception):
    """Raised by a RouteProvider when a lookup fails."""


class RouteProvider:
    """Maps collaborator. Concrete providers are wired in through the ROUTE_PROVIDER config key."""

    def geocode(self, address: str) -> tuple[float, float]:
        raise NotImplementedError

    def route(self, origin: tuple[float, float], destination: tuple[float, float]) -> tuple[float, int | None]:
        """Returns (distance_km, duration_minutes)."""
        raise NotImplementedError


@dataclass
class ShippingQuote:
    base_fee: Decimal
    distance_fee: Decimal
    total_fee: Decimal
    distance_km: Decimal
    is_free_shipping: bool
    free_shipping_threshold: Decimal
    duration_minutes: int | None = None
    destination: tuple[float, float] | None = None

    def to_dict(self) -> dict:
        return {
            "base_fee": to_money_str(self.base_fee),
            "distance_fee": to_money_str(self.distance_fee),
            "total_fee": to_money_str(self.total_fee),
            "distance_km": str(self.distance_km),
            "is_free_shipping": self.is_free_shipping,
            "free_shipping_threshold": to_money_str(self.free_shipping_threshold),
            "estimated_duration_minutes": self.duration_minutes,
            "destination": list(self.destination) if self.destination else None,
        }


def _config_decimal(key: str) -> Decimal:
    return Decimal(current_app.config[key])


def distance_fee(distance_km: Decimal) -> Decimal:
    """Fee before any free-shipping rule."""
    base_fee = _config_decimal("SHIPPING_BASE_FEE")
    base_distance = _config_decimal("SHIPPING_BASE_DISTANCE_KM")
    if distance_km <= base_distance:
        return quantize_money(base_fee)
    extra = distance_km - base_distance
    return quantize_money(base_fee + extra * _config_decimal("SHIPPING_PER_KM_FEE"))


def is_free_shipping(subtotal: Decimal) -> bool:
    threshold = _config_decimal("SHIPPING_FREE_THRESHOLD")
    return threshold > 0 and subtotal >= threshold


def calculate_fee(distance_km, subtotal) -> Decimal:
    distance_km = parse_decimal(distance_km, "distance_km")
    subtotal = parse_decimal(subtotal, "subtotal")
    if distance_km < 0:
        raise ValidationError("distance_km must be >= 0")
    if is_free_shipping(subtotal):
        return ZERO
    return distance_fee(distance_km)


def parse_origin(raw: str) -> tuple[float, float]:
    lat, lng = (part.strip() for part in raw.split(","))
    return float(lat), float(lng)


def _resolve_distance(address: str | None, provider: RouteProvider | None) -> tuple[Decimal, int | None, tuple]:
    provider = provider or current_app.config.get("ROUTE_PROVIDER")
    if not address:
        raise ValidationError("distance_km or address is required")
    if provider is None:
        raise AppError(ErrorCode.GEOCODING_FAILED, message="No route provider configured")

    try:
        destination = provider.geocode(address)
    except RouteProviderError as exc:
        current_app.logger.warning(f"Geocoding failed for {address!r}: {exc}")
        raise AppError(ErrorCode.GEOCODING_FAILED, details={"address": address}) from exc

    origin = parse_origin(current_app.config["SHIPPING_ORIGIN"])
    try:
        distance_km, duration = provider.route(origin, destination)
    except RouteProviderError as exc:
        current_app.logger.warning(f"Route calculation failed to {destination}: {exc}")
        raise AppError(ErrorCode.ROUTE_CALCULATION_FAILED, details={"address": address}) from exc

    return Decimal(str(distance_km)), duration, destination


def quote(
    subtotal,
    *,
    distance_km=None,
    address: str | None = None,
    provider: RouteProvider | None = None,
) -> ShippingQuote:
    """Full fee breakdown for a delivery."""
    subtotal = parse_decimal(subtotal, "subtotal")
    duration = None
    destination = None
    if distance_km is None:
        distance_km, duration, destination = _resolve_distance(address, provider)
    else:
        distance_km = parse_decimal(distance_km, "distance_km")
        if distance_km < 0:
            raise ValidationError("distance_km must be >= 0")

    base_fee = quantize_money(_config_decimal("SHIPPING_BASE_FEE"))
    fee = distance_fee(distance_km)
    free = is_free_shipping(subtotal)

    current_app.logger.info(f"Shipping quote: distance={distance_km}km subtotal={subtotal} fee={fee} free={free}")
    return ShippingQuote(
        base_fee=base_fee,
        distance_fee=fee - base_fee,
        total_fee=ZERO if free else fee,
        distance_km=distance_km,
        is_free_shipping=free,
        free_shipping_threshold=quantize_money(_config_decimal("SHIPPING_FREE_THRESHOLD")),
        duration_minutes=duration,
        destination=destination,
    )
