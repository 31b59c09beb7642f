"""Shipping fee formula and route-backed quotes."""

from decimal import Decimal

import pytest

from bookstore.errors import AppError, ErrorCode
from bookstore.services import shipping_service
from bookstore.validation import ValidationError

from conftest import StaticRouteProvider


@pytest.mark.parametrize(
    "distance,expected",
    [
        ("0", Decimal("15000.00")),
        ("5", Decimal("15000.00")),
        ("6", Decimal("18000.00")),
        ("12.5", Decimal("37500.00")),
    ],
)
def test_fee_formula(db_session, distance, expected):
    assert shipping_service.calculate_fee(distance, "100000") == expected


def test_negative_distance(db_session):
    with pytest.raises(ValidationError):
        shipping_service.calculate_fee("-1", "100000")


def test_free_shipping_threshold(app, db_session):
    app.config['SHIPPING_FREE_THRESHOLD'] = Decimal("500000")

    assert shipping_service.calculate_fee("20", "499999") == Decimal("60000.00")
    assert shipping_service.calculate_fee("20", "500000") == Decimal("0")

    quote = shipping_service.quote("600000", distance_km="20")
    assert quote.is_free_shipping is True
    assert quote.total_fee == Decimal("0")
    assert quote.distance_fee == Decimal("45000.00")


def test_zero_threshold_never_free(db_session):
    assert shipping_service.is_free_shipping(Decimal("99999999")) is False


class TestQuoteWithProvider:

    def test_quote_from_address(self, db_session):
        provider = StaticRouteProvider({"12 Book St": 8})

        quote = shipping_service.quote("100000", address="12 Book St", provider=provider)

        assert quote.distance_km == Decimal("8")
        assert quote.total_fee == Decimal("24000.00")
        assert quote.duration_minutes == 12
        assert quote.to_dict()["total_fee"] == "24000.00"

    def test_provider_from_config(self, app, db_session):
        app.config['ROUTE_PROVIDER'] = StaticRouteProvider({"Depot": 2})

        quote = shipping_service.quote("100000", address="Depot")

        assert quote.total_fee == Decimal("15000.00")

    def test_geocoding_failure(self, db_session):
        with pytest.raises(AppError) as exc:
            shipping_service.quote("100000", address="Nowhere", provider=StaticRouteProvider({}))
        assert exc.value.error_code == ErrorCode.GEOCODING_FAILED

    def test_route_failure(self, db_session):
        provider = StaticRouteProvider({"Depot": 2}, route_fails=True)
        with pytest.raises(AppError) as exc:
            shipping_service.quote("100000", address="Depot", provider=provider)
        assert exc.value.error_code == ErrorCode.ROUTE_CALCULATION_FAILED

    def test_no_provider_configured(self, db_session):
        with pytest.raises(AppError) as exc:
            shipping_service.quote("100000", address="Depot")
        assert exc.value.error_code == ErrorCode.GEOCODING_FAILED

    def test_address_or_distance_required(self, db_session):
        with pytest.raises(ValidationError):
            shipping_service.quote("100000")
