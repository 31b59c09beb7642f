"""Product catalog and price history."""

from decimal import Decimal

import pytest

from bookstore.enums import PriceTrend
from bookstore.errors import AppError, ErrorCode
from bookstore.models import PriceHistory
from bookstore.services import price_history_service, product_service


def test_new_products_start_without_stock(db_session, make_product):
    product = make_product(stock=0)
    assert product.stock_quantity == 0
    assert product.is_active is True


def test_duplicate_sku(db_session, make_product):
    make_product(sku="DUP-1")
    with pytest.raises(AppError) as exc:
        make_product(sku="DUP-1")
    assert exc.value.error_code == ErrorCode.SKU_ALREADY_EXISTS


def test_unknown_category(db_session):
    with pytest.raises(AppError) as exc:
        product_service.create_product(patch={"sku": "X-1", "name": "X", "price": Decimal("1"), "category_id": 999})
    assert exc.value.error_code == ErrorCode.CATEGORY_NOT_FOUND


def test_listing_hides_inactive_and_searches(db_session, make_product):
    make_product(name="Dune")
    hidden = make_product(name="Dune Messiah")
    product_service.deactivate_product(hidden.id)

    listing = product_service.list_products(search="dune")
    assert [p["name"] for p in listing["items"]] == ["Dune"]

    everything = product_service.list_products(search="dune", active_only=False, page=1, per_page=1)
    assert everything["pagination"]["total"] == 2
    assert everything["pagination"]["has_next"] is True


class TestPriceHistory:

    @pytest.mark.parametrize(
        "old,new,expected",
        [
            ("100000", "120000", Decimal("20.00")),
            ("30000", "20000", Decimal("-33.33")),
            ("3", "4", Decimal("33.33")),
            ("0", "5000", None),
        ],
    )
    def test_change_percentage(self, old, new, expected):
        assert price_history_service.compute_change_percentage(Decimal(old), Decimal(new)) == expected

    def test_price_update_appends_history(self, db_session, product, manager):
        product_service.update_product(
            product_id=product.id,
            patch={"price": Decimal("120000")},
            changed_by_user_id=manager.id,
            reason="Supplier increase",
        )

        history = price_history_service.get_price_history(product.id)
        assert len(history) == 1
        entry = history[0]
        assert (entry.old_price, entry.new_price) == (Decimal("100000.00"), Decimal("120000.00"))
        assert entry.change_percentage == Decimal("20.00")
        assert entry.changed_by_user_id == manager.id
        assert entry.reason == "Supplier increase"
        assert product.price == Decimal("120000.00")

    def test_unchanged_price_writes_nothing(self, db_session, product):
        product_service.update_product(product_id=product.id, patch={"price": Decimal("100000"), "name": "Renamed"})
        assert db_session.query(PriceHistory).count() == 0
        assert product.name == "Renamed"

    def test_trend_follows_latest_change(self, db_session, product):
        assert price_history_service.get_price_trend(product.id) == PriceTrend.NO_HISTORY

        product_service.update_product(product_id=product.id, patch={"price": Decimal("150000")})
        assert price_history_service.get_price_trend(product.id) == PriceTrend.INCREASED

        product_service.update_product(product_id=product.id, patch={"price": Decimal("90000")})
        assert price_history_service.get_price_trend(product.id) == PriceTrend.DECREASED
        assert [h.new_price for h in price_history_service.get_price_history(product.id)] == [
            Decimal("90000.00"), Decimal("150000.00"),
        ]

    def test_history_for_missing_product(self, db_session):
        with pytest.raises(AppError) as exc:
            price_history_service.get_price_history(31337)
        assert exc.value.error_code == ErrorCode.PRODUCT_NOT_FOUND
