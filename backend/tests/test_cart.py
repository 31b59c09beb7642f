"""Cart service: adding, updating, selection and summaries."""

import pytest

from bookstore.errors import AppError, ErrorCode
from bookstore.services import cart_service, product_service


def _lines(user):
    return cart_service.get_cart(user.id).items


class TestAddItem:

    def test_add_creates_cart_with_selected_line(self, customer, product):
        item = cart_service.add_item(customer.id, product.id, 2)

        assert item.quantity == 2
        assert item.is_selected is True
        assert [line.product_id for line in _lines(customer)] == [product.id]

    def test_same_product_twice_is_rejected(self, customer, product):
        cart_service.add_item(customer.id, product.id, 1)
        with pytest.raises(AppError) as exc:
            cart_service.add_item(customer.id, product.id, 1)
        assert exc.value.error_code == ErrorCode.PRODUCT_ALREADY_IN_CART

    @pytest.mark.parametrize("quantity", [0, -1, True, "2"])
    def test_invalid_quantity(self, customer, product, quantity):
        with pytest.raises(AppError) as exc:
            cart_service.add_item(customer.id, product.id, quantity)
        assert exc.value.error_code == ErrorCode.INVALID_QUANTITY

    def test_more_than_stock(self, customer, make_product):
        scarce = make_product(stock=2)
        with pytest.raises(AppError) as exc:
            cart_service.add_item(customer.id, scarce.id, 3)
        assert exc.value.error_code == ErrorCode.PRODUCT_OUT_OF_STOCK
        assert exc.value.details["available"] == 2

    def test_inactive_product(self, customer, product):
        product_service.deactivate_product(product.id)
        with pytest.raises(AppError) as exc:
            cart_service.add_item(customer.id, product.id, 1)
        assert exc.value.error_code == ErrorCode.PRODUCT_UNAVAILABLE

    def test_missing_product(self, customer, db_session):
        with pytest.raises(AppError) as exc:
            cart_service.add_item(customer.id, 4242, 1)
        assert exc.value.error_code == ErrorCode.PRODUCT_NOT_FOUND


class TestUpdateAndSelection:

    def test_update_quantity_and_selection(self, customer, product):
        item = cart_service.add_item(customer.id, product.id, 1)

        updated = cart_service.update_item(customer.id, item.id, quantity=4, is_selected=False)

        assert updated.quantity == 4
        assert updated.is_selected is False
        assert cart_service.get_selected_items(customer.id) == []

    def test_update_beyond_stock(self, customer, product):
        item = cart_service.add_item(customer.id, product.id, 1)
        with pytest.raises(AppError) as exc:
            cart_service.update_item(customer.id, item.id, quantity=11)
        assert exc.value.error_code == ErrorCode.PRODUCT_OUT_OF_STOCK

    def test_cannot_touch_another_users_line(self, customer, other_customer, product):
        item = cart_service.add_item(customer.id, product.id, 1)
        with pytest.raises(AppError) as exc:
            cart_service.update_item(other_customer.id, item.id, quantity=2)
        assert exc.value.error_code == ErrorCode.CART_ITEM_NOT_FOUND
        with pytest.raises(AppError):
            cart_service.remove_item(other_customer.id, item.id)

    def test_select_all_toggles_every_line(self, customer, make_product, cart_with):
        first, second = make_product(), make_product()
        cart_with((first, 1), (second, 1))

        cart_service.select_all(customer.id, False)
        assert cart_service.get_selected_items(customer.id) == []

        cart_service.select_all(customer.id, True)
        assert len(cart_service.get_selected_items(customer.id)) == 2

    def test_remove_and_clear_selected(self, customer, make_product, cart_with):
        first, second, third = make_product(), make_product(), make_product()
        cart_with((first, 1), (second, 1), (third, 1))
        lines = {line.product_id: line for line in _lines(customer)}

        cart_service.remove_item(customer.id, lines[first.id].id)
        cart_service.update_item(customer.id, lines[second.id].id, is_selected=False)
        removed = cart_service.clear_selected(customer.id)

        assert removed == 1
        assert [line.product_id for line in _lines(customer)] == [second.id]


def test_summary_amounts(customer, make_product, cart_with):
    cheap = make_product(price="25000")
    pricey = make_product(price="100000")
    cart_with((cheap, 2), (pricey, 1))
    lines = {line.product_id: line for line in _lines(customer)}
    cart_service.update_item(customer.id, lines[pricey.id].id, is_selected=False)

    summary = cart_service.summarize(cart_service.get_cart(customer.id))

    assert summary["item_count"] == 2
    assert summary["total_quantity"] == 3
    assert summary["total_amount"] == "150000.00"
    assert summary["selected_count"] == 1
    assert summary["selected_amount"] == "50000.00"
