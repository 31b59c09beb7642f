"""
Order lifecycle tests.

Verifies:
- Cross-axis rules (cancel needs unpaid, close needs paid + delivered)
- Terminal orders accept no further changes on any axis
- Side effects: stock compensation, invoice, total_purchase, loyalty points, membership level
- Access control and reorder
"""

from decimal import Decimal

import pytest

from bookstore.errors import AppError, ErrorCode
from bookstore.models import Invoice, Notification, VoucherUsage
from bookstore.services import (
    cart_service, checkout_service, inventory_service, invoice_service, membership_service, order_service,
)


@pytest.fixture
def place_order(customer, cart_with):
    def _place(*lines, user=None, **kwargs):
        user = user or customer
        cart_with(*lines, user=user)
        params = {"payment_method": "cod", "fulfillment_method": "pickup"}
        params.update(kwargs)
        return checkout_service.checkout(user_id=user.id, **params)

    return _place


class TestCancel:

    def test_customer_cancel_returns_stock(self, db_session, customer, product, place_order):
        order = place_order((product, 4))
        assert product.stock_quantity == 6

        cancelled = order_service.cancel_order(user=customer, order_id=order.id, reason="Changed my mind")

        assert cancelled.order_status == "cancelled"
        assert cancelled.cancel_reason == "Changed my mind"
        assert cancelled.cancelled_at is not None
        assert product.stock_quantity == 10
        assert inventory_service.check_stock_consistency() == []

    def test_cancel_twice(self, db_session, customer, product, place_order):
        order = place_order((product, 1))
        order_service.cancel_order(user=customer, order_id=order.id)

        with pytest.raises(AppError) as exc:
            order_service.cancel_order(user=customer, order_id=order.id)

        assert exc.value.error_code == ErrorCode.ORDER_ALREADY_CANCELLED
        assert product.stock_quantity == 10

    def test_paid_order_cannot_be_cancelled(self, db_session, customer, product, place_order):
        order = place_order((product, 1))
        order_service.confirm_payment(order.id)

        with pytest.raises(AppError) as exc:
            order_service.cancel_order(user=customer, order_id=order.id)
        assert exc.value.error_code == ErrorCode.CANNOT_CANCEL_ORDER

        with pytest.raises(AppError) as exc:
            order_service.update_order_status(order.id, order_status="cancelled")
        assert exc.value.error_code == ErrorCode.CANNOT_CANCEL_ORDER
        assert product.stock_quantity == 9

    def test_other_customer_cannot_cancel(self, db_session, other_customer, product, place_order):
        order = place_order((product, 1))
        with pytest.raises(AppError) as exc:
            order_service.cancel_order(user=other_customer, order_id=order.id)
        assert exc.value.error_code == ErrorCode.ORDER_ACCESS_DENIED

    def test_staff_can_cancel_any_order(self, db_session, manager, product, place_order):
        order = place_order((product, 2))
        cancelled = order_service.cancel_order(user=manager, order_id=order.id)
        assert cancelled.order_status == "cancelled"
        assert product.stock_quantity == 10

    def test_voucher_use_is_not_returned(self, db_session, customer, product, make_voucher, place_order):
        voucher = make_voucher(code="KEEP")
        order = place_order((product, 1), voucher_code="KEEP")

        order_service.cancel_order(user=customer, order_id=order.id)

        assert db_session.query(VoucherUsage).filter_by(voucher_id=voucher.id).count() == 1


class TestPaymentAndClose:

    def test_confirm_payment_issues_invoice_and_tracks_purchase(self, db_session, customer, product, place_order):
        order = place_order((product, 2))

        paid = order_service.confirm_payment(order.id)

        assert paid.payment_status == "paid"
        assert paid.paid_at is not None
        invoice = invoice_service.get_invoice_for_order(order.id)
        assert invoice.total_amount == Decimal("200000.00")
        assert invoice.invoice_number.endswith(f"{order.id:06d}")
        assert customer.total_purchase == Decimal("200000.00")

    def test_confirm_payment_is_idempotent(self, db_session, customer, product, place_order):
        order = place_order((product, 1))
        order_service.confirm_payment(order.id)
        order_service.confirm_payment(order.id)

        assert db_session.query(Invoice).filter_by(order_id=order.id).count() == 1
        assert customer.total_purchase == Decimal("100000.00")

    def test_confirm_payment_of_cancelled_order(self, db_session, customer, product, place_order):
        order = place_order((product, 1))
        order_service.cancel_order(user=customer, order_id=order.id)

        with pytest.raises(AppError) as exc:
            order_service.confirm_payment(order.id)
        assert exc.value.error_code == ErrorCode.ORDER_ALREADY_CANCELLED

    def test_close_requires_paid_and_delivered(self, db_session, product, place_order):
        order = place_order((product, 1))

        with pytest.raises(AppError) as exc:
            order_service.update_order_status(order.id, order_status="closed")
        assert exc.value.error_code == ErrorCode.ORDER_CANNOT_CLOSE

        order_service.update_order_status(order.id, payment_status="paid")
        with pytest.raises(AppError) as exc:
            order_service.update_order_status(order.id, order_status="closed")
        assert exc.value.error_code == ErrorCode.ORDER_CANNOT_CLOSE

    def test_close_awards_points(self, db_session, customer, make_product, place_order):
        book = make_product(price="123456", stock=5)
        order = place_order((book, 2))

        closed = order_service.update_order_status(
            order.id, payment_status="paid", fulfillment_status="delivered", order_status="closed"
        )

        assert closed.order_status == "closed"
        assert closed.closed_at is not None
        # 246912 / 1000, rounded down
        assert customer.points == 246

    def test_refund_subtracts_purchase_total(self, db_session, customer, product, place_order):
        order = place_order((product, 1))
        order_service.update_order_status(order.id, payment_status="paid")

        order_service.update_order_status(order.id, payment_status="refunded")

        assert customer.total_purchase == Decimal("0.00")

    def test_failed_payment_can_be_retried(self, db_session, product, place_order):
        order = place_order((product, 1))
        order_service.update_order_status(order.id, payment_status="failed")
        retried = order_service.update_order_status(order.id, payment_status="pending")
        assert retried.payment_status == "pending"


class TestTerminalOrders:

    @pytest.fixture
    def closed_order(self, product, place_order):
        order = place_order((product, 1))
        return order_service.update_order_status(
            order.id, payment_status="paid", fulfillment_status="delivered", order_status="closed"
        )

    def test_closed_order_cannot_be_refunded(self, db_session, closed_order):
        with pytest.raises(AppError) as exc:
            order_service.update_order_status(closed_order.id, payment_status="refunded")
        assert exc.value.error_code == ErrorCode.INVALID_STATUS_TRANSITION

    def test_closed_order_fulfillment_is_frozen(self, db_session, closed_order):
        with pytest.raises(AppError) as exc:
            order_service.update_order_status(closed_order.id, fulfillment_status="returned")
        assert exc.value.error_code == ErrorCode.INVALID_STATUS_TRANSITION

    def test_cancelled_order_axes_are_frozen(self, db_session, customer, product, place_order):
        order = place_order((product, 1))
        order_service.cancel_order(user=customer, order_id=order.id)

        for change in ({"payment_status": "paid"}, {"fulfillment_status": "delivered"}):
            with pytest.raises(AppError) as exc:
                order_service.update_order_status(order.id, **change)
            assert exc.value.error_code == ErrorCode.INVALID_STATUS_TRANSITION

    def test_refunded_and_closed_in_one_request(self, db_session, product, place_order):
        order = place_order((product, 1))
        order_service.update_order_status(order.id, payment_status="paid", fulfillment_status="delivered")

        with pytest.raises(AppError) as exc:
            order_service.update_order_status(order.id, payment_status="refunded", order_status="closed")
        assert exc.value.error_code == ErrorCode.INVALID_STATUS_TRANSITION


class TestStatusUpdates:

    def test_invalid_axis_change_leaves_other_axes_untouched(self, db_session, product, place_order):
        order = place_order((product, 1))

        with pytest.raises(AppError) as exc:
            order_service.update_order_status(order.id, payment_status="paid", fulfillment_status="shipping")

        assert exc.value.error_code == ErrorCode.INVALID_STATUS_TRANSITION
        reloaded = order_service.get_order(order.id)
        assert reloaded.payment_status == "pending"
        assert reloaded.paid_at is None

    def test_status_change_requires_an_axis(self, db_session, product, place_order):
        order = place_order((product, 1))
        with pytest.raises(ValueError):
            order_service.update_order_status(order.id)

    def test_every_change_notifies_the_owner(self, db_session, customer, product, place_order):
        order = place_order((product, 1))
        before = db_session.query(Notification).filter_by(user_id=customer.id).count()

        order_service.update_order_status(order.id, payment_status="paid", fulfillment_status="delivered")

        notes = db_session.query(Notification).filter_by(user_id=customer.id).count()
        assert notes == before + 2

    def test_missing_order(self, db_session):
        with pytest.raises(AppError) as exc:
            order_service.update_order_status(424242, payment_status="paid")
        assert exc.value.error_code == ErrorCode.ORDER_NOT_FOUND


class TestQueriesAndReorder:

    def test_customers_only_see_their_orders(self, db_session, customer, other_customer, manager, product,
                                             place_order):
        order = place_order((product, 1))

        assert order_service.get_order(order.id, user=customer).id == order.id
        assert order_service.get_order(order.id, user=manager).id == order.id
        with pytest.raises(AppError) as exc:
            order_service.get_order(order.id, user=other_customer)
        assert exc.value.error_code == ErrorCode.ORDER_ACCESS_DENIED

    def test_list_filters_by_status(self, db_session, customer, make_product, place_order):
        first = place_order((make_product(stock=5), 1))
        place_order((make_product(stock=5), 1))
        order_service.confirm_payment(first.id)

        rows, total = order_service.list_user_orders(customer.id, payment_status="paid")

        assert total == 1
        assert rows[0].id == first.id
        _, total = order_service.list_orders()
        assert total == 2

    def test_reorder_adds_available_items(self, db_session, customer, make_product, place_order):
        kept = make_product(stock=5)
        gone = make_product(stock=1)
        order = place_order((kept, 2), (gone, 1))

        result = order_service.reorder(user=customer, order_id=order.id)

        assert result["added"] == [{"product_id": kept.id, "quantity": 2}]
        assert result["skipped"] == [{"product_id": gone.id, "reason": "out_of_stock"}]
        assert [i.product_id for i in cart_service.get_selected_items(customer.id)] == [kept.id]

    def test_reorder_skips_items_already_in_cart(self, db_session, customer, make_product, place_order, cart_with):
        book = make_product(stock=5)
        order = place_order((book, 1))
        cart_with((book, 1))

        result = order_service.reorder(user=customer, order_id=order.id)

        assert result["added"] == []
        assert result["skipped"] == [{"product_id": book.id, "reason": "already_in_cart"}]


class TestMembership:

    @pytest.fixture
    def low_thresholds(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "MEMBERSHIP_SILVER_THRESHOLD", Decimal("150000"))
        monkeypatch.setitem(app.config, "MEMBERSHIP_GOLD_THRESHOLD", Decimal("300000"))
        monkeypatch.setitem(app.config, "MEMBERSHIP_PLATINUM_THRESHOLD", Decimal("1000000"))

    @pytest.mark.parametrize(
        "total,level",
        [
            ("0", "basic"),
            ("149999.99", "basic"),
            ("150000", "silver"),
            ("300000", "gold"),
            ("5000000", "platinum"),
        ],
    )
    def test_level_for(self, db_session, low_thresholds, total, level):
        assert membership_service.level_for(Decimal(total)).value == level

    def test_payment_over_threshold_upgrades(self, db_session, low_thresholds, customer, product, place_order):
        order = place_order((product, 2))
        assert customer.membership_level == "basic"

        order_service.confirm_payment(order.id)

        assert customer.membership_level == "silver"
        upgrade_notes = db_session.query(Notification).filter_by(user_id=customer.id, notification_type="MEMBERSHIP")
        assert upgrade_notes.count() == 1

    def test_refund_keeps_level(self, db_session, low_thresholds, customer, product, place_order):
        order = place_order((product, 2))
        order_service.update_order_status(order.id, payment_status="paid")

        order_service.update_order_status(order.id, payment_status="refunded")

        assert customer.total_purchase == Decimal("0.00")
        assert customer.membership_level == "silver"

    def test_default_thresholds_leave_small_spenders_basic(self, db_session, customer, product, place_order):
        order = place_order((product, 1))
        order_service.confirm_payment(order.id)

        assert customer.membership_level == "basic"
        progress = membership_service.progress(customer)
        assert progress["next_level"] == "silver"
        assert progress["remaining_to_next"] == "4900000.00"
