"""
Inventory ledger tests.

Verifies:
- Signed deltas move the cached stock counter and the ledger together
- Change types are checked against the transaction type
- Stock never goes negative and failed calls leave nothing behind
- One OUT per order, compensation as a new IN header
- Stocktake reconciliation and ledger consistency checks
"""

import pytest

from bookstore.errors import AppError, ErrorCode
from bookstore.models import InventoryTransactionHeader, InventoryTransactionItem, Order, OrderItem
from bookstore.services import inventory_service


def _stock_in(product, quantity, unit_price="50000"):
    return inventory_service.apply_transaction(
        transaction_type="IN",
        reference_type="MANUAL",
        items=[{"product_id": product.id, "quantity": quantity, "unit_price": unit_price}],
    )


def _order_for(db_session, user, *lines):
    order = Order(
        user_id=user.id,
        subtotal=0,
        total_amount=0,
        payment_method="cod",
        fulfillment_method="pickup",
        payment_status="pending",
        fulfillment_status="pickup",
        order_status="confirmed",
    )
    for product, quantity in lines:
        order.items.append(OrderItem(
            product_id=product.id,
            product_name=product.name,
            sku=product.sku,
            quantity=quantity,
            unit_price=product.price,
            line_total=product.price * quantity,
        ))
    db_session.add(order)
    db_session.commit()
    return order


class TestApplyTransaction:

    def test_stock_in_creates_header_and_moves_stock(self, db_session, make_product):
        product = make_product(stock=0)

        header = _stock_in(product, 10)

        assert header.transaction_type == "IN"
        assert len(header.items) == 1
        assert header.items[0].change_type == "PLUS"
        assert str(header.items[0].total_price) == "500000.00"
        assert product.stock_quantity == 10
        assert inventory_service.get_ledger_stock(product.id) == 10

    def test_change_type_defaults_when_only_one_is_allowed(self, db_session, product):
        header = inventory_service.apply_transaction(
            transaction_type="DAMAGED",
            reference_type="MANUAL",
            items=[{"product_id": product.id, "quantity": 2}],
        )
        assert header.items[0].change_type == "MINUS"
        assert product.stock_quantity == 8

    def test_stocktake_requires_explicit_change_type(self, db_session, product):
        with pytest.raises(AppError) as exc:
            inventory_service.apply_transaction(
                transaction_type="STOCKTAKE",
                reference_type="STOCKTAKE",
                items=[{"product_id": product.id, "quantity": 1}],
            )
        assert exc.value.error_code == ErrorCode.INVALID_CHANGE_TYPE

    @pytest.mark.parametrize(
        "transaction_type,change_type",
        [("IN", "MINUS"), ("OUT", "PLUS"), ("DAMAGED", "PLUS")],
    )
    def test_change_type_must_match_transaction_type(self, db_session, product, transaction_type, change_type):
        with pytest.raises(AppError) as exc:
            inventory_service.apply_transaction(
                transaction_type=transaction_type,
                reference_type="MANUAL",
                items=[{
                    "product_id": product.id,
                    "quantity": 1,
                    "change_type": change_type,
                    "unit_price": "10",
                }],
            )
        assert exc.value.error_code == ErrorCode.INVALID_CHANGE_TYPE_FOR_TRANSACTION
        assert product.stock_quantity == 10

    def test_unknown_transaction_type(self, db_session, product):
        with pytest.raises(AppError) as exc:
            inventory_service.apply_transaction(
                transaction_type="GIFT",
                reference_type="MANUAL",
                items=[{"product_id": product.id, "quantity": 1}],
            )
        assert exc.value.error_code == ErrorCode.INVALID_TRANSACTION_TYPE

    @pytest.mark.parametrize("quantity", [0, -3, 1.5, True, "2"])
    def test_quantity_must_be_positive_integer(self, db_session, product, quantity):
        with pytest.raises(AppError) as exc:
            _stock_in(product, quantity)
        assert exc.value.error_code == ErrorCode.INVALID_QUANTITY

    @pytest.mark.parametrize("unit_price", [None, "0"])
    def test_stock_in_requires_positive_unit_price(self, db_session, product, unit_price):
        with pytest.raises(AppError) as exc:
            _stock_in(product, 1, unit_price=unit_price)
        assert exc.value.error_code == ErrorCode.UNIT_PRICE_REQUIRED

    def test_unknown_product(self, db_session, product):
        with pytest.raises(AppError) as exc:
            inventory_service.apply_transaction(
                transaction_type="IN",
                reference_type="MANUAL",
                items=[{"product_id": 999999, "quantity": 1, "unit_price": "10"}],
            )
        assert exc.value.error_code == ErrorCode.PRODUCT_NOT_FOUND

    def test_order_reference_is_rejected_for_manual_entries(self, db_session, product):
        with pytest.raises(AppError) as exc:
            inventory_service.apply_transaction(
                transaction_type="OUT",
                reference_type="ORDER",
                reference_id=1,
                items=[{"product_id": product.id, "quantity": 1}],
            )
        assert exc.value.error_code == ErrorCode.INVALID_REFERENCE_TYPE

    def test_manual_out_is_unique_per_reference(self, db_session, product):
        inventory_service.apply_transaction(
            transaction_type="OUT",
            reference_type="MANUAL",
            reference_id=42,
            items=[{"product_id": product.id, "quantity": 1}],
        )
        with pytest.raises(AppError) as exc:
            inventory_service.apply_transaction(
                transaction_type="OUT",
                reference_type="MANUAL",
                reference_id=42,
                items=[{"product_id": product.id, "quantity": 1}],
            )
        assert exc.value.error_code == ErrorCode.DUPLICATE_OUT_TRANSACTION
        assert product.stock_quantity == 9


class TestNonNegativeStock:

    def test_deduction_beyond_stock_fails_without_side_effects(self, db_session, make_product):
        product = make_product(stock=5)
        headers_before = db_session.query(InventoryTransactionHeader).count()

        with pytest.raises(AppError) as exc:
            inventory_service.apply_transaction(
                transaction_type="OUT",
                reference_type="MANUAL",
                items=[{"product_id": product.id, "quantity": 6}],
            )

        assert exc.value.error_code == ErrorCode.INSUFFICIENT_INVENTORY
        assert exc.value.details["available"] == 5
        assert product.stock_quantity == 5
        assert db_session.query(InventoryTransactionHeader).count() == headers_before

    def test_multi_line_failure_rolls_back_earlier_lines(self, db_session, make_product):
        plenty = make_product(stock=10)
        scarce = make_product(stock=1)

        with pytest.raises(AppError):
            inventory_service.apply_transaction(
                transaction_type="DAMAGED",
                reference_type="MANUAL",
                items=[
                    {"product_id": plenty.id, "quantity": 3},
                    {"product_id": scarce.id, "quantity": 2},
                ],
            )

        assert plenty.stock_quantity == 10
        assert scarce.stock_quantity == 1
        assert inventory_service.check_stock_consistency() == []

    def test_deducting_exact_stock_reaches_zero(self, db_session, make_product):
        product = make_product(stock=3)
        inventory_service.apply_transaction(
            transaction_type="DAMAGED",
            reference_type="MANUAL",
            items=[{"product_id": product.id, "quantity": 3}],
        )
        assert product.stock_quantity == 0


class TestOrderMovements:

    def test_out_for_order_deducts_every_line(self, db_session, customer, make_product):
        first = make_product(stock=10)
        second = make_product(stock=4)
        order = _order_for(db_session, customer, (first, 2), (second, 4))

        header = inventory_service.apply_out_for_order(order.id)

        assert header.reference_type == "ORDER"
        assert header.reference_id == order.id
        assert {item.product_id: item.quantity for item in header.items} == {first.id: 2, second.id: 4}
        assert first.stock_quantity == 8
        assert second.stock_quantity == 0

    def test_second_out_for_same_order_is_rejected(self, db_session, customer, product):
        order = _order_for(db_session, customer, (product, 2))
        inventory_service.apply_out_for_order(order.id)

        with pytest.raises(AppError) as exc:
            inventory_service.apply_out_for_order(order.id)

        assert exc.value.error_code == ErrorCode.DUPLICATE_OUT_TRANSACTION
        assert product.stock_quantity == 8

    def test_out_for_missing_order(self, db_session):
        with pytest.raises(AppError) as exc:
            inventory_service.apply_out_for_order(123456)
        assert exc.value.error_code == ErrorCode.ORDER_NOT_FOUND

    def test_compensation_is_a_new_in_header(self, db_session, customer, product):
        order = _order_for(db_session, customer, (product, 3))
        out_header = inventory_service.apply_out_for_order(order.id)

        compensation = inventory_service.compensate_order_out(order.id)

        assert compensation.id != out_header.id
        assert compensation.transaction_type == "IN"
        assert [item.change_type for item in compensation.items] == ["PLUS"]
        assert product.stock_quantity == 10
        # The original OUT header is untouched
        assert db_session.get(InventoryTransactionHeader, out_header.id).items[0].change_type == "MINUS"

    def test_compensation_is_idempotent(self, db_session, customer, product):
        order = _order_for(db_session, customer, (product, 3))
        inventory_service.apply_out_for_order(order.id)

        first = inventory_service.compensate_order_out(order.id)
        second = inventory_service.compensate_order_out(order.id)

        assert first.id == second.id
        assert product.stock_quantity == 10

    def test_compensation_without_deduction_is_noop(self, db_session, customer, product):
        order = _order_for(db_session, customer, (product, 3))
        assert inventory_service.compensate_order_out(order.id) is None
        assert product.stock_quantity == 10


class TestStocktakeAndReads:

    def test_stocktake_records_only_differences(self, db_session, make_product):
        over = make_product(stock=10)
        under = make_product(stock=10)
        exact = make_product(stock=10)

        header = inventory_service.apply_stocktake(counts={over.id: 12, under.id: 7, exact.id: 10})

        changes = {item.product_id: (item.change_type, item.quantity) for item in header.items}
        assert changes == {over.id: ("PLUS", 2), under.id: ("MINUS", 3)}
        assert (over.stock_quantity, under.stock_quantity, exact.stock_quantity) == (12, 7, 10)

    def test_stocktake_with_no_differences_writes_nothing(self, db_session, product):
        before = db_session.query(InventoryTransactionHeader).count()
        assert inventory_service.apply_stocktake(counts={product.id: 10}) is None
        assert db_session.query(InventoryTransactionHeader).count() == before

    def test_stocktake_rejects_negative_counts(self, db_session, product):
        with pytest.raises(AppError) as exc:
            inventory_service.apply_stocktake(counts={product.id: -1})
        assert exc.value.error_code == ErrorCode.INVALID_QUANTITY

    def test_list_transactions_filters_by_product(self, db_session, make_product):
        first = make_product(stock=5)
        second = make_product(stock=5)
        _stock_in(first, 1)

        rows, total = inventory_service.list_transactions(product_id=first.id)

        assert total == 2
        assert all(any(i.product_id == first.id for i in h.items) for h in rows)
        rows, total = inventory_service.list_transactions(product_id=second.id, transaction_type="IN")
        assert total == 1

    def test_get_missing_transaction(self, db_session):
        with pytest.raises(AppError) as exc:
            inventory_service.get_transaction(987654)
        assert exc.value.error_code == ErrorCode.INVENTORY_TRANSACTION_NOT_FOUND

    def test_consistency_check_reports_drift(self, db_session, product):
        assert inventory_service.check_stock_consistency() == []

        product.stock_quantity = 99
        db_session.commit()

        drift = inventory_service.check_stock_consistency()
        assert drift == [{
            "product_id": product.id,
            "sku": product.sku,
            "stock_quantity": 99,
            "ledger_stock": 10,
        }]
        summary = inventory_service.get_stock_summary(product.id)
        assert summary["consistent"] is False

    def test_items_are_never_rewritten(self, db_session, product):
        inventory_service.apply_transaction(
            transaction_type="DAMAGED",
            reference_type="MANUAL",
            items=[{"product_id": product.id, "quantity": 1}],
        )
        quantities = sorted(
            (i.change_type, i.quantity)
            for i in db_session.query(InventoryTransactionItem).filter_by(product_id=product.id)
        )
        assert quantities == [("MINUS", 1), ("PLUS", 10)]
