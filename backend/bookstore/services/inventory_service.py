# Overview: Service-layer operations for the inventory ledger; encapsulates business logic and database work.

"""
Bookstore Inventory Invariants (authoritative)

Ledger model:
- Every stock movement is an InventoryTransactionHeader with one or more
  InventoryTransactionItem lines. Quantity is stored positive; direction is
  the item's change type (PLUS adds stock, MINUS removes it).
- Headers and items are append-only. A reversal is a new header.
- Product.stock_quantity is a cache of SUM(signed quantity) over all items for
  the product. It is moved only here, in the same DB transaction as the items.

Change types allowed per transaction type:
    IN        -> PLUS
    OUT       -> MINUS
    DAMAGED   -> MINUS
    STOCKTAKE -> PLUS or MINUS

Business invariants:
- Stock never goes negative. Each MINUS line is applied with a conditional
  UPDATE (stock_quantity >= quantity); if no row matches, the whole call fails
  with INSUFFICIENT_INVENTORY and nothing is persisted.
- IN lines require a positive unit price.
- At most one OUT header per order (and one compensating IN per order),
  checked up front and backed by a partial unique index.

Order-linked movements (reference type ORDER) go through apply_out_for_order
and compensate_order_out only.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import case, func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.util import identity_key

from ..enums import ChangeType, ReferenceType, TransactionType
from ..errors import AppError, ErrorCode
from ..extensions import db
from ..models import InventoryTransactionHeader, InventoryTransactionItem, Order, Product
from ..money import quantize_money
from ..time_utils import utcnow
from ..validation import ValidationError, parse_decimal
from .concurrency import run_in_transaction


ALLOWED_CHANGE_TYPES: dict[TransactionType, frozenset[ChangeType]] = {
    TransactionType.IN: frozenset({ChangeType.PLUS}),
    TransactionType.OUT: frozenset({ChangeType.MINUS}),
    TransactionType.DAMAGED: frozenset({ChangeType.MINUS}),
    TransactionType.STOCKTAKE: frozenset({ChangeType.PLUS, ChangeType.MINUS}),
}


def _parse_transaction_type(value) -> TransactionType:
    parsed = TransactionType.parse(value)
    if parsed is None:
        raise AppError(ErrorCode.INVALID_TRANSACTION_TYPE, details={"transaction_type": value})
    return parsed


def _parse_reference_type(value) -> ReferenceType:
    parsed = ReferenceType.parse(value)
    if parsed is None:
        raise AppError(ErrorCode.INVALID_REFERENCE_TYPE, details={"reference_type": value})
    return parsed


def _normalize_item(transaction_type: TransactionType, raw: dict, index: int) -> dict:
    if not isinstance(raw, dict):
        raise ValidationError(f"items[{index}] must be an object")

    product_id = raw.get("product_id")
    if not isinstance(product_id, int) or isinstance(product_id, bool):
        raise ValidationError(f"items[{index}].product_id must be an integer")

    allowed = ALLOWED_CHANGE_TYPES[transaction_type]
    raw_change = raw.get("change_type")
    if raw_change is None and len(allowed) == 1:
        change_type = next(iter(allowed))
    else:
        change_type = ChangeType.parse(raw_change)
        if change_type is None:
            raise AppError(ErrorCode.INVALID_CHANGE_TYPE, details={"index": index, "change_type": raw_change})
    if change_type not in allowed:
        raise AppError(
            ErrorCode.INVALID_CHANGE_TYPE_FOR_TRANSACTION,
            details={
                "index": index,
                "transaction_type": transaction_type.value,
                "change_type": change_type.value,
            },
        )

    quantity = raw.get("quantity")
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        raise AppError(ErrorCode.INVALID_QUANTITY, details={"index": index, "quantity": quantity})

    unit_price = raw.get("unit_price")
    if unit_price is not None:
        unit_price = quantize_money(parse_decimal(unit_price, f"items[{index}].unit_price"))
        if unit_price < 0:
            raise ValidationError(f"items[{index}].unit_price must be >= 0")
    if transaction_type == TransactionType.IN and (unit_price is None or unit_price <= 0):
        raise AppError(ErrorCode.UNIT_PRICE_REQUIRED, details={"index": index, "product_id": product_id})

    return {
        "product_id": product_id,
        "change_type": change_type,
        "quantity": quantity,
        "unit_price": unit_price,
    }


def _expire_cached_stock(product_id: int) -> None:
    product = db.session.identity_map.get(identity_key(Product, product_id))
    if product is not None:
        db.session.expire(product, ["stock_quantity"])


def _move_stock(product_id: int, change_type: ChangeType, quantity: int) -> None:
    """
    Atomically apply one signed delta to the cached stock counter.

    MINUS uses "UPDATE ... WHERE stock_quantity >= :qty" so the check and the
    decrement are a single statement.
    """
    stmt = update(Product).where(Product.id == product_id)
    if change_type == ChangeType.PLUS:
        stmt = stmt.values(stock_quantity=Product.stock_quantity + quantity)
    else:
        stmt = stmt.where(Product.stock_quantity >= quantity).values(
            stock_quantity=Product.stock_quantity - quantity
        )
    result = db.session.execute(stmt.execution_options(synchronize_session=False))
    _expire_cached_stock(product_id)

    if result.rowcount != 1:
        available = db.session.query(Product.stock_quantity).filter(Product.id == product_id).scalar()
        current_app.logger.warning(
            f"Insufficient inventory for product {product_id}: requested {quantity}, available {available}"
        )
        raise AppError(
            ErrorCode.INSUFFICIENT_INVENTORY,
            details={"product_id": product_id, "requested_quantity": quantity, "available": available},
        )


def _insert_header(
    *,
    transaction_type: TransactionType,
    reference_type: ReferenceType,
    reference_id: int | None,
    note: str | None,
    created_by_user_id: int | None,
    duplicate_error: ErrorCode,
) -> InventoryTransactionHeader:
    header = InventoryTransactionHeader(
        transaction_type=transaction_type.value,
        reference_type=reference_type.value,
        reference_id=reference_id,
        note=note,
        created_by_user_id=created_by_user_id,
        created_at=utcnow(),
    )
    db.session.add(header)
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise AppError(
            duplicate_error,
            details={
                "reference_type": reference_type.value,
                "reference_id": reference_id,
                "transaction_type": transaction_type.value,
            },
        ) from exc
    return header


def _apply_transaction_inner(
    *,
    transaction_type: TransactionType,
    reference_type: ReferenceType,
    reference_id: int | None,
    items: list[dict],
    note: str | None,
    created_by_user_id: int | None,
    duplicate_error: ErrorCode = ErrorCode.RESOURCE_CONFLICT,
) -> InventoryTransactionHeader:
    if not items:
        raise ValidationError("items must contain at least one line")

    normalized = [_normalize_item(transaction_type, raw, i) for i, raw in enumerate(items)]

    product_ids = {line["product_id"] for line in normalized}
    found = {
        pid for (pid,) in db.session.query(Product.id).filter(Product.id.in_(product_ids)).all()
    }
    missing = sorted(product_ids - found)
    if missing:
        raise AppError(ErrorCode.PRODUCT_NOT_FOUND, details={"product_ids": missing})

    header = _insert_header(
        transaction_type=transaction_type,
        reference_type=reference_type,
        reference_id=reference_id,
        note=note,
        created_by_user_id=created_by_user_id,
        duplicate_error=duplicate_error,
    )

    for line in normalized:
        unit_price = line["unit_price"]
        header.items.append(InventoryTransactionItem(
            product_id=line["product_id"],
            change_type=line["change_type"].value,
            quantity=line["quantity"],
            unit_price=unit_price,
            total_price=quantize_money(unit_price * line["quantity"]) if unit_price is not None else None,
        ))
        _move_stock(line["product_id"], line["change_type"], line["quantity"])

    db.session.flush()
    current_app.logger.info(
        f"Inventory {transaction_type.value} header {header.id} "
        f"({reference_type.value}:{reference_id}) with {len(normalized)} line(s)"
    )
    return header


def apply_transaction(
    *,
    transaction_type,
    reference_type,
    items: list[dict],
    reference_id: int | None = None,
    note: str | None = None,
    created_by_user_id: int | None = None,
    commit: bool = True,
) -> InventoryTransactionHeader:
    """
    Record a manual ledger event (stock-in, damage write-off, stocktake
    correction) and move cached stock by the signed deltas. Order-linked OUT headers
    are written by apply_out_for_order only.

    items: [{"product_id", "quantity", "change_type"?, "unit_price"?}]
    change_type may be omitted when the transaction type allows only one.

    Raises AppError (INVALID_TRANSACTION_TYPE, INVALID_REFERENCE_TYPE,
    INVALID_CHANGE_TYPE, INVALID_CHANGE_TYPE_FOR_TRANSACTION, INVALID_QUANTITY,
    UNIT_PRICE_REQUIRED, PRODUCT_NOT_FOUND, INSUFFICIENT_INVENTORY) with no
    rows written and no stock moved.
    """
    tx_type = _parse_transaction_type(transaction_type)
    ref_type = _parse_reference_type(reference_type)
    if ref_type == ReferenceType.ORDER:
        raise AppError(
            ErrorCode.INVALID_REFERENCE_TYPE,
            message="Order stock movements are created by checkout and cancellation only",
            details={"reference_type": ref_type.value},
        )

    duplicate_error = ErrorCode.RESOURCE_CONFLICT
    if tx_type == TransactionType.OUT:
        duplicate_error = ErrorCode.DUPLICATE_OUT_TRANSACTION

    def _op():
        if tx_type == TransactionType.OUT and reference_id is not None:
            existing = (
                db.session.query(InventoryTransactionHeader.id)
                .filter_by(
                    reference_type=ref_type.value,
                    reference_id=reference_id,
                    transaction_type=TransactionType.OUT.value,
                )
                .first()
            )
            if existing is not None:
                raise AppError(
                    ErrorCode.DUPLICATE_OUT_TRANSACTION,
                    details={"reference_type": ref_type.value, "reference_id": reference_id},
                )
        return _apply_transaction_inner(
            transaction_type=tx_type,
            reference_type=ref_type,
            reference_id=reference_id,
            items=items,
            note=note,
            created_by_user_id=created_by_user_id,
            duplicate_error=duplicate_error,
        )

    return run_in_transaction(_op, commit=commit)


def apply_stocktake(
    *,
    counts: dict[int, int],
    note: str | None = None,
    reference_id: int | None = None,
    created_by_user_id: int | None = None,
    commit: bool = True,
) -> InventoryTransactionHeader | None:
    """
    Reconcile cached stock to physically counted quantities.

    Emits one STOCKTAKE header with a PLUS or MINUS line per product whose
    count differs. Returns None when every count already matches.
    """
    def _op():
        lines = []
        for product_id, counted in sorted(counts.items()):
            if not isinstance(counted, int) or isinstance(counted, bool) or counted < 0:
                raise AppError(ErrorCode.INVALID_QUANTITY, details={"product_id": product_id, "counted": counted})
            product = db.session.get(Product, product_id)
            if product is None:
                raise AppError(ErrorCode.PRODUCT_NOT_FOUND, details={"product_id": product_id})
            delta = counted - product.stock_quantity
            if delta == 0:
                continue
            lines.append({
                "product_id": product_id,
                "change_type": ChangeType.PLUS.value if delta > 0 else ChangeType.MINUS.value,
                "quantity": abs(delta),
            })
        if not lines:
            return None
        return _apply_transaction_inner(
            transaction_type=TransactionType.STOCKTAKE,
            reference_type=ReferenceType.STOCKTAKE,
            reference_id=reference_id,
            items=lines,
            note=note or "Stocktake adjustment",
            created_by_user_id=created_by_user_id,
        )

    return run_in_transaction(_op, commit=commit)


def find_order_header(order_id: int, transaction_type: TransactionType) -> InventoryTransactionHeader | None:
    return (
        db.session.query(InventoryTransactionHeader)
        .filter_by(
            reference_type=ReferenceType.ORDER.value,
            reference_id=order_id,
            transaction_type=transaction_type.value,
        )
        .first()
    )


def apply_out_for_order(
    order_id: int,
    *,
    note: str | None = None,
    created_by_user_id: int | None = None,
    commit: bool = True,
) -> InventoryTransactionHeader:
    """
    Deduct stock for every line of an order as a single OUT header.

    Idempotency guard: a second call for the same order fails with
    DUPLICATE_OUT_TRANSACTION instead of deducting twice.
    """
    def _op():
        if find_order_header(order_id, TransactionType.OUT) is not None:
            current_app.logger.warning(f"Duplicate stock deduction attempted for order {order_id}")
            raise AppError(ErrorCode.DUPLICATE_OUT_TRANSACTION, details={"order_id": order_id})

        order = db.session.get(Order, order_id)
        if order is None:
            raise AppError(ErrorCode.ORDER_NOT_FOUND, details={"order_id": order_id})
        if not order.items:
            raise AppError(ErrorCode.ORDER_ITEMS_EMPTY, details={"order_id": order_id})

        lines = [
            {
                "product_id": item.product_id,
                "change_type": ChangeType.MINUS.value,
                "quantity": item.quantity,
                "unit_price": item.unit_price,
            }
            for item in order.items
        ]
        return _apply_transaction_inner(
            transaction_type=TransactionType.OUT,
            reference_type=ReferenceType.ORDER,
            reference_id=order_id,
            items=lines,
            note=note or f"Order #{order_id}",
            created_by_user_id=created_by_user_id,
            duplicate_error=ErrorCode.DUPLICATE_OUT_TRANSACTION,
        )

    return run_in_transaction(_op, commit=commit)


def compensate_order_out(
    order_id: int,
    *,
    note: str | None = None,
    created_by_user_id: int | None = None,
    commit: bool = True,
) -> InventoryTransactionHeader | None:
    """
    Return an order's deducted stock with a new IN header that mirrors the
    OUT header line by line (MINUS -> PLUS). The OUT header is left untouched.

    Returns None when the order never had stock deducted, and the existing
    compensation header when one was already written.
    """
    def _op():
        out_header = find_order_header(order_id, TransactionType.OUT)
        if out_header is None:
            return None

        existing = find_order_header(order_id, TransactionType.IN)
        if existing is not None:
            return existing

        lines = [
            {
                "product_id": item.product_id,
                "change_type": ChangeType.PLUS.value,
                "quantity": item.quantity,
                "unit_price": item.unit_price,
            }
            for item in out_header.items
        ]
        return _apply_transaction_inner(
            transaction_type=TransactionType.IN,
            reference_type=ReferenceType.ORDER,
            reference_id=order_id,
            items=lines,
            note=note or f"Cancel order #{order_id}",
            created_by_user_id=created_by_user_id,
        )

    return run_in_transaction(_op, commit=commit)


def get_transaction(transaction_id: int) -> InventoryTransactionHeader:
    header = db.session.get(InventoryTransactionHeader, transaction_id)
    if header is None:
        raise AppError(ErrorCode.INVENTORY_TRANSACTION_NOT_FOUND, details={"transaction_id": transaction_id})
    return header


def list_transactions(
    *,
    transaction_type=None,
    reference_type=None,
    reference_id: int | None = None,
    product_id: int | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[InventoryTransactionHeader], int]:
    """Newest first. Returns (page, total matching)."""
    q = db.session.query(InventoryTransactionHeader)
    if transaction_type is not None:
        q = q.filter(InventoryTransactionHeader.transaction_type == _parse_transaction_type(transaction_type).value)
    if reference_type is not None:
        q = q.filter(InventoryTransactionHeader.reference_type == _parse_reference_type(reference_type).value)
    if reference_id is not None:
        q = q.filter(InventoryTransactionHeader.reference_id == reference_id)
    if product_id is not None:
        q = q.filter(
            InventoryTransactionHeader.id.in_(
                db.session.query(InventoryTransactionItem.header_id).filter(
                    InventoryTransactionItem.product_id == product_id
                )
            )
        )

    total = q.count()
    rows = (
        q.order_by(InventoryTransactionHeader.created_at.desc(), InventoryTransactionHeader.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    return rows, total


def _signed_quantity_expr():
    return case(
        (InventoryTransactionItem.change_type == ChangeType.PLUS.value, InventoryTransactionItem.quantity),
        else_=-InventoryTransactionItem.quantity,
    )


def get_ledger_stock(product_id: int) -> int:
    """Stock derived from the ledger alone: SUM of signed item quantities."""
    total = (
        db.session.query(func.coalesce(func.sum(_signed_quantity_expr()), 0))
        .filter(InventoryTransactionItem.product_id == product_id)
        .scalar()
    )
    return int(total or 0)


def get_stock_summary(product_id: int) -> dict:
    product = db.session.get(Product, product_id)
    if product is None:
        raise AppError(ErrorCode.PRODUCT_NOT_FOUND, details={"product_id": product_id})
    ledger_stock = get_ledger_stock(product_id)
    return {
        "product_id": product_id,
        "stock_quantity": product.stock_quantity,
        "ledger_stock": ledger_stock,
        "consistent": product.stock_quantity == ledger_stock,
    }


def check_stock_consistency() -> list[dict]:
    """Products whose cached stock counter disagrees with the ledger."""
    ledger = dict(
        db.session.query(InventoryTransactionItem.product_id, func.sum(_signed_quantity_expr()))
        .group_by(InventoryTransactionItem.product_id)
        .all()
    )
    drift = []
    for product in db.session.query(Product).order_by(Product.id).all():
        ledger_stock = int(ledger.get(product.id) or 0)
        if ledger_stock != product.stock_quantity:
            drift.append({
                "product_id": product.id,
                "sku": product.sku,
                "stock_quantity": product.stock_quantity,
                "ledger_stock": ledger_stock,
            })
    return drift

