from __future__ import annotations

from ..extensions import db
from ..enums import PaymentStatus, FulfillmentStatus, OrderStatus
from ..money import to_money_str
from bookstore.time_utils import to_utc_z


class Order(db.Model):
    """
    Checkout result owned by one user.

    Three independent status axes (payment, fulfillment, order) are moved
    only through services.order_service; see services.order_status for the
    transition tables.

    Amounts are frozen at checkout: total = subtotal - discount + shipping_fee.
    Orders are never deleted; cancelled/closed are terminal soft states.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.CheckConstraint("discount_amount >= 0", name="ck_orders_discount_non_negative"),
        db.Index("ix_orders_user_created", "user_id", "created_at"),
        db.Index("ix_orders_status_axes", "order_status", "payment_status", "fulfillment_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    shipping_fee = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)

    payment_status = db.Column(db.String(16), nullable=False, default=PaymentStatus.PENDING.value)
    fulfillment_status = db.Column(db.String(16), nullable=False, default=FulfillmentStatus.SHIPPING.value)
    order_status = db.Column(db.String(16), nullable=False, default=OrderStatus.CONFIRMED.value)

    payment_method = db.Column(db.String(16), nullable=False)
    fulfillment_method = db.Column(db.String(16), nullable=False)

    voucher_id = db.Column(db.Integer, db.ForeignKey("vouchers.id"), nullable=True, index=True)
    voucher_code = db.Column(db.String(50), nullable=True)

    # Receiver snapshot
    receiver_name = db.Column(db.String(255), nullable=True)
    receiver_phone = db.Column(db.String(32), nullable=True)
    receiver_address = db.Column(db.String(500), nullable=True)

    note = db.Column(db.String(500), nullable=True)
    cancel_reason = db.Column(db.String(500), nullable=True)
    transfer_content = db.Column(db.String(64), nullable=True)
    expected_delivery_at = db.Column(db.DateTime(timezone=True), nullable=True)

    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    items = db.relationship(
        "OrderItem",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
        lazy="selectin",
    )
    user = db.relationship("User")

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_terminal(self) -> bool:
        return self.order_status in (OrderStatus.CANCELLED.value, OrderStatus.CLOSED.value)

    def __repr__(self) -> str:
        return (
            f"<Order id={self.id} user_id={self.user_id} "
            f"payment={self.payment_status} fulfillment={self.fulfillment_status} order={self.order_status}>"
        )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "subtotal": to_money_str(self.subtotal),
            "discount_amount": to_money_str(self.discount_amount),
            "shipping_fee": to_money_str(self.shipping_fee),
            "total_amount": to_money_str(self.total_amount),
            "payment_status": self.payment_status,
            "fulfillment_status": self.fulfillment_status,
            "order_status": self.order_status,
            "payment_method": self.payment_method,
            "fulfillment_method": self.fulfillment_method,
            "voucher_id": self.voucher_id,
            "voucher_code": self.voucher_code,
            "receiver_name": self.receiver_name,
            "receiver_phone": self.receiver_phone,
            "receiver_address": self.receiver_address,
            "note": self.note,
            "cancel_reason": self.cancel_reason,
            "transfer_content": self.transfer_content,
            "expected_delivery_at": to_utc_z(self.expected_delivery_at),
            "paid_at": to_utc_z(self.paid_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "closed_at": to_utc_z(self.closed_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """Line snapshot: product name, sku, category and unit price as of checkout."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(
        db.Integer,
        db.ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=False)
    category_name = db.Column(db.String(128), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    line_total = db.Column(db.Numeric(12, 2), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "sku": self.sku,
            "category_name": self.category_name,
            "quantity": self.quantity,
            "unit_price": to_money_str(self.unit_price),
            "line_total": to_money_str(self.line_total),
        }
