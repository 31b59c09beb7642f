from __future__ import annotations

from ..extensions import db
from ..enums import ApplyTo
from ..money import to_money_str
from bookstore.time_utils import to_utc_z


class Voucher(db.Model):
    """
    Discount code.

    There is no stored usage counter: used counts are read from
    voucher_usages, which is the source of truth.
    per_user_limit NULL or 0 means no per-user cap.
    """
    __tablename__ = "vouchers"
    __table_args__ = (
        db.CheckConstraint("usage_limit >= 1", name="ck_vouchers_usage_limit_positive"),
        db.CheckConstraint("valid_to >= valid_from", name="ck_vouchers_valid_window"),
        db.Index("ix_vouchers_active_window", "is_active", "valid_from", "valid_to"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), nullable=False, unique=True)
    description = db.Column(db.String(500), nullable=True)

    discount_type = db.Column(db.String(16), nullable=False)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False)
    apply_to = db.Column(db.String(16), nullable=False, default=ApplyTo.ORDER.value)

    min_order_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    max_discount = db.Column(db.Numeric(12, 2), nullable=True)

    valid_from = db.Column(db.DateTime(timezone=True), nullable=False)
    valid_to = db.Column(db.DateTime(timezone=True), nullable=False)

    usage_limit = db.Column(db.Integer, nullable=False, default=1)
    per_user_limit = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Voucher id={self.id} code={self.code!r} type={self.discount_type}>"

    def to_dict(self, used_count: int | None = None) -> dict:
        data = {
            "id": self.id,
            "code": self.code,
            "description": self.description,
            "discount_type": self.discount_type,
            "discount_amount": to_money_str(self.discount_amount),
            "apply_to": self.apply_to,
            "min_order_amount": to_money_str(self.min_order_amount),
            "max_discount": to_money_str(self.max_discount),
            "valid_from": to_utc_z(self.valid_from),
            "valid_to": to_utc_z(self.valid_to),
            "usage_limit": self.usage_limit,
            "per_user_limit": self.per_user_limit,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if used_count is not None:
            data["used_count"] = used_count
            data["remaining"] = max(self.usage_limit - used_count, 0)
        return data


class VoucherUsage(db.Model):
    """
    Append-only record that a voucher was consumed by an order.

    Unique per (voucher, order). Rows are kept when the order is cancelled.
    """
    __tablename__ = "voucher_usages"
    __table_args__ = (
        db.UniqueConstraint("voucher_id", "order_id", name="uq_voucher_usages_voucher_order"),
        db.Index("ix_voucher_usages_voucher_user", "voucher_id", "user_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    voucher_id = db.Column(db.Integer, db.ForeignKey("vouchers.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    discount_amount = db.Column(db.Numeric(12, 2), nullable=True)
    used_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "voucher_id": self.voucher_id,
            "user_id": self.user_id,
            "order_id": self.order_id,
            "discount_amount": to_money_str(self.discount_amount),
            "used_at": to_utc_z(self.used_at),
        }
