from __future__ import annotations

from ..extensions import db
from ..enums import ChangeType
from ..money import to_money_str
from bookstore.time_utils import to_utc_z


class InventoryTransactionHeader(db.Model):
    """
    One stock-affecting event (stock-in, order deduction, damage, stocktake).

    Headers and their items are written once, together, and never updated or
    deleted. Reversals are new headers.

    Unique per (reference_type, reference_id, transaction_type) for every OUT
    header and every ORDER-referenced header: one OUT per reference, and one
    compensating IN per order. Rows without a reference_id are not constrained.
    """
    __tablename__ = "inventory_transaction_headers"
    __table_args__ = (
        db.Index(
            "uq_inventory_headers_reference",
            "reference_type",
            "reference_id",
            "transaction_type",
            unique=True,
            sqlite_where=db.text("reference_type = 'ORDER' OR transaction_type = 'OUT'"),
            postgresql_where=db.text("reference_type = 'ORDER' OR transaction_type = 'OUT'"),
        ),
        db.Index("ix_inventory_headers_reference", "reference_type", "reference_id"),
        db.Index("ix_inventory_headers_type_created", "transaction_type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    transaction_type = db.Column(db.String(16), nullable=False)
    reference_type = db.Column(db.String(16), nullable=False)
    reference_id = db.Column(db.Integer, nullable=True)

    note = db.Column(db.String(255), nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    items = db.relationship(
        "InventoryTransactionItem",
        cascade="all, delete-orphan",
        order_by="InventoryTransactionItem.id",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<InventoryTransactionHeader id={self.id} type={self.transaction_type} "
            f"ref={self.reference_type}:{self.reference_id}>"
        )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "transaction_type": self.transaction_type,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "note": self.note,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "total_quantity": sum(item.quantity for item in self.items),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class InventoryTransactionItem(db.Model):
    """
    Per-product line of a ledger header.

    quantity is always positive; direction lives in change_type.
    total_price = unit_price * quantity when a unit price is known.
    """
    __tablename__ = "inventory_transaction_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_inventory_items_quantity_positive"),
        db.CheckConstraint("change_type IN ('PLUS', 'MINUS')", name="ck_inventory_items_change_type"),
        db.Index("ix_inventory_items_product", "product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    header_id = db.Column(
        db.Integer,
        db.ForeignKey("inventory_transaction_headers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    change_type = db.Column(db.String(8), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=True)
    total_price = db.Column(db.Numeric(12, 2), nullable=True)

    product = db.relationship("Product")

    @property
    def signed_quantity(self) -> int:
        return self.quantity if self.change_type == ChangeType.PLUS.value else -self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "header_id": self.header_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "change_type": self.change_type,
            "quantity": self.quantity,
            "signed_quantity": self.signed_quantity,
            "unit_price": to_money_str(self.unit_price),
            "total_price": to_money_str(self.total_price),
        }
