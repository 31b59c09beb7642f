from __future__ import annotations

from ..extensions import db
from bookstore.time_utils import to_utc_z


class ProductReview(db.Model):
    """Star rating (1-5) plus optional text; at most one per user and product."""
    __tablename__ = "product_reviews"
    __table_args__ = (
        db.UniqueConstraint("product_id", "user_id", name="uq_product_reviews_product_user"),
        db.CheckConstraint("rating BETWEEN 1 AND 5", name="ck_product_reviews_rating_range"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    rating = db.Column(db.Integer, nullable=False)
    content = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    user = db.relationship("User")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "user_id": self.user_id,
            "username": self.user.username if self.user else None,
            "rating": self.rating,
            "content": self.content,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductComment(db.Model):
    """
    Question/discussion thread on a product page. parent_id points at the
    root comment for replies; replies are removed with their root.
    """
    __tablename__ = "product_comments"
    __table_args__ = (
        db.Index("ix_product_comments_product_parent", "product_id", "parent_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("product_comments.id"), nullable=True, index=True)

    content = db.Column(db.Text, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    user = db.relationship("User")
    replies = db.relationship(
        "ProductComment",
        cascade="all, delete",
        order_by="ProductComment.id",
    )

    def to_dict(self, include_replies: bool = False) -> dict:
        data = {
            "id": self.id,
            "product_id": self.product_id,
            "user_id": self.user_id,
            "username": self.user.username if self.user else None,
            "parent_id": self.parent_id,
            "content": self.content,
            "reply_count": len(self.replies),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_replies:
            data["replies"] = [reply.to_dict() for reply in self.replies]
        return data
