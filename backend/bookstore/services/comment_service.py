# Overview: Threaded product comments (root questions and one level of replies) with notifications.

"""
Comment Service

A comment is either a root (parent_id NULL) or a reply to a root on the same
product; replying to a reply attaches to that reply's root so threads stay
one level deep. Replies notify the parent's author (never themselves);
customer comments notify staff so questions get answered.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..enums import NotificationType
from ..errors import AppError, ErrorCode
from ..extensions import db
from ..models import ProductComment, User
from .concurrency import run_in_transaction
from . import notification_service, product_service


def _clean_content(content) -> str:
    if not isinstance(content, str) or not content.strip():
        raise AppError(ErrorCode.VALIDATION_ERROR, message="content is required")
    return content.strip()


def get_comment(comment_id: int) -> ProductComment:
    comment = db.session.get(ProductComment, comment_id)
    if comment is None:
        raise AppError(ErrorCode.COMMENT_NOT_FOUND, details={"comment_id": comment_id})
    return comment


def create_comment(*, user: User, product_id: int, content, parent_id: int | None = None) -> ProductComment:
    content = _clean_content(content)

    def _op():
        product = product_service.get_product(product_id)
        parent = None
        if parent_id is not None:
            parent = db.session.get(ProductComment, parent_id)
            if parent is None or parent.product_id != product.id:
                raise AppError(
                    ErrorCode.COMMENT_NOT_FOUND,
                    details={"parent_id": parent_id, "product_id": product.id},
                )
            if parent.parent_id is not None:
                parent = get_comment(parent.parent_id)

        comment = ProductComment(
            product_id=product.id,
            user_id=user.id,
            parent_id=parent.id if parent else None,
            content=content,
        )
        db.session.add(comment)
        db.session.flush()

        if parent is not None and parent.user_id != user.id:
            notification_service.notify(
                user_id=parent.user_id,
                title="New reply to your comment",
                message=f"{user.username} replied on {product.name}",
                notification_type=NotificationType.COMMENT,
                reference_id=product.id,
                commit=False,
            )
        if not user.is_staff:
            notification_service.notify_staff(
                title="New product comment",
                message=f"{user.username} commented on {product.name}",
                notification_type=NotificationType.COMMENT,
                reference_id=product.id,
                exclude_user_id=parent.user_id if parent else None,
                commit=False,
            )
        current_app.logger.info(f"Comment {comment.id} on product {product.id} by user {user.id}")
        return comment

    return run_in_transaction(_op)


def update_comment(*, user: User, comment_id: int, content) -> ProductComment:
    content = _clean_content(content)

    def _op():
        comment = get_comment(comment_id)
        if comment.user_id != user.id:
            raise AppError(ErrorCode.UNAUTHORIZED, details={"comment_id": comment_id})
        comment.content = content
        return comment

    return run_in_transaction(_op)


def delete_comment(*, user: User, comment_id: int) -> int:
    """Author or staff. Deleting a root removes its replies; returns rows removed."""
    def _op():
        comment = get_comment(comment_id)
        if comment.user_id != user.id and not user.is_staff:
            raise AppError(ErrorCode.UNAUTHORIZED, details={"comment_id": comment_id})
        removed = 1 + len(comment.replies)
        db.session.delete(comment)
        return removed

    return run_in_transaction(_op)


def list_product_comments(product_id: int, *, roots_only: bool = True) -> list[ProductComment]:
    """Newest first. roots_only=False returns replies interleaved by date too."""
    product_service.get_product(product_id)
    q = db.session.query(ProductComment).filter_by(product_id=product_id)
    if roots_only:
        q = q.filter(ProductComment.parent_id.is_(None))
    return q.order_by(ProductComment.created_at.desc(), ProductComment.id.desc()).all()


def list_replies(comment_id: int) -> list[ProductComment]:
    """Oldest first, so a thread reads top to bottom."""
    return get_comment(comment_id).replies


def list_user_comments(user_id: int) -> list[ProductComment]:
    return (
        db.session.query(ProductComment)
        .filter_by(user_id=user_id)
        .order_by(ProductComment.created_at.desc(), ProductComment.id.desc())
        .all()
    )


def comment_counts(product_id: int) -> dict:
    total, roots = (
        db.session.query(
            func.count(ProductComment.id),
            func.count(ProductComment.id).filter(ProductComment.parent_id.is_(None)),
        )
        .filter(ProductComment.product_id == product_id)
        .one()
    )
    total, roots = int(total or 0), int(roots or 0)
    return {"product_id": product_id, "total": total, "roots": roots, "replies": total - roots}
