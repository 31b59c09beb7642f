# Overview: Product reviews: one rated review per customer and product, plus rating statistics.

"""
Review Service

A user reviews a product at most once (REVIEW_ALREADY_EXISTS); the rating is
an integer 1-5 (INVALID_RATING). Authors edit their own reviews; staff may
remove any review. Staff are notified of new reviews.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..enums import NotificationType
from ..errors import AppError, ErrorCode
from ..extensions import db
from ..models import ProductReview, User
from .concurrency import run_in_transaction
from . import notification_service, product_service


MIN_RATING = 1
MAX_RATING = 5


def _check_rating(rating) -> int:
    if isinstance(rating, bool) or not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
        raise AppError(ErrorCode.INVALID_RATING, details={"rating": rating})
    return rating


def _clean_content(content) -> str | None:
    if content is None:
        return None
    if not isinstance(content, str):
        raise AppError(ErrorCode.VALIDATION_ERROR, message="content must be a string")
    return content.strip() or None


def get_review(review_id: int) -> ProductReview:
    review = db.session.get(ProductReview, review_id)
    if review is None:
        raise AppError(ErrorCode.REVIEW_NOT_FOUND, details={"review_id": review_id})
    return review


def get_user_review(product_id: int, user_id: int) -> ProductReview | None:
    return db.session.query(ProductReview).filter_by(product_id=product_id, user_id=user_id).first()


def _owned_review(review_id: int, user: User) -> ProductReview:
    review = get_review(review_id)
    if review.user_id != user.id:
        raise AppError(ErrorCode.UNAUTHORIZED, details={"review_id": review_id})
    return review


def create_review(*, user: User, product_id: int, rating, content=None) -> ProductReview:
    rating = _check_rating(rating)
    content = _clean_content(content)

    def _op():
        product = product_service.get_product(product_id)
        if get_user_review(product.id, user.id) is not None:
            raise AppError(
                ErrorCode.REVIEW_ALREADY_EXISTS,
                details={"product_id": product.id, "user_id": user.id},
            )
        review = ProductReview(product_id=product.id, user_id=user.id, rating=rating, content=content)
        db.session.add(review)
        try:
            db.session.flush()
        except IntegrityError:
            raise AppError(
                ErrorCode.REVIEW_ALREADY_EXISTS,
                details={"product_id": product.id, "user_id": user.id},
            )

        notification_service.notify_staff(
            title="New product review",
            message=f"{user.username} rated {product.name} {rating}/5",
            notification_type=NotificationType.REVIEW,
            reference_id=product.id,
            exclude_user_id=user.id,
            commit=False,
        )
        current_app.logger.info(f"Review {review.id} created for product {product.id} by user {user.id}")
        return review

    return run_in_transaction(_op)


def update_review(*, user: User, review_id: int, rating=None, content=None) -> ProductReview:
    """Author only. Fields left as None keep their value."""
    if rating is not None:
        rating = _check_rating(rating)
    content = _clean_content(content)

    def _op():
        review = _owned_review(review_id, user)
        if rating is not None:
            review.rating = rating
        if content is not None:
            review.content = content
        return review

    return run_in_transaction(_op)


def delete_review(*, user: User, review_id: int) -> None:
    """The author or any staff member may delete a review."""
    def _op():
        review = get_review(review_id)
        if review.user_id != user.id and not user.is_staff:
            raise AppError(ErrorCode.UNAUTHORIZED, details={"review_id": review_id})
        db.session.delete(review)
        current_app.logger.info(f"Review {review_id} deleted by user {user.id}")

    run_in_transaction(_op)


def list_product_reviews(product_id: int, *, rating: int | None = None) -> list[ProductReview]:
    """Newest first; rating narrows to one star value."""
    product_service.get_product(product_id)
    q = db.session.query(ProductReview).filter_by(product_id=product_id)
    if rating is not None:
        q = q.filter_by(rating=_check_rating(rating))
    return q.order_by(ProductReview.created_at.desc(), ProductReview.id.desc()).all()


def list_user_reviews(user_id: int) -> list[ProductReview]:
    return (
        db.session.query(ProductReview)
        .filter_by(user_id=user_id)
        .order_by(ProductReview.created_at.desc(), ProductReview.id.desc())
        .all()
    )


def review_stats(product_id: int) -> dict:
    """
    {"product_id", "total_reviews", "average_rating", "distribution"}.

    average_rating is rounded to one decimal (0.0 with no reviews);
    distribution maps every star value 1-5 to its count.
    """
    product_service.get_product(product_id)
    rows = (
        db.session.query(ProductReview.rating, func.count(ProductReview.id))
        .filter(ProductReview.product_id == product_id)
        .group_by(ProductReview.rating)
        .all()
    )
    distribution = {str(star): 0 for star in range(MIN_RATING, MAX_RATING + 1)}
    for star, count in rows:
        distribution[str(star)] = int(count)

    total = sum(distribution.values())
    rating_sum = sum(int(star) * count for star, count in distribution.items())
    average = round(rating_sum / total, 1) if total else 0.0
    return {
        "product_id": product_id,
        "total_reviews": total,
        "average_rating": average,
        "distribution": distribution,
    }
