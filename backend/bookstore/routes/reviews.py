# Overview: Flask API routes for product reviews; parses input and returns JSON responses.

from flask import Blueprint, request, g

from ..decorators import require_auth
from ..errors import success_response
from ..services import review_service
from ..validation import ValidationError, parse_int

reviews_bp = Blueprint("reviews", __name__, url_prefix="/api/reviews")


def _product_id_arg() -> int:
    product_id = request.args.get("product_id", type=int)
    if product_id is None:
        raise ValidationError("product_id is required")
    return product_id


@reviews_bp.get("")
def list_reviews_route():
    """Query params: product_id (required), rating (optional 1-5 filter)."""
    reviews = review_service.list_product_reviews(
        _product_id_arg(),
        rating=request.args.get("rating", type=int),
    )
    return success_response([r.to_dict() for r in reviews])


@reviews_bp.get("/stats")
def review_stats_route():
    return success_response(review_service.review_stats(_product_id_arg()))


@reviews_bp.get("/mine")
@require_auth
def my_reviews_route():
    """All of the caller's reviews, or with product_id the one for that product (null if none)."""
    product_id = request.args.get("product_id", type=int)
    if product_id is not None:
        review = review_service.get_user_review(product_id, g.current_user.id)
        return success_response(review.to_dict() if review else None)
    return success_response([r.to_dict() for r in review_service.list_user_reviews(g.current_user.id)])


@reviews_bp.get("/<int:review_id>")
def get_review_route(review_id: int):
    return success_response(review_service.get_review(review_id).to_dict())


@reviews_bp.post("")
@require_auth
def create_review_route():
    """Body: product_id, rating (1-5), content?"""
    data = request.get_json(silent=True) or {}
    if data.get("product_id") is None:
        raise ValidationError("product_id is required")

    review = review_service.create_review(
        user=g.current_user,
        product_id=parse_int(data["product_id"], "product_id"),
        rating=data.get("rating"),
        content=data.get("content"),
    )
    return success_response(review.to_dict(), message="Review created", status=201)


@reviews_bp.put("/<int:review_id>")
@require_auth
def update_review_route(review_id: int):
    data = request.get_json(silent=True) or {}
    review = review_service.update_review(
        user=g.current_user,
        review_id=review_id,
        rating=data.get("rating"),
        content=data.get("content"),
    )
    return success_response(review.to_dict())


@reviews_bp.delete("/<int:review_id>")
@require_auth
def delete_review_route(review_id: int):
    review_service.delete_review(user=g.current_user, review_id=review_id)
    return success_response({"review_id": review_id}, message="Review deleted")
