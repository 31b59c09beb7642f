# Overview: Flask API routes for product comment threads; parses input and returns JSON responses.

from flask import Blueprint, request, g

from ..decorators import require_auth
from ..errors import success_response
from ..services import comment_service
from ..validation import ValidationError, parse_int

comments_bp = Blueprint("comments", __name__, url_prefix="/api/comments")


@comments_bp.get("")
def list_comments_route():
    """
    Query params:
    - product_id: required
    - threads: "true" nests each root's replies under it
    """
    product_id = request.args.get("product_id", type=int)
    if product_id is None:
        raise ValidationError("product_id is required")
    with_replies = request.args.get("threads", "false").lower() == "true"

    comments = comment_service.list_product_comments(product_id)
    return success_response({
        "items": [c.to_dict(include_replies=with_replies) for c in comments],
        "counts": comment_service.comment_counts(product_id),
    })


@comments_bp.get("/mine")
@require_auth
def my_comments_route():
    return success_response([c.to_dict() for c in comment_service.list_user_comments(g.current_user.id)])


@comments_bp.get("/<int:comment_id>/replies")
def list_replies_route(comment_id: int):
    return success_response([c.to_dict() for c in comment_service.list_replies(comment_id)])


@comments_bp.post("")
@require_auth
def create_comment_route():
    """Body: product_id, content, parent_id? (reply)"""
    data = request.get_json(silent=True) or {}
    if data.get("product_id") is None:
        raise ValidationError("product_id is required")
    parent_id = data.get("parent_id")

    comment = comment_service.create_comment(
        user=g.current_user,
        product_id=parse_int(data["product_id"], "product_id"),
        content=data.get("content"),
        parent_id=parse_int(parent_id, "parent_id") if parent_id is not None else None,
    )
    return success_response(comment.to_dict(), message="Comment posted", status=201)


@comments_bp.put("/<int:comment_id>")
@require_auth
def update_comment_route(comment_id: int):
    data = request.get_json(silent=True) or {}
    comment = comment_service.update_comment(user=g.current_user, comment_id=comment_id, content=data.get("content"))
    return success_response(comment.to_dict())


@comments_bp.delete("/<int:comment_id>")
@require_auth
def delete_comment_route(comment_id: int):
    removed = comment_service.delete_comment(user=g.current_user, comment_id=comment_id)
    return success_response({"comment_id": comment_id, "removed": removed}, message="Comment deleted")
