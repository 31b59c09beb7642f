# Overview: Flask API routes for in-app notifications; parses input and returns JSON responses.

from flask import Blueprint, request, g

from ..decorators import require_auth
from ..errors import success_response
from ..services import notification_service


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
def list_notifications_route():
    rows = notification_service.list_notifications(
        g.current_user.id,
        unread_only=request.args.get("unread_only", "false").lower() == "true",
        limit=min(request.args.get("limit", 50, type=int), 200),
    )
    return success_response({
        "items": [n.to_dict() for n in rows],
        "unread_count": notification_service.unread_count(g.current_user.id),
    })


@notifications_bp.post("/<int:notification_id>/read")
@require_auth
def mark_read_route(notification_id: int):
    notification = notification_service.mark_read(g.current_user.id, notification_id)
    return success_response(notification.to_dict())


@notifications_bp.post("/read-all")
@require_auth
def mark_all_read_route():
    count = notification_service.mark_all_read(g.current_user.id)
    return success_response({"updated": count})
