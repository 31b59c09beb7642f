# Overview: Service-layer operations for in-app notifications.

from __future__ import annotations

from ..enums import STAFF_ROLES, NotificationType
from ..errors import AppError, ErrorCode
from ..extensions import db
from ..models import Notification, User
from ..time_utils import utcnow
from .concurrency import run_in_transaction


def notify(
    *,
    user_id: int,
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.ORDER,
    reference_id: int | None = None,
    commit: bool = True,
) -> Notification:
    def _op():
        notification = Notification(
            user_id=user_id,
            title=title,
            message=message,
            notification_type=NotificationType(notification_type).value,
            reference_id=reference_id,
            is_read=False,
            created_at=utcnow(),
        )
        db.session.add(notification)
        db.session.flush()
        return notification

    return run_in_transaction(_op, commit=commit)


def list_notifications(user_id: int, *, unread_only: bool = False, limit: int = 50) -> list[Notification]:
    q = db.session.query(Notification).filter_by(user_id=user_id)
    if unread_only:
        q = q.filter_by(is_read=False)
    return q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def unread_count(user_id: int) -> int:
    return db.session.query(Notification).filter_by(user_id=user_id, is_read=False).count()


def mark_read(user_id: int, notification_id: int) -> Notification:
    def _op():
        notification = (
            db.session.query(Notification)
            .filter_by(id=notification_id, user_id=user_id)
            .first()
        )
        if notification is None:
            raise AppError(ErrorCode.NOTIFICATION_NOT_FOUND, details={"notification_id": notification_id})
        notification.is_read = True
        return notification

    return run_in_transaction(_op)


def mark_all_read(user_id: int) -> int:
    def _op():
        return (
            db.session.query(Notification)
            .filter_by(user_id=user_id, is_read=False)
            .update({"is_read": True}, synchronize_session=False)
        )

    return run_in_transaction(_op)


def notify_staff(
    *,
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.SYSTEM,
    reference_id: int | None = None,
    exclude_user_id: int | None = None,
    commit: bool = True,
) -> int:
    """One notification per active manager/admin. Returns how many were created."""
    def _op():
        q = db.session.query(User.id).filter(
            User.role.in_([role.value for role in STAFF_ROLES]),
            User.is_active.is_(True),
        )
        if exclude_user_id is not None:
            q = q.filter(User.id != exclude_user_id)
        staff_ids = [row.id for row in q.order_by(User.id).all()]
        for staff_id in staff_ids:
            notify(
                user_id=staff_id,
                title=title,
                message=message,
                notification_type=notification_type,
                reference_id=reference_id,
                commit=False,
            )
        return len(staff_ids)

    return run_in_transaction(_op, commit=commit)
