import logging
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from leaveflow.core.notification_ws_manager import notification_ws_manager
from leaveflow.models.notification import Notification
from leaveflow.models.user import User
from leaveflow.utils.email import send_leave_workflow_email

logger = logging.getLogger(__name__)

LEAVE_LINK = "/dashboard/leave"


def notification_to_payload(notification: Notification) -> dict:
    return {
        "type": "notification_new",
        "notification": {
            "id": notification.id,
            "user_id": notification.user_id,
            "title": notification.title,
            "message": notification.message,
            "event_type": notification.event_type,
            "reference_type": notification.reference_type,
            "reference_id": notification.reference_id,
            "link_url": notification.link_url,
            "priority": notification.priority,
            "is_read": bool(notification.is_read),
            "created_at": notification.created_at.isoformat() if notification.created_at else None,
        },
    }


def push_notifications(
    db: Session,
    *,
    user_ids: Iterable[int],
    title: str,
    message: str,
    event_type: Optional[str] = None,
    reference_type: Optional[str] = None,
    reference_id: Optional[int] = None,
    link_url: Optional[str] = None,
    priority: str = "normal",
    created_by: Optional[int] = None
) -> List[Notification]:
    normalized_ids = sorted({int(uid) for uid in user_ids if uid is not None})
    if not normalized_ids:
        return []

    notifications = [
        Notification(
            user_id=user_id,
            title=title,
            message=message,
            event_type=event_type,
            reference_type=reference_type,
            reference_id=reference_id,
            link_url=link_url,
            priority=priority,
            created_by=created_by,
            is_read=False,
        )
        for user_id in normalized_ids
    ]
    db.add_all(notifications)
    db.commit()

    for notification in notifications:
        db.refresh(notification)
        notification_ws_manager.notify_threadsafe(
            notification.user_id, notification_to_payload(notification)
        )

    return notifications


def hr_user_ids(db: Session, role: Optional[str] = None) -> list[int]:
    roles = [role] if role else ["admin", "hr"]
    return [
        user_id
        for (user_id,) in db.query(User.id).filter(User.role.in_(roles), User.is_active == True).all()  # noqa: E712
    ]


def notify_users(
    db: Session,
    *,
    user_ids: Iterable[Optional[int]],
    title: str,
    message: str,
    actor_id: Optional[int] = None,
    link_url: Optional[str] = None,
    entity_id: Optional[int] = None,
    event_type: str = "approval_request",
    email_subject: Optional[str] = None,
) -> int:
    """
    Fan a leave workflow message out as in-app notifications plus email.

    Best effort: the leave request is already committed when this runs, so
    any failure is logged and swallowed. Returns the number of recipients.
    """
    unique_ids = sorted({uid for uid in user_ids if uid})
    if not unique_ids:
        return 0

    try:
        push_notifications(
            db,
            user_ids=unique_ids,
            title=title,
            message=message,
            event_type=event_type,
            reference_type="leave_request",
            reference_id=entity_id,
            link_url=link_url or LEAVE_LINK,
            priority="high",
            created_by=actor_id,
        )
    except Exception:
        db.rollback()
        logger.exception("Failed to store leave notifications for users %s", unique_ids)
        return 0

    try:
        recipients = db.query(User.email, User.additional_email).filter(User.id.in_(unique_ids)).all()
        emails = [email for row in recipients for email in row if email]
        if emails:
            send_leave_workflow_email(
                to=emails,
                subject=email_subject or title,
                title=title,
                message=message,
                cta_path=link_url or LEAVE_LINK,
            )
    except Exception:
        logger.exception("Failed to email leave notification for request %s", entity_id)

    return len(unique_ids)
