from typing import List, Optional

from sqlalchemy.orm import Session

from chatbridge.models import Notification
from chatbridge.services.conversation_service import now_ts

HUMAN_INTERVENTION_REQUIRED = "human_intervention_required"


class NotificationNotFoundError(Exception):
    def __init__(self, notification_id: int):
        self.notification_id = notification_id
        super().__init__(f"Notification {notification_id} not found")


def create_notification(
    db: Session,
    chat_id: str,
    notification_type: str,
    summary: Optional[str],
    contact_name: Optional[str] = None,
    timestamp: Optional[int] = None,
) -> Notification:
    notification = Notification(
        chat_id=chat_id,
        contact_name=contact_name,
        type=notification_type,
        summary=summary,
        timestamp=timestamp if timestamp is not None else now_ts(),
        is_read=False,
    )
    db.add(notification)
    db.flush()
    return notification


def list_unread(db: Session) -> List[Notification]:
    return (
        db.query(Notification)
        .filter(Notification.is_read.is_(False))
        .order_by(Notification.timestamp.desc(), Notification.id.desc())
        .all()
    )


def mark_read(db: Session, notification_id: int) -> Notification:
    notification = db.query(Notification).filter(Notification.id == notification_id).first()
    if notification is None:
        raise NotificationNotFoundError(notification_id)
    notification.is_read = True
    db.flush()
    return notification


def serialize_notification(notification: Notification) -> dict:
    return {
        "id": notification.id,
        "chat_id": notification.chat_id,
        "contact_name": notification.contact_name,
        "type": notification.type,
        "summary": notification.summary,
        "timestamp": notification.timestamp,
        "is_read": bool(notification.is_read),
    }
