"""
Notification Service - durable per-user inbox.

Notifications are only created as side effects of ticket and chat writes
(see ticket_events and message_service). Every read and update is filtered
by recipient, so another user's notification is indistinguishable from a
missing one.
"""

from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session, aliased, selectinload

from helpdesk.core.config import settings
from helpdesk.core.errors import NotFoundError, ValidationError
from helpdesk.db.base import utcnow
from helpdesk.db.enums import NotificationType
from helpdesk.db.models import Notification
from helpdesk.schemas.notifications import NotificationRead


# =============================================================================
# Validation
# =============================================================================


def _coerce_type(type: NotificationType | str) -> NotificationType:
    value = type.value if isinstance(type, NotificationType) else type
    if not NotificationType.has_value(value):
        raise ValidationError(f"Unknown notification type '{value}'", field="type")
    return NotificationType(value)


def _require_text(value: str | None, field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"Notification {field} is required", field=field)
    return text


def _build(
    user_id: UUID,
    type: NotificationType | str,
    title: str,
    message: str,
    ticket_id: Optional[UUID],
) -> Notification:
    return Notification(
        user_id=user_id,
        type=_coerce_type(type).value,
        title=_require_text(title, "title"),
        message=_require_text(message, "message"),
        ticket_id=ticket_id,
        read=False,
    )


# =============================================================================
# Notification CRUD
# =============================================================================


def create_notification(
    db: Session,
    *,
    user_id: UUID,
    type: NotificationType | str,
    title: str,
    message: str,
    ticket_id: Optional[UUID] = None,
) -> Notification:
    """Create one unread notification for a recipient."""
    notification = _build(user_id, type, title, message, ticket_id)
    db.add(notification)
    db.commit()
    db.refresh(notification)
    return notification


def create_notifications(
    db: Session,
    *,
    user_ids: Iterable[UUID],
    type: NotificationType | str,
    title: str,
    message: str,
    ticket_id: Optional[UUID] = None,
) -> list[Notification]:
    """
    Create one notification per recipient in a single commit.

    Read state is per user, so a broadcast is still N individual rows.
    """
    notifications = [
        _build(user_id, type, title, message, ticket_id) for user_id in dict.fromkeys(user_ids)
    ]
    if not notifications:
        return []
    db.add_all(notifications)
    db.commit()
    return notifications


def list_for_user(
    db: Session,
    *,
    user_id: UUID,
    limit: int | None = None,
    unread_only: bool = False,
) -> tuple[list[Notification], int]:
    """
    Newest-first notifications for a user plus the unread count.

    The count is a scalar subquery of the same statement, so the list and
    the count come from one snapshot.
    """
    limit = limit or settings.NOTIFICATION_LIST_LIMIT
    if limit < 1 or limit > settings.NOTIFICATION_LIST_MAX:
        raise ValidationError(
            f"limit must be between 1 and {settings.NOTIFICATION_LIST_MAX}", field="limit"
        )

    unread = aliased(Notification)
    unread_count = (
        db.query(func.count(unread.id))
        .filter(unread.user_id == user_id, unread.read.is_(False))
        .scalar_subquery()
    )

    query = (
        db.query(Notification, unread_count.label("unread_count"))
        .options(selectinload(Notification.ticket))
        .filter(Notification.user_id == user_id)
    )
    if unread_only:
        query = query.filter(Notification.read.is_(False))

    rows = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()
    if not rows:
        # Nothing matched, so nothing is unread either
        return [], 0
    return [row[0] for row in rows], int(rows[0][1])


def get_unread_count(db: Session, *, user_id: UUID) -> int:
    """Get count of unread notifications."""
    return db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.read.is_(False),
    ).count()


def mark_read(
    db: Session,
    *,
    notification_id: UUID,
    user_id: UUID,
) -> Notification:
    """
    Mark one of the user's notifications as read.

    Raises:
        NotFoundError: no notification with that id belongs to the user
    """
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == user_id,
    ).first()

    if not notification:
        raise NotFoundError("Notification not found")

    if not notification.read:
        notification.read = True
        db.commit()
        db.refresh(notification)

    return notification


def mark_all_read(db: Session, *, user_id: UUID) -> int:
    """Mark all of the user's unread notifications as read. Returns count updated."""
    count = db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.read.is_(False),
    ).update({"read": True}, synchronize_session="fetch")
    db.commit()
    return count


# =============================================================================
# Realtime payload
# =============================================================================


def to_event_payload(notification: Notification) -> dict:
    """Serialize a notification for the `notification:new` event."""
    payload = NotificationRead.model_validate(notification).model_dump(mode="json")
    payload["timestamp"] = utcnow().isoformat()
    return payload
