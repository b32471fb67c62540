"""
Message service - ticket chat transcript and its side effects.

The message write and the ticket's chat summary commit together and are the
primary operation. Notifying the counterparty happens afterwards and never
fails the send.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from helpdesk.core.config import settings
from helpdesk.core.errors import (
    ForbiddenError,
    InfrastructureError,
    NotFoundError,
    ValidationError,
)
from helpdesk.core.structured_logging import build_log_context
from helpdesk.core.websocket import EventPublisher, role_room, user_room
from helpdesk.db.base import utcnow
from helpdesk.db.enums import NotificationType, RealtimeEvent, Role
from helpdesk.db.models import Message, Ticket
from helpdesk.schemas.auth import UserSession
from helpdesk.schemas.messages import MessageRead
from helpdesk.services import notification_service
from helpdesk.services.ticket_service import is_participant as can_access_chat

logger = logging.getLogger(__name__)


@dataclass
class MessagePage:
    """One chronological window of a transcript."""

    items: list[Message]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0


# =============================================================================
# Access
# =============================================================================


def get_ticket_for_chat(db: Session, ticket_id: UUID, session: UserSession) -> Ticket:
    """
    Raises:
        NotFoundError: ticket does not exist
        ForbiddenError: caller may not read or post on this ticket
    """
    ticket = db.query(Ticket).filter(Ticket.id == ticket_id).first()
    if not ticket:
        raise NotFoundError("Ticket not found")
    if not can_access_chat(ticket, session):
        raise ForbiddenError("Not authorized to access messages on this ticket")
    return ticket


def validate_content(content: str | None) -> str:
    """Trim and bound chat content."""
    text = (content or "").strip()
    if not text:
        raise ValidationError("Message content is required", field="content")
    if len(text) > settings.MESSAGE_MAX_LENGTH:
        raise ValidationError(
            f"Message cannot exceed {settings.MESSAGE_MAX_LENGTH} characters", field="content"
        )
    return text


# =============================================================================
# Transcript
# =============================================================================


def list_messages(
    db: Session,
    *,
    ticket_id: UUID,
    session: UserSession,
    page: int = 1,
    limit: int | None = None,
) -> MessagePage:
    """
    Latest-first window of a ticket's chat, returned oldest first.

    Page 1 is always the tail of the conversation; page 2 is the next-older
    window, and so on.
    """
    get_ticket_for_chat(db, ticket_id, session)

    limit = limit or settings.MESSAGE_PAGE_SIZE
    if limit < 1 or limit > settings.MESSAGE_PAGE_MAX:
        raise ValidationError(f"limit must be between 1 and {settings.MESSAGE_PAGE_MAX}", field="limit")
    if page < 1:
        raise ValidationError("page must be at least 1", field="page")

    total = db.query(func.count(Message.id)).filter(Message.ticket_id == ticket_id).scalar() or 0
    newest_first = (
        db.query(Message)
        .options(joinedload(Message.sender))
        .filter(Message.ticket_id == ticket_id)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    newest_first.reverse()
    return MessagePage(items=newest_first, total=total, page=page, limit=limit)


def resolve_counterparty(ticket: Ticket, sender_id: UUID) -> UUID | None:
    """
    The single user a message should notify.

    The creator's messages go to the assignee (if any); everyone else's go to
    the creator. Never the sender.
    """
    if sender_id == ticket.created_by_user_id:
        target = ticket.assignee_user_id
    else:
        target = ticket.created_by_user_id
    if target is None or target == sender_id:
        return None
    return target


def send_message(
    db: Session,
    publisher: EventPublisher,
    *,
    ticket_id: UUID,
    session: UserSession,
    content: str | None,
) -> Message:
    """
    Append a message, update the chat summary, then notify.

    Raises:
        NotFoundError / ForbiddenError: see get_ticket_for_chat
        ValidationError: empty or oversized content
        InfrastructureError: the message could not be persisted
    """
    ticket = get_ticket_for_chat(db, ticket_id, session)
    text = validate_content(content)

    message = Message(ticket_id=ticket.id, sender_user_id=session.user_id, content=text)
    try:
        db.add(message)
        db.flush()
        # Last write wins; the transcript is authoritative for ordering
        ticket.last_message = message.content
        ticket.last_message_at = message.created_at
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception(
            "Message write failed",
            extra=build_log_context(ticket_id=str(ticket_id), user_id=str(session.user_id)),
        )
        raise InfrastructureError("Message could not be saved") from exc

    message = (
        db.query(Message)
        .options(joinedload(Message.sender), joinedload(Message.ticket))
        .filter(Message.id == message.id)
        .one()
    )
    notify_message_sent(db, publisher, message, sender=session)
    return message


# =============================================================================
# Side effects
# =============================================================================


def build_message_event(message: Message, *, sender_name: str) -> dict[str, Any]:
    """Payload for `message:new`: the full message plus a preview line."""
    ticket = message.ticket
    return {
        "message": f"{sender_name}: {_preview(message.content)}",
        "ticket_id": str(message.ticket_id),
        "ticket_title": ticket.title,
        "sender_name": sender_name,
        "chat_message": MessageRead.model_validate(message).model_dump(mode="json"),
        "timestamp": utcnow().isoformat(),
    }


def _preview(content: str) -> str:
    return content[: settings.MESSAGE_PREVIEW_LENGTH]


def notify_message_sent(
    db: Session,
    publisher: EventPublisher,
    message: Message,
    *,
    sender: UserSession,
) -> None:
    """Notify the counterparty (and staff on user escalations). Never raises."""
    ticket = message.ticket
    try:
        counterparty_id = resolve_counterparty(ticket, sender.user_id)
        sender_is_creator = sender.user_id == ticket.created_by_user_id

        notification = None
        if counterparty_id:
            notification = notification_service.create_notification(
                db,
                user_id=counterparty_id,
                type=NotificationType.MESSAGE_NEW,
                title=f'New message on "{ticket.title}"',
                message=f"{sender.name}: {_preview(message.content)}",
                ticket_id=ticket.id,
            )

        rooms: set[str] = set()
        if counterparty_id:
            rooms.add(user_room(counterparty_id))
        if sender_is_creator:
            # Unassigned or not, any available analyst sees user activity
            rooms.update({role_room(Role.ADMIN), role_room(Role.ANALYST)})
        if rooms:
            publisher.publish(
                rooms,
                RealtimeEvent.MESSAGE_NEW.value,
                build_message_event(message, sender_name=sender.name),
            )

        if notification is not None:
            publisher.publish(
                {user_room(counterparty_id)},
                RealtimeEvent.NOTIFICATION_NEW.value,
                notification_service.to_event_payload(notification),
            )
    except Exception:
        db.rollback()
        logger.exception(
            "Message notification failed",
            extra=build_log_context(
                ticket_id=str(message.ticket_id),
                user_id=str(sender.user_id),
                event=RealtimeEvent.MESSAGE_NEW.value,
            ),
        )


# =============================================================================
# My chats
# =============================================================================


def list_my_chats(db: Session, *, session: UserSession, limit: int | None = None) -> list[Ticket]:
    """
    Role-scoped tickets ordered by latest chat activity.

    user: tickets they created. analyst: created or assigned. admin: all.
    Tickets without messages fall back to their last update time.
    """
    query = db.query(Ticket).options(joinedload(Ticket.creator), joinedload(Ticket.assignee))

    if session.role == Role.USER:
        query = query.filter(Ticket.created_by_user_id == session.user_id)
    elif session.role == Role.ANALYST:
        query = query.filter(
            or_(
                Ticket.created_by_user_id == session.user_id,
                Ticket.assignee_user_id == session.user_id,
            )
        )

    activity = func.coalesce(Ticket.last_message_at, Ticket.updated_at)
    return (
        query.order_by(activity.desc(), Ticket.id.desc())
        .limit(limit or settings.MY_CHATS_LIMIT)
        .all()
    )
