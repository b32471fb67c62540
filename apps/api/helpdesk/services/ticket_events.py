"""Ticket domain events (side-effect dispatch).

Called by ticket_service after the ticket write has committed. Each handler
persists the inbox records first and publishes to the room router second.
Failures are logged and swallowed: the ticket change already succeeded and
must not be reported as failed because a notification could not be sent.
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from helpdesk.core.structured_logging import build_log_context
from helpdesk.core.websocket import EventPublisher, role_room, user_room
from helpdesk.db.base import utcnow
from helpdesk.db.enums import (
    NotificationType,
    RealtimeEvent,
    Role,
    STAFF_ROLES,
    TicketStatus,
)
from helpdesk.db.models import Ticket
from helpdesk.schemas.auth import UserSession
from helpdesk.services import notification_service, user_service

logger = logging.getLogger(__name__)

STAFF_ROOMS = frozenset({role_room(Role.ADMIN), role_room(Role.ANALYST)})


def _ticket_summary(ticket: Ticket) -> dict[str, Any]:
    return {
        "id": str(ticket.id),
        "title": ticket.title,
        "status": ticket.status,
        "priority": ticket.priority,
        "category": ticket.category,
    }


def _status_message(ticket: Ticket, new_status: str, actor_name: str) -> str:
    if new_status == TicketStatus.IN_PROGRESS.value:
        return f'Your ticket "{ticket.title}" is now being worked on by {actor_name}'
    if new_status == TicketStatus.RESOLVED.value:
        return f'Your ticket "{ticket.title}" has been resolved by {actor_name}'
    if new_status == TicketStatus.OPEN.value:
        return f'Your ticket "{ticket.title}" has been reopened'
    return f'Your ticket "{ticket.title}" has been updated'


# =============================================================================
# Ticket created
# =============================================================================


def notify_ticket_created(
    db: Session,
    publisher: EventPublisher,
    ticket: Ticket,
    *,
    actor: UserSession,
) -> None:
    """Notify every admin and analyst about a new ticket."""
    try:
        _dispatch_ticket_created(db, publisher, ticket, actor)
    except Exception:
        db.rollback()
        logger.exception(
            "Ticket created notification failed",
            extra=build_log_context(ticket_id=str(ticket.id), event=RealtimeEvent.TICKET_CREATED.value),
        )


def _dispatch_ticket_created(
    db: Session,
    publisher: EventPublisher,
    ticket: Ticket,
    actor: UserSession,
) -> None:
    recipient_ids = user_service.list_user_ids_by_roles(db, STAFF_ROLES)
    title = "New Ticket"
    message = f'New ticket "{ticket.title}" created by {actor.name}'

    notification_service.create_notifications(
        db,
        user_ids=recipient_ids,
        type=NotificationType.TICKET_CREATED,
        title=title,
        message=message,
        ticket_id=ticket.id,
    )

    # One publish; the router fans out to every staff connection
    publisher.publish(
        STAFF_ROOMS,
        RealtimeEvent.TICKET_CREATED.value,
        {
            "type": NotificationType.TICKET_CREATED.value,
            "title": title,
            "message": message,
            "ticket_id": str(ticket.id),
            "ticket": _ticket_summary(ticket),
            "created_by": {"id": str(actor.user_id), "name": actor.name, "email": actor.email},
            "timestamp": utcnow().isoformat(),
        },
    )


# =============================================================================
# Ticket updated
# =============================================================================


def notify_ticket_updated(
    db: Session,
    publisher: EventPublisher,
    ticket: Ticket,
    *,
    actor: UserSession,
    previous_status: str,
    previous_assignee_id: UUID | None,
) -> None:
    """
    Dispatch status-change and assignment side effects.

    A status "change" to the current value is silent.
    """
    if ticket.status != previous_status:
        try:
            _dispatch_status_changed(db, publisher, ticket, actor, previous_status)
        except Exception:
            db.rollback()
            logger.exception(
                "Ticket status notification failed",
                extra=build_log_context(ticket_id=str(ticket.id), event=RealtimeEvent.TICKET_UPDATED.value),
            )

    new_assignee_id = ticket.assignee_user_id
    if new_assignee_id and new_assignee_id != previous_assignee_id and new_assignee_id != actor.user_id:
        try:
            _dispatch_assigned(db, publisher, ticket, actor, new_assignee_id)
        except Exception:
            db.rollback()
            logger.exception(
                "Ticket assignment notification failed",
                extra=build_log_context(ticket_id=str(ticket.id), user_id=str(new_assignee_id)),
            )


def _dispatch_status_changed(
    db: Session,
    publisher: EventPublisher,
    ticket: Ticket,
    actor: UserSession,
    previous_status: str,
) -> None:
    creator_id = ticket.created_by_user_id
    if not creator_id:
        logger.warning(
            "Ticket has no creator; skipping status notification",
            extra=build_log_context(ticket_id=str(ticket.id)),
        )
        return

    new_status = ticket.status
    title = "Ticket Resolved" if new_status == TicketStatus.RESOLVED.value else "Ticket Updated"
    message = _status_message(ticket, new_status, actor.name)

    notification_service.create_notification(
        db,
        user_id=creator_id,
        type=NotificationType.TICKET_UPDATED,
        title=title,
        message=message,
        ticket_id=ticket.id,
    )

    timestamp = utcnow().isoformat()
    summary = _ticket_summary(ticket)
    summary["previous_status"] = previous_status
    updated_by = {"id": str(actor.user_id), "name": actor.name, "role": actor.role.value}

    publisher.publish(
        {user_room(creator_id)},
        RealtimeEvent.TICKET_UPDATED.value,
        {
            "type": NotificationType.TICKET_UPDATED.value,
            "title": title,
            "message": message,
            "ticket_id": str(ticket.id),
            "ticket": summary,
            "previous_status": previous_status,
            "status": new_status,
            "updated_by": updated_by,
            "resolved_at": ticket.resolved_at.isoformat() if ticket.resolved_at else None,
            "timestamp": timestamp,
        },
    )

    # Lighter signal for triage dashboards
    publisher.publish(
        STAFF_ROOMS,
        RealtimeEvent.TICKET_STATUS_CHANGED.value,
        {
            "message": f'Ticket "{ticket.title}" moved from {previous_status} to {new_status}',
            "ticket_id": str(ticket.id),
            "ticket": summary,
            "updated_by": updated_by,
            "timestamp": timestamp,
        },
    )


def _dispatch_assigned(
    db: Session,
    publisher: EventPublisher,
    ticket: Ticket,
    actor: UserSession,
    assignee_id: UUID,
) -> None:
    notification = notification_service.create_notification(
        db,
        user_id=assignee_id,
        type=NotificationType.TICKET_ASSIGNED,
        title="Ticket Assigned",
        message=f'{actor.name} assigned ticket "{ticket.title}" to you',
        ticket_id=ticket.id,
    )
    publisher.publish(
        {user_room(assignee_id)},
        RealtimeEvent.NOTIFICATION_NEW.value,
        notification_service.to_event_payload(notification),
    )
