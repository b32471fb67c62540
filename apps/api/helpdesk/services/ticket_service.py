"""Ticket service - minimal CRUD that drives the lifecycle notifier."""

import logging
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from helpdesk.core.errors import (
    ForbiddenError,
    InfrastructureError,
    NotFoundError,
    ValidationError,
)
from helpdesk.core.structured_logging import build_log_context
from helpdesk.core.websocket import EventPublisher
from helpdesk.db.base import utcnow
from helpdesk.db.enums import Role, STAFF_ROLES, TicketStatus
from helpdesk.db.models import Ticket
from helpdesk.schemas.auth import UserSession
from helpdesk.schemas.tickets import TicketCreate, TicketUpdate
from helpdesk.services import ticket_events, user_service

logger = logging.getLogger(__name__)


def get_ticket(db: Session, ticket_id: UUID) -> Ticket | None:
    """Get ticket by ID with creator and assignee loaded."""
    return (
        db.query(Ticket)
        .options(joinedload(Ticket.creator), joinedload(Ticket.assignee))
        .filter(Ticket.id == ticket_id)
        .first()
    )


def is_participant(ticket: Ticket, session: UserSession) -> bool:
    """
    Creator, current assignee, or any admin/analyst.

    Governs both ticket reads and the ticket chat. Any staff member may join,
    not only the assignee (shared support queue).
    """
    if session.is_staff:
        return True
    return session.user_id in (ticket.created_by_user_id, ticket.assignee_user_id)


def get_ticket_for_viewer(db: Session, ticket_id: UUID, session: UserSession) -> Ticket:
    """
    Load a ticket the caller may see.

    Raises:
        NotFoundError: ticket does not exist
        ForbiddenError: caller is not a participant
    """
    ticket = get_ticket(db, ticket_id)
    if not ticket:
        raise NotFoundError("Ticket not found")
    if not is_participant(ticket, session):
        raise ForbiddenError("Not authorized to view this ticket")
    return ticket


def _commit(db: Session, ticket: Ticket) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception(
            "Ticket write failed",
            extra=build_log_context(ticket_id=str(ticket.id) if ticket.id else None),
        )
        raise InfrastructureError("Ticket could not be saved") from exc
    db.refresh(ticket)


def create_ticket(
    db: Session,
    publisher: EventPublisher,
    *,
    session: UserSession,
    data: TicketCreate,
) -> Ticket:
    """Create a ticket owned by the caller, then notify staff."""
    ticket = Ticket(
        title=data.title.strip(),
        description=data.description.strip(),
        priority=data.priority.value,
        category=data.category,
        organization_id=data.organization_id,
        created_by_user_id=session.user_id,
        status=TicketStatus.OPEN.value,
    )
    db.add(ticket)
    _commit(db, ticket)

    logger.info(
        "Ticket created",
        extra=build_log_context(ticket_id=str(ticket.id), user_id=str(session.user_id)),
    )
    ticket_events.notify_ticket_created(db, publisher, ticket, actor=session)
    return get_ticket(db, ticket.id) or ticket


def _validate_assignee(db: Session, assignee_id: UUID) -> None:
    assignee = user_service.get_user_by_id(db, assignee_id)
    if (
        not assignee
        or not assignee.is_active
        or not Role.has_value(assignee.role)
        or Role(assignee.role) not in STAFF_ROLES
    ):
        raise ValidationError("Assignee must be an active admin or analyst", field="assignee_user_id")


def update_ticket(
    db: Session,
    publisher: EventPublisher,
    *,
    ticket_id: UUID,
    session: UserSession,
    data: TicketUpdate,
) -> Ticket:
    """
    Apply a partial update, then dispatch status and assignment side effects.

    Only fields present in the request body are applied. The creator may edit
    their own ticket; reassignment is reserved for admins and analysts.
    """
    ticket = get_ticket(db, ticket_id)
    if not ticket:
        raise NotFoundError("Ticket not found")
    if not (session.is_staff or ticket.created_by_user_id == session.user_id):
        raise ForbiddenError("Not authorized to update this ticket")

    changes = data.model_dump(exclude_unset=True)
    if "assignee_user_id" in changes:
        if not session.is_staff:
            raise ForbiddenError("Only admins and analysts can assign tickets")
        if changes["assignee_user_id"] is not None:
            _validate_assignee(db, changes["assignee_user_id"])

    for field in ("title", "description", "status", "priority"):
        if field in changes and changes[field] is None:
            raise ValidationError(f"{field} cannot be null", field=field)

    previous_status = ticket.status
    previous_assignee_id = ticket.assignee_user_id

    if "title" in changes:
        ticket.title = changes["title"].strip()
    if "description" in changes:
        ticket.description = changes["description"].strip()
    if "priority" in changes:
        ticket.priority = changes["priority"].value
    if "category" in changes:
        ticket.category = changes["category"]
    if "assignee_user_id" in changes:
        ticket.assignee_user_id = changes["assignee_user_id"]
    if "status" in changes:
        new_status = changes["status"].value
        if new_status != previous_status:
            ticket.status = new_status
            ticket.resolved_at = utcnow() if new_status == TicketStatus.RESOLVED.value else None

    _commit(db, ticket)

    ticket_events.notify_ticket_updated(
        db,
        publisher,
        ticket,
        actor=session,
        previous_status=previous_status,
        previous_assignee_id=previous_assignee_id,
    )
    return get_ticket(db, ticket.id) or ticket
