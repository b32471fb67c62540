"""Ticket chat router - /tickets/{ticket_id}/messages."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from helpdesk.core.config import settings
from helpdesk.core.deps import (
    get_current_session,
    get_db,
    get_event_bus,
    require_csrf_header,
)
from helpdesk.core.rate_limit import limiter
from helpdesk.core.websocket import EventPublisher
from helpdesk.schemas.auth import UserSession
from helpdesk.schemas.messages import (
    MessageCreate,
    MessageListResponse,
    MessageRead,
    PaginationRead,
)
from helpdesk.services import message_service

router = APIRouter()


@router.get("/{ticket_id}/messages", response_model=MessageListResponse)
def list_messages(
    ticket_id: UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.MESSAGE_PAGE_SIZE, ge=1, le=settings.MESSAGE_PAGE_MAX),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """
    Get a window of the ticket's chat.

    Page 1 holds the most recent messages; each window is returned oldest
    first for top-to-bottom rendering.
    """
    result = message_service.list_messages(
        db, ticket_id=ticket_id, session=session, page=page, limit=limit
    )
    return MessageListResponse(
        data=[MessageRead.model_validate(m) for m in result.items],
        pagination=PaginationRead(
            total=result.total,
            page=result.page,
            limit=result.limit,
            pages=result.pages,
        ),
    )


@router.post(
    "/{ticket_id}/messages",
    response_model=MessageRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
@limiter.limit("30/minute")
def send_message(
    request: Request,
    ticket_id: UUID,
    data: MessageCreate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_event_bus),
):
    """Post a message; the counterparty is notified after it is saved."""
    message = message_service.send_message(
        db,
        publisher,
        ticket_id=ticket_id,
        session=session,
        content=data.content,
    )
    return MessageRead.model_validate(message)
