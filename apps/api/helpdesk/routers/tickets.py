"""Tickets router - minimal ticket CRUD and the "my chats" list."""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from helpdesk.core.deps import (
    get_current_session,
    get_db,
    get_event_bus,
    require_csrf_header,
)
from helpdesk.core.websocket import EventPublisher
from helpdesk.db.models import Ticket
from helpdesk.schemas.auth import UserSession
from helpdesk.schemas.tickets import (
    ChatSummaryRead,
    MyChatItem,
    MyChatsResponse,
    TicketCreate,
    TicketRead,
    TicketUpdate,
)
from helpdesk.services import message_service, ticket_service

router = APIRouter()


def _chat_item(ticket: Ticket) -> MyChatItem:
    base = TicketRead.model_validate(ticket).model_dump()
    return MyChatItem(
        **base,
        chat=ChatSummaryRead(
            last_message=ticket.last_message,
            last_message_at=ticket.last_message_at,
        ),
    )


@router.post(
    "",
    response_model=TicketRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_ticket(
    data: TicketCreate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_event_bus),
):
    """File a ticket. Admins and analysts are notified once it is saved."""
    ticket = ticket_service.create_ticket(db, publisher, session=session, data=data)
    return TicketRead.model_validate(ticket)


# Declared before /{ticket_id} so the literal path wins
@router.get("/my-chats", response_model=MyChatsResponse)
def list_my_chats(
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Tickets with chat activity visible to the caller, most recent first."""
    tickets = message_service.list_my_chats(db, session=session)
    return MyChatsResponse(data=[_chat_item(t) for t in tickets])


@router.get("/{ticket_id}", response_model=TicketRead)
def get_ticket(
    ticket_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    ticket = ticket_service.get_ticket_for_viewer(db, ticket_id, session)
    return TicketRead.model_validate(ticket)


@router.put(
    "/{ticket_id}",
    response_model=TicketRead,
    dependencies=[Depends(require_csrf_header)],
)
def update_ticket(
    ticket_id: UUID,
    data: TicketUpdate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_event_bus),
):
    """
    Update a ticket.

    A status change notifies the creator and broadcasts to staff; an
    unchanged status is silent.
    """
    ticket = ticket_service.update_ticket(
        db, publisher, ticket_id=ticket_id, session=session, data=data
    )
    return TicketRead.model_validate(ticket)
