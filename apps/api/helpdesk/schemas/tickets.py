"""Pydantic schemas for tickets and the "my chats" list."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from helpdesk.db.enums import TicketPriority, TicketStatus


class TicketCreate(BaseModel):
    title: str = Field(min_length=5, max_length=200)
    description: str = Field(min_length=10)
    priority: TicketPriority
    category: str | None = Field(default=None, max_length=100)
    organization_id: UUID | None = None


class TicketUpdate(BaseModel):
    """Partial update; only fields present in the body are applied."""

    title: str | None = Field(default=None, min_length=5, max_length=200)
    description: str | None = Field(default=None, min_length=10)
    status: TicketStatus | None = None
    priority: TicketPriority | None = None
    category: str | None = Field(default=None, max_length=100)
    assignee_user_id: UUID | None = None


class TicketUserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: str
    role: str


class TicketRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: str
    status: str
    priority: str
    category: str | None = None
    organization_id: UUID | None = None
    created_by_user_id: UUID
    assignee_user_id: UUID | None = None
    creator: TicketUserRead
    assignee: TicketUserRead | None = None
    resolved_at: datetime | None = None
    last_message: str | None = None
    last_message_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class ChatSummaryRead(BaseModel):
    last_message: str | None = None
    last_message_at: datetime | None = None


class MyChatItem(TicketRead):
    """Ticket annotated with its chat summary."""

    chat: ChatSummaryRead


class MyChatsResponse(BaseModel):
    data: list[MyChatItem]
