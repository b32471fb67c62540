"""Pydantic schemas for ticket chat."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class MessageSenderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: str
    role: str


class MessageRead(BaseModel):
    """One chat message with its resolved sender."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    ticket_id: UUID
    sender_user_id: UUID
    sender: MessageSenderRead
    content: str
    created_at: datetime


class MessageCreate(BaseModel):
    # Trimmed and length-checked by the chat service
    content: str


class PaginationRead(BaseModel):
    total: int
    page: int
    limit: int
    pages: int


class MessageListResponse(BaseModel):
    """Chronological window of a ticket transcript."""

    data: list[MessageRead]
    pagination: PaginationRead
