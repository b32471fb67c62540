"""Pydantic schemas for the notification inbox."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class NotificationTicketRead(BaseModel):
    """Linked ticket summary shown next to a notification."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    status: str
    priority: str


class NotificationRead(BaseModel):
    """Notification response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    type: str
    title: str
    message: str
    ticket_id: UUID | None = None
    ticket: NotificationTicketRead | None = None
    read: bool
    created_at: datetime


class NotificationListResponse(BaseModel):
    """Newest-first inbox page with the unread count from the same snapshot."""

    data: list[NotificationRead]
    unread_count: int


class UnreadCountResponse(BaseModel):
    """Unread count only (for polling)."""

    count: int


class MarkAllReadResponse(BaseModel):
    success: bool = True
    marked_read: int
