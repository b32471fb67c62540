"""Ticket model (owned by the CRUD layer; the realtime core reads it)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from helpdesk.db.base import Base, utcnow
from helpdesk.db.enums import TicketStatus

if TYPE_CHECKING:
    from helpdesk.db.models import User


class Ticket(Base):
    """
    A service-desk ticket.

    `last_message` / `last_message_at` are a denormalized chat summary written
    by the chat coordinator (last write wins).
    """

    __tablename__ = "tickets"
    __table_args__ = (
        Index("idx_tickets_creator", "created_by_user_id", "updated_at"),
        Index("idx_tickets_assignee", "assignee_user_id", "updated_at"),
        Index("idx_tickets_last_message_at", "last_message_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=TicketStatus.OPEN.value, nullable=False
    )
    priority: Mapped[str] = mapped_column(String(20), nullable=False)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    # Organizations live outside this service; kept as an opaque reference
    organization_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)

    created_by_user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    assignee_user_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Chat summary
    last_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_message_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, onupdate=utcnow, nullable=False
    )

    # Relationships
    creator: Mapped["User"] = relationship(foreign_keys=[created_by_user_id])
    assignee: Mapped["User | None"] = relationship(foreign_keys=[assignee_user_id])
