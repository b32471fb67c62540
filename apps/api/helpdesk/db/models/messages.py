"""Ticket chat transcript model."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uuid
from datetime import datetime

from sqlalchemy import BigInteger, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from helpdesk.db.base import Base, utcnow

if TYPE_CHECKING:
    from helpdesk.db.models import Ticket, User


class Message(Base):
    """
    One chat message on a ticket.

    Append-only. Transcript order is (created_at, id); the integer id is
    monotonic so it breaks timestamp ties in insertion order.
    """

    __tablename__ = "messages"
    __table_args__ = (
        Index("idx_messages_ticket_created", "ticket_id", "created_at", "id"),
    )

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    ticket_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False
    )
    sender_user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    # Relationships
    ticket: Mapped["Ticket"] = relationship()
    sender: Mapped["User"] = relationship()
