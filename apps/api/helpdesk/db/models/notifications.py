"""SQLAlchemy ORM models."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from helpdesk.db.base import Base, utcnow

if TYPE_CHECKING:
    from helpdesk.db.models import Ticket, User


class Notification(Base):
    """
    In-app notification for one recipient.

    Append-only inbox: rows are never deleted and only `read` changes,
    and only from False to True.
    """

    __tablename__ = "notifications"
    __table_args__ = (
        Index("idx_notif_user_read_created", "user_id", "read", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )

    # Notification type (NotificationType value)
    type: Mapped[str] = mapped_column(String(50), nullable=False)

    # Content
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)

    # Linked ticket (for click-through)
    ticket_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("tickets.id", ondelete="SET NULL"), nullable=True
    )

    read: Mapped[bool] = mapped_column(default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    # Relationships
    user: Mapped["User"] = relationship()
    ticket: Mapped["Ticket | None"] = relationship()

    @validates("read")
    def _validate_read(self, key: str, value: bool) -> bool:
        if self.read and not value:
            raise ValueError("A read notification cannot be marked unread")
        return value
