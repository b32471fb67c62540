"""SQLAlchemy ORM models."""

from helpdesk.db.models.users import User
from helpdesk.db.models.tickets import Ticket
from helpdesk.db.models.notifications import Notification
from helpdesk.db.models.messages import Message

__all__ = ["Message", "Notification", "Ticket", "User"]
