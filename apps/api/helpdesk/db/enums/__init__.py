"""Enum definitions for application constants."""

from helpdesk.db.enums.auth import Role, STAFF_ROLES
from helpdesk.db.enums.notifications import NotificationType, RealtimeEvent
from helpdesk.db.enums.tickets import TicketPriority, TicketStatus

__all__ = [
    "NotificationType",
    "RealtimeEvent",
    "Role",
    "STAFF_ROLES",
    "TicketPriority",
    "TicketStatus",
]
