"""Notification-related enums."""

from enum import Enum


class NotificationType(str, Enum):
    """Types of in-app notifications."""

    TICKET_CREATED = "ticket:created"
    TICKET_UPDATED = "ticket:updated"
    TICKET_ASSIGNED = "ticket:assigned"
    MESSAGE_NEW = "message:new"

    @classmethod
    def has_value(cls, value: str) -> bool:
        return value in cls._value2member_map_


class RealtimeEvent(str, Enum):
    """Server -> client event names on the realtime channel."""

    TICKET_CREATED = "ticket:created"
    TICKET_UPDATED = "ticket:updated"
    TICKET_STATUS_CHANGED = "ticket:status-changed"
    NOTIFICATION_NEW = "notification:new"
    MESSAGE_NEW = "message:new"
