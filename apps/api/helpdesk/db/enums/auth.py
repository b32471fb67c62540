"""Auth-related enums."""

from enum import Enum


class Role(str, Enum):
    """
    User roles.

    - USER: files tickets and chats on their own tickets
    - ANALYST: triages and resolves tickets from the shared queue
    - ADMIN: full access to every ticket and the realtime stats endpoint
    """

    ADMIN = "admin"
    ANALYST = "analyst"
    USER = "user"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid role."""
        return value in cls._value2member_map_


# Roles that receive ticket triage broadcasts and may join any ticket chat
STAFF_ROLES = frozenset({Role.ADMIN, Role.ANALYST})
