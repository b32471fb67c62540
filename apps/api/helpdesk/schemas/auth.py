"""Authentication-related Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel

from helpdesk.db.enums import Role, STAFF_ROLES


class UserSession(BaseModel):
    """
    Session context for authenticated requests.

    Returned by the get_current_session dependency; carries the identity and
    role contract that chat authorization and room membership depend on.
    """
    user_id: UUID
    role: Role  # Validated enum
    name: str
    email: str

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES
