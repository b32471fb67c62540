"""User service - identity lookups used by the notifier and chat."""

from typing import Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from helpdesk.core.errors import ValidationError
from helpdesk.db.enums import Role
from helpdesk.db.models import User


def get_user_by_id(db: Session, user_id: UUID) -> User | None:
    """Get user by ID."""
    return db.query(User).filter(User.id == user_id).first()


def get_user_by_email(db: Session, email: str) -> User | None:
    """Get user by email (case-insensitive)."""
    return db.query(User).filter(User.email == email.strip().lower()).first()


def list_user_ids_by_roles(db: Session, roles: Iterable[Role]) -> list[UUID]:
    """IDs of every active user holding one of the roles."""
    values = [role.value for role in roles]
    rows = (
        db.query(User.id)
        .filter(User.role.in_(values), User.is_active.is_(True))
        .order_by(User.created_at, User.id)
        .all()
    )
    return [row.id for row in rows]


def create_user(db: Session, *, name: str, email: str, role: str) -> User:
    """Create a user. Registration UI lives elsewhere; this backs the CLI."""
    if not Role.has_value(role):
        raise ValidationError(f"Unknown role '{role}'", field="role")
    if not name.strip():
        raise ValidationError("Name is required", field="name")
    if get_user_by_email(db, email):
        raise ValidationError(f"User {email} already exists", field="email")

    user = User(name=name.strip(), email=email.strip().lower(), role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def revoke_all_sessions(db: Session, user_id: UUID) -> bool:
    """
    Revoke all sessions for a user by bumping token_version.

    Live sockets keep their rooms until they reconnect.

    Returns:
        True if user found and sessions revoked, False if user not found
    """
    user = get_user_by_id(db, user_id)
    if not user:
        return False

    user.token_version += 1
    db.commit()
    return True
