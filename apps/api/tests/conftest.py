"""
Test configuration and fixtures.

Provides:
- Fresh in-memory SQLite schema per test
- Users for each role plus JWT minting
- A recording publisher standing in for the room router
- HTTPX AsyncClient wired to the app with overridden dependencies
"""
import os

# Must be set before any helpdesk import reads settings
os.environ["TESTING"] = "1"
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["ENV"] = "test"

import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, Generator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from helpdesk.core.deps import get_db, get_event_bus
from helpdesk.core.security import create_session_token
from helpdesk.db.base import Base
from helpdesk.db.enums import Role, TicketPriority
from helpdesk.db.models import Ticket, User
from helpdesk.db.session import SessionLocal, engine
from helpdesk.main import app

import helpdesk.db.models  # noqa: F401


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture(scope="function")
def _schema() -> Generator[None, None, None]:
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db(_schema) -> Generator[Session, None, None]:
    """Session on the shared in-memory database; app code may commit freely."""
    session = SessionLocal()
    yield session
    session.close()


def make_user(db: Session, role: Role, name: str | None = None, **kwargs) -> User:
    suffix = uuid.uuid4().hex[:8]
    user = User(
        name=name or f"{role.value.title()} {suffix}",
        email=f"{role.value}-{suffix}@example.com",
        role=role.value,
        **kwargs,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def admin(db: Session) -> User:
    return make_user(db, Role.ADMIN, "Ada Admin")


@pytest.fixture
def analyst(db: Session) -> User:
    return make_user(db, Role.ANALYST, "Xavier Analyst")


@pytest.fixture
def second_analyst(db: Session) -> User:
    return make_user(db, Role.ANALYST, "Yara Analyst")


@pytest.fixture
def requester(db: Session) -> User:
    """A regular user who files tickets."""
    return make_user(db, Role.USER, "Uma User")


@pytest.fixture
def outsider(db: Session) -> User:
    """A regular user with no relation to the tickets under test."""
    return make_user(db, Role.USER, "Otto Outsider")


def make_ticket(
    db: Session,
    creator: User,
    *,
    assignee: User | None = None,
    title: str = "Printer on fire",
    status: str = "open",
) -> Ticket:
    ticket = Ticket(
        title=title,
        description="The office printer is on fire again.",
        priority=TicketPriority.HIGH.value,
        category="Hardware",
        created_by_user_id=creator.id,
        assignee_user_id=assignee.id if assignee else None,
        status=status,
    )
    db.add(ticket)
    db.commit()
    db.refresh(ticket)
    return ticket


# =============================================================================
# Auth Fixtures
# =============================================================================


def token_for(user: User) -> str:
    return create_session_token(user.id, user.role, user.token_version)


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {token_for(user)}"}


# =============================================================================
# Publisher Fixtures
# =============================================================================


@dataclass
class PublishedEvent:
    rooms: frozenset[str]
    event: str
    payload: dict[str, Any]


@dataclass
class RecordingPublisher:
    """Captures publishes instead of delivering them."""

    events: list[PublishedEvent] = field(default_factory=list)

    def publish(self, rooms, event: str, payload: dict[str, Any]) -> None:
        self.events.append(PublishedEvent(frozenset(rooms), event, payload))

    def named(self, event: str) -> list[PublishedEvent]:
        return [e for e in self.events if e.event == event]


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


# =============================================================================
# Client Fixtures
# =============================================================================


@pytest.fixture(scope="function")
async def client(db: Session, publisher: RecordingPublisher) -> AsyncGenerator[AsyncClient, None]:
    """
    AsyncClient sharing the test session and recording publishes.

    Authenticate per request with `headers=headers_for(user)`.
    """
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_event_bus] = lambda: publisher

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()


# =============================================================================
# Factory Fixtures
# =============================================================================


@pytest.fixture
def ticket_factory(db: Session):
    def _make(creator: User, **kwargs) -> Ticket:
        return make_ticket(db, creator, **kwargs)
    return _make


@pytest.fixture
def user_factory(db: Session):
    def _make(role: Role, name: str | None = None, **kwargs) -> User:
        return make_user(db, role, name, **kwargs)
    return _make


@pytest.fixture
def headers_for():
    return auth_headers
