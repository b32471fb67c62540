"""
Client-side session for the real-time channel.

Holds a connected user's live view: transient alerts, the set of cached
queries that must be refetched, and the transcript of the open ticket chat.
Server events are treated as hints; authoritative state always comes back
through the REST API.
"""

from __future__ import annotations

import logging
import uuid
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

import httpx

from helpdesk.db.enums import RealtimeEvent, Role, STAFF_ROLES

logger = logging.getLogger(__name__)

# Query keys a UI layer would refetch
TICKETS_KEY = "tickets"
NOTIFICATIONS_KEY = "notifications"
MY_CHATS_KEY = "my-chats"


def ticket_key(ticket_id: str) -> str:
    return f"ticket:{ticket_id}"


def messages_key(ticket_id: str) -> str:
    return f"messages:{ticket_id}"


class RealtimeTransport(Protocol):
    """Anything that can exchange JSON frames with `/ws`. `None` means closed."""

    async def send_json(self, data: dict[str, Any]) -> None:
        ...

    async def receive_json(self) -> dict[str, Any] | None:
        ...


def _parse_timestamp(value: str | None) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        # Server timestamps are UTC
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class ChatEntry:
    """One line of the visible transcript; `pending` until the server confirms it."""

    ticket_id: str
    sender_id: str
    sender_name: str
    content: str
    created_at: datetime
    id: int | None = None
    local_id: str | None = None
    pending: bool = False

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> ChatEntry:
        sender = data.get("sender") or {}
        return cls(
            id=data["id"],
            ticket_id=str(data["ticket_id"]),
            sender_id=str(data["sender_user_id"]),
            sender_name=sender.get("name", ""),
            content=data["content"],
            created_at=_parse_timestamp(data.get("created_at")),
        )


@dataclass
class Alert:
    event: str
    message: str
    ticket_id: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ClientSession:
    """
    Live view for one authenticated user.

    Usage:
        async with httpx.AsyncClient(base_url=..., headers=auth) as http:
            session = ClientSession(user_id, role, http)
            await session.open_chat(ticket_id)
            await session.run(transport)
    """

    def __init__(
        self,
        user_id: str | uuid.UUID,
        role: Role | str,
        http: httpx.AsyncClient,
        *,
        dedupe_window: timedelta = timedelta(seconds=30),
        max_alerts: int = 50,
    ):
        self.user_id = str(user_id)
        self.role = Role(role)
        self.http = http
        self.dedupe_window = dedupe_window

        self.alerts: deque[Alert] = deque(maxlen=max_alerts)
        self.joined_rooms: set[str] = set()
        self.open_ticket_id: str | None = None
        self.transcript: list[ChatEntry] = []
        self._invalidated: set[str] = set()
        self._connections = 0

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def handshake(self, transport: RealtimeTransport) -> None:
        """
        Declare identity room then role room.

        Safe to repeat on every reconnect. Events missed while disconnected
        are not replayed, so a reconnect marks every cached view stale.
        """
        await transport.send_json({"event": "join", "data": self.user_id})
        await transport.send_json({"event": "join-role", "data": self.role.value})

        self._connections += 1
        if self._connections > 1:
            self._invalidate(TICKETS_KEY, NOTIFICATIONS_KEY, MY_CHATS_KEY)
            if self.open_ticket_id:
                self._invalidate(messages_key(self.open_ticket_id))

    async def run(self, transport: RealtimeTransport) -> None:
        """Handshake, then dispatch frames until the transport closes."""
        await self.handshake(transport)
        while True:
            frame = await transport.receive_json()
            if frame is None:
                break
            self.handle_frame(frame)

    def handle_frame(self, frame: dict[str, Any]) -> None:
        event = frame.get("event")
        if not isinstance(event, str):
            logger.warning("Ignoring frame without event name")
            return
        data = frame.get("data")
        self.handle_event(event, data if isinstance(data, dict) else {})

    # ------------------------------------------------------------------
    # Event dispatch
    # ------------------------------------------------------------------

    def handle_event(self, event: str, data: dict[str, Any]) -> None:
        if event == RealtimeEvent.TICKET_CREATED.value:
            self._on_ticket_created(data)
        elif event in (
            RealtimeEvent.TICKET_UPDATED.value,
            RealtimeEvent.TICKET_STATUS_CHANGED.value,
        ):
            self._on_ticket_changed(event, data)
        elif event == RealtimeEvent.NOTIFICATION_NEW.value:
            self._invalidate(NOTIFICATIONS_KEY)
        elif event == RealtimeEvent.MESSAGE_NEW.value:
            self._on_message_new(data)
        elif event == "joined":
            self.joined_rooms.add(data.get("room", ""))
        elif event == "error":
            logger.warning("Realtime channel error: %s", data.get("message"))
        else:
            logger.debug("Ignoring unknown event %s", event)

    def _on_ticket_created(self, data: dict[str, Any]) -> None:
        # The list is refetched; the event payload never patches it
        self._invalidate(TICKETS_KEY, NOTIFICATIONS_KEY)
        if self.is_staff:
            self._alert(RealtimeEvent.TICKET_CREATED.value, data)

    def _on_ticket_changed(self, event: str, data: dict[str, Any]) -> None:
        self._alert(event, data)
        self._invalidate(TICKETS_KEY)
        ticket_id = data.get("ticket_id")
        if ticket_id:
            self._invalidate(ticket_key(str(ticket_id)))
        if event == RealtimeEvent.TICKET_UPDATED.value:
            # The creator's inbox gained a record with this event
            self._invalidate(NOTIFICATIONS_KEY)

    def _on_message_new(self, data: dict[str, Any]) -> None:
        self._invalidate(MY_CHATS_KEY)
        ticket_id = data.get("ticket_id")
        raw = data.get("chat_message")
        if not raw or ticket_id is None or str(ticket_id) != self.open_ticket_id:
            return
        self._merge_confirmed(ChatEntry.from_api(raw))

    def _alert(self, event: str, data: dict[str, Any]) -> None:
        ticket_id = data.get("ticket_id")
        self.alerts.append(
            Alert(
                event=event,
                message=data.get("message", ""),
                ticket_id=str(ticket_id) if ticket_id else None,
                timestamp=_parse_timestamp(data.get("timestamp")),
            )
        )

    def _invalidate(self, *keys: str) -> None:
        self._invalidated.update(keys)

    def consume_invalidations(self) -> list[str]:
        """Return and clear the query keys that need refetching."""
        keys = sorted(self._invalidated)
        self._invalidated.clear()
        return keys

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def open_chat(self, ticket_id: str | uuid.UUID, *, limit: int | None = None) -> list[ChatEntry]:
        """Load the latest window of a ticket's chat and make it the open chat."""
        params = {"limit": limit} if limit else None
        response = await self.http.get(f"/tickets/{ticket_id}/messages", params=params)
        response.raise_for_status()

        self.open_ticket_id = str(ticket_id)
        self.transcript = [ChatEntry.from_api(m) for m in response.json()["data"]]
        return self.transcript

    def close_chat(self) -> None:
        self.open_ticket_id = None
        self.transcript = []

    async def send_message(self, content: str) -> ChatEntry:
        """
        Optimistically append a message, then confirm it with the server.

        On failure the provisional entry is removed and the error re-raised.
        """
        if self.open_ticket_id is None:
            raise RuntimeError("No chat is open")

        ticket_id = self.open_ticket_id
        provisional = ChatEntry(
            ticket_id=ticket_id,
            sender_id=self.user_id,
            sender_name="",
            content=content.strip(),
            created_at=datetime.now(timezone.utc),
            local_id=uuid.uuid4().hex,
            pending=True,
        )
        self.transcript.append(provisional)

        try:
            response = await self.http.post(
                f"/tickets/{ticket_id}/messages", json={"content": content}
            )
            response.raise_for_status()
        except httpx.HTTPError:
            self._drop_local(provisional.local_id)
            raise

        confirmed = ChatEntry.from_api(response.json())
        if self.open_ticket_id != ticket_id:
            return confirmed
        self._confirm_local(provisional.local_id, confirmed)
        return confirmed

    def _merge_confirmed(self, entry: ChatEntry) -> None:
        if any(e.id == entry.id for e in self.transcript if e.id is not None):
            return
        match = self._find_pending_match(entry)
        if match is not None:
            self.transcript[match] = replace(entry, local_id=self.transcript[match].local_id)
            return
        self.transcript.append(entry)

    def _find_pending_match(self, entry: ChatEntry) -> int | None:
        for index, existing in enumerate(self.transcript):
            if (
                existing.pending
                and existing.sender_id == entry.sender_id
                and existing.content == entry.content
                and abs(existing.created_at - entry.created_at) <= self.dedupe_window
            ):
                return index
        return None

    def _confirm_local(self, local_id: str, confirmed: ChatEntry) -> None:
        already_listed = any(e.id == confirmed.id for e in self.transcript if e.local_id != local_id)
        for index, existing in enumerate(self.transcript):
            if existing.local_id != local_id:
                continue
            if already_listed:
                del self.transcript[index]
            else:
                self.transcript[index] = replace(confirmed, local_id=local_id)
            return
        if not already_listed:
            self.transcript.append(confirmed)

    def _drop_local(self, local_id: str | None) -> None:
        self.transcript = [e for e in self.transcript if e.local_id != local_id]
