"""
Room router for the real-time channel.

Live WebSocket connections join named rooms (``user:<id>`` and
``role:<role>``) and published events fan out to every connection in the
targeted rooms. Delivery is best-effort and process-local; the notification
inbox is the durable record of what a user has been told.
"""

import asyncio
import contextlib
import json
import logging
import threading
from typing import Any, Coroutine, Iterable, Protocol

from fastapi import WebSocket

from helpdesk.core.structured_logging import build_log_context

logger = logging.getLogger(__name__)

# Close code sent to a connection that failed a delivery
CLOSE_DELIVERY_FAILED = 1011
CLOSE_TIMEOUT_SECONDS = 1.0


def user_room(user_id) -> str:
    """Room that targets every connection of one identity."""
    return f"user:{user_id}"


def role_room(role) -> str:
    """Room that targets every connection authenticated with a role."""
    value = role.value if hasattr(role, "value") else str(role)
    return f"role:{value}"


def encode_frame(event: str, payload: Any) -> str:
    """Serialize one server -> client frame."""
    return json.dumps({"event": event, "data": payload}, default=str)


class EventPublisher(Protocol):
    """
    Best-effort publish capability handed to domain services.

    Implementations never raise and give no delivery confirmation; callers
    persist a Notification first when the event must survive a missed delivery.
    """

    def publish(self, rooms: Iterable[str], event: str, payload: dict[str, Any]) -> None:
        ...


class NullPublisher:
    """Publisher that drops every event (CLI and scripts run without sockets)."""

    def publish(self, rooms: Iterable[str], event: str, payload: dict[str, Any]) -> None:
        return None


class RoomManager:
    """
    Tracks WebSocket connections per room and fans out events.

    Membership is guarded by a thread lock because publishes arrive from the
    sync request handlers' worker threads while joins and disconnects happen
    on the event loop. Sends always run on the loop the manager is bound to.
    """

    def __init__(self, send_timeout: float | None = None):
        # room -> connections currently joined
        self._rooms: dict[str, set[WebSocket]] = {}
        # connection -> rooms it joined (for cleanup on disconnect)
        self._memberships: dict[WebSocket, set[str]] = {}
        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        # Delivery tasks in flight; only touched on the bound loop
        self._pending: set[asyncio.Task] = set()
        self._send_timeout = send_timeout

    def bind_loop(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Bind the event loop that owns the sockets (call from that loop)."""
        self._loop = loop or asyncio.get_running_loop()

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    async def connect(self, websocket: WebSocket) -> None:
        """Accept and register a new WebSocket connection with no rooms."""
        await websocket.accept()
        if self._loop is None:
            self.bind_loop()
        with self._lock:
            self._memberships.setdefault(websocket, set())

    def join(self, websocket: WebSocket, room: str) -> bool:
        """Add a connection to a room. Returns False if it was already a member."""
        with self._lock:
            rooms = self._memberships.setdefault(websocket, set())
            if room in rooms:
                return False
            rooms.add(room)
            self._rooms.setdefault(room, set()).add(websocket)
        logger.debug("Connection joined room", extra=build_log_context(rooms=[room]))
        return True

    def leave(self, websocket: WebSocket, room: str) -> None:
        """Remove a connection from one room."""
        with self._lock:
            rooms = self._memberships.get(websocket)
            if rooms is not None:
                rooms.discard(room)
            self._discard_member(room, websocket)

    def disconnect(self, websocket: WebSocket) -> None:
        """Remove a connection from every room it joined."""
        with self._lock:
            rooms = self._memberships.pop(websocket, set())
            for room in rooms:
                self._discard_member(room, websocket)
        if rooms:
            logger.debug("Connection left rooms", extra=build_log_context(rooms=list(rooms)))

    def _discard_member(self, room: str, websocket: WebSocket) -> None:
        # Caller holds self._lock
        members = self._rooms.get(room)
        if members is None:
            return
        members.discard(websocket)
        if not members:
            del self._rooms[room]

    def members_of(self, rooms: Iterable[str]) -> list[WebSocket]:
        """Deduplicated union of the connections joined to any of the rooms."""
        targets: set[WebSocket] = set()
        with self._lock:
            for room in rooms:
                targets.update(self._rooms.get(room, ()))
        return list(targets)

    def rooms_of(self, websocket: WebSocket) -> set[str]:
        with self._lock:
            return set(self._memberships.get(websocket, ()))

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def publish(self, rooms: Iterable[str], event: str, payload: dict[str, Any]) -> None:
        """
        Fire-and-forget fan-out to every connection in the given rooms.

        Safe to call from the event loop or from worker threads. Never raises:
        no listeners is a silent no-op and delivery errors are logged.
        """
        room_set = set(rooms)
        try:
            targets = self.members_of(room_set)
            if not targets:
                return
            frame = encode_frame(event, payload)
            self._schedule(self._deliver(targets, frame, event))
        except Exception:
            logger.exception(
                "Realtime publish failed",
                extra=build_log_context(event=event, rooms=list(room_set)),
            )

    async def broadcast(self, rooms: Iterable[str], event: str, payload: dict[str, Any]) -> int:
        """Awaitable fan-out for async callers. Returns the number of deliveries."""
        targets = self.members_of(set(rooms))
        if not targets:
            return 0
        return await self._deliver(targets, encode_frame(event, payload), event)

    async def send_to(self, websocket: WebSocket, event: str, payload: dict[str, Any]) -> bool:
        """Send one frame to a single connection (acks and errors)."""
        return await self._send(websocket, encode_frame(event, payload))

    async def send_raw(self, websocket: WebSocket, text: str) -> bool:
        """Send an unframed text message (keepalive replies)."""
        return await self._send(websocket, text)

    async def wait_idle(self) -> None:
        """Wait until every scheduled delivery has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _schedule(self, coro: Coroutine[Any, Any, int]) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            coro.close()
            logger.warning("Realtime publish dropped: no event loop bound")
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            self._spawn(coro)
            return

        try:
            loop.call_soon_threadsafe(self._spawn, coro)
        except RuntimeError:
            # Loop closed between the check and the call
            coro.close()
            logger.warning("Realtime publish dropped: event loop closed")

    def _spawn(self, coro: Coroutine[Any, Any, int]) -> None:
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, targets: list[WebSocket], frame: str, event: str) -> int:
        results = await asyncio.gather(*(self._send(ws, frame) for ws in targets))

        closed = [ws for ws, ok in zip(targets, results) if not ok]
        if closed:
            await asyncio.gather(*(self._close_failed(ws) for ws in closed))
            logger.warning(
                "Dropped %d realtime deliveries",
                len(closed),
                extra=build_log_context(event=event),
            )
        return len(targets) - len(closed)

    async def _close_failed(self, websocket: WebSocket) -> None:
        """
        Close a connection that missed a delivery, then drop its memberships.

        Clients reconnect on close and repeat the join handshake.
        """
        with contextlib.suppress(Exception):
            await asyncio.wait_for(
                websocket.close(code=CLOSE_DELIVERY_FAILED), CLOSE_TIMEOUT_SECONDS
            )
        self.disconnect(websocket)

    async def _send(self, websocket: WebSocket, frame: str) -> bool:
        try:
            if self._send_timeout:
                await asyncio.wait_for(websocket.send_text(frame), self._send_timeout)
            else:
                await websocket.send_text(frame)
            return True
        except Exception:
            # Connection closed or errored
            return False

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def get_total_connections(self) -> int:
        """Get total number of registered connections."""
        with self._lock:
            return len(self._memberships)

    def get_room_sizes(self) -> dict[str, int]:
        """Get the number of connections per non-empty room."""
        with self._lock:
            return {room: len(members) for room, members in self._rooms.items()}
