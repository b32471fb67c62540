"""
WebSocket router for the real-time channel.

Provides a WebSocket endpoint that:
1. Authenticates users via JWT query parameter or session cookie
2. Accepts `join` / `join-role` frames for the caller's own rooms
3. Receives every event published to those rooms until disconnect
"""

import json
import logging
from dataclasses import dataclass
from uuid import UUID

import anyio.to_thread
from fastapi import APIRouter, Depends, Query, Request, WebSocket, WebSocketDisconnect

from helpdesk.core.deps import COOKIE_NAME, require_roles
from helpdesk.core.security import decode_session_token
from helpdesk.core.structured_logging import build_log_context
from helpdesk.core.websocket import RoomManager, role_room, user_room
from helpdesk.db.enums import Role
from helpdesk.db.session import SessionLocal
from helpdesk.services import user_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

CLOSE_UNAUTHENTICATED = 4001


@dataclass(frozen=True)
class SocketIdentity:
    user_id: UUID
    role: Role


def _resolve_identity(token: str) -> SocketIdentity | None:
    """Validate a session token against the current user record."""
    try:
        payload = decode_session_token(token)
        user_id = UUID(payload["sub"])
    except Exception:
        return None

    db = SessionLocal()
    try:
        user = user_service.get_user_by_id(db, user_id)
        if (
            not user
            or not user.is_active
            or user.token_version != payload.get("token_version")
            or not Role.has_value(user.role)
        ):
            return None
        return SocketIdentity(user_id=user.id, role=Role(user.role))
    finally:
        db.close()


def _room_for_frame(identity: SocketIdentity, event: str, data) -> tuple[str | None, str | None]:
    """Map a client frame onto a room. Returns (room, error)."""
    if event == "join":
        if str(data) != str(identity.user_id):
            return None, "Cannot join another user's room"
        return user_room(identity.user_id), None
    if event == "join-role":
        if str(data) != identity.role.value:
            return None, "Cannot join another role's room"
        return role_room(identity.role), None
    return None, f"Unknown event '{event}'"


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: str | None = Query(None),
):
    """
    Real-time channel.

    Frames are JSON objects `{"event": ..., "data": ...}` in both directions.
    The plain text frame `ping` is answered with `pong`.
    """
    rooms: RoomManager = websocket.app.state.rooms

    raw_token = token or websocket.cookies.get(COOKIE_NAME)
    identity = await anyio.to_thread.run_sync(_resolve_identity, raw_token) if raw_token else None
    if identity is None:
        await websocket.close(code=CLOSE_UNAUTHENTICATED, reason="Authentication required")
        return

    await rooms.connect(websocket)
    logger.info("Realtime connection opened", extra=build_log_context(user_id=str(identity.user_id)))

    try:
        while True:
            try:
                text = await websocket.receive_text()
            except WebSocketDisconnect:
                break

            if text == "ping":
                if not await rooms.send_raw(websocket, "pong"):
                    break
                continue

            try:
                frame = json.loads(text)
                event = frame["event"]
                data = frame.get("data")
            except (ValueError, KeyError, TypeError, AttributeError):
                await rooms.send_to(websocket, "error", {"message": "Malformed frame"})
                continue

            room, error = _room_for_frame(identity, event, data)
            if error:
                await rooms.send_to(websocket, "error", {"message": error, "event": event})
                continue

            rooms.join(websocket, room)
            await rooms.send_to(websocket, "joined", {"room": room})
    finally:
        rooms.disconnect(websocket)
        logger.info("Realtime connection closed", extra=build_log_context(user_id=str(identity.user_id)))


@router.get(
    "/realtime/stats",
    dependencies=[Depends(require_roles([Role.ADMIN]))],
)
def realtime_stats(request: Request):
    """Connection and room counts for this process."""
    rooms: RoomManager = request.app.state.rooms
    return {
        "connections": rooms.get_total_connections(),
        "rooms": rooms.get_room_sizes(),
    }
