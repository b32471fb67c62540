import asyncio
import json
import uuid
from datetime import datetime, timezone

import httpx
import pytest

from helpdesk.client import ClientSession


TICKET_ID = str(uuid.uuid4())
USER_ID = str(uuid.uuid4())
ANALYST_ID = str(uuid.uuid4())


class QueueTransport:
    """In-memory stand-in for the /ws connection."""

    def __init__(self, frames=()):
        self.sent: list[dict] = []
        self.incoming: asyncio.Queue = asyncio.Queue()
        for frame in frames:
            self.incoming.put_nowait(frame)
        self.incoming.put_nowait(None)

    async def send_json(self, data):
        self.sent.append(data)

    async def receive_json(self):
        return await self.incoming.get()


def _message(id, content, sender_id=USER_ID, name="Uma User", created_at=None):
    return {
        "id": id,
        "ticket_id": TICKET_ID,
        "sender_user_id": sender_id,
        "sender": {"id": sender_id, "name": name, "email": "u@example.com", "role": "user"},
        "content": content,
        "created_at": created_at or datetime.now(timezone.utc).isoformat(),
    }


def _message_event(message):
    return {
        "event": "message:new",
        "data": {
            "ticket_id": TICKET_ID,
            "chat_message": message,
            "message": f"{message['sender']['name']}: {message['content']}",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    }


def _http(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")


def _history_handler(messages, post=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(
                200,
                json={
                    "data": messages,
                    "pagination": {"total": len(messages), "page": 1, "limit": 50, "pages": 1},
                },
            )
        if post is None:
            return httpx.Response(500, json={"detail": "boom"})
        return post(request)
    return handler


@pytest.mark.asyncio
async def test_handshake_joins_identity_then_role():
    transport = QueueTransport()
    async with _http(_history_handler([])) as http:
        session = ClientSession(USER_ID, "user", http)
        await session.run(transport)

    assert transport.sent == [
        {"event": "join", "data": USER_ID},
        {"event": "join-role", "data": "user"},
    ]
    assert session.consume_invalidations() == []


@pytest.mark.asyncio
async def test_reconnect_marks_views_stale():
    async with _http(_history_handler([])) as http:
        session = ClientSession(USER_ID, "user", http)
        await session.open_chat(TICKET_ID)
        await session.handshake(QueueTransport())
        await session.handshake(QueueTransport())

    assert session.consume_invalidations() == sorted(
        ["tickets", "notifications", "my-chats", f"messages:{TICKET_ID}"]
    )


@pytest.mark.asyncio
async def test_ticket_created_alerts_staff_only():
    frame = {
        "event": "ticket:created",
        "data": {"ticket_id": TICKET_ID, "message": 'New ticket "VPN" created by Uma User'},
    }
    async with _http(_history_handler([])) as http:
        analyst = ClientSession(ANALYST_ID, "analyst", http)
        user = ClientSession(USER_ID, "user", http)
        await analyst.run(QueueTransport([frame]))
        await user.run(QueueTransport([frame]))

    assert [a.message for a in analyst.alerts] == ['New ticket "VPN" created by Uma User']
    assert list(user.alerts) == []
    assert "tickets" in analyst.consume_invalidations()


@pytest.mark.asyncio
async def test_status_events_invalidate_ticket_detail():
    frames = [
        {"event": "ticket:updated", "data": {"ticket_id": TICKET_ID, "message": "resolved"}},
        {"event": "ticket:status-changed", "data": {"ticket_id": TICKET_ID, "message": "moved"}},
    ]
    async with _http(_history_handler([])) as http:
        session = ClientSession(USER_ID, "user", http)
        await session.run(QueueTransport(frames))

    assert len(session.alerts) == 2
    assert session.consume_invalidations() == sorted(
        ["tickets", f"ticket:{TICKET_ID}", "notifications"]
    )
    assert session.consume_invalidations() == []


@pytest.mark.asyncio
async def test_notification_new_invalidates_inbox():
    async with _http(_history_handler([])) as http:
        session = ClientSession(USER_ID, "user", http)
        await session.run(QueueTransport([{"event": "notification:new", "data": {"id": "n1"}}]))

    assert session.consume_invalidations() == ["notifications"]


@pytest.mark.asyncio
async def test_message_for_open_chat_is_appended_once():
    reply = _message(2, "On it", sender_id=ANALYST_ID, name="Xavier Analyst")
    async with _http(_history_handler([_message(1, "Help")])) as http:
        session = ClientSession(USER_ID, "user", http)
        await session.open_chat(TICKET_ID)
        await session.run(QueueTransport([_message_event(reply), _message_event(reply)]))

    assert [e.content for e in session.transcript] == ["Help", "On it"]
    assert session.consume_invalidations() == ["my-chats"]


@pytest.mark.asyncio
async def test_message_for_other_chat_only_refreshes_list():
    other = _message(9, "Elsewhere")
    other["ticket_id"] = str(uuid.uuid4())
    event = _message_event(other)
    event["data"]["ticket_id"] = other["ticket_id"]

    async with _http(_history_handler([])) as http:
        session = ClientSession(USER_ID, "user", http)
        await session.open_chat(TICKET_ID)
        await session.run(QueueTransport([event]))

    assert session.transcript == []
    assert session.consume_invalidations() == ["my-chats"]


@pytest.mark.asyncio
async def test_optimistic_send_is_confirmed_in_place():
    seen_pending = []

    def post(request):
        seen_pending.append([e.pending for e in session.transcript])
        body = json.loads(request.content)
        return httpx.Response(201, json=_message(7, body["content"]))

    async with _http(_history_handler([], post=post)) as http:
        session = ClientSession(USER_ID, "user", http)
        await session.open_chat(TICKET_ID)
        confirmed = await session.send_message("Hello")

    assert seen_pending == [[True]]
    assert confirmed.id == 7
    assert [(e.id, e.content, e.pending) for e in session.transcript] == [(7, "Hello", False)]


@pytest.mark.asyncio
async def test_echo_event_replaces_pending_entry():
    def post(_request):
        # The broadcast arrives before the HTTP response
        session.handle_frame(_message_event(_message(11, "Hi there")))
        return httpx.Response(201, json=_message(11, "Hi there"))

    async with _http(_history_handler([], post=post)) as http:
        session = ClientSession(USER_ID, "user", http)
        await session.open_chat(TICKET_ID)
        await session.send_message("Hi there")

    assert [(e.id, e.pending) for e in session.transcript] == [(11, False)]


@pytest.mark.asyncio
async def test_failed_send_rolls_back():
    async with _http(_history_handler([_message(1, "Help")])) as http:
        session = ClientSession(USER_ID, "user", http)
        await session.open_chat(TICKET_ID)

        with pytest.raises(httpx.HTTPStatusError):
            await session.send_message("This will fail")

    assert [e.content for e in session.transcript] == ["Help"]


@pytest.mark.asyncio
async def test_send_without_open_chat():
    async with _http(_history_handler([])) as http:
        session = ClientSession(USER_ID, "user", http)
        with pytest.raises(RuntimeError):
            await session.send_message("Nowhere")
