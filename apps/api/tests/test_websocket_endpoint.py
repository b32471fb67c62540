import pytest
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from helpdesk.core.deps import COOKIE_NAME
from helpdesk.main import create_app


@pytest.fixture
def app(db):
    # Fresh room router per test
    return create_app()


def _token(headers: dict) -> str:
    return headers["Authorization"].split(" ", 1)[1]


def test_rejects_missing_token(app):
    with TestClient(app) as tc:
        with pytest.raises(WebSocketDisconnect) as exc:
            with tc.websocket_connect("/ws") as ws:
                ws.receive_text()
    assert exc.value.code == 4001


def test_rejects_invalid_token(app):
    with TestClient(app) as tc:
        with pytest.raises(WebSocketDisconnect) as exc:
            with tc.websocket_connect("/ws?token=not-a-jwt") as ws:
                ws.receive_text()
    assert exc.value.code == 4001


def test_rejects_revoked_token(app, db, requester, headers_for):
    token = _token(headers_for(requester))
    requester.token_version += 1
    db.commit()

    with TestClient(app) as tc:
        with pytest.raises(WebSocketDisconnect) as exc:
            with tc.websocket_connect(f"/ws?token={token}") as ws:
                ws.receive_text()
    assert exc.value.code == 4001


def test_join_own_rooms_is_acknowledged(app, requester, headers_for):
    token = _token(headers_for(requester))
    user_id = str(requester.id)

    with TestClient(app) as tc:
        with tc.websocket_connect(f"/ws?token={token}") as ws:
            ws.send_json({"event": "join", "data": user_id})
            assert ws.receive_json() == {"event": "joined", "data": {"room": f"user:{user_id}"}}

            ws.send_json({"event": "join-role", "data": "user"})
            assert ws.receive_json() == {"event": "joined", "data": {"room": "role:user"}}

            # Repeating the handshake is harmless
            ws.send_json({"event": "join-role", "data": "user"})
            assert ws.receive_json()["event"] == "joined"

            assert app.state.rooms.get_room_sizes() == {f"user:{user_id}": 1, "role:user": 1}

    assert app.state.rooms.get_total_connections() == 0


def test_cannot_join_foreign_rooms(app, requester, outsider, headers_for):
    token = _token(headers_for(requester))
    other_id = str(outsider.id)

    with TestClient(app) as tc:
        with tc.websocket_connect(f"/ws?token={token}") as ws:
            ws.send_json({"event": "join", "data": other_id})
            assert ws.receive_json()["event"] == "error"

            ws.send_json({"event": "join-role", "data": "admin"})
            assert ws.receive_json()["event"] == "error"

            assert app.state.rooms.get_room_sizes() == {}


def test_malformed_frames_keep_connection_open(app, requester, headers_for):
    token = _token(headers_for(requester))

    with TestClient(app) as tc:
        with tc.websocket_connect(f"/ws?token={token}") as ws:
            ws.send_text("{not json")
            assert ws.receive_json()["data"]["message"] == "Malformed frame"

            ws.send_json({"event": "subscribe", "data": "everything"})
            assert ws.receive_json()["event"] == "error"

            ws.send_text("ping")
            assert ws.receive_text() == "pong"


def test_cookie_authentication(app, requester, headers_for):
    token = _token(headers_for(requester))

    with TestClient(app, cookies={COOKIE_NAME: token}) as tc:
        with tc.websocket_connect("/ws") as ws:
            ws.send_text("ping")
            assert ws.receive_text() == "pong"


def test_ticket_created_reaches_staff_socket(app, analyst, requester, headers_for):
    staff_token = _token(headers_for(analyst))
    requester_headers = headers_for(requester)

    with TestClient(app) as tc:
        with tc.websocket_connect(f"/ws?token={staff_token}") as ws:
            ws.send_json({"event": "join-role", "data": "analyst"})
            assert ws.receive_json()["event"] == "joined"

            response = tc.post(
                "/tickets",
                json={
                    "title": "Monitor flickers",
                    "description": "Second monitor flickers every few seconds.",
                    "priority": "low",
                },
                headers=requester_headers,
            )
            assert response.status_code == 201

            frame = ws.receive_json()
            assert frame["event"] == "ticket:created"
            assert frame["data"]["ticket"]["id"] == response.json()["id"]
            assert frame["data"]["ticket"]["title"] == "Monitor flickers"


def test_chat_message_reaches_creator_socket(app, analyst, requester, ticket_factory, headers_for):
    ticket = ticket_factory(requester, assignee=analyst)
    ticket_id = str(ticket.id)
    requester_token = _token(headers_for(requester))
    requester_id = str(requester.id)
    analyst_headers = headers_for(analyst)

    with TestClient(app) as tc:
        with tc.websocket_connect(f"/ws?token={requester_token}") as ws:
            ws.send_json({"event": "join", "data": requester_id})
            ws.receive_json()

            response = tc.post(
                f"/tickets/{ticket_id}/messages",
                json={"content": "Have you tried turning it off and on again?"},
                headers=analyst_headers,
            )
            assert response.status_code == 201

            events = {ws.receive_json()["event"], ws.receive_json()["event"]}
            assert events == {"message:new", "notification:new"}


def test_stats_endpoint_is_admin_only(app, admin, requester, headers_for):
    user_token = _token(headers_for(requester))
    admin_headers = headers_for(admin)
    user_headers = headers_for(requester)

    with TestClient(app) as tc:
        with tc.websocket_connect(f"/ws?token={user_token}") as ws:
            ws.send_json({"event": "join-role", "data": "user"})
            ws.receive_json()

            forbidden = tc.get("/realtime/stats", headers=user_headers)
            stats = tc.get("/realtime/stats", headers=admin_headers)

    assert forbidden.status_code == 403
    assert stats.json() == {"connections": 1, "rooms": {"role:user": 1}}
