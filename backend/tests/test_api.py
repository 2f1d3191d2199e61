import pytest
from conftest import StaticResolver
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from relay.core.config import Settings
from relay.main import create_app


@pytest.fixture
def client(tmp_path):
    settings = Settings()
    settings.database_url = f"sqlite:///{tmp_path / 'relay.db'}"
    settings.smtp_host = None
    app = create_app(settings=settings, resolver=StaticResolver("https://cdn.example/a.png"))
    with TestClient(app) as test_client:
        yield test_client


def test_healthcheck_reports_database(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "database": "ok"}


def test_room_lifecycle_over_rest(client):
    created = client.post("/rooms")
    assert created.status_code == 201
    room_id = created.json()["id"]

    rooms = client.get("/rooms").json()
    assert [r["id"] for r in rooms] == [room_id]
    assert rooms[0]["latestMessage"] == "No messages yet"
    assert client.get(f"/rooms/{room_id}/messages").json() == []

    patched = client.patch(f"/rooms/{room_id}", json={"status": "resolved", "priority": "high"})
    assert patched.status_code == 200
    assert patched.json()["status"] == "resolved"
    assert patched.json()["priority"] == "high"

    assert client.patch(f"/rooms/{room_id}", json={"priority": "urgent"}).status_code == 422
    assert client.patch("/rooms/room-missing", json={"status": "resolved"}).status_code == 404

    assert client.delete(f"/rooms/{room_id}").status_code == 204
    assert client.delete(f"/rooms/{room_id}").status_code == 404
    assert client.get("/rooms").json() == []


def test_unknown_room_history_is_empty(client):
    response = client.get("/rooms/room-nobody/messages")
    assert response.status_code == 200
    assert response.json() == []


def test_socket_conversation_with_dashboard(client):
    with client.websocket_connect("/ws?mode=dashboard") as dashboard, client.websocket_connect(
        "/ws"
    ) as asker, client.websocket_connect("/ws") as counsel:
        asker.send_json({"event": "createRoom", "ack": 1})
        ack = asker.receive_json()
        assert ack["event"] == "ack"
        assert ack["ack"] == 1
        room_id = ack["data"]

        asker.send_json({"event": "joinRoom", "data": room_id})
        assert dashboard.receive_json() == {"event": "userJoined", "data": {"roomId": room_id}}
        counsel.send_json({"event": "joinRoom", "data": room_id})
        assert dashboard.receive_json() == {"event": "userJoined", "data": {"roomId": room_id}}

        asker.send_json(
            {"event": "question", "data": {"roomId": room_id, "msg": "Need help with a lease", "image": "data:x"}}
        )

        question = counsel.receive_json()
        assert question["event"] == "question"
        assert question["data"]["message"] == "Need help with a lease"
        assert question["data"]["image"] == "https://cdn.example/a.png"
        assert counsel.receive_json()["event"] == "chatHistory"
        assert counsel.receive_json()["event"] == "roomsList"

        assert asker.receive_json()["event"] == "question"
        assert asker.receive_json()["event"] == "chatHistory"
        assert asker.receive_json()["event"] == "roomsList"

        admin = dashboard.receive_json()
        assert admin == {
            "event": "adminQuestion",
            "data": {"roomId": room_id, "msg": "Need help with a lease", "image": "https://cdn.example/a.png"},
        }
        rooms = dashboard.receive_json()
        assert rooms["event"] == "roomsList"
        assert rooms["data"][0]["latestMessage"] == "Need help with a lease"

        counsel.send_json({"event": "getMessages", "data": room_id})
        history = counsel.receive_json()
        assert history["event"] == "chatHistory"
        assert [m["role"] for m in history["data"]] == ["asker"]

        dashboard.send_json({"event": "deleteRoom", "data": room_id})
        assert asker.receive_json() == {"event": "roomDeleted", "data": {"roomId": room_id}}
        assert asker.receive_json() == {"event": "roomsList", "data": []}
        assert dashboard.receive_json() == {"event": "roomDeleted", "data": {"roomId": room_id}}


def test_socket_typing_reaches_the_other_participant(client):
    with client.websocket_connect("/ws") as first, client.websocket_connect("/ws") as second:
        for ws in (first, second):
            ws.send_json({"event": "joinRoom", "data": "room-typing"})
            ws.send_json({"event": "getMessages", "data": "room-typing"})
            assert ws.receive_json()["event"] == "chatHistory"

        first.send_json({"event": "typing", "data": {"roomId": "room-typing", "userName": "Client"}})
        assert second.receive_json() == {"event": "typing", "data": {"roomId": "room-typing", "userName": "Client"}}


def test_socket_rejects_malformed_frames(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_text("not json")
        assert ws.receive_json()["event"] == "error"

        ws.send_json({"data": "missing event"})
        assert ws.receive_json()["event"] == "error"

        ws.send_json({"event": "deleteRoom"})
        error = ws.receive_json()
        assert error["event"] == "error"
        assert error["data"]["event"] == "deleteRoom"


def test_socket_survives_binary_frame(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_bytes(b'{"event": "getRooms"}')
        error = ws.receive_json()
        assert error == {"event": "error", "data": {"event": None, "detail": "frame must be text"}}

        ws.send_text('{"event": "getRooms"}')
        assert ws.receive_json() == {"event": "roomsList", "data": []}


def test_socket_rejects_unknown_mode(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws?mode=spy") as ws:
            ws.receive_json()
