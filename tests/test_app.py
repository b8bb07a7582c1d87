import base64
import os

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from pairchat.main import create_app


@pytest.fixture
def uploads_dir(tmp_path):
    return str(tmp_path / "uploads")


@pytest.fixture
def app(tmp_path, uploads_dir):
    return create_app(uploads_dir=uploads_dir, static_dir=str(tmp_path))


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


def test_pair_relay_and_teardown(app, client):
    manager = app.state.manager

    with client.websocket_connect("/ws") as ws1:
        assert ws1.receive_json()["type"] == "waiting for peer"

        with client.websocket_connect("/ws") as ws2:
            ready1 = ws1.receive_json()
            ready2 = ws2.receive_json()
            assert ready1["type"] == ready2["type"] == "chat ready"

            id1, id2 = ready2["data"]["peerId"], ready1["data"]["peerId"]
            assert set(manager.connections) == {id1, id2}
            assert manager.connections[id1].peer_id == id2
            assert manager.connections[id2].peer_id == id1

            ws1.send_json({"type": "chat message", "data": {"text": "hi", "timestamp": 1000}})
            assert ws2.receive_json() == {
                "type": "chat message",
                "data": {
                    "senderId": id1,
                    "username": ready2["data"]["peerUsername"],
                    "text": "hi",
                    "timestamp": 1000,
                },
            }

            ws1.close()
            assert ws2.receive_json()["type"] == "peer disconnected"
            assert manager.connections == {}

            with client.websocket_connect("/ws") as ws3:
                assert ws3.receive_json()["type"] == "waiting for peer"
                assert len(manager.connections) == 1
                assert id1 not in manager.connections and id2 not in manager.connections


def test_third_connection_rejected(app, client):
    manager = app.state.manager

    with client.websocket_connect("/ws") as ws1, client.websocket_connect("/ws") as ws2:
        with client.websocket_connect("/ws") as ws3:
            assert ws3.receive_json() == {
                "type": "system message",
                "data": "The chat is at full capacity (2 users). Please try again later.",
            }
            with pytest.raises(WebSocketDisconnect) as exc:
                ws3.receive_json()
            assert exc.value.code == 1013

        assert ws1.receive_json()["type"] == "waiting for peer"
        assert ws1.receive_json()["type"] == "chat ready"
        assert ws2.receive_json()["type"] == "chat ready"
        assert len(manager.connections) == 2


def test_file_message_relayed_and_stored(app, uploads_dir):
    encoded = base64.b64encode(b"hello file").decode()

    with TestClient(app) as client:
        with client.websocket_connect("/ws") as ws1:
            ws1.receive_json()
            with client.websocket_connect("/ws") as ws2:
                ws1.receive_json()
                ws2.receive_json()

                ws1.send_json({"type": "file message", "data": {
                    "filename": "hello.txt", "fileBuffer": encoded, "fileType": "text/plain", "timestamp": 7,
                }})
                relayed = ws2.receive_json()

    assert relayed["type"] == "file message"
    assert relayed["data"]["filename"] == "hello.txt"
    assert base64.b64decode(relayed["data"]["fileBuffer"]) == b"hello file"
    assert relayed["data"]["fileType"] == "text/plain"
    assert relayed["data"]["timestamp"] == 7

    # shutdown drains pending writes
    stored = [n for n in os.listdir(uploads_dir) if n.endswith("-hello.txt")]
    assert len(stored) == 1
    with open(os.path.join(uploads_dir, stored[0]), "rb") as f:
        assert f.read() == b"hello file"


def test_unreadable_frames_keep_connection(client):
    with client.websocket_connect("/ws") as ws1:
        ws1.receive_json()
        with client.websocket_connect("/ws") as ws2:
            ws1.receive_json()
            ws2.receive_json()

            ws1.send_text("{not json")
            ws1.send_json({"type": "typing", "data": {}})
            ws1.send_json({"type": "chat message", "data": {"text": "after"}})

            message = ws2.receive_json()
            assert message["data"]["text"] == "after"
            assert message["data"]["timestamp"] is None


def test_root_status_without_index(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "running"


def test_root_serves_index(tmp_path, uploads_dir):
    (tmp_path / "index.html").write_text("<h1>chat</h1>")
    with TestClient(create_app(uploads_dir=uploads_dir, static_dir=str(tmp_path))) as client:
        response = client.get("/")
    assert response.status_code == 200
    assert "<h1>chat</h1>" in response.text


def test_health_and_session(client):
    assert client.get("/health").json()["status"] == "healthy"

    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        session = client.get("/session").json()
        assert session["connections"] == 1
        assert session["members"][0]["state"] == "waiting"
        assert session["members"][0]["peerId"] is None


def test_upload_and_download(client):
    response = client.post("/upload", files={"file": ("notes.txt", b"some notes", "text/plain")})
    assert response.status_code == 200
    body = response.json()
    assert body["filename"].endswith("-notes.txt")
    assert body["url"] == f"/uploads/{body['filename']}"

    download = client.get(body["url"])
    assert download.status_code == 200
    assert download.content == b"some notes"


def test_upload_storage_failure(tmp_path):
    blocker = tmp_path / "blocked"
    blocker.write_text("x")
    client = TestClient(create_app(uploads_dir=str(blocker), static_dir=str(tmp_path)))
    response = client.post("/upload", files={"file": ("a.txt", b"a", "text/plain")})
    assert response.status_code == 500
