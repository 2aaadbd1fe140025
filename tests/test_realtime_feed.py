"""
End-to-end tests for the realtime task feed.

HTTP mutations and WebSocket sessions share one TestClient, so they run on
the same event loop as the application.
"""

import time

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from taskboard.main import create_app
from taskboard.ws_gateway.constants import WSCloseCode

from conftest import make_settings


class TestHandshake:

    def test_connected_frame_after_activation(self, client):
        with client.websocket_connect("/ws?email=a@x.com") as ws:
            assert ws.receive_json() == {"type": "connected", "email": "a@x.com"}

            health = client.get("/").json()
            assert health["activeSessionCount"] == 1

    def test_identity_from_header(self, client):
        with client.websocket_connect("/ws", headers={"X-User-Email": "b@x.com"}) as ws:
            assert ws.receive_json() == {"type": "connected", "email": "b@x.com"}

    def test_missing_identity_is_rejected(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws"):
                pass

        assert exc_info.value.code == WSCloseCode.AUTH_FAILED
        assert client.get("/").json()["activeSessionCount"] == 0

    def test_over_capacity_is_rejected(self):
        app = create_app(make_settings(ws_max_total_connections=1))
        with TestClient(app) as client:
            with client.websocket_connect("/ws?email=a@x.com") as first:
                first.receive_json()

                with pytest.raises(WebSocketDisconnect) as exc_info:
                    with client.websocket_connect("/ws?email=b@x.com"):
                        pass

                assert exc_info.value.code == WSCloseCode.SERVER_OVERLOADED
                assert client.get("/").json()["activeSessionCount"] == 1


class TestBroadcast:

    def test_lifecycle_events_reach_the_originator(self, client):
        with client.websocket_connect("/ws?email=a@x.com") as ws:
            ws.receive_json()

            task = client.post("/tasks", json={"userEmail": "a@x.com", "title": "T1"}).json()
            task_id = task["_id"]
            assert ws.receive_json() == {"type": "taskAdded", "payload": task}

            client.put(f"/tasks/{task_id}", json={"title": "T2"})
            updated = ws.receive_json()
            assert updated["type"] == "taskUpdated"
            assert updated["payload"]["_id"] == task_id
            assert updated["payload"]["title"] == "T2"

            client.delete(f"/tasks/{task_id}")
            assert ws.receive_json() == {"type": "taskDeleted", "payload": task_id}

            # Second delete is a 404 and broadcasts nothing
            assert client.delete(f"/tasks/{task_id}").status_code == 404
            ws.send_text("ping")
            assert ws.receive_json() == {"type": "pong"}

    def test_other_sessions_see_the_change(self, client):
        with client.websocket_connect("/ws?email=a@x.com") as ws_a:
            ws_a.receive_json()
            with client.websocket_connect("/ws?email=b@x.com") as ws_b:
                ws_b.receive_json()

                task = client.post("/tasks", json={"userEmail": "a@x.com", "title": "T1"}).json()

                assert ws_a.receive_json()["payload"] == task
                assert ws_b.receive_json()["payload"] == task

    def test_declined_mutation_broadcasts_nothing(self, client):
        with client.websocket_connect("/ws?email=a@x.com") as ws:
            ws.receive_json()

            assert client.put("/tasks/missing", json={"title": "x"}).status_code == 404
            assert client.post("/tasks", json={"title": "orphan"}).status_code == 400

            # The next frame is the pong, not an event
            ws.send_text('{"type": "ping"}')
            assert ws.receive_json() == {"type": "pong"}


class TestQuietListener:

    def test_silent_client_keeps_receiving_events(self):
        app = create_app(make_settings(ws_keepalive_interval=0.2))
        with TestClient(app) as client:
            with client.websocket_connect("/ws?email=a@x.com") as ws:
                ws.receive_json()

                # Several keepalive rounds pass without a single client frame
                time.sleep(1.0)
                assert client.get("/").json()["activeSessionCount"] == 1

                task = client.post("/tasks", json={"userEmail": "a@x.com", "title": "T1"}).json()

                frame = ws.receive_json()
                while frame == {"type": "ping"}:
                    frame = ws.receive_json()
                assert frame == {"type": "taskAdded", "payload": task}


class TestInboundLimits:

    def test_oversized_message_closes_session(self, client):
        with client.websocket_connect("/ws?email=a@x.com") as ws:
            ws.receive_json()
            ws.send_text("x" * 10_000)

            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_json()

            assert exc_info.value.code == WSCloseCode.MESSAGE_TOO_BIG
