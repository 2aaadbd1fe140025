"""
Tests for the broadcast fanout and the connection manager.

Tests verify:
- Every active session receives every event, the originator included
- Per-session delivery order equals emit order
- Slow, failing and timed out receivers are dropped without affecting others
- emit never blocks and never raises
- Client pings and the server keepalive
- Graceful shutdown closes every session
"""

import asyncio

import pytest

from taskboard.rest_api.services.change_event import ChangeEvent
from taskboard.ws_gateway.connection_manager import ConnectionManager
from taskboard.ws_gateway.constants import WSCloseCode
from taskboard.ws_gateway.heartbeat import handle_heartbeat, is_ping

from conftest import make_websocket, sent_frames, wait_for_frames


CONNECTED_A = {"type": "connected", "email": "a@x.com"}


async def never_returns(*args, **kwargs):
    await asyncio.Event().wait()


async def connect(manager: ConnectionManager, email: str = "a@x.com"):
    ws = make_websocket()
    session = manager.new_session(ws)
    await manager.connect(session, email)
    return ws, session


def task(task_id: str, **fields) -> dict:
    return {"_id": task_id, "userEmail": "a@x.com", **fields}


class TestFanoutDelivery:

    @pytest.mark.asyncio
    async def test_every_active_session_receives_event(self):
        manager = ConnectionManager()
        ws_a, _ = await connect(manager, "a@x.com")
        ws_b, _ = await connect(manager, "b@x.com")

        manager.emit(ChangeEvent.added(task("I1", title="T1")))

        frames_a = await wait_for_frames(ws_a, 2)
        frames_b = await wait_for_frames(ws_b, 2)
        expected = {"type": "taskAdded", "payload": task("I1", title="T1")}
        assert frames_a == [CONNECTED_A, expected]
        assert frames_b[1] == expected

        await manager.close_all()

    @pytest.mark.asyncio
    async def test_per_session_order_matches_emit_order(self):
        manager = ConnectionManager()
        ws, _ = await connect(manager)

        manager.emit(ChangeEvent.added(task("I1", title="T1")))
        manager.emit(ChangeEvent.updated(task("I1", title="T2")))
        manager.emit(ChangeEvent.deleted("I1"))

        frames = await wait_for_frames(ws, 4)
        assert [f["type"] for f in frames] == [
            "connected",
            "taskAdded",
            "taskUpdated",
            "taskDeleted",
        ]
        assert frames[3]["payload"] == "I1"

        await manager.close_all()

    @pytest.mark.asyncio
    async def test_disconnected_session_gets_nothing(self):
        manager = ConnectionManager()
        ws, _ = await connect(manager)
        await wait_for_frames(ws, 1)
        manager.disconnect(ws)

        assert manager.fanout.emit(ChangeEvent.deleted("I1")) == 0
        await asyncio.sleep(0.02)
        assert sent_frames(ws) == [CONNECTED_A]


class TestSlowAndBrokenReceivers:

    @pytest.mark.asyncio
    async def test_full_queue_drops_only_that_session(self):
        manager = ConnectionManager(outbound_queue_size=1)
        slow_ws, slow = await connect(manager, "slow@x.com")
        slow_ws.send_json.side_effect = never_returns
        fast_ws, _ = await connect(manager, "fast@x.com")

        # Writer picks up the greeting and blocks on it
        await asyncio.sleep(0.02)

        manager.emit(ChangeEvent.added(task("I1")))
        assert slow.is_active
        # Let the healthy writer catch up; the slow one stays stuck
        await asyncio.sleep(0.02)
        manager.emit(ChangeEvent.added(task("I2")))

        assert slow.is_disconnected
        assert manager.active_count == 1
        assert manager.fanout.get_stats()["frames_dropped"] == 1

        frames = await wait_for_frames(fast_ws, 3)
        assert [f["payload"]["_id"] for f in frames[1:]] == ["I1", "I2"]

        # Dropped session is closed in the background
        await asyncio.sleep(0.02)
        slow_ws.close.assert_awaited_once()
        assert slow_ws.close.await_args.kwargs["code"] == WSCloseCode.GOING_AWAY

        await manager.close_all()

    @pytest.mark.asyncio
    async def test_send_failure_drops_session(self):
        manager = ConnectionManager()
        ws, session = await connect(manager)
        ws.send_json.side_effect = RuntimeError("socket closed")

        await asyncio.sleep(0.02)

        assert session.is_disconnected
        assert manager.active_count == 0
        assert manager.fanout.get_stats()["send_failures"] == 1

    @pytest.mark.asyncio
    async def test_send_timeout_drops_session(self):
        manager = ConnectionManager(send_timeout=0.05)
        ws, session = await connect(manager)
        ws.send_json.side_effect = never_returns

        await asyncio.sleep(0.2)

        assert session.is_disconnected
        assert manager.active_count == 0

    @pytest.mark.asyncio
    async def test_emit_does_not_wait_for_sockets(self):
        manager = ConnectionManager()
        for i in range(3):
            ws, _ = await connect(manager, f"u{i}@x.com")
            ws.send_json.side_effect = never_returns

        loop = asyncio.get_running_loop()
        start = loop.time()
        queued = manager.fanout.emit(ChangeEvent.deleted("I1"))

        assert queued == 3
        assert loop.time() - start < 0.05

        await manager.close_all()

    @pytest.mark.asyncio
    async def test_failing_dead_callback_is_contained(self):
        manager = ConnectionManager(outbound_queue_size=1)
        ws, _ = await connect(manager)

        def broken(session, reason):
            raise RuntimeError("callback failed")

        manager.fanout.set_dead_callback(broken)

        # Queue already holds the greeting; this overflows it
        manager.emit(ChangeEvent.deleted("I1"))

        assert manager.fanout.get_stats()["frames_dropped"] == 1
        await manager.close_all()


class TestHeartbeat:

    @pytest.mark.parametrize(
        "frame", ["ping", " ping ", '{"type":"ping"}', '{"type": "ping"}']
    )
    def test_ping_variants(self, frame):
        assert is_ping(frame) is True

    @pytest.mark.parametrize("frame", ["hello", "{not json", '{"type":"pong"}', "[]"])
    def test_non_ping(self, frame):
        assert is_ping(frame) is False

    @pytest.mark.asyncio
    async def test_ping_is_answered_through_the_outbox(self):
        manager = ConnectionManager()
        ws, session = await connect(manager)

        assert handle_heartbeat(session, "ping", manager.send_control) is True
        assert handle_heartbeat(session, "hello", manager.send_control) is False

        frames = await wait_for_frames(ws, 2)
        assert frames == [CONNECTED_A, {"type": "pong"}]

        await manager.close_all()

    @pytest.mark.asyncio
    async def test_keepalive_reaches_quiet_sessions(self):
        manager = ConnectionManager()
        ws_a, _ = await connect(manager, "a@x.com")
        ws_b, _ = await connect(manager, "b@x.com")

        assert manager.send_keepalive() == 2

        assert (await wait_for_frames(ws_a, 2))[-1] == {"type": "ping"}
        assert (await wait_for_frames(ws_b, 2))[-1] == {"type": "ping"}
        assert manager.active_count == 2

        await manager.close_all()

    @pytest.mark.asyncio
    async def test_keepalive_send_failure_drops_only_that_session(self):
        manager = ConnectionManager()
        dead_ws = make_websocket()
        dead_ws.send_json.side_effect = [None, RuntimeError("peer gone")]
        dead = manager.new_session(dead_ws)
        await manager.connect(dead, "dead@x.com")
        _, live = await connect(manager, "live@x.com")

        manager.send_keepalive()
        await asyncio.sleep(0.05)

        assert dead.is_disconnected
        assert live.is_active
        assert manager.active_count == 1
        dead_ws.close.assert_awaited_once_with(
            code=WSCloseCode.GOING_AWAY, reason="send_failed"
        )

        await manager.close_all()


class TestShutdown:

    @pytest.mark.asyncio
    async def test_close_all_closes_every_session(self):
        manager = ConnectionManager()
        sockets = [(await connect(manager, f"u{i}@x.com"))[0] for i in range(2)]

        closed = await manager.close_all()

        assert closed == 2
        for ws in sockets:
            ws.close.assert_awaited_once_with(
                code=WSCloseCode.GOING_AWAY, reason="Server shutdown"
            )
        assert manager.active_count == 0
        assert manager.is_shutting_down()
        assert manager.fanout.writer_count == 0

    @pytest.mark.asyncio
    async def test_no_new_sessions_after_shutdown(self):
        manager = ConnectionManager()
        await manager.close_all()

        with pytest.raises(ConnectionError):
            await connect(manager)
