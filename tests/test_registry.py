"""
Tests for sessions and the connection registry.

Tests verify:
- The session state machine rejects illegal transitions
- Unauthenticated handshakes never become active or counted
- Capacity and shutdown refusals
- Idempotent disconnect and O(1) active count
"""

import pytest

from taskboard.shared.utils.exceptions import Unauthorized
from taskboard.ws_gateway.registry import ConnectionRegistry
from taskboard.ws_gateway.session import InvalidTransition, Session, SessionState

from conftest import make_websocket


class TestSessionStateMachine:

    def test_happy_path(self):
        session = Session(make_websocket())

        assert session.state is SessionState.CONNECTING
        session.authenticate("a@x.com")
        assert session.state is SessionState.AUTHENTICATED
        session.activate()
        assert session.is_active
        assert session.connected_at is not None
        assert session.mark_disconnected() is True
        assert session.is_disconnected

    def test_cannot_activate_without_authentication(self):
        session = Session(make_websocket())

        with pytest.raises(InvalidTransition):
            session.activate()

    def test_disconnected_is_terminal(self):
        session = Session(make_websocket())
        session.mark_disconnected()

        assert session.mark_disconnected() is False
        with pytest.raises(InvalidTransition):
            session.authenticate("a@x.com")

    def test_enqueue_only_while_active(self):
        session = Session(make_websocket(), queue_size=1)
        assert session.enqueue({"type": "x"}) is False

        session.authenticate("a@x.com")
        session.activate()
        assert session.enqueue({"type": "x"}) is True
        # Queue full
        assert session.enqueue({"type": "y"}) is False


class TestAuthentication:

    @pytest.mark.parametrize("claim", [None, "", "   "])
    def test_missing_claim_is_unauthorized(self, claim):
        registry = ConnectionRegistry()
        session = Session(make_websocket())

        with pytest.raises(Unauthorized):
            registry.authenticate(session, claim)

        assert session.state is SessionState.DISCONNECTED
        assert registry.active_count == 0
        assert registry.get_stats()["total_rejected_auth"] == 1

    @pytest.mark.asyncio
    async def test_unauthorized_session_cannot_be_activated(self):
        registry = ConnectionRegistry()
        ws = make_websocket()
        session = Session(ws)
        with pytest.raises(Unauthorized):
            registry.authenticate(session, None)

        with pytest.raises(ConnectionError):
            await registry.activate(session)

        ws.accept.assert_not_awaited()
        assert registry.active_count == 0


class TestActivation:

    @pytest.mark.asyncio
    async def test_activate_accepts_and_counts(self):
        registry = ConnectionRegistry()
        ws = make_websocket()
        session = Session(ws)
        registry.authenticate(session, "a@x.com")

        await registry.activate(session)

        ws.accept.assert_awaited_once()
        assert registry.active_count == 1
        assert registry.active_sessions() == [session]
        assert session.is_active

    @pytest.mark.asyncio
    async def test_same_email_may_hold_several_sessions(self):
        registry = ConnectionRegistry()
        for _ in range(2):
            session = Session(make_websocket())
            registry.authenticate(session, "a@x.com")
            await registry.activate(session)

        assert registry.active_count == 2
        assert {s.email for s in registry.active_sessions()} == {"a@x.com"}

    @pytest.mark.asyncio
    async def test_capacity_limit(self):
        registry = ConnectionRegistry(max_total_connections=1)
        first = Session(make_websocket())
        registry.authenticate(first, "a@x.com")
        await registry.activate(first)

        ws = make_websocket()
        second = Session(ws)
        registry.authenticate(second, "b@x.com")
        with pytest.raises(ConnectionError, match="capacity"):
            await registry.activate(second)

        ws.accept.assert_not_awaited()
        assert second.is_disconnected
        assert registry.active_count == 1

    @pytest.mark.asyncio
    async def test_shutdown_refuses_new_sessions(self):
        registry = ConnectionRegistry()
        registry.set_shutdown(True)
        session = Session(make_websocket())
        registry.authenticate(session, "a@x.com")

        with pytest.raises(ConnectionError, match="shutting down"):
            await registry.activate(session)

    @pytest.mark.asyncio
    async def test_failed_accept_is_not_counted(self):
        registry = ConnectionRegistry()
        ws = make_websocket()
        ws.accept.side_effect = RuntimeError("handshake failed")
        session = Session(ws)
        registry.authenticate(session, "a@x.com")

        with pytest.raises(ConnectionError):
            await registry.activate(session)

        assert session.is_disconnected
        assert registry.active_count == 0


class TestDisconnect:

    @pytest.mark.asyncio
    async def test_disconnect_is_idempotent(self):
        registry = ConnectionRegistry()
        ws = make_websocket()
        session = Session(ws)
        registry.authenticate(session, "a@x.com")
        await registry.activate(session)

        assert registry.disconnect(ws) is session
        assert registry.disconnect(ws) is None

        assert session.is_disconnected
        assert registry.active_count == 0
        assert registry.get_stats()["total_disconnected"] == 1

    def test_disconnect_unknown_socket(self):
        registry = ConnectionRegistry()

        assert registry.disconnect(make_websocket()) is None

