"""
WebSocket Connection Manager.

Thin orchestrator that composes the registry and the fanout:
- ConnectionRegistry: session state machine and the ACTIVE map
- BroadcastFanout: per-session outboxes and writer tasks

The manager is the event sink handed to the mutation coordinator, and the
single place where a session is torn down (registry entry, writer task and
socket) so every disconnect path behaves the same.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from taskboard.rest_api.services.change_event import ChangeEvent
from taskboard.shared.config.logging import audit_ws_connection, get_logger
from taskboard.ws_gateway.broadcaster import BroadcastFanout, is_ws_connected
from taskboard.ws_gateway.constants import (
    FEED_ENDPOINT,
    MSG_KEEPALIVE,
    MSG_TYPE_CONNECTED,
    WSCloseCode,
    WSConstants,
)
from taskboard.ws_gateway.registry import ConnectionRegistry
from taskboard.ws_gateway.session import Session

if TYPE_CHECKING:
    from fastapi import WebSocket
    from taskboard.shared.config.settings import Settings

logger = get_logger(__name__)

__all__ = ["ConnectionManager"]


class ConnectionManager:
    """
    Manages WebSocket sessions for the realtime task feed.

    Usage:
        manager = ConnectionManager.from_settings(settings)
        session = manager.new_session(websocket)
        await manager.connect(session, email)
        manager.emit(ChangeEvent.added(task))
        manager.disconnect(websocket)
    """

    def __init__(
        self,
        max_total_connections: int = 1000,
        send_timeout: float = 5.0,
        outbound_queue_size: int = 256,
    ) -> None:
        self._registry = ConnectionRegistry(max_total_connections=max_total_connections)
        self._fanout = BroadcastFanout(
            self._registry,
            send_timeout=send_timeout,
            on_dead=self.drop,
        )
        self._outbound_queue_size = outbound_queue_size
        self._closing: set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ConnectionManager":
        return cls(
            max_total_connections=settings.ws_max_total_connections,
            send_timeout=settings.ws_send_timeout,
            outbound_queue_size=settings.ws_outbound_queue_size,
        )

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    @property
    def fanout(self) -> BroadcastFanout:
        return self._fanout

    @property
    def active_count(self) -> int:
        return self._registry.active_count

    def is_shutting_down(self) -> bool:
        return self._registry.is_shutdown

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    def new_session(self, websocket: "WebSocket") -> Session:
        return Session(websocket, queue_size=self._outbound_queue_size)

    async def connect(self, session: Session, claim: str | None) -> None:
        """
        Authenticate, accept and start delivering to a session.

        Raises:
            Unauthorized: If the handshake carried no email.
            ConnectionError: If the server is full, shutting down, or the
                accept failed.
        """
        self._registry.authenticate(session, claim)
        await self._registry.activate(session)
        self._fanout.attach(session)
        self._fanout.send_control(
            session,
            {"type": MSG_TYPE_CONNECTED, "email": session.email},
        )

    def disconnect(self, websocket: "WebSocket") -> Session | None:
        """Remove a session and stop its writer. Idempotent."""
        session = self._registry.disconnect(websocket)
        if session is not None:
            self._fanout.detach(session)
        return session

    def drop(self, session: Session, reason: str) -> None:
        """
        Forcefully end a session from the server side.

        Used for slow consumers and failed or timed out sends. The
        socket is closed in the background; callers never wait for it.
        """
        if self.disconnect(session.websocket) is None:
            return

        audit_ws_connection(
            event_type="DROPPED",
            endpoint=FEED_ENDPOINT,
            email=session.email,
            reason=reason,
        )
        self._schedule_close(session.websocket, WSCloseCode.GOING_AWAY, reason)

    def _schedule_close(self, websocket: "WebSocket", code: int, reason: str) -> None:
        task = asyncio.create_task(self._close_socket(websocket, code, reason))
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    async def _close_socket(self, websocket: "WebSocket", code: int, reason: str) -> bool:
        if not is_ws_connected(websocket):
            return False
        try:
            await asyncio.wait_for(
                websocket.close(code=code, reason=reason),
                timeout=WSConstants.WS_CLOSE_TIMEOUT,
            )
            return True
        except asyncio.TimeoutError:
            logger.debug("Close timed out", reason=reason)
        except (RuntimeError, ConnectionError, OSError) as e:
            logger.debug("Close failed", reason=reason, error=str(e))
        return False

    # =========================================================================
    # Event sink
    # =========================================================================

    def emit(self, event: ChangeEvent) -> None:
        """Fan a committed change out to every ACTIVE session."""
        self._fanout.emit(event)

    def send_control(self, session: Session, message: dict[str, Any]) -> bool:
        return self._fanout.send_control(session, message)

    # =========================================================================
    # Maintenance
    # =========================================================================

    def send_keepalive(self) -> int:
        """
        Push a ping frame to every ACTIVE session.

        Clients are not expected to answer. The frame only exercises the
        write path: a full outbox or a failed send drops the session, so
        dead peers are found even when no task changes.

        Returns:
            Number of sessions the frame was queued for.
        """
        sessions = self._registry.active_sessions()
        queued = sum(1 for s in sessions if self._fanout.send_control(s, dict(MSG_KEEPALIVE)))
        if queued < len(sessions):
            logger.info("Keepalive skipped sessions", queued=queued, active=len(sessions))
        return queued

    async def close_all(self) -> int:
        """Graceful shutdown: refuse new sessions, close every live one."""
        self._registry.set_shutdown(True)
        logger.info("WebSocket manager shutting down...")

        sessions = self._registry.active_sessions()
        for session in sessions:
            self.disconnect(session.websocket)

        results = await asyncio.gather(
            *[
                self._close_socket(s.websocket, WSCloseCode.GOING_AWAY, "Server shutdown")
                for s in sessions
            ],
            return_exceptions=True,
        )
        closed = sum(1 for r in results if r is True)

        await self._fanout.stop()

        if self._closing:
            await asyncio.gather(*list(self._closing), return_exceptions=True)

        logger.info("WebSocket shutdown complete", closed=closed, sessions=len(sessions))
        return closed

    def get_stats(self) -> dict[str, Any]:
        return {
            "registry": self._registry.get_stats(),
            "fanout": self._fanout.get_stats(),
        }
