"""
Broadcast Fanout.

Pushes change events to every ACTIVE session.

``emit`` runs synchronously: it puts the frame on each session's bounded
outbox and returns. One writer task per session drains that outbox in FIFO
order, so frames reach a client in the order they were emitted, and a slow
socket only ever stalls its own writer.

A full outbox or a failed/timed out send marks the session dead. There is
no retry and no redelivery; a client that reconnects re-lists its tasks.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Callable

from starlette.websockets import WebSocketState

from taskboard.rest_api.services.change_event import ChangeEvent
from taskboard.shared.config.logging import get_logger
from taskboard.ws_gateway.constants import WSConstants

if TYPE_CHECKING:
    from fastapi import WebSocket
    from taskboard.ws_gateway.registry import ConnectionRegistry
    from taskboard.ws_gateway.session import Session

logger = get_logger(__name__)

DeadSessionCallback = Callable[["Session", str], None]


def is_ws_connected(ws: "WebSocket") -> bool:
    """
    Check if WebSocket is in connected state before sending.

    Starlette does not expose transitional states, so a socket may still
    look connected briefly after the peer went away.
    """
    return (
        ws.client_state == WebSocketState.CONNECTED
        and ws.application_state == WebSocketState.CONNECTED
    )


class BroadcastFanout:
    """
    Non-blocking delivery of change events and control frames.

    Usage:
        fanout = BroadcastFanout(registry, send_timeout=5.0, on_dead=manager.drop)
        fanout.attach(session)   # after the session becomes ACTIVE
        fanout.emit(event)       # from the mutation coordinator
        fanout.detach(session)   # on disconnect
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        send_timeout: float = 5.0,
        on_dead: DeadSessionCallback | None = None,
    ) -> None:
        """
        Args:
            registry: Source of the ACTIVE session list
            send_timeout: Seconds a single socket send may take
            on_dead: Called with (session, reason) when a session must go
        """
        self._registry = registry
        self._send_timeout = send_timeout
        self._on_dead = on_dead
        self._writers: dict["Session", asyncio.Task] = {}
        self._running = True

        self._events_emitted = 0
        self._frames_enqueued = 0
        self._frames_sent = 0
        self._frames_dropped = 0
        self._send_failures = 0

    def set_dead_callback(self, callback: DeadSessionCallback) -> None:
        self._on_dead = callback

    # =========================================================================
    # Writer management
    # =========================================================================

    def attach(self, session: "Session") -> None:
        """Start the writer task for a session that just became ACTIVE."""
        if session in self._writers:
            return
        self._writers[session] = asyncio.create_task(
            self._writer_loop(session),
            name=f"ws_writer_{id(session.websocket):x}",
        )

    def detach(self, session: "Session") -> None:
        """
        Stop a session's writer. Queued frames are abandoned.

        Safe to call from inside the writer itself.
        """
        writer = self._writers.pop(session, None)
        if writer is None or writer.done():
            return
        if writer is not asyncio.current_task():
            writer.cancel()

    @property
    def writer_count(self) -> int:
        return len(self._writers)

    async def stop(self, timeout: float = WSConstants.WRITER_STOP_TIMEOUT) -> None:
        """Cancel every writer. Outstanding broadcasts are abandoned."""
        self._running = False
        writers = list(self._writers.values())
        self._writers.clear()

        for writer in writers:
            writer.cancel()

        if writers:
            done, pending = await asyncio.wait(writers, timeout=timeout)
            if pending:
                logger.warning("Writers did not stop in time", pending=len(pending))

        logger.info("Broadcast fanout stopped", writers=len(writers))

    # =========================================================================
    # Producers (synchronous, never await)
    # =========================================================================

    def emit(self, event: ChangeEvent) -> int:
        """
        Queue an event for every ACTIVE session, including the originator.

        Returns:
            Number of sessions the frame was queued for.
        """
        if not self._running:
            return 0

        self._events_emitted += 1
        message = event.to_message()
        queued = 0

        for session in self._registry.active_sessions():
            if self._offer(session, message):
                queued += 1

        logger.debug(
            "Event fanned out",
            event_type=event.kind.value,
            task_id=event.task_id,
            sessions=queued,
        )
        return queued

    def send_control(self, session: "Session", message: dict[str, Any]) -> bool:
        """Queue a control frame (connected, pong, keepalive ping) for a single session."""
        if not self._running:
            return False
        return self._offer(session, message)

    def _offer(self, session: "Session", message: dict[str, Any]) -> bool:
        if not session.is_active:
            return False
        if session.enqueue(message):
            self._frames_enqueued += 1
            return True

        self._frames_dropped += 1
        logger.warning(
            "Outbound queue full, dropping session",
            pending=session.outbox.qsize(),
        )
        self._mark_dead(session, "slow_consumer")
        return False

    # =========================================================================
    # Writer
    # =========================================================================

    async def _writer_loop(self, session: "Session") -> None:
        ws = session.websocket
        try:
            while session.is_active:
                message = await session.outbox.get()
                if not session.is_active:
                    break
                if not await self._send(ws, message):
                    self._mark_dead(session, "send_failed")
                    break
        except asyncio.CancelledError:
            pass
        finally:
            self._writers.pop(session, None)

    async def _send(self, ws: "WebSocket", message: dict[str, Any]) -> bool:
        if not is_ws_connected(ws):
            self._send_failures += 1
            return False
        try:
            await asyncio.wait_for(ws.send_json(message), timeout=self._send_timeout)
        except asyncio.TimeoutError:
            self._send_failures += 1
            logger.warning("Send timed out", timeout=self._send_timeout)
            return False
        except Exception as e:
            self._send_failures += 1
            logger.debug("Send failed", error=str(e))
            return False
        self._frames_sent += 1
        return True

    def _mark_dead(self, session: "Session", reason: str) -> None:
        if self._on_dead is None:
            return
        try:
            self._on_dead(session, reason)
        except Exception as e:
            logger.error("Dead session callback failed", reason=reason, error=str(e))

    # =========================================================================
    # Stats
    # =========================================================================

    def get_stats(self) -> dict[str, Any]:
        return {
            "events_emitted": self._events_emitted,
            "frames_enqueued": self._frames_enqueued,
            "frames_sent": self._frames_sent,
            "frames_dropped": self._frames_dropped,
            "send_failures": self._send_failures,
            "writers": len(self._writers),
        }
