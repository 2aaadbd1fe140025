"""
Task feed WebSocket endpoint.

Lifecycle of one connection:
1. Read the identity claim (``?email=`` or ``X-User-Email``)
2. Authenticate and activate through the connection manager
3. Message loop: client pings are answered, everything else is ignored.
   Silence is fine; the server keepalive and failed sends detect dead peers
4. Disconnect on exit, whatever the reason
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from taskboard.shared.config.logging import audit_ws_connection, get_logger, mask_email
from taskboard.shared.infrastructure.correlation import (
    HEADER_NAME,
    bind_request_id,
    get_request_id,
    resolve_request_id,
)
from taskboard.shared.utils.exceptions import Unauthorized
from taskboard.ws_gateway.constants import FEED_ENDPOINT, WSCloseCode
from taskboard.ws_gateway.heartbeat import handle_heartbeat

if TYPE_CHECKING:
    from taskboard.ws_gateway.connection_manager import ConnectionManager
    from taskboard.ws_gateway.session import Session

logger = get_logger(__name__)

EMAIL_HEADER = "x-user-email"


class TaskFeedEndpoint:
    """
    Server-push feed of task changes.

    The handshake claim is trusted as given; a missing claim closes the
    socket with 4001 before it is accepted.
    """

    endpoint_name = FEED_ENDPOINT

    def __init__(
        self,
        websocket: WebSocket,
        manager: "ConnectionManager",
        max_message_size: int = 4096,
    ) -> None:
        self.websocket = websocket
        self.manager = manager
        self.max_message_size = max_message_size
        self.session: "Session | None" = None

    def get_claim(self) -> str | None:
        email = self.websocket.query_params.get("email")
        if email:
            return email
        return self.websocket.headers.get(EMAIL_HEADER)

    async def run(self) -> None:
        """Main entry point - run the WebSocket endpoint."""
        origin = self.websocket.headers.get("origin")
        claim = self.get_claim()
        session = self.session = self.manager.new_session(self.websocket)

        try:
            await self.manager.connect(session, claim)
        except Unauthorized as e:
            audit_ws_connection(
                event_type="AUTH_FAILED",
                endpoint=self.endpoint_name,
                origin=origin,
                reason="missing_identity",
            )
            await self._close(WSCloseCode.AUTH_FAILED, e.detail)
            return
        except ConnectionError as e:
            logger.warning("WebSocket connection rejected", reason=str(e))
            audit_ws_connection(
                event_type="REJECTED",
                endpoint=self.endpoint_name,
                email=claim,
                origin=origin,
                reason=str(e),
            )
            await self._close(WSCloseCode.SERVER_OVERLOADED, "Server unavailable")
            return

        audit_ws_connection(
            event_type="CONNECT",
            endpoint=self.endpoint_name,
            email=session.email,
            origin=origin,
            connection_id=get_request_id(),
        )

        reason = "server_closed"
        try:
            reason = await self._message_loop(session)
        except WebSocketDisconnect as e:
            reason = "client_disconnect"
            logger.debug("Client disconnected", code=e.code)
        except Exception as e:
            reason = "error"
            logger.error(
                "Unexpected error in message loop",
                email=mask_email(session.email),
                error=str(e),
                exc_info=True,
            )
            await self._close(WSCloseCode.SERVER_ERROR, "Internal error")
        finally:
            self.manager.disconnect(self.websocket)
            audit_ws_connection(
                event_type="DISCONNECT",
                endpoint=self.endpoint_name,
                email=session.email,
                reason=reason,
            )

    async def _message_loop(self, session: "Session") -> str:
        """
        Process inbound frames until the session ends.

        Returns:
            Why the loop stopped.
        """
        while session.is_active:
            data = await self._receive()
            if len(data) > self.max_message_size:
                logger.warning(
                    "Message too large",
                    size=len(data),
                    limit=self.max_message_size,
                )
                self.manager.disconnect(self.websocket)
                await self._close(WSCloseCode.MESSAGE_TOO_BIG, "Message too big")
                return "message_too_big"

            if not handle_heartbeat(session, data, self.manager.send_control):
                # Push-only feed
                logger.debug("Ignoring client message", size=len(data))

        return "server_closed"

    async def _receive(self) -> str:
        """
        Receive one frame.

        Returns:
            Frame text (binary frames are decoded).

        Raises:
            WebSocketDisconnect: When the client goes away.
        """
        message = await self.websocket.receive()
        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(code=message.get("code", WSCloseCode.NORMAL))

        text = message.get("text")
        if text is not None:
            return text
        return (message.get("bytes") or b"").decode("utf-8", errors="replace")

    async def _close(self, code: int, reason: str) -> None:
        try:
            await self.websocket.close(code=code, reason=reason)
        except (RuntimeError, ConnectionError, OSError) as e:
            logger.debug("Close failed", code=code, error=str(e))


router = APIRouter()


@router.websocket(FEED_ENDPOINT)
async def task_feed(websocket: WebSocket) -> None:
    """Realtime feed of taskAdded / taskUpdated / taskDeleted events."""
    state = websocket.app.state
    endpoint = TaskFeedEndpoint(
        websocket,
        state.connection_manager,
        max_message_size=state.settings.ws_max_message_size,
    )
    with bind_request_id(resolve_request_id(websocket.headers.get(HEADER_NAME))):
        await endpoint.run()
