"""
Connection Registry.

Tracks live sessions and drives their state machine. Only sessions that
reached ACTIVE are stored, so the active count is the size of one dict.

All mutations happen on the event loop thread; none of them await while
the map is being changed, so no lock is needed.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from taskboard.shared.config.logging import get_logger, mask_email
from taskboard.shared.utils.exceptions import Unauthorized
from taskboard.ws_gateway.constants import WSConstants
from taskboard.ws_gateway.session import Session, SessionState

if TYPE_CHECKING:
    from fastapi import WebSocket

logger = get_logger(__name__)


class ConnectionRegistry:
    """
    Accepts, authenticates and removes WebSocket sessions.

    Usage:
        session = Session(websocket)
        registry.authenticate(session, email)
        await registry.activate(session)
        ...
        registry.disconnect(websocket)
    """

    def __init__(
        self,
        max_total_connections: int = 1000,
        accept_timeout: float = WSConstants.WS_ACCEPT_TIMEOUT,
    ) -> None:
        """
        Args:
            max_total_connections: Global cap on ACTIVE sessions
            accept_timeout: Seconds to wait for the WebSocket handshake
        """
        self._max_total_connections = max_total_connections
        self._accept_timeout = accept_timeout
        self._sessions: dict["WebSocket", Session] = {}
        self._shutdown = False

        self._total_activated = 0
        self._total_rejected_auth = 0
        self._total_rejected_limit = 0
        self._total_disconnected = 0

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def set_shutdown(self, value: bool) -> None:
        self._shutdown = value

    def authenticate(self, session: Session, claim: str | None) -> None:
        """
        Attach an identity claim to a CONNECTING session.

        The claim is trusted as-is; it only has to be a non-empty string.

        Raises:
            Unauthorized: If the claim is missing. The session is moved to
                DISCONNECTED and never counted.
        """
        email = claim.strip() if isinstance(claim, str) else ""
        if not email:
            self._total_rejected_auth += 1
            session.mark_disconnected()
            raise Unauthorized()
        session.authenticate(email)

    async def activate(self, session: Session) -> None:
        """
        Accept the WebSocket handshake and start counting the session.

        Raises:
            ConnectionError: If shutting down, at capacity, or the accept
                failed. The session ends up DISCONNECTED.
        """
        if session.state is not SessionState.AUTHENTICATED:
            raise ConnectionError(f"Session is {session.state.value}, expected authenticated")

        if self._shutdown:
            session.mark_disconnected()
            raise ConnectionError("Server is shutting down")

        if len(self._sessions) >= self._max_total_connections:
            self._total_rejected_limit += 1
            session.mark_disconnected()
            raise ConnectionError(
                f"Server at capacity ({self._max_total_connections} connections)"
            )

        try:
            await asyncio.wait_for(session.websocket.accept(), timeout=self._accept_timeout)
        except asyncio.TimeoutError:
            session.mark_disconnected()
            raise ConnectionError("WebSocket accept timed out")
        except Exception as e:
            session.mark_disconnected()
            raise ConnectionError(f"WebSocket accept failed: {e}") from e

        # The client may have gone away while the accept was pending
        if session.is_disconnected:
            raise ConnectionError("Session closed during accept")

        session.activate()
        self._sessions[session.websocket] = session
        self._total_activated += 1

        logger.info(
            "Session activated",
            email=mask_email(session.email),
            active=len(self._sessions),
        )

    def disconnect(self, websocket: "WebSocket") -> Session | None:
        """
        Remove a session and mark it DISCONNECTED.

        Safe to call more than once for the same socket; only the first call
        has an effect.

        Returns:
            The removed session, or None if it was not registered.
        """
        session = self._sessions.pop(websocket, None)
        if session is None:
            return None

        session.mark_disconnected()
        self._total_disconnected += 1
        logger.info(
            "Session disconnected",
            email=mask_email(session.email),
            active=len(self._sessions),
        )
        return session

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def active_count(self) -> int:
        """Number of ACTIVE sessions. O(1)."""
        return len(self._sessions)

    def active_sessions(self) -> list[Session]:
        """Snapshot of ACTIVE sessions, safe to iterate while the map changes."""
        return list(self._sessions.values())

    def get_stats(self) -> dict[str, Any]:
        return {
            "active_sessions": len(self._sessions),
            "max_total_connections": self._max_total_connections,
            "total_activated": self._total_activated,
            "total_rejected_auth": self._total_rejected_auth,
            "total_rejected_limit": self._total_rejected_limit,
            "total_disconnected": self._total_disconnected,
            "shutdown": self._shutdown,
        }
