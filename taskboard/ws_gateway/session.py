"""
Session - in-memory identity record of one live connection.

State machine per connection:

    CONNECTING -> AUTHENTICATED -> ACTIVE -> DISCONNECTED
         |              |
         +--------------+------------------> DISCONNECTED

DISCONNECTED is terminal. Only ACTIVE sessions receive pushed events.
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from fastapi import WebSocket


class SessionState(str, Enum):
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    ACTIVE = "active"
    DISCONNECTED = "disconnected"


_ALLOWED_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.CONNECTING: frozenset({SessionState.AUTHENTICATED, SessionState.DISCONNECTED}),
    SessionState.AUTHENTICATED: frozenset({SessionState.ACTIVE, SessionState.DISCONNECTED}),
    SessionState.ACTIVE: frozenset({SessionState.DISCONNECTED}),
    SessionState.DISCONNECTED: frozenset(),
}


class InvalidTransition(RuntimeError):
    """A state change the session state machine does not allow."""

    def __init__(self, current: SessionState, target: SessionState):
        super().__init__(f"Cannot move session from {current.value} to {target.value}")
        self.current = current
        self.target = target


class Session:
    """
    A connection handle paired with its authenticated email.

    Each session owns a bounded outbound queue. Producers enqueue without
    waiting; a single writer task (owned by the fanout) drains it in order.
    """

    def __init__(self, websocket: "WebSocket", queue_size: int = 256) -> None:
        self.websocket = websocket
        self.email: str | None = None
        self.state = SessionState.CONNECTING
        self.connected_at: float | None = None
        self.outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=queue_size)

    def __repr__(self) -> str:
        return f"<Session state={self.state.value} connected_at={self.connected_at}>"

    @property
    def is_active(self) -> bool:
        return self.state is SessionState.ACTIVE

    @property
    def is_disconnected(self) -> bool:
        return self.state is SessionState.DISCONNECTED

    def _transition(self, target: SessionState) -> None:
        if target not in _ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransition(self.state, target)
        self.state = target

    def authenticate(self, email: str) -> None:
        """Attach the identity claim. CONNECTING -> AUTHENTICATED."""
        self._transition(SessionState.AUTHENTICATED)
        self.email = email

    def activate(self) -> None:
        """Start receiving events. AUTHENTICATED -> ACTIVE."""
        self._transition(SessionState.ACTIVE)
        self.connected_at = time.time()

    def mark_disconnected(self) -> bool:
        """
        Enter the terminal state.

        Returns:
            True if this call performed the transition, False if the session
            was already disconnected.
        """
        if self.state is SessionState.DISCONNECTED:
            return False
        self._transition(SessionState.DISCONNECTED)
        return True

    def enqueue(self, message: dict[str, Any]) -> bool:
        """
        Queue a frame for delivery without waiting.

        Returns:
            False if the session is not active or its queue is full.
        """
        if not self.is_active:
            return False
        try:
            self.outbox.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True
