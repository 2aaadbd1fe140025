"""
Heartbeat handling for the task feed.

Clients never have to send anything. A ``ping`` they do send (plain or
JSON) is answered with ``{"type": "pong"}``. The reply goes through the
session's outbox so it never interleaves with a broadcast being written.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Callable

from taskboard.ws_gateway.constants import MSG_PING_JSON, MSG_PING_PLAIN, MSG_PONG

if TYPE_CHECKING:
    from taskboard.ws_gateway.session import Session


def is_ping(data: str) -> bool:
    text = data.strip()
    if text in (MSG_PING_PLAIN, MSG_PING_JSON):
        return True
    if not text.startswith("{"):
        return False
    try:
        message = json.loads(text)
    except ValueError:
        return False
    return isinstance(message, dict) and message.get("type") == "ping"


def handle_heartbeat(
    session: "Session",
    data: str,
    send: Callable[["Session", dict[str, Any]], bool],
) -> bool:
    """
    Answer client pings.

    Args:
        session: The session the frame arrived on.
        data: The received text frame.
        send: Queues a control frame for the session.

    Returns:
        True if the frame was a heartbeat and was handled, False otherwise.
    """
    if is_ping(data):
        send(session, dict(MSG_PONG))
        return True
    return False
