"""
WebSocket gateway for the realtime task feed.

Sessions, the connection registry, and the broadcast fanout that pushes
committed task changes to every active client.
"""

from taskboard.ws_gateway.broadcaster import BroadcastFanout, is_ws_connected
from taskboard.ws_gateway.connection_manager import ConnectionManager
from taskboard.ws_gateway.constants import FEED_ENDPOINT, WSCloseCode
from taskboard.ws_gateway.registry import ConnectionRegistry
from taskboard.ws_gateway.session import Session, SessionState

__all__ = [
    "BroadcastFanout",
    "ConnectionManager",
    "ConnectionRegistry",
    "FEED_ENDPOINT",
    "Session",
    "SessionState",
    "WSCloseCode",
    "is_ws_connected",
]
