"""
WebSocket Gateway Constants.

Close codes and protocol frames shared by the registry, the fanout and the
endpoint.
"""

from enum import IntEnum
from typing import Final

__all__ = [
    "WSCloseCode",
    "WSConstants",
    "MSG_PING_PLAIN",
    "MSG_PING_JSON",
    "MSG_PONG",
    "MSG_KEEPALIVE",
    "MSG_TYPE_CONNECTED",
    "FEED_ENDPOINT",
]


class WSCloseCode(IntEnum):
    """
    WebSocket close codes used by the gateway.

    Standard codes (1000-1999) from RFC 6455.
    Custom codes (4000-4999) for application-specific errors.
    """

    # Standard codes (RFC 6455)
    NORMAL = 1000  # Normal closure
    GOING_AWAY = 1001  # Server shutting down or session dropped
    MESSAGE_TOO_BIG = 1009  # Inbound frame larger than ws_max_message_size
    SERVER_ERROR = 1011  # Unexpected server error
    SERVER_OVERLOADED = 1013  # ws_max_total_connections reached

    # Custom application codes (4000-4999)
    AUTH_FAILED = 4001  # Handshake carried no identity claim


class WSConstants:
    """WebSocket Gateway operational constants."""

    # Handshake should complete well within TCP timeouts
    WS_ACCEPT_TIMEOUT: Final[float] = 5.0

    # Seconds to wait for a client close frame before giving up on it
    WS_CLOSE_TIMEOUT: Final[float] = 2.0

    # Seconds to wait for writer tasks to finish on shutdown
    WRITER_STOP_TIMEOUT: Final[float] = 2.0


FEED_ENDPOINT: Final[str] = "/ws"

# Heartbeat frames accepted from clients
MSG_PING_PLAIN: Final[str] = "ping"
MSG_PING_JSON: Final[str] = '{"type":"ping"}'
MSG_PONG: Final[dict] = {"type": "pong"}

# Pushed by the server every ws_keepalive_interval; clients may ignore it
MSG_KEEPALIVE: Final[dict] = {"type": "ping"}

# Sent once a session becomes active
MSG_TYPE_CONNECTED: Final[str] = "connected"
