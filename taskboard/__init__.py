"""
Taskboard realtime service.

Persists task mutations and pushes each committed change to every connected
client over WebSocket.
"""

__version__ = "0.1.0"
