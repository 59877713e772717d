"""
Network layer for the Farkle server.

Provides WebSocket server, connection management, match registry and
message handling.
"""

from server.network.connection_manager import ConnectionManager, PlayerConnection
from server.network.match_manager import MatchManager, ManagedMatch
from server.network.message_handler import MessageHandler, HandleResult
from server.network.server import FarkleServer, run_server


__all__ = [
    "ConnectionManager",
    "PlayerConnection",
    "MatchManager",
    "ManagedMatch",
    "MessageHandler",
    "HandleResult",
    "FarkleServer",
    "run_server",
]
