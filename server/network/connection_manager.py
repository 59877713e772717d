"""
Connection registry for WebSocket clients.

Every client that completed the CONNECT handshake has one PlayerConnection,
keyed by the player_id it chose. While the player is seated in a match the
PlayerConnection outlives its socket, so a later CONNECT with the same
player_id picks the match back up.
"""

import asyncio
import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from websockets.asyncio.server import ServerConnection
from websockets.exceptions import ConnectionClosed

from shared.protocol import Message


logger = logging.getLogger(__name__)

Outgoing = Message | dict | str


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def encode(message: Outgoing) -> str:
    """Wire form of an outgoing message."""
    if isinstance(message, Message):
        return message.to_json()
    if isinstance(message, dict):
        return json.dumps(message)
    return message


@dataclass
class PlayerConnection:
    """A known player, with or without a live socket."""
    player_id: str
    player_name: str
    websocket: ServerConnection | None
    match_id: str | None = None
    connected_at: datetime = field(default_factory=_utcnow)
    last_activity: datetime = field(default_factory=_utcnow)

    @property
    def is_connected(self) -> bool:
        return self.websocket is not None

    def touch(self) -> None:
        self.last_activity = _utcnow()


class ConnectionManager:
    """
    Tracks which socket belongs to which player and where each player sits.

    Match rosters are read off the connections themselves; the only index
    kept on the side maps a socket back to its player.
    """

    def __init__(self):
        self._players: dict[str, PlayerConnection] = {}
        self._by_socket: dict[ServerConnection, str] = {}
        self._lock = asyncio.Lock()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def connect(
        self,
        websocket: ServerConnection,
        player_id: str,
        player_name: str
    ) -> PlayerConnection:
        """
        Bind a socket to a player.

        A player id that is already known keeps its PlayerConnection (and
        match); any socket it was bound to before stops mapping to it.
        """
        async with self._lock:
            connection = self._players.get(player_id)

            if connection is None:
                connection = PlayerConnection(player_id, player_name, websocket)
                self._players[player_id] = connection
                logger.info(f"Player {player_name} ({player_id}) connected")
            else:
                if connection.websocket is not None:
                    self._by_socket.pop(connection.websocket, None)
                connection.websocket = websocket
                connection.connected_at = _utcnow()
                logger.info(f"Player {connection.player_name} ({player_id}) reconnected")

            connection.touch()
            self._by_socket[websocket] = player_id
            return connection

    async def disconnect(self, websocket: ServerConnection) -> PlayerConnection | None:
        """
        Unbind a socket.

        Returns None for a socket that no longer belongs to anyone, such as
        one replaced by a reconnect.
        """
        async with self._lock:
            player_id = self._by_socket.pop(websocket, None)
            connection = self._players.get(player_id) if player_id else None
            if connection is None:
                return None

            connection.websocket = None
            if connection.match_id:
                logger.info(
                    f"Player {connection.player_name} ({player_id}) dropped from "
                    f"match {connection.match_id}, seat held for reconnect"
                )
            else:
                del self._players[player_id]
                logger.info(f"Player {connection.player_name} ({player_id}) disconnected")

            return connection

    # =========================================================================
    # Seating
    # =========================================================================

    async def join_match(self, player_id: str, match_id: str) -> bool:
        """Record that a connected player sits in a match."""
        async with self._lock:
            connection = self._players.get(player_id)
            if connection is None or not connection.is_connected:
                return False

            connection.match_id = match_id
            logger.info(f"Player {connection.player_name} ({player_id}) seated in match {match_id}")
            return True

    async def leave_match(self, player_id: str) -> str | None:
        """Clear a player's seat. Returns the match they left, if any."""
        async with self._lock:
            connection = self._players.get(player_id)
            if connection is None or connection.match_id is None:
                return None

            match_id, connection.match_id = connection.match_id, None
            if not connection.is_connected:
                del self._players[player_id]

            logger.info(f"Player {connection.player_name} ({player_id}) left match {match_id}")
            return match_id

    # =========================================================================
    # Queries
    # =========================================================================

    def get_connection(self, websocket: ServerConnection) -> PlayerConnection | None:
        player_id = self._by_socket.get(websocket)
        return self._players.get(player_id) if player_id else None

    def get_connection_by_player_id(self, player_id: str) -> PlayerConnection | None:
        """The player's connection, only while a socket is attached."""
        connection = self._players.get(player_id)
        if connection and connection.is_connected:
            return connection
        return None

    def get_player_id(self, websocket: ServerConnection) -> str | None:
        return self._by_socket.get(websocket)

    def get_match_id(self, player_id: str) -> str | None:
        """Match the player sits in, whether or not they are connected."""
        connection = self._players.get(player_id)
        return connection.match_id if connection else None

    def get_players_in_match(self, match_id: str) -> set[str]:
        return {c.player_id for c in self._players.values() if c.match_id == match_id}

    def get_connected_players_in_match(self, match_id: str) -> list[PlayerConnection]:
        return [
            c for c in self._players.values()
            if c.match_id == match_id and c.is_connected
        ]

    def is_player_connected(self, player_id: str) -> bool:
        return self.get_connection_by_player_id(player_id) is not None

    def is_player_in_match(self, player_id: str, match_id: str) -> bool:
        return self.get_match_id(player_id) == match_id

    # =========================================================================
    # Sending
    # =========================================================================

    async def send_to_player(self, player_id: str, message: Outgoing) -> bool:
        """Send to one player. False when they are offline or the send failed."""
        connection = self.get_connection_by_player_id(player_id)
        if connection is None:
            return False
        return await self._deliver(connection, encode(message))

    async def broadcast_to_match(
        self,
        match_id: str,
        message: Outgoing,
        exclude_player_id: str | None = None
    ) -> int:
        """
        Send one message to every connected player in a match.

        Returns how many players it reached.
        """
        data = encode(message)
        targets = [
            c for c in self.get_connected_players_in_match(match_id)
            if c.player_id != exclude_player_id
        ]
        delivered = await asyncio.gather(*(self._deliver(c, data) for c in targets))
        return sum(delivered)

    async def _deliver(self, connection: PlayerConnection, data: str) -> bool:
        try:
            await connection.websocket.send(data)
        except ConnectionClosed as e:
            logger.warning(
                f"Could not reach {connection.player_name} ({connection.player_id}): {e}"
            )
            return False

        connection.touch()
        return True

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_stats(self) -> dict[str, Any]:
        seated = Counter(c.match_id for c in self._players.values() if c.match_id)
        online = sum(1 for c in self._players.values() if c.is_connected)
        return {
            "total_connections": online,
            "known_players": len(self._players),
            "active_matches": len(seated),
            "disconnected_awaiting_reconnect": len(self._players) - online,
            "players_per_match": dict(seated),
        }
