"""
WebSocket server for multiplayer Farkle.

Ties the connection registry, the match registry and the message handler
to a websockets asyncio server.
"""

import argparse
import asyncio
import json
import logging
import signal
from typing import Any

import websockets
from websockets.asyncio.server import ServerConnection, serve

from server.network.connection_manager import ConnectionManager, PlayerConnection
from server.network.match_manager import MatchManager
from server.network.message_handler import MessageHandler, HandleResult
from server.config import settings
from shared.protocol import (
    ErrorMessage,
    GameStateMessage,
    PlayerDisconnectedMessage,
    PlayerReconnectedMessage,
)
from shared.enums import MessageType


logger = logging.getLogger(__name__)


class FarkleServer:
    """
    WebSocket server for Farkle matches.

    A client speaks CONNECT first, then match intents. After every change the
    fresh snapshot is pushed to each seat with its own your_player_id.
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        seed: int | None = None
    ):
        self.host = host or settings.HOST
        self.port = port or settings.PORT

        self._connections = ConnectionManager()
        self._matches = MatchManager(seed if seed is not None else settings.RANDOM_SEED)
        self._handler = MessageHandler(self._matches, self._connections)

        self._running = False
        self._shutdown_event = asyncio.Event()

    async def start(self) -> None:
        """Serve until stop() is called."""
        self._running = True
        self._shutdown_event.clear()

        async with serve(
            self._handle_client,
            self.host,
            self.port,
            ping_interval=settings.PING_INTERVAL,
            ping_timeout=settings.PING_TIMEOUT,
        ):
            logger.info(f"Farkle server listening on ws://{self.host}:{self.port}")
            await self._shutdown_event.wait()

        logger.info("Server stopped")

    async def stop(self) -> None:
        logger.info("Shutting down server...")
        self._running = False
        self._shutdown_event.set()

    def request_shutdown(self) -> None:
        """Signal-handler friendly shutdown."""
        asyncio.create_task(self.stop())

    # =========================================================================
    # Per-client session
    # =========================================================================

    async def _handle_client(self, websocket: ServerConnection) -> None:
        connection = None

        try:
            connection = await self._handshake(websocket)
            if connection is None:
                return

            async for raw_message in websocket:
                if not self._running:
                    break
                await self._handle_message(websocket, connection.player_id, raw_message)

        except websockets.ConnectionClosed:
            logger.debug(f"Connection closed for {connection.player_id if connection else 'unknown client'}")
        except Exception as e:
            logger.exception(f"Error serving client: {e}")
        finally:
            if connection is not None:
                await self._handle_disconnect(websocket)

    async def _handshake(self, websocket: ServerConnection) -> PlayerConnection | None:
        """
        Read CONNECT, register the player and acknowledge.

        A player still seated in a live match gets the match's snapshot
        before the acknowledgement.
        """
        hello = await self._read_hello(websocket)
        if hello is None:
            return None

        player_id, player_name = hello
        connection = await self._connections.connect(websocket, player_id, player_name)
        resumed = await self._resume_match(websocket, connection)

        await websocket.send(json.dumps({
            "type": MessageType.CONNECT.value,
            "data": {
                "success": True,
                "player_id": player_id,
                "player_name": connection.player_name,
                "reconnected_to_match": resumed,
            }
        }))
        return connection

    async def _read_hello(self, websocket: ServerConnection) -> tuple[str, str] | None:
        """First frame as (player_id, player_name), or None after reporting why not."""
        try:
            raw = await asyncio.wait_for(websocket.recv(), timeout=settings.CONNECT_TIMEOUT)
            data = json.loads(raw)
        except asyncio.TimeoutError:
            await self._send_error(websocket, "Connection timeout", "TIMEOUT")
            return None
        except json.JSONDecodeError:
            await self._send_error(websocket, "Invalid JSON", "PARSE_ERROR")
            return None

        if not isinstance(data, dict) or data.get("type") != MessageType.CONNECT.value:
            await self._send_error(websocket, "First message must be CONNECT", "CONNECT_REQUIRED")
            return None

        payload = data.get("data") or {}
        player_id = payload.get("player_id")
        if not player_id:
            await self._send_error(websocket, "player_id is required", "MISSING_PLAYER_ID")
            return None

        return player_id, payload.get("player_name", "Player")

    async def _resume_match(
        self,
        websocket: ServerConnection,
        connection: PlayerConnection
    ) -> str | None:
        """Re-attach a returning player to their match. Returns its id."""
        if not connection.match_id:
            return None

        managed = self._matches.get_match(connection.match_id)
        if managed is None:
            await self._connections.leave_match(connection.player_id)
            return None

        await self._connections.broadcast_to_match(
            managed.match_id,
            PlayerReconnectedMessage.create(connection.player_id, connection.player_name),
            exclude_player_id=connection.player_id
        )
        snapshot = GameStateMessage.create(
            managed.match_id,
            managed.match.get_status().to_dict(),
            your_player_id=managed.seat_for(connection.player_id),
        )
        await websocket.send(snapshot.to_json())

        logger.info(
            f"Player {connection.player_name} ({connection.player_id}) "
            f"back in match {managed.match_id}"
        )
        return managed.match_id

    async def _handle_message(
        self,
        websocket: ServerConnection,
        player_id: str,
        raw_message: str
    ) -> None:
        try:
            result = await self._handler.handle_message(player_id, raw_message)
            if result.response:
                await websocket.send(result.response.to_json())
            await self._fan_out(player_id, result)

        except websockets.ConnectionClosed:
            raise
        except Exception as e:
            logger.exception(f"Error handling message from {player_id}: {e}")
            await self._send_error(websocket, f"Internal error: {e}", "INTERNAL_ERROR")

    async def _fan_out(self, player_id: str, result: HandleResult) -> None:
        """Deliver a result's broadcasts and snapshot to the rest of the match."""
        match_id = result.match_id or self._connections.get_match_id(player_id)
        if not match_id:
            return

        for broadcast in result.broadcasts or []:
            # The requester already has the response
            await self._connections.broadcast_to_match(
                match_id, broadcast, exclude_player_id=player_id
            )

        if result.broadcast_state:
            await self._push_state(match_id)

    async def _push_state(self, match_id: str) -> None:
        """Send every connected seat in the match its own snapshot."""
        managed = self._matches.get_match(match_id)
        if managed is None:
            return

        status = managed.match.get_status().to_dict()
        for connection in self._connections.get_connected_players_in_match(match_id):
            await self._connections.send_to_player(
                connection.player_id,
                GameStateMessage.create(
                    match_id,
                    status,
                    your_player_id=managed.seat_for(connection.player_id),
                ),
            )

    async def _handle_disconnect(self, websocket: ServerConnection) -> None:
        """
        The seat is held for a reconnect and the table is told.

        A finished match is dropped once nobody in it is connected.
        """
        dropped = await self._connections.disconnect(websocket)
        if dropped is None or not dropped.match_id:
            return

        match_id = dropped.match_id
        managed = self._matches.get_match(match_id)
        if managed is not None and managed.is_finished:
            if not self._connections.get_connected_players_in_match(match_id):
                for player_id in self._connections.get_players_in_match(match_id):
                    await self._connections.leave_match(player_id)
                self._matches.remove_match(match_id)
                return

        await self._connections.broadcast_to_match(
            match_id,
            PlayerDisconnectedMessage.create(dropped.player_id, dropped.player_name),
        )

    async def _send_error(self, websocket: ServerConnection, message: str, code: str) -> None:
        try:
            await websocket.send(ErrorMessage.create(message, code).to_json())
        except websockets.ConnectionClosed:
            logger.debug(f"Could not send {code} error, connection already closed")

    def get_stats(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "connections": self._connections.get_stats(),
            "matches": self._matches.get_stats(),
        }


async def run_server(
    host: str | None = None,
    port: int | None = None,
    seed: int | None = None
) -> None:
    """Run the server until SIGINT or SIGTERM."""
    server = FarkleServer(host, port, seed)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, server.request_shutdown)

    try:
        await server.start()
    finally:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)


def main():
    """Entry point for farkle-server."""
    parser = argparse.ArgumentParser(description="Farkle multiplayer server")
    parser.add_argument("--host", default=settings.HOST, help="Interface to bind")
    parser.add_argument("--port", type=int, default=settings.PORT, help="Port to listen on")
    parser.add_argument("--seed", type=int, default=settings.RANDOM_SEED, help="Dice seed for reproducible matches")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    print(f"Starting Farkle server on ws://{args.host}:{args.port}")
    print("Press Ctrl+C to stop")

    try:
        asyncio.run(run_server(args.host, args.port, args.seed))
    except KeyboardInterrupt:
        print("\nServer stopped")


if __name__ == "__main__":
    main()
