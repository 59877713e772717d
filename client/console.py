#!/usr/bin/env python3
"""
Terminal client for the Farkle server.

Usage:
    farkle-client [--host HOST] [--port PORT] [--name NAME] [--match MATCH_ID]

Connects, joins (or is auto-matched into) a match and reads commands from
stdin. Snapshots pushed by the server are printed as they arrive.
"""

import argparse
import asyncio
import json
import logging
import sys
import uuid
from typing import Optional

import websockets
from websockets.asyncio.client import ClientConnection, connect

from client.config import ClientSettings, load_settings
from shared.enums import MessageType
from shared.protocol import (
    Message,
    BankRequest,
    GameStateRequest,
    JoinMatchRequest,
    ListMatchesRequest,
    PollChangedRequest,
    QuitMatchRequest,
    ResetMatchRequest,
    RollDiceRequest,
    SelectDiceRequest,
)


logger = logging.getLogger(__name__)


HELP_TEXT = """\
Commands:
  r / roll         - Roll the dice on the plate
  s / select 1 5   - Keep scoring dice (also "s 155")
  b / bank         - Bank your turn points
  q / quit         - Quit the match (ends it)
  p / poll         - Ask whether anything changed
  state            - Show the last snapshot
  refresh          - Fetch a fresh snapshot
  list             - List matches waiting for an opponent
  join [match_id]  - Join a match (auto-match without an id)
  reset            - Play a finished match again
  help             - Show this help
  exit             - Disconnect and exit"""


# Fields that decide whether a pushed snapshot is worth printing again
_SNAPSHOT_KEY_FIELDS = (
    "phase",
    "current_player",
    "opponent_player",
    "dice_on_plate",
    "kept_dice",
    "turn_score",
    "winner",
)


def build_request(line: str) -> Optional[Message]:
    """
    Turn a typed command into a server request.

    Returns None for blank input, local commands and unknown commands.
    """
    parts = line.strip().split(maxsplit=1)
    if not parts:
        return None

    command = parts[0].lower()
    arg = parts[1].strip() if len(parts) > 1 else ""

    if command in ("r", "roll"):
        return RollDiceRequest.create()
    if command in ("s", "select"):
        return SelectDiceRequest.create(arg)
    if command in ("b", "bank"):
        return BankRequest.create()
    if command in ("q", "quit"):
        return QuitMatchRequest.create()
    if command in ("p", "poll"):
        return PollChangedRequest.create()
    if command == "refresh":
        return GameStateRequest.create()
    if command == "list":
        return ListMatchesRequest.create()
    if command == "join":
        return JoinMatchRequest.create("", match_id=arg or None)
    if command == "reset":
        return ResetMatchRequest.create()
    return None


def format_dice(values: list[int]) -> str:
    if not values:
        return "(none)"
    return " ".join(f"[{v}]" for v in values)


def format_status(status: dict) -> str:
    """Render a status snapshot for the terminal."""
    lines = ["=" * 60]
    match_id = status.get("match_id") or "?"
    lines.append(f"Match {match_id[:8]}  |  Phase: {status.get('phase', '?')}")

    me = status.get("your_player_id")
    current = status.get("current_player")
    opponent = status.get("opponent_player")
    for player, marker in ((current, "->"), (opponent, "  ")):
        if not player:
            continue
        you = " (you)" if player.get("id") == me else ""
        lines.append(f"{marker} {player.get('name', '?')}{you}: {player.get('score', 0)}")

    winner = status.get("winner")
    if winner:
        lines.append(f"Winner: {winner.get('name')} with {winner.get('score')} points")
    else:
        lines.append(f"Plate: {format_dice(status.get('dice_on_plate', []))}")
        lines.append(f"Kept:  {format_dice(status.get('kept_dice', []))}")
        lines.append(f"Turn score: {status.get('turn_score', 0)}")

        hints = status.get("combination_hints") or []
        if hints:
            lines.append("Combinations:")
            for hint in hints:
                lines.append(f"  {hint['combo']}: {hint['points']}")

    actions = status.get("available_actions") or []
    if actions:
        lines.append(f"Actions: {', '.join(actions)}")

    for event in status.get("events") or []:
        lines.append(f"  * {event}")
    if status.get("message"):
        lines.append(status["message"])

    lines.append("=" * 60)
    return "\n".join(lines)


def format_message(data: dict) -> str:
    """Render a non-snapshot server message as one line."""
    msg_type = data.get("type", "unknown")
    msg_data = data.get("data") or {}

    if msg_type == MessageType.PLAYER_JOINED.value:
        return f"-> Player joined: {msg_data.get('player_name')}"
    if msg_type == MessageType.PLAYER_LEFT.value:
        return f"-> Player left: {msg_data.get('player_name')}"
    if msg_type == MessageType.DISCONNECT.value:
        return f"-> Player disconnected: {msg_data.get('player_name')}"
    if msg_type == MessageType.RECONNECT.value:
        return f"-> Player reconnected: {msg_data.get('player_name')}"
    if msg_type == MessageType.DICE_ROLLED.value:
        return f"-> {msg_data.get('player_name')} rolled {format_dice(msg_data.get('dice', []))}"
    if msg_type == MessageType.TURN_ENDED.value:
        if msg_data.get("reason") == "bust":
            return f"-> {msg_data.get('player_name')} busted"
        return f"-> {msg_data.get('player_name')} banked {msg_data.get('points')} points"
    if msg_type == MessageType.GAME_WON.value:
        return f"-> {msg_data.get('winner_name')} wins with {msg_data.get('winner_score')} points!"
    if msg_type == MessageType.CHANGED.value:
        return "Changed since last poll" if msg_data.get("changed") else "No change"
    if msg_type == MessageType.MATCH_LIST.value:
        matches = msg_data.get("matches", [])
        if not matches:
            return "No open matches. 'join' creates one."
        rows = ["Open matches:"]
        for m in matches:
            players = ", ".join(m.get("players", [])) or "empty"
            rows.append(f"  {m.get('id', '?')} - {m.get('name')} ({players})")
        return "\n".join(rows)
    if msg_type == MessageType.ERROR.value:
        return f"x {msg_data.get('message')} ({msg_data.get('code')})"
    return f"-> {msg_type}: {json.dumps(msg_data)[:200]}"


class ConsoleClient:
    """Interactive terminal client for one player."""

    def __init__(
        self,
        player_name: str,
        settings: ClientSettings | None = None,
        player_id: str | None = None
    ):
        self.player_name = player_name
        self.player_id = player_id or str(uuid.uuid4())
        self.settings = settings or load_settings()

        self.match_id: Optional[str] = None
        self.status: Optional[dict] = None
        self.running = True

        self._websocket: Optional[ClientConnection] = None
        self._receive_task: Optional[asyncio.Task] = None
        self._last_shown_key: Optional[tuple] = None

        # Pending requests waiting for responses
        self._pending_requests: dict[str, asyncio.Future] = {}

    # =========================================================================
    # Connection
    # =========================================================================

    async def connect(self) -> bool:
        """Connect and perform the CONNECT handshake."""
        try:
            print(f"Connecting to {self.settings.server_url}...")
            self._websocket = await connect(
                self.settings.server_url,
                ping_interval=30,
                ping_timeout=10,
            )

            await self._websocket.send(json.dumps({
                "type": MessageType.CONNECT.value,
                "data": {
                    "player_id": self.player_id,
                    "player_name": self.player_name,
                }
            }))

            # A reconnect may push the current snapshot before the ack
            while True:
                raw = await asyncio.wait_for(self._websocket.recv(), timeout=self.settings.request_timeout)
                data = json.loads(raw)
                if data.get("type") == MessageType.GAME_STATE.value:
                    self._update_status(data.get("data") or {})
                    continue
                break

            if data.get("type") == MessageType.CONNECT.value and data.get("data", {}).get("success"):
                print(f"Connected as {self.player_name} (ID: {self.player_id[:8]}...)")
                reconnected = data["data"].get("reconnected_to_match")
                if reconnected:
                    self.match_id = reconnected
                    print(f"  Reconnected to match: {reconnected}")
                self._receive_task = asyncio.create_task(self._receive_loop())
                return True

            print(f"Connection rejected: {format_message(data)}")
            return False

        except (OSError, asyncio.TimeoutError, websockets.WebSocketException) as e:
            logger.error(f"Connection failed: {e}")
            print(f"Connection failed: {e}")
            return False

    async def close(self) -> None:
        """Disconnect from the server."""
        self.running = False

        if self._receive_task:
            self._receive_task.cancel()
            try:
                await self._receive_task
            except asyncio.CancelledError:
                pass
            self._receive_task = None

        if self._websocket:
            await self._websocket.close()
            self._websocket = None

    async def _reconnect(self) -> bool:
        """Try to reconnect with the same player id; the server restores the seat."""
        for attempt in range(self.settings.reconnect_attempts):
            print(f"Reconnecting ({attempt + 1}/{self.settings.reconnect_attempts})...")
            await asyncio.sleep(self.settings.reconnect_delay)
            if not self.running:
                return False
            if await self.connect():
                return True
        print("Failed to reconnect to server")
        return False

    # =========================================================================
    # Receiving
    # =========================================================================

    async def _receive_loop(self) -> None:
        """Receive messages from the server until the connection closes."""
        try:
            async for raw_message in self._websocket:
                try:
                    self._handle_incoming(json.loads(raw_message))
                except json.JSONDecodeError as e:
                    logger.error(f"Failed to parse message: {e}")
        except websockets.ConnectionClosed:
            print("\n[Connection closed by server]")

        if self.running and not await self._reconnect():
            self.running = False

    def _handle_incoming(self, data: dict) -> None:
        request_id = data.get("request_id")
        if request_id and request_id in self._pending_requests:
            future = self._pending_requests.pop(request_id)
            if not future.done():
                future.set_result(data)
            return

        if data.get("type") == MessageType.GAME_STATE.value:
            self._update_status(data.get("data") or {})
        else:
            print(format_message(data))

    def _update_status(self, status: dict, always_show: bool = False) -> None:
        self.status = status
        self.match_id = status.get("match_id") or self.match_id

        key = tuple(json.dumps(status.get(f), sort_keys=True) for f in _SNAPSHOT_KEY_FIELDS)
        if always_show or key != self._last_shown_key:
            self._last_shown_key = key
            print(format_status(status))

    # =========================================================================
    # Requests
    # =========================================================================

    async def request(self, message: Message) -> Optional[dict]:
        """Send a request and wait for the matching response."""
        if not self._websocket:
            print("Not connected to server")
            return None

        message.request_id = message.request_id or str(uuid.uuid4())
        future = asyncio.get_running_loop().create_future()
        self._pending_requests[message.request_id] = future

        try:
            await self._websocket.send(message.to_json())
            return await asyncio.wait_for(future, timeout=self.settings.request_timeout)
        except asyncio.TimeoutError:
            print("Request timed out")
            return None
        except websockets.ConnectionClosed:
            print("Not connected to server")
            return None
        finally:
            self._pending_requests.pop(message.request_id, None)

    async def join(self, match_id: str | None = None) -> bool:
        response = await self.request(JoinMatchRequest.create(self.player_name, match_id=match_id))
        if response and response.get("type") == MessageType.GAME_STATE.value:
            self._update_status(response.get("data") or {}, always_show=True)
            return True
        if response:
            print(format_message(response))
        return False

    async def handle_command(self, line: str) -> None:
        """Run one typed command."""
        command = line.strip().lower()

        if command == "exit":
            await self.close()
            print("Disconnected.")
            return
        if command == "help":
            print(HELP_TEXT)
            return
        if command == "state":
            print(format_status(self.status) if self.status else "No snapshot yet")
            return

        message = build_request(line)
        if message is None:
            print(f"Unknown command: {line.strip()} (type 'help')")
            return

        if message.type == MessageType.JOIN_MATCH:
            await self.join(message.data.get("match_id"))
            return

        response = await self.request(message)
        if not response:
            return

        if response.get("type") == MessageType.GAME_STATE.value:
            self._update_status(response.get("data") or {}, always_show=True)
        else:
            print(format_message(response))

        if message.type == MessageType.POLL_CHANGED and response.get("data", {}).get("changed"):
            refreshed = await self.request(GameStateRequest.create())
            if refreshed and refreshed.get("type") == MessageType.GAME_STATE.value:
                self._update_status(refreshed.get("data") or {}, always_show=True)

    async def run_interactive(self) -> None:
        """Read commands from stdin until exit or disconnect."""
        print(HELP_TEXT)
        loop = asyncio.get_running_loop()

        while self.running:
            try:
                line = await loop.run_in_executor(None, lambda: input(f"[{self.player_name}]> "))
            except EOFError:
                break

            if line.strip():
                await self.handle_command(line)

        if self.running:
            await self.close()


async def run_client(args: argparse.Namespace) -> int:
    settings = load_settings().with_server(args.host, args.port)

    player_name = args.name or input("Enter your name: ").strip() or "Player"
    client = ConsoleClient(player_name, settings)

    if not await client.connect():
        print("Failed to connect to server")
        return 1

    if not client.match_id:
        await client.join(args.match)

    await client.run_interactive()
    return 0


def main():
    parser = argparse.ArgumentParser(description="Farkle terminal client")
    parser.add_argument("--host", default=None, help="Server host (default: FARKLE_SERVER_HOST or localhost)")
    parser.add_argument("--port", type=int, default=None, help="Server port (default: FARKLE_SERVER_PORT or 8765)")
    parser.add_argument("--name", default=None, help="Player name")
    parser.add_argument("--match", default=None, help="Match ID to join (default: auto-match)")
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING, format="%(levelname)s - %(message)s")

    try:
        sys.exit(asyncio.run(run_client(args)))
    except KeyboardInterrupt:
        print("\nGoodbye!")


if __name__ == "__main__":
    main()
