"""
Test suite for the Farkle network layer.

Tests connection management, message handling, the wire protocol and a
short session against a real WebSocket server.

Run from project root: python -m pytest tests/test_network -v
Or run directly: python tests/test_network/test_network.py
"""

import asyncio
import json
import sys
import unittest
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from websockets.exceptions import ConnectionClosed

from server.game_engine import Dice, DiceRoll
from server.network.connection_manager import ConnectionManager
from server.network.match_manager import MatchManager
from server.network.message_handler import MessageHandler, HandleResult
from shared.constants import DICE_PER_SET
from shared.enums import MessageType
from shared.protocol import (
    Message,
    ErrorMessage,
    JoinMatchRequest,
    SelectDiceRequest,
    TurnEndedMessage,
    parse_message,
)


BUST = [2, 3, 4, 6, 2, 3]


class ScriptedDice(Dice):
    """Dice whose throws follow a script; fresh deals stay seeded-random."""

    def __init__(self, *throws):
        super().__init__(seed=3)
        self._throws = [list(t) for t in throws]

    def roll(self, count: int = DICE_PER_SET) -> DiceRoll:
        if not self._throws:
            return super().roll(count)
        values = self._throws.pop(0)
        if len(values) != count:
            raise ValueError(f"Scripted throw {values} does not match {count} live dice")
        return DiceRoll(values=values)

    def deal(self, count: int = DICE_PER_SET) -> list[int]:
        return Dice.roll(self, count).to_list()


class MockWebSocket:
    """Mock WebSocket for testing without real connections."""

    def __init__(self, id: str):
        self.id = id
        self.sent_messages = []
        self.closed = False

    async def send(self, data: str) -> None:
        if self.closed:
            raise ConnectionClosed(None, None)
        self.sent_messages.append(data)

    async def close(self) -> None:
        self.closed = True

    def __hash__(self):
        return hash(self.id)

    def __eq__(self, other):
        return isinstance(other, MockWebSocket) and self.id == other.id

    def get_messages(self) -> list[dict]:
        return [json.loads(m) for m in self.sent_messages]

    def clear_messages(self) -> None:
        self.sent_messages.clear()


# =============================================================================
# Connection Manager
# =============================================================================

class TestConnectionManager(unittest.TestCase):

    def setUp(self):
        self.cm = ConnectionManager()
        self.ws1 = MockWebSocket("ws1")
        self.ws2 = MockWebSocket("ws2")

    def test_connect(self):
        async def scenario():
            conn = await self.cm.connect(self.ws1, "player-1", "Alice")
            self.assertEqual(conn.player_id, "player-1")
            self.assertEqual(conn.player_name, "Alice")
            self.assertEqual(self.cm.get_player_id(self.ws1), "player-1")
            self.assertTrue(self.cm.is_player_connected("player-1"))

        asyncio.run(scenario())

    def test_broadcast_to_match(self):
        async def scenario():
            await self.cm.connect(self.ws1, "player-1", "Alice")
            await self.cm.connect(self.ws2, "player-2", "Bob")
            await self.cm.join_match("player-1", "match-1")
            await self.cm.join_match("player-2", "match-1")

            sent = await self.cm.broadcast_to_match("match-1", ErrorMessage.create("hello"))
            self.assertEqual(sent, 2)

            sent = await self.cm.broadcast_to_match(
                "match-1", {"type": "ERROR", "data": {}}, exclude_player_id="player-1"
            )
            self.assertEqual(sent, 1)
            self.assertEqual(len(self.ws1.sent_messages), 1)
            self.assertEqual(len(self.ws2.sent_messages), 2)

        asyncio.run(scenario())

    def test_disconnect_keeps_match_for_reconnect(self):
        async def scenario():
            await self.cm.connect(self.ws1, "player-1", "Alice")
            await self.cm.join_match("player-1", "match-1")

            await self.cm.disconnect(self.ws1)
            self.assertFalse(self.cm.is_player_connected("player-1"))
            self.assertEqual(self.cm.get_match_id("player-1"), "match-1")

            ws_new = MockWebSocket("ws1-again")
            conn = await self.cm.connect(ws_new, "player-1", "Alice")
            self.assertEqual(conn.match_id, "match-1")
            self.assertIs(conn.websocket, ws_new)

        asyncio.run(scenario())

    def test_leave_match(self):
        async def scenario():
            await self.cm.connect(self.ws1, "player-1", "Alice")
            await self.cm.join_match("player-1", "match-1")

            left = await self.cm.leave_match("player-1")
            self.assertEqual(left, "match-1")
            self.assertIsNone(self.cm.get_match_id("player-1"))
            self.assertEqual(self.cm.get_players_in_match("match-1"), set())
            self.assertIsNone(await self.cm.leave_match("player-1"))

        asyncio.run(scenario())

    def test_send_to_closed_socket(self):
        async def scenario():
            await self.cm.connect(self.ws1, "player-1", "Alice")
            await self.ws1.close()
            self.assertFalse(await self.cm.send_to_player("player-1", ErrorMessage.create("x")))
            self.assertFalse(await self.cm.send_to_player("nobody", ErrorMessage.create("x")))

        asyncio.run(scenario())


# =============================================================================
# Message Handler
# =============================================================================

class TestMessageHandler(unittest.TestCase):
    """Routing of intents to matches, with two connected players."""

    def setUp(self):
        self.matches = MatchManager(seed=3)
        self.connections = ConnectionManager()
        self.handler = MessageHandler(self.matches, self.connections)
        self.ws1 = MockWebSocket("ws1")
        self.ws2 = MockWebSocket("ws2")

        async def connect():
            await self.connections.connect(self.ws1, "p1", "Ann")
            await self.connections.connect(self.ws2, "p2", "Bo")

        asyncio.run(connect())

    def send(self, player_id: str, message) -> HandleResult:
        if isinstance(message, Message):
            message = message.to_json()
        return asyncio.run(self.handler.handle_message(player_id, message))

    def seat_pair(self, *throws):
        """Seat Ann and Bo in one match with scripted throws."""
        first = self.send("p1", JoinMatchRequest.create("Ann"))
        managed = self.matches.get_match_for_player("p1")
        managed.match.dice = ScriptedDice(*throws)
        second = self.send("p2", JoinMatchRequest.create("Bo"))
        return managed, first, second

    def test_parse_error(self):
        result = self.send("p1", "not json")
        self.assertEqual(result.response.type, MessageType.ERROR)
        self.assertEqual(result.response.data["code"], "PARSE_ERROR")

    def test_unknown_type_string(self):
        result = self.send("p1", json.dumps({"type": "BOGUS"}))
        self.assertEqual(result.response.data["code"], "PARSE_ERROR")

    def test_message_without_handler(self):
        result = self.send("p1", {"type": "CONNECT", "data": {}})
        self.assertEqual(result.response.data["code"], "UNKNOWN_MESSAGE_TYPE")

    def test_join_auto_match(self):
        managed, first, second = self.seat_pair()

        self.assertEqual(first.response.type, MessageType.GAME_STATE)
        self.assertEqual(first.response.data["phase"], "WAITING_FOR_PLAYERS")
        self.assertEqual(first.response.data["your_player_id"], 0)

        self.assertEqual(second.response.data["match_id"], managed.match_id)
        self.assertEqual(second.response.data["phase"], "BEGIN_TURN")
        self.assertEqual(second.response.data["your_player_id"], 1)
        self.assertTrue(second.broadcast_state)
        self.assertEqual(second.broadcasts[0].type, MessageType.PLAYER_JOINED)
        self.assertEqual(second.broadcasts[0].data["player_name"], "Bo")
        self.assertEqual(self.connections.get_match_id("p2"), managed.match_id)

    def test_join_uses_connection_name(self):
        result = self.send("p1", JoinMatchRequest.create(""))
        self.assertEqual(result.response.data["opponent_player"], None)
        managed = self.matches.get_match_for_player("p1")
        self.assertEqual(managed.match.players[0].name, "Ann")

    def test_action_outside_match(self):
        result = self.send("p1", {"type": "ROLL_DICE", "data": {}})
        self.assertEqual(result.response.data["code"], "NOT_IN_MATCH")

    def test_roll_out_of_turn_rejected(self):
        self.seat_pair()
        result = self.send("p2", {"type": "ROLL_DICE", "data": {}})

        self.assertEqual(result.response.type, MessageType.ERROR)
        self.assertEqual(result.response.data["code"], "ACTION_REJECTED")
        self.assertEqual(result.response.data["reason"], "NOT_YOUR_TURN")
        self.assertFalse(result.broadcast_state)

    def test_bust_broadcasts_turn_end(self):
        self.seat_pair(BUST)
        result = self.send("p1", {"type": "ROLL_DICE", "data": {}})

        self.assertEqual(result.response.data["phase"], "BUST")
        self.assertEqual(result.response.data["dice_on_plate"], BUST)
        types = [b.type for b in result.broadcasts]
        self.assertEqual(types, [MessageType.DICE_ROLLED, MessageType.TURN_ENDED])
        self.assertEqual(result.broadcasts[0].data["dice"], BUST)
        self.assertEqual(result.broadcasts[1].data["reason"], "bust")
        self.assertEqual(result.broadcasts[1].data["next_player_id"], 1)

    def test_select_and_bank(self):
        self.seat_pair([5, 5, 5, 2, 3, 4])
        self.send("p1", {"type": "ROLL_DICE", "data": {}})

        result = self.send("p1", SelectDiceRequest.create("5 5 5"))
        self.assertEqual(result.response.data["turn_score"], 500)

        result = self.send("p1", {"type": "BANK", "data": {}})
        self.assertEqual(result.response.data["phase"], "TURN_BANKED")
        self.assertEqual(result.response.data["turn_score"], 500)
        self.assertEqual(result.response.data["current_player"]["score"], 500)
        ended = result.broadcasts[0]
        self.assertEqual(ended.type, MessageType.TURN_ENDED)
        self.assertEqual(ended.data["reason"], "bank")
        self.assertEqual(ended.data["points"], 500)
        self.assertEqual(ended.data["next_player_id"], 1)

    def test_select_accepts_list(self):
        self.seat_pair([1, 2, 3, 4, 6, 6])
        self.send("p1", {"type": "ROLL_DICE", "data": {}})

        result = self.send("p1", {"type": "SELECT_DICE", "data": {"dice": [1]}})
        self.assertEqual(result.response.data["turn_score"], 100)

    def test_select_number_is_malformed(self):
        self.seat_pair([1, 5, 2, 3, 4, 2])
        self.send("p1", {"type": "ROLL_DICE", "data": {}})

        for dice in (155, {"a": 1}, True):
            result = self.send("p1", {"type": "SELECT_DICE", "data": {"dice": dice}})
            self.assertEqual(result.response.data["code"], "ACTION_REJECTED", dice)
            self.assertEqual(result.response.data["reason"], "MALFORMED_SELECTION", dice)

    def test_invalid_selection_rejected(self):
        self.seat_pair([1, 2, 3, 4, 6, 6])
        self.send("p1", {"type": "ROLL_DICE", "data": {}})

        result = self.send("p1", SelectDiceRequest.create("2"))
        self.assertEqual(result.response.data["reason"], "INVALID_SELECTION")

    def test_win_broadcast(self):
        managed, _, _ = self.seat_pair([1, 2, 3, 4, 6, 6])
        managed.match.players[0].score = 9900
        self.send("p1", {"type": "ROLL_DICE", "data": {}})

        result = self.send("p1", {"type": "BANK", "data": {}})

        self.assertEqual(result.response.data["phase"], "GAME_OVER")
        self.assertEqual(result.broadcasts[0].type, MessageType.GAME_WON)
        self.assertEqual(result.broadcasts[0].data["winner_name"], "Ann")
        self.assertEqual(result.broadcasts[0].data["winner_score"], 10000)

    def test_poll_changed_per_player(self):
        self.seat_pair()

        first = self.send("p2", {"type": "POLL_CHANGED", "data": {}})
        second = self.send("p2", {"type": "POLL_CHANGED", "data": {}})
        other = self.send("p1", {"type": "POLL_CHANGED", "data": {}})

        self.assertEqual(first.response.type, MessageType.CHANGED)
        self.assertTrue(first.response.data["changed"])
        self.assertFalse(second.response.data["changed"])
        self.assertTrue(other.response.data["changed"])

    def test_quit_and_reset(self):
        managed, _, _ = self.seat_pair()

        result = self.send("p1", {"type": "QUIT_MATCH", "data": {}})
        self.assertEqual(result.response.data["phase"], "GAME_OVER")
        self.assertEqual(result.response.data["winner"]["name"], "Bo")
        self.assertEqual(result.match_id, managed.match_id)
        self.assertEqual(result.broadcasts[0].type, MessageType.PLAYER_LEFT)
        self.assertIsNone(self.connections.get_match_id("p1"))

        result = self.send("p2", {"type": "RESET_MATCH", "data": {}})
        self.assertEqual(result.response.data["phase"], "WAITING_FOR_PLAYERS")
        self.assertEqual(result.response.data["your_player_id"], 0)

    def test_reset_needs_finished_match(self):
        self.seat_pair()
        result = self.send("p1", {"type": "RESET_MATCH", "data": {}})
        self.assertEqual(result.response.data["code"], "RESET_MATCH_FAILED")

    def test_list_matches(self):
        self.send("p1", JoinMatchRequest.create("Ann"))
        result = self.send("p2", {"type": "LIST_MATCHES", "data": {}})

        self.assertEqual(result.response.type, MessageType.MATCH_LIST)
        self.assertEqual(len(result.response.data["matches"]), 1)

    def test_request_id_preserved(self):
        self.seat_pair()
        result = self.send("p1", {"type": "GAME_STATE", "request_id": "abc", "data": {}})
        self.assertEqual(result.response.request_id, "abc")


# =============================================================================
# Protocol
# =============================================================================

class TestProtocol(unittest.TestCase):

    def test_round_trip(self):
        original = SelectDiceRequest.create("1 5", request_id="r1")
        parsed = parse_message(original.to_json())

        self.assertEqual(parsed.type, MessageType.SELECT_DICE)
        self.assertEqual(parsed.data, {"dice": "1 5"})
        self.assertEqual(parsed.request_id, "r1")

    def test_missing_data_defaults_to_empty(self):
        parsed = parse_message(json.dumps({"type": "BANK"}))
        self.assertEqual(parsed.data, {})
        self.assertIsNone(parsed.request_id)

    def test_error_message(self):
        error = ErrorMessage.create("Nope", "NOT_IN_MATCH")
        self.assertEqual(error.to_dict()["type"], "ERROR")
        self.assertEqual(error.data, {"message": "Nope", "code": "NOT_IN_MATCH"})

    def test_turn_ended_message(self):
        msg = TurnEndedMessage.create(0, "Ann", "bank", 350, 1)
        self.assertEqual(msg.to_dict()["data"]["points"], 350)

    def test_join_without_match_id(self):
        self.assertNotIn("match_id", JoinMatchRequest.create("Ann").data)
        self.assertEqual(JoinMatchRequest.create("Ann", "m1").data["match_id"], "m1")


# =============================================================================
# Integration
# =============================================================================

class TestServerDisconnect(unittest.TestCase):
    """What happens to a match when its players drop."""

    def test_finished_match_dropped_after_last_disconnect(self):
        from server.network.server import FarkleServer

        async def scenario():
            server = FarkleServer(host="127.0.0.1", port=18799, seed=3)
            ws1, ws2 = MockWebSocket("ws1"), MockWebSocket("ws2")
            await server._connections.connect(ws1, "p1", "Ann")
            await server._connections.connect(ws2, "p2", "Bo")

            await server._handler.handle_message("p1", JoinMatchRequest.create("Ann").to_json())
            managed = server._matches.get_match_for_player("p1")
            managed.match.dice = ScriptedDice([1, 2, 3, 4, 6, 6])
            await server._handler.handle_message("p2", JoinMatchRequest.create("Bo").to_json())

            managed.match.players[0].score = 9900
            await server._handler.handle_message("p1", json.dumps({"type": "ROLL_DICE", "data": {}}))
            await server._handler.handle_message("p1", json.dumps({"type": "BANK", "data": {}}))
            self.assertTrue(managed.is_finished)

            await server._handle_disconnect(ws1)
            self.assertIs(server._matches.get_match(managed.match_id), managed)
            types = [m["type"] for m in ws2.get_messages()]
            self.assertIn("DISCONNECT", types)

            await server._handle_disconnect(ws2)
            self.assertIsNone(server._matches.get_match(managed.match_id))
            self.assertIsNone(server._connections.get_match_id("p1"))
            self.assertIsNone(server._connections.get_match_id("p2"))
            self.assertEqual(server.get_stats()["matches"]["total_matches"], 0)

        asyncio.run(scenario())

    def test_live_match_kept_for_reconnect(self):
        from server.network.server import FarkleServer

        async def scenario():
            server = FarkleServer(host="127.0.0.1", port=18799, seed=3)
            ws1, ws2 = MockWebSocket("ws1"), MockWebSocket("ws2")
            await server._connections.connect(ws1, "p1", "Ann")
            await server._connections.connect(ws2, "p2", "Bo")
            await server._handler.handle_message("p1", JoinMatchRequest.create("Ann").to_json())
            await server._handler.handle_message("p2", JoinMatchRequest.create("Bo").to_json())
            managed = server._matches.get_match_for_player("p1")

            await server._handle_disconnect(ws1)
            await server._handle_disconnect(ws2)

            self.assertIs(server._matches.get_match(managed.match_id), managed)
            self.assertEqual(server._connections.get_match_id("p1"), managed.match_id)

        asyncio.run(scenario())


class TestIntegration(unittest.TestCase):
    """A short session against a real server on localhost."""

    PORT = 18791

    def test_two_players_session(self):
        from websockets.asyncio.client import connect
        from server.network.server import FarkleServer

        async def recv_until(ws, msg_type: str, timeout: float = 5.0) -> dict:
            while True:
                data = json.loads(await asyncio.wait_for(ws.recv(), timeout=timeout))
                if data["type"] == msg_type:
                    return data

        async def hello(ws, player_id: str, name: str) -> dict:
            await ws.send(json.dumps({
                "type": "CONNECT",
                "data": {"player_id": player_id, "player_name": name},
            }))
            return json.loads(await ws.recv())

        async def scenario():
            server = FarkleServer(host="127.0.0.1", port=self.PORT, seed=9)
            server_task = asyncio.create_task(server.start())
            await asyncio.sleep(0.3)

            try:
                url = f"ws://127.0.0.1:{self.PORT}"
                async with connect(url) as ws1, connect(url) as ws2:
                    ack = await hello(ws1, "alice-1", "Alice")
                    self.assertTrue(ack["data"]["success"])
                    ack = await hello(ws2, "bob-2", "Bob")
                    self.assertTrue(ack["data"]["success"])

                    await ws1.send(JoinMatchRequest.create("Alice").to_json())
                    state = await recv_until(ws1, "GAME_STATE")
                    self.assertEqual(state["data"]["phase"], "WAITING_FOR_PLAYERS")

                    await ws2.send(JoinMatchRequest.create("Bob").to_json())
                    state = await recv_until(ws2, "GAME_STATE")
                    self.assertEqual(state["data"]["phase"], "BEGIN_TURN")

                    joined = await recv_until(ws1, "PLAYER_JOINED")
                    self.assertEqual(joined["data"]["player_name"], "Bob")

                    await ws1.send(json.dumps({"type": "ROLL_DICE", "data": {}}))
                    rolled = await recv_until(ws2, "DICE_ROLLED")
                    self.assertEqual(rolled["data"]["player_name"], "Alice")
                    self.assertTrue(rolled["data"]["dice"])

                    self.assertEqual(server.get_stats()["matches"]["total_matches"], 1)
            finally:
                await server.stop()
                await server_task

        asyncio.run(scenario())

    def test_first_message_must_be_connect(self):
        from websockets.asyncio.client import connect
        from server.network.server import FarkleServer

        async def scenario():
            server = FarkleServer(host="127.0.0.1", port=self.PORT + 1)
            server_task = asyncio.create_task(server.start())
            await asyncio.sleep(0.3)

            try:
                async with connect(f"ws://127.0.0.1:{self.PORT + 1}") as ws:
                    await ws.send(json.dumps({"type": "ROLL_DICE", "data": {}}))
                    reply = json.loads(await asyncio.wait_for(ws.recv(), timeout=5.0))
                    self.assertEqual(reply["type"], "ERROR")
                    self.assertEqual(reply["data"]["code"], "CONNECT_REQUIRED")
            finally:
                await server.stop()
                await server_task

        asyncio.run(scenario())


def run_tests():
    """Run all network tests."""
    loader = unittest.TestLoader()
    suite = unittest.TestSuite()

    test_classes = [
        TestConnectionManager,
        TestMessageHandler,
        TestProtocol,
        TestServerDisconnect,
        TestIntegration,
    ]

    for test_class in test_classes:
        suite.addTests(loader.loadTestsFromTestCase(test_class))

    runner = unittest.TextTestRunner(verbosity=2)
    result = runner.run(suite)

    return result.wasSuccessful()


if __name__ == "__main__":
    success = run_tests()
    sys.exit(0 if success else 1)
