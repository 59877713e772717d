"""
Message handler for routing client messages to match actions.

Parses incoming messages, resolves the sender's match and seat, runs the
intent on the Match, and turns the resulting snapshot into a response plus
broadcasts for the rest of the table.
"""

import json
import logging
from dataclasses import dataclass

from server.game_engine import TurnStatus
from server.network.match_manager import MatchManager, ManagedMatch
from server.network.connection_manager import ConnectionManager
from shared.protocol import (
    Message,
    ErrorMessage,
    MatchListResponse,
    GameStateMessage,
    ChangedMessage,
    DiceRolledMessage,
    TurnEndedMessage,
    GameWonMessage,
    PlayerJoinedMessage,
    PlayerLeftMessage,
    parse_message,
)
from shared.enums import MessageType, GamePhase


logger = logging.getLogger(__name__)


@dataclass
class HandleResult:
    """Result of handling a message."""
    # Response to send back to the requesting player (None if no response needed)
    response: Message | None = None
    # Messages for the other players in the match
    broadcasts: list[Message] | None = None
    # Push the fresh snapshot to every seat afterwards
    broadcast_state: bool = False
    # Target match when the sender is no longer seated in it
    match_id: str | None = None


class MessageHandler:
    """
    Routes incoming messages to match actions.

    Lobby handlers take (player_id, message). Handlers that act on the
    sender's match also receive its ManagedMatch; a sender with no match
    gets NOT_IN_MATCH before the handler runs.
    """

    def __init__(self, match_manager: MatchManager, connection_manager: ConnectionManager):
        self._matches = match_manager
        self._connections = connection_manager

        self._lobby_handlers = {
            MessageType.LIST_MATCHES: self._handle_list_matches,
            MessageType.JOIN_MATCH: self._handle_join_match,
            MessageType.RESET_MATCH: self._handle_reset_match,
        }
        self._match_handlers = {
            MessageType.QUIT_MATCH: self._handle_quit_match,
            MessageType.ROLL_DICE: self._handle_roll_dice,
            MessageType.SELECT_DICE: self._handle_select_dice,
            MessageType.BANK: self._handle_bank,
            MessageType.POLL_CHANGED: self._handle_poll_changed,
            MessageType.GAME_STATE: self._handle_get_state,
        }

    async def handle_message(
        self,
        player_id: str,
        message: Message | str | dict
    ) -> HandleResult:
        """
        Handle an incoming message from a player.

        Args:
            player_id: Connection ID of the player sending the message
            message: The message (Message object, JSON string, or dict)

        Returns:
            HandleResult with response and broadcasts
        """
        try:
            if isinstance(message, str):
                message = parse_message(message)
            elif isinstance(message, dict):
                message = Message.from_dict(message)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Failed to parse message from {player_id}: {e}")
            return HandleResult(
                response=ErrorMessage.create(f"Invalid message format: {e}", "PARSE_ERROR")
            )

        try:
            result = await self._dispatch(player_id, message)
        except Exception as e:
            logger.exception(f"Error handling message {message.type}: {e}")
            result = HandleResult(
                response=ErrorMessage.create(f"Internal error: {e}", "INTERNAL_ERROR")
            )

        if result.response and message.request_id:
            result.response.request_id = message.request_id
        return result

    async def _dispatch(self, player_id: str, message: Message) -> HandleResult:
        handler = self._lobby_handlers.get(message.type)
        if handler:
            return await handler(player_id, message)

        handler = self._match_handlers.get(message.type)
        if handler is None:
            return HandleResult(
                response=ErrorMessage.create(
                    f"Unknown message type: {message.type.value}",
                    "UNKNOWN_MESSAGE_TYPE"
                )
            )

        managed = self._matches.get_match_for_player(player_id)
        if managed is None:
            return HandleResult(
                response=ErrorMessage.create("You are not in a match", "NOT_IN_MATCH")
            )
        return await handler(player_id, message, managed)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _snapshot(
        self,
        managed: ManagedMatch,
        player_id: str,
        status: TurnStatus | None = None
    ) -> GameStateMessage:
        """The status as seen from the player's seat."""
        status = status or managed.match.get_status()
        return GameStateMessage.create(
            managed.match_id,
            status.to_dict(),
            your_player_id=managed.seat_for(player_id),
        )

    def _rejected(self, status: TurnStatus) -> HandleResult:
        """Error response for an intent the match refused (nothing changed)."""
        error = ErrorMessage.create(status.message, "ACTION_REJECTED")
        error.data["reason"] = status.error.name if status.error else None
        return HandleResult(response=error)

    def _applied(
        self,
        managed: ManagedMatch,
        player_id: str,
        status: TurnStatus,
        broadcasts: list[Message] | None = None
    ) -> HandleResult:
        """Response for an intent the match accepted."""
        return HandleResult(
            response=self._snapshot(managed, player_id, status),
            broadcasts=broadcasts,
            broadcast_state=True
        )

    @staticmethod
    def _seat_name(managed: ManagedMatch, seat: int | None) -> str:
        player = managed.match.get_player(seat) if seat is not None else None
        return player.name if player else "Unknown"

    # =========================================================================
    # Lobby
    # =========================================================================

    async def _handle_list_matches(self, player_id: str, message: Message) -> HandleResult:
        if message.data.get("all"):
            matches = self._matches.list_matches()
        else:
            matches = self._matches.list_joinable_matches()
        return HandleResult(response=MatchListResponse.create(matches))

    async def _handle_join_match(self, player_id: str, message: Message) -> HandleResult:
        """Seat the player; the name falls back to the one given at CONNECT."""
        player_name = message.data.get("player_name")
        if not player_name:
            connection = self._connections.get_connection_by_player_id(player_id)
            player_name = connection.player_name if connection else ""

        success, msg, managed, status = self._matches.join_match(
            player_id=player_id,
            player_name=player_name,
            match_id=message.data.get("match_id"),
        )
        if not success:
            return HandleResult(response=ErrorMessage.create(msg, "JOIN_MATCH_FAILED"))

        await self._connections.join_match(player_id, managed.match_id)

        seat = managed.seat_for(player_id)
        joined = PlayerJoinedMessage.create(
            player_id=seat,
            player_name=self._seat_name(managed, seat),
            match_id=managed.match_id
        )
        return self._applied(managed, player_id, status, [joined])

    async def _handle_reset_match(self, player_id: str, message: Message) -> HandleResult:
        success, msg, managed, status = self._matches.reset_match(player_id)
        if not success:
            return HandleResult(response=ErrorMessage.create(msg, "RESET_MATCH_FAILED"))
        return self._applied(managed, player_id, status)

    # =========================================================================
    # Match intents
    # =========================================================================

    async def _handle_quit_match(
        self, player_id: str, message: Message, managed: ManagedMatch
    ) -> HandleResult:
        """Quitting ends the match for everyone."""
        seat = managed.seat_for(player_id)
        player_name = self._seat_name(managed, seat)

        success, msg, _, status = self._matches.leave_match(player_id)
        if not success:
            return HandleResult(response=ErrorMessage.create(msg, "QUIT_MATCH_FAILED"))

        await self._connections.leave_match(player_id)

        return HandleResult(
            response=GameStateMessage.create(managed.match_id, status.to_dict()),
            broadcasts=[PlayerLeftMessage.create(player_id=seat, player_name=player_name)],
            broadcast_state=True,
            match_id=managed.match_id
        )

    async def _handle_roll_dice(
        self, player_id: str, message: Message, managed: ManagedMatch
    ) -> HandleResult:
        match = managed.match
        seat = managed.seat_for(player_id)
        status = match.roll(seat)
        if not status.success:
            return self._rejected(status)

        player_name = self._seat_name(managed, seat)
        rolled = match.last_event("dice_rolled")
        broadcasts = [
            DiceRolledMessage.create(
                player_id=seat,
                player_name=player_name,
                dice=rolled.data["dice"] if rolled else status.dice_on_plate,
                phase=status.phase.value,
                result_message=status.message
            )
        ]

        if status.phase == GamePhase.BUST:
            broadcasts.append(
                TurnEndedMessage.create(
                    player_id=seat,
                    player_name=player_name,
                    reason="bust",
                    points=0,
                    next_player_id=match.current_player_id
                )
            )

        return self._applied(managed, player_id, status, broadcasts)

    async def _handle_select_dice(
        self, player_id: str, message: Message, managed: ManagedMatch
    ) -> HandleResult:
        """Accepts "1 5", "15" or [1, 5]."""
        dice = message.data.get("dice")
        if isinstance(dice, list):
            dice = " ".join(str(d) for d in dice)

        status = managed.match.select(dice, managed.seat_for(player_id))
        if not status.success:
            return self._rejected(status)
        return self._applied(managed, player_id, status)

    async def _handle_bank(
        self, player_id: str, message: Message, managed: ManagedMatch
    ) -> HandleResult:
        match = managed.match
        seat = managed.seat_for(player_id)
        status = match.bank(seat)
        if not status.success:
            return self._rejected(status)

        if status.phase == GamePhase.GAME_OVER and status.winner:
            ended = GameWonMessage.create(
                winner_name=status.winner["name"],
                winner_score=status.winner["score"]
            )
        else:
            banked = match.last_event("banked")
            ended = TurnEndedMessage.create(
                player_id=seat,
                player_name=self._seat_name(managed, seat),
                reason="bank",
                points=banked.data["points"] if banked else 0,
                next_player_id=match.current_player_id
            )

        return self._applied(managed, player_id, status, [ended])

    # =========================================================================
    # Queries
    # =========================================================================

    async def _handle_poll_changed(
        self, player_id: str, message: Message, managed: ManagedMatch
    ) -> HandleResult:
        """Each player has its own watermark."""
        changed = managed.match.consume_change_flag(player_id)
        return HandleResult(
            response=ChangedMessage.create(changed, managed.match.change_version)
        )

    async def _handle_get_state(
        self, player_id: str, message: Message, managed: ManagedMatch
    ) -> HandleResult:
        return HandleResult(response=self._snapshot(managed, player_id))
