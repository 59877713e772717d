"""
Message protocol for client-server communication.

All messages are JSON objects with a "type" field and optional "data" field.
"""

from dataclasses import dataclass, field
from typing import Any
import json

from shared.enums import MessageType


@dataclass
class Message:
    """Base message structure for all client-server communication."""
    type: MessageType
    data: dict[str, Any] = field(default_factory=dict)
    request_id: str | None = None  # Optional, for matching requests to responses

    def to_json(self) -> str:
        """Serialize message to JSON string."""
        return json.dumps(self.to_dict())

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "type": self.type.value,
            "data": self.data,
            "request_id": self.request_id,
        }

    @classmethod
    def from_json(cls, json_str: str) -> "Message":
        """Deserialize message from JSON string."""
        raw = json.loads(json_str)
        return cls.from_dict(raw)

    @classmethod
    def from_dict(cls, raw: dict) -> "Message":
        """Create message from dictionary."""
        return cls(
            type=MessageType(raw["type"]),
            data=raw.get("data") or {},
            request_id=raw.get("request_id"),
        )


@dataclass
class ErrorMessage(Message):
    """Error response message."""
    type: MessageType = MessageType.ERROR

    @classmethod
    def create(cls, message: str, code: str = "ERROR", request_id: str | None = None) -> "ErrorMessage":
        """Create an error message."""
        return cls(
            data={"message": message, "code": code},
            request_id=request_id,
        )


# =============================================================================
# Lobby Messages (Client -> Server)
# =============================================================================

@dataclass
class BareRequest(Message):
    """A request whose type says it all; no payload."""

    @classmethod
    def create(cls, request_id: str | None = None) -> "BareRequest":
        return cls(request_id=request_id)


@dataclass
class ListMatchesRequest(BareRequest):
    """Request list of matches waiting for an opponent. Send data.all for every match."""
    type: MessageType = MessageType.LIST_MATCHES


@dataclass
class JoinMatchRequest(Message):
    """
    Request a seat in a match.

    Without a match_id the server seats the player in the first open match,
    creating one if needed.
    """
    type: MessageType = MessageType.JOIN_MATCH

    @classmethod
    def create(
        cls,
        player_name: str,
        match_id: str | None = None,
        request_id: str | None = None
    ) -> "JoinMatchRequest":
        data = {"player_name": player_name}
        if match_id:
            data["match_id"] = match_id
        return cls(data=data, request_id=request_id)


@dataclass
class QuitMatchRequest(BareRequest):
    """Request to leave the current match (ends it)."""
    type: MessageType = MessageType.QUIT_MATCH


@dataclass
class ResetMatchRequest(BareRequest):
    """Request to clear a finished match so it can be played again."""
    type: MessageType = MessageType.RESET_MATCH


# =============================================================================
# Game Action Messages (Client -> Server)
# =============================================================================

@dataclass
class RollDiceRequest(BareRequest):
    """Request to roll the live dice."""
    type: MessageType = MessageType.ROLL_DICE


@dataclass
class SelectDiceRequest(Message):
    """Request to keep scoring dice, e.g. "1 5" or "155"."""
    type: MessageType = MessageType.SELECT_DICE

    @classmethod
    def create(cls, dice: str, request_id: str | None = None) -> "SelectDiceRequest":
        return cls(data={"dice": dice}, request_id=request_id)


@dataclass
class BankRequest(BareRequest):
    """Request to bank the turn's points."""
    type: MessageType = MessageType.BANK


@dataclass
class PollChangedRequest(BareRequest):
    """Ask whether the match changed since this player last asked."""
    type: MessageType = MessageType.POLL_CHANGED


@dataclass
class GameStateRequest(BareRequest):
    """Request the current status snapshot."""
    type: MessageType = MessageType.GAME_STATE


# =============================================================================
# Server Response/Broadcast Messages (Server -> Client)
# =============================================================================

@dataclass
class MatchListResponse(Message):
    """Response with list of matches."""
    type: MessageType = MessageType.MATCH_LIST

    @classmethod
    def create(cls, matches: list[dict], request_id: str | None = None) -> "MatchListResponse":
        return cls(data={"matches": matches}, request_id=request_id)


@dataclass
class GameStateMessage(Message):
    """Status snapshot for a match."""
    type: MessageType = MessageType.GAME_STATE

    @classmethod
    def create(
        cls,
        match_id: str,
        status: dict,
        your_player_id: int | None = None,
        request_id: str | None = None
    ) -> "GameStateMessage":
        data = dict(status)
        data["match_id"] = match_id
        data["your_player_id"] = your_player_id
        return cls(data=data, request_id=request_id)


@dataclass
class ChangedMessage(Message):
    """Answer to POLL_CHANGED."""
    type: MessageType = MessageType.CHANGED

    @classmethod
    def create(cls, changed: bool, change_version: int, request_id: str | None = None) -> "ChangedMessage":
        return cls(
            data={"changed": changed, "change_version": change_version},
            request_id=request_id,
        )


@dataclass
class DiceRolledMessage(Message):
    """Broadcast when dice are rolled."""
    type: MessageType = MessageType.DICE_ROLLED

    @classmethod
    def create(
        cls,
        player_id: int,
        player_name: str,
        dice: list[int],
        phase: str,
        result_message: str
    ) -> "DiceRolledMessage":
        return cls(data={
            "player_id": player_id,
            "player_name": player_name,
            "dice": list(dice),
            "phase": phase,
            "result_message": result_message,
        })


@dataclass
class TurnEndedMessage(Message):
    """Broadcast when a turn ends by bust or bank."""
    type: MessageType = MessageType.TURN_ENDED

    @classmethod
    def create(
        cls,
        player_id: int,
        player_name: str,
        reason: str,  # "bust" or "bank"
        points: int,
        next_player_id: int | None
    ) -> "TurnEndedMessage":
        return cls(data={
            "player_id": player_id,
            "player_name": player_name,
            "reason": reason,
            "points": points,
            "next_player_id": next_player_id,
        })


@dataclass
class GameWonMessage(Message):
    """Broadcast when a player wins."""
    type: MessageType = MessageType.GAME_WON

    @classmethod
    def create(cls, winner_name: str, winner_score: int) -> "GameWonMessage":
        return cls(data={
            "winner_name": winner_name,
            "winner_score": winner_score,
        })


@dataclass
class PlayerJoinedMessage(Message):
    """Broadcast when a player takes a seat."""
    type: MessageType = MessageType.PLAYER_JOINED

    @classmethod
    def create(
        cls,
        player_id: int,
        player_name: str,
        match_id: str
    ) -> "PlayerJoinedMessage":
        return cls(data={
            "player_id": player_id,
            "player_name": player_name,
            "match_id": match_id,
        })


@dataclass
class PlayerLeftMessage(Message):
    """Broadcast when a player quits."""
    type: MessageType = MessageType.PLAYER_LEFT

    @classmethod
    def create(cls, player_id: int | None, player_name: str) -> "PlayerLeftMessage":
        return cls(data={
            "player_id": player_id,
            "player_name": player_name,
        })


@dataclass
class PlayerDisconnectedMessage(Message):
    """Broadcast when a player disconnects."""
    type: MessageType = MessageType.DISCONNECT

    @classmethod
    def create(cls, player_id: str, player_name: str) -> "PlayerDisconnectedMessage":
        return cls(data={
            "player_id": player_id,
            "player_name": player_name,
        })


@dataclass
class PlayerReconnectedMessage(Message):
    """Broadcast when a player reconnects."""
    type: MessageType = MessageType.RECONNECT

    @classmethod
    def create(cls, player_id: str, player_name: str) -> "PlayerReconnectedMessage":
        return cls(data={
            "player_id": player_id,
            "player_name": player_name,
        })


# =============================================================================
# Helper function for parsing incoming messages
# =============================================================================

def parse_message(json_str: str) -> Message:
    """
    Parse a JSON string into a Message.

    Returns the base Message class; the message handler uses the type field
    to decide how to process it.
    """
    return Message.from_json(json_str)
