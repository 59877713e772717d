"""
Enumerations used throughout the game.
"""
from enum import Enum


class TurnState(str, Enum):
    """State of a single player's turn."""
    AWAITING_ROLL = "AWAITING_ROLL"
    AWAITING_SELECTION = "AWAITING_SELECTION"
    AWAITING_ROLL_OR_BANK = "AWAITING_ROLL_OR_BANK"
    HOT_DICE_CHOICE = "HOT_DICE_CHOICE"
    BUSTED = "BUSTED"
    ENDED = "ENDED"


class GamePhase(str, Enum):
    """Phase tag reported in every status snapshot."""
    WAITING_FOR_PLAYERS = "WAITING_FOR_PLAYERS"
    BEGIN_TURN = "BEGIN_TURN"
    POST_ROLL_CHOICE = "POST_ROLL_CHOICE"
    POST_SELECTION_CHOICE = "POST_SELECTION_CHOICE"
    HOT_DICE_CHOICE = "HOT_DICE_CHOICE"
    BUST = "BUST"
    TURN_BANKED = "TURN_BANKED"
    GAME_OVER = "GAME_OVER"


class PlayerAction(str, Enum):
    """Actions a client may be offered."""
    ROLL = "ROLL"
    SELECT_DICE = "SELECT_DICE"
    BANK = "BANK"
    QUIT_GAME = "QUIT_GAME"


class MessageType(str, Enum):
    """Types of messages between client and server."""
    # Connection
    CONNECT = "CONNECT"
    DISCONNECT = "DISCONNECT"
    RECONNECT = "RECONNECT"

    # Lobby
    LIST_MATCHES = "LIST_MATCHES"
    MATCH_LIST = "MATCH_LIST"
    JOIN_MATCH = "JOIN_MATCH"
    QUIT_MATCH = "QUIT_MATCH"
    RESET_MATCH = "RESET_MATCH"
    PLAYER_JOINED = "PLAYER_JOINED"
    PLAYER_LEFT = "PLAYER_LEFT"

    # Game flow
    GAME_STATE = "GAME_STATE"
    POLL_CHANGED = "POLL_CHANGED"
    CHANGED = "CHANGED"

    # Turn actions
    ROLL_DICE = "ROLL_DICE"
    DICE_ROLLED = "DICE_ROLLED"
    SELECT_DICE = "SELECT_DICE"
    BANK = "BANK"
    TURN_ENDED = "TURN_ENDED"

    # Game end
    GAME_WON = "GAME_WON"

    # Errors
    ERROR = "ERROR"
