"""
Rule enforcement and validation for Farkle.

The Turn state machine decides which actions fit the current phase; this
module holds the shared result types and the match-level preconditions
(enough players, right player, match still running).
"""
from dataclasses import dataclass, field
from enum import Enum, auto

from shared.constants import MAX_PLAYERS, WINNING_SCORE

from .player import Player


class ActionResult(Enum):
    """Result of attempting an action."""
    SUCCESS = auto()
    NOT_READY = auto()
    NOT_YOUR_TURN = auto()
    GAME_OVER = auto()
    GAME_FULL = auto()
    PLAYER_NOT_FOUND = auto()
    CANNOT_ROLL = auto()
    CANNOT_SELECT = auto()
    CANNOT_BANK = auto()
    NO_HOT_DICE_CHOICE = auto()
    MALFORMED_SELECTION = auto()
    INVALID_SELECTION = auto()


@dataclass
class ValidationResult:
    """Result of validating or performing an action."""
    valid: bool
    result: ActionResult
    message: str = ""
    events: list[str] = field(default_factory=list)

    @classmethod
    def success(cls, message: str = "", events: list[str] | None = None) -> "ValidationResult":
        return cls(valid=True, result=ActionResult.SUCCESS, message=message, events=events or [])

    @classmethod
    def failure(cls, result: ActionResult, message: str = "") -> "ValidationResult":
        return cls(valid=False, result=result, message=message, events=[message] if message else [])

    def __bool__(self) -> bool:
        return self.valid


class RuleEngine:
    """
    Enforces the match-level Farkle rules.
    """

    def __init__(self):
        self.max_players = MAX_PLAYERS
        self.winning_score = WINNING_SCORE

    def validate_join(self, player_count: int, game_over: bool) -> ValidationResult:
        """Validate if another player may take a seat."""
        if game_over:
            return ValidationResult.failure(
                ActionResult.GAME_OVER,
                "The match is over"
            )

        if player_count >= self.max_players:
            return ValidationResult.failure(
                ActionResult.GAME_FULL,
                f"Match is full ({self.max_players} players maximum)"
            )

        return ValidationResult.success()

    def validate_turn_action(
        self,
        is_ready: bool,
        game_over: bool,
        active_player: Player | None,
        player_id: int | None = None
    ) -> ValidationResult:
        """
        Validate the preconditions shared by roll, select and bank.

        ``player_id`` is optional; when given it must match the active player.
        """
        if game_over:
            return ValidationResult.failure(
                ActionResult.GAME_OVER,
                "The match is over"
            )

        if not is_ready or active_player is None:
            return ValidationResult.failure(
                ActionResult.NOT_READY,
                "Waiting for an opponent to join"
            )

        if player_id is not None and player_id != active_player.id:
            return ValidationResult.failure(
                ActionResult.NOT_YOUR_TURN,
                "It's not your turn"
            )

        return ValidationResult.success()

    def validate_quit(self, player_id: int | None, roster: dict[int, Player]) -> ValidationResult:
        """Validate a player leaving the match."""
        if player_id is None or player_id not in roster:
            return ValidationResult.failure(
                ActionResult.PLAYER_NOT_FOUND,
                "Player not found"
            )
        return ValidationResult.success()

    def is_winning_score(self, score: int) -> bool:
        """Check if a banked score ends the match."""
        return score >= self.winning_score
