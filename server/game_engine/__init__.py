"""
Game engine package.
"""
from .dice import Dice, DiceRoll
from .player import Player
from .rules import RuleEngine, ValidationResult, ActionResult
from .scoring import (
    score,
    scoring_dice,
    is_valid_selection,
    special_combo_name,
    parse_dice_values,
    combination_hints,
)
from .turn import Turn
from .match import Match, TurnStatus, GameEvent

__all__ = [
    "Dice",
    "DiceRoll",
    "Player",
    "RuleEngine",
    "ValidationResult",
    "ActionResult",
    "score",
    "scoring_dice",
    "is_valid_selection",
    "special_combo_name",
    "parse_dice_values",
    "combination_hints",
    "Turn",
    "Match",
    "TurnStatus",
    "GameEvent",
]
