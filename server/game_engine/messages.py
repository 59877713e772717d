"""
Player-facing event and flavor text.

Flavor lines are picked at random; event lines are deterministic so tests
and clients can rely on them.
"""
import random


_random = random.Random()

_BUST_LINES = [
    "Farkle! Your turn collapses like a house of cards.",
    "BOOM! Nothing scores. Cruel, but that's Farkle.",
    "No points. The sea has rejected you this time.",
    "And then... nothing. A sad end to the turn, captain.",
]

_BANK_LINES = [
    "You stash your treasure somewhere safe. Prudent!",
    "Points secured with wisdom.",
    "You hide your loot like a true pirate.",
    "Playing it safe, not a bad call!",
    "Well played, you know when to stop.",
]

_ROLL_LINES = [
    "The dice are cast! May luck be with you.",
    "Fate awaits... roll the dice!",
    "A new throw to try your luck!",
    "Get ready to defy the odds!",
    "The dice are rolling... what will happen?",
]

_HOT_DICE_LINES = [
    "HOT DICE! Every die scores!",
    "Blazing! All the dice count!",
]

_VICTORY_LINES = [
    "{name} is the KING OF FARKLE with {score} points!",
    "All hail {name}, new Farkle lord with {score} points!",
    "Crushing victory for {name} ({score} pts)! What a show!",
]


def pick(lines: list[str]) -> str:
    """Pick one line at random."""
    if not lines:
        return ""
    return _random.choice(lines)


# Flavor

def bust() -> str:
    return pick(_BUST_LINES)


def banker() -> str:
    return pick(_BANK_LINES)


def new_roll() -> str:
    return pick(_ROLL_LINES)


def hot_dice_generic() -> str:
    return pick(_HOT_DICE_LINES)


def victory(name: str, score: int) -> str:
    return pick(_VICTORY_LINES).format(name=name, score=score)


# Events

def format_dice(values: list[int]) -> str:
    """Readable dice list: [2] [5] [1]."""
    if not values:
        return "(none)"
    return " ".join(f"[{v}]" for v in values)


def dice_rolled(values: list[int]) -> str:
    return f"Rolled {format_dice(values)}"


def fresh_dice() -> str:
    return "Rolling 6 fresh dice!"


def hot_dice_special(combo_name: str, points: int) -> str:
    return f"{combo_name}! ({points} points) A SPECIAL HOT DICE!"


def points_added_automatically(points: int) -> str:
    return f"Points added automatically: {points}"


def dice_kept(values: list[int], points: int) -> str:
    return f"Kept {format_dice(values)} (+{points} points)"


def hot_dice_by_selection() -> str:
    return "HOT DICE! Every die has been used!"


def hot_dice_prompt(turn_score: int) -> str:
    return f"HOT DICE! Roll 6 fresh dice or bank your {turn_score} points!"


def hot_dice_resolved_bank() -> str:
    return "Wise choice to secure the hot dice loot!"


def hot_dice_resolved_roll() -> str:
    return "Will boldness pay off? Rolling all 6 dice after hot dice!"


def banked_points(name: str, points: int, total: int) -> str:
    return f"{name} banks {points} points (Total: {total})"


def player_turn(name: str) -> str:
    return f"It's {name}'s turn!"


def select_prompt() -> str:
    return "Which treasures will you keep? Select your scoring dice!"


def waiting_for_players() -> str:
    return "Waiting for an opponent..."


def game_ready() -> str:
    return "The match is ready to begin! May the best player win!"


# Rejections

def cannot_roll_now() -> str:
    return "Cannot roll now: select scoring dice first or the turn does not allow rolling"


def cannot_select_now() -> str:
    return "Cannot select now: roll the dice before selecting"


def cannot_bank_now() -> str:
    return "Cannot bank now"


def cannot_bank_zero() -> str:
    return "Cannot bank: no points to secure this turn"


def malformed_selection() -> str:
    return "Invalid selection: enter dice faces such as '1 5' or '155'"


def invalid_selection() -> str:
    return "Invalid selection: choose dice that are on the plate and that score"


def no_hot_dice_choice() -> str:
    return "No hot dice choice is pending"


def turn_over() -> str:
    return "This turn is over"
