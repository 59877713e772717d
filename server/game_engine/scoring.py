"""
Scoring engine for Farkle.

Every function here is pure: dice are plain face values and are matched by
value, never by identity. Multisets are handled with ``collections.Counter``.
"""
import re
from collections import Counter
from typing import Iterable

from shared.constants import (
    DICE_PER_SET, DIE_FACES,
    SCORE_SINGLE_1, SCORE_SINGLE_5,
    SCORE_TRIPLE_1, SCORE_TRIPLE_MULTIPLIER,
    SCORE_THREE_PAIRS, SCORE_STRAIGHT,
    N_OF_A_KIND_SCORES, KIND_NAMES,
    COMBO_STRAIGHT, COMBO_THREE_PAIRS, COMBO_SIX_OF_A_KIND, COMBO_SIMPLE,
)


_DIGIT_RUN = re.compile(r"^\d+$")
_SEPARATORS = re.compile(r"[\s,;]+")


def is_straight(dice: Iterable[int]) -> bool:
    """Check for the full 1-2-3-4-5-6 sequence."""
    dice = list(dice)
    return len(dice) == DICE_PER_SET and sorted(dice) == list(range(1, DIE_FACES + 1))


def is_three_pairs(dice: Iterable[int]) -> bool:
    """Check for three distinct pairs among exactly six dice."""
    dice = list(dice)
    if len(dice) != DICE_PER_SET:
        return False
    counts = Counter(dice)
    return len(counts) == 3 and all(c == 2 for c in counts.values())


def is_six_of_a_kind(dice: Iterable[int]) -> bool:
    dice = list(dice)
    return len(dice) == DICE_PER_SET and len(set(dice)) == 1


def is_special_combo(dice: Iterable[int]) -> bool:
    """Six-dice combinations that make every die score."""
    dice = list(dice)
    return is_straight(dice) or is_three_pairs(dice) or is_six_of_a_kind(dice)


def n_of_a_kind_score(face: int, count: int) -> int:
    """
    Points for ``count`` dice of the same face.

    Returns 0 when ``count`` is below three.
    """
    if count in N_OF_A_KIND_SCORES:
        return N_OF_A_KIND_SCORES[count]
    if count == 3:
        return SCORE_TRIPLE_1 if face == 1 else face * SCORE_TRIPLE_MULTIPLIER
    return 0


def score(dice: Iterable[int]) -> int:
    """
    Total point value of a set of dice.

    Evaluated in strict priority order over the whole set:
    straight, three pairs, N-of-a-kind (largest first, consuming the dice),
    then leftover single 1s and 5s.
    """
    dice = list(dice)
    if not dice:
        return 0

    if is_straight(dice):
        return SCORE_STRAIGHT
    if is_three_pairs(dice):
        return SCORE_THREE_PAIRS

    counts = Counter(dice)
    points = 0
    for face in range(1, DIE_FACES + 1):
        count = counts[face]
        if count >= 3:
            points += n_of_a_kind_score(face, count)
            counts[face] = 0

    points += counts[1] * SCORE_SINGLE_1
    points += counts[5] * SCORE_SINGLE_5
    return points


def scoring_dice(dice: Iterable[int]) -> list[int]:
    """
    The dice that contribute to a nonzero score, in input order.

    An empty result means the dice are a bust. A result as long as the input
    means every die scores (hot dice).
    """
    dice = list(dice)
    if not dice:
        return []
    if is_special_combo(dice):
        return list(dice)

    counts = Counter(dice)
    return [
        value for value in dice
        if counts[value] >= 3 or value in (1, 5)
    ]


def is_sub_multiset(selected: Iterable[int], available: Iterable[int]) -> bool:
    """Check every selected value can be matched to a distinct available die."""
    return not (Counter(selected) - Counter(available))


def is_valid_selection(selected: Iterable[int], available: Iterable[int]) -> bool:
    """
    Validate a player's choice of dice to keep.

    The selection must be drawn from the available dice (by value), must
    score, and must not contain any die that does not score within it.
    """
    selected = list(selected)
    if not selected:
        return False
    if not is_sub_multiset(selected, available):
        return False
    if score(selected) <= 0:
        return False
    return len(scoring_dice(selected)) == len(selected)


def special_combo_name(dice: Iterable[int]) -> str:
    """Human label for a special six-dice combination."""
    dice = list(dice)
    if is_straight(dice):
        return COMBO_STRAIGHT
    if is_three_pairs(dice):
        return COMBO_THREE_PAIRS
    if is_six_of_a_kind(dice):
        return COMBO_SIX_OF_A_KIND
    return COMBO_SIMPLE


def parse_dice_values(text: str | list[int] | None) -> list[int] | None:
    """
    Parse a player's dice selection.

    Accepts a run of digits ("155"), values separated by spaces or commas
    ("1 5 5", "1,5,5") or a list of ints. Returns None for any other input,
    or if a value is not a face in 1..6.
    """
    if isinstance(text, (list, tuple)):
        if all(type(v) is int and 1 <= v <= DIE_FACES for v in text):
            return list(text)
        return None
    if not isinstance(text, str):
        return None
    text = text.strip()
    if not text:
        return []

    if _DIGIT_RUN.match(text):
        tokens = list(text)
    else:
        tokens = [t for t in _SEPARATORS.split(text) if t]

    values = []
    for token in tokens:
        if not token.isdecimal():
            return None
        value = int(token)
        if not 1 <= value <= DIE_FACES:
            return None
        values.append(value)
    return values


def combination_hints(dice: Iterable[int]) -> list[dict]:
    """
    Describe the scoring combinations visible on the plate.

    Returns a list of ``{"combo": label, "points": int}`` entries. A straight
    is reported alone; singles are only listed for faces not already part of
    an N-of-a-kind.
    """
    dice = list(dice)
    hints: list[dict] = []
    if not dice:
        return hints

    if is_straight(dice):
        return [{"combo": COMBO_STRAIGHT, "points": SCORE_STRAIGHT}]
    if is_three_pairs(dice):
        hints.append({"combo": COMBO_THREE_PAIRS, "points": SCORE_THREE_PAIRS})

    counts = Counter(dice)
    grouped = set()
    for face in range(1, DIE_FACES + 1):
        count = counts[face]
        if count >= 3:
            hints.append({
                "combo": f"{KIND_NAMES[count]} {face}s",
                "points": n_of_a_kind_score(face, count),
            })
            grouped.add(face)

    if counts[1] and 1 not in grouped:
        hints.append({"combo": "Single 1 (each)", "points": SCORE_SINGLE_1})
    if counts[5] and 5 not in grouped:
        hints.append({"combo": "Single 5 (each)", "points": SCORE_SINGLE_5})
    return hints
