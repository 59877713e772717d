"""
Dice rolling mechanics.
"""
import random
from dataclasses import dataclass, field

from shared.constants import DICE_PER_SET, DIE_FACES


@dataclass
class DiceRoll:
    """Face values produced by one throw of the live dice."""
    values: list[int] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.values)

    def to_list(self) -> list[int]:
        """Return dice as a list."""
        return list(self.values)


class Dice:
    """Handles all dice rolling for the game."""

    def __init__(self, seed: int | None = None):
        """
        Initialize dice roller.

        Args:
            seed: Optional seed for reproducible rolls (useful for testing)
        """
        self._random = random.Random(seed)

    def roll_die(self) -> int:
        """Roll a single six-sided die."""
        return self._random.randint(1, DIE_FACES)

    def roll(self, count: int = DICE_PER_SET) -> DiceRoll:
        """
        Roll a number of six-sided dice.

        Args:
            count: How many dice to throw

        Returns:
            DiceRoll with one value per die
        """
        return DiceRoll(values=[self.roll_die() for _ in range(count)])

    def deal(self, count: int = DICE_PER_SET) -> list[int]:
        """Put a fresh set of dice on the plate, showing random faces."""
        return self.roll(count).to_list()
