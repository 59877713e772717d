"""
Player state management.
"""
from dataclasses import dataclass


@dataclass
class Player:
    """Represents a seated player in a match."""

    name: str
    id: int = 0
    score: int = 0

    def add_score(self, points: int) -> int:
        """
        Bank points into the player's permanent score.

        Args:
            points: Points to add (must not be negative)

        Returns:
            New total score
        """
        if points < 0:
            raise ValueError(f"Cannot bank a negative amount: {points}")
        self.score += points
        return self.score

    def to_dict(self) -> dict:
        """Convert player to dictionary for serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "score": self.score,
        }
