"""
Match manager for handling multiple Farkle matches.

Keeps a registry of matches keyed by match id and maps each connected
player (by connection player id) to the match and seat they occupy.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from server.game_engine import Dice, Match, TurnStatus
from shared.constants import MAX_PLAYERS


logger = logging.getLogger(__name__)


@dataclass
class ManagedMatch:
    """Wrapper around a Match with connection bookkeeping."""
    match: Match
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    # connection player_id -> seat id inside the match
    seats: dict[str, int] = field(default_factory=dict)

    @property
    def match_id(self) -> str:
        return self.match.id

    @property
    def is_started(self) -> bool:
        return self.match.is_ready or self.match.game_over

    @property
    def is_finished(self) -> bool:
        return self.match.game_over

    @property
    def player_count(self) -> int:
        return len(self.match.players)

    @property
    def is_joinable(self) -> bool:
        return not self.is_started and self.player_count < MAX_PLAYERS

    def seat_for(self, player_id: str) -> int | None:
        return self.seats.get(player_id)

    def to_dict(self) -> dict[str, Any]:
        """Summary for match listings."""
        return {
            "id": self.match_id,
            "name": self.match.name,
            "player_count": self.player_count,
            "max_players": MAX_PLAYERS,
            "players": [p["name"] for p in self.match.to_dict()["players"]],
            "is_started": self.is_started,
            "is_finished": self.is_finished,
        }


class MatchManager:
    """
    Registry of live matches.

    Provides methods for:
    - Creating matches
    - Seating players (auto-matching into an open match)
    - Leaving and resetting matches
    - Listing and cleaning up matches
    """

    def __init__(self, seed: int | None = None):
        # match_id -> ManagedMatch
        self._matches: dict[str, ManagedMatch] = {}

        # player_id -> match_id (for quick lookup)
        self._player_matches: dict[str, str] = {}

        # Base seed for reproducible dice; each match gets its own offset
        self._seed = seed
        self._created_count = 0

    # =========================================================================
    # Match Creation
    # =========================================================================

    def create_match(self, name: str | None = None) -> ManagedMatch:
        """Create an empty match and register it."""
        self._created_count += 1
        seed = None if self._seed is None else self._seed + self._created_count
        match = Match(
            name=name or f"Farkle Match {self._created_count}",
            dice=Dice(seed),
        )

        managed = ManagedMatch(match=match)
        self._matches[match.id] = managed

        logger.info(f"Match '{match.name}' ({match.id}) created")

        return managed

    # =========================================================================
    # Joining and Leaving
    # =========================================================================

    def join_match(
        self,
        player_id: str,
        player_name: str,
        match_id: str | None = None
    ) -> tuple[bool, str, ManagedMatch | None, TurnStatus | None]:
        """
        Seat a player in a match.

        Without a match_id the player is seated in the oldest open match, or
        a new match is created for them.

        Returns:
            Tuple of (success, message, ManagedMatch or None, status or None)
        """
        current_id = self._player_matches.get(player_id)
        if current_id:
            managed = self._matches.get(current_id)
            if managed and (match_id is None or match_id == current_id):
                # Already seated here - treat as a rejoin
                return True, "Already seated in this match", managed, managed.match.get_status()
            return False, "You are already in another match", None, None

        if match_id:
            managed = self._matches.get(match_id)
            if not managed:
                return False, "Match not found", None, None
        else:
            managed = self._find_open_match() or self.create_match()

        seat, status = managed.match.join(player_name)
        if seat is None:
            return False, status.message, managed, status

        managed.seats[player_id] = seat.id
        self._player_matches[player_id] = managed.match_id

        logger.info(
            f"Player {seat.name} ({player_id}) seated as {seat.id} in match {managed.match_id}"
        )

        return True, status.message, managed, status

    def _find_open_match(self) -> ManagedMatch | None:
        joinable = [m for m in self._matches.values() if m.is_joinable]
        if not joinable:
            return None
        return min(joinable, key=lambda m: m.created_at)

    def leave_match(
        self,
        player_id: str
    ) -> tuple[bool, str, ManagedMatch | None, TurnStatus | None]:
        """
        Remove a player from their match. Quitting ends the match.

        Returns:
            Tuple of (success, message, ManagedMatch or None, status or None)
        """
        match_id = self._player_matches.get(player_id)
        if not match_id:
            return False, "You are not in a match", None, None

        managed = self._matches.get(match_id)
        if not managed:
            # Clean up stale reference
            del self._player_matches[player_id]
            return False, "Match not found", None, None

        seat = managed.seats.pop(player_id, None)
        del self._player_matches[player_id]
        managed.match.forget_poller(player_id)

        status = managed.match.quit(seat)

        if not managed.seats:
            del self._matches[match_id]
            logger.info(f"Empty match {match_id} removed")

        logger.info(f"Player {player_id} left match {match_id}")

        return True, status.message, managed, status

    def reset_match(
        self,
        player_id: str
    ) -> tuple[bool, str, ManagedMatch | None, TurnStatus | None]:
        """
        Start a finished match over with the players still seated.

        Scores are cleared and the remaining players are seated again in
        their previous order.
        """
        managed = self.get_match_for_player(player_id)
        if not managed:
            return False, "You are not in a match", None, None

        if not managed.is_finished:
            return False, "Only a finished match can be reset", managed, None

        match = managed.match
        seated = [
            (pid, match.players[seat].name)
            for pid, seat in sorted(managed.seats.items(), key=lambda item: item[1])
            if seat in match.players
        ]

        status = match.reset()
        managed.seats.clear()
        for pid, name in seated:
            seat, status = match.join(name)
            if seat is None:
                # Roster was just cleared, so this cannot fail
                raise RuntimeError(f"Could not reseat {name} in match {match.id}")
            managed.seats[pid] = seat.id

        logger.info(f"Match {match.id} reset by {player_id}")

        return True, "The match has been reset", managed, status

    # =========================================================================
    # Lookup
    # =========================================================================

    def get_match(self, match_id: str) -> ManagedMatch | None:
        """Get a managed match by ID."""
        return self._matches.get(match_id)

    def get_match_for_player(self, player_id: str) -> ManagedMatch | None:
        """Get the match a player is in."""
        match_id = self._player_matches.get(player_id)
        if match_id:
            return self._matches.get(match_id)
        return None

    def get_seat(self, player_id: str) -> int | None:
        """Get the seat id a player occupies in their match."""
        managed = self.get_match_for_player(player_id)
        return managed.seat_for(player_id) if managed else None

    # =========================================================================
    # Listing
    # =========================================================================

    def list_matches(self) -> list[dict[str, Any]]:
        """List every match in memory."""
        return [managed.to_dict() for managed in self._matches.values()]

    def list_joinable_matches(self) -> list[dict[str, Any]]:
        """List matches waiting for an opponent."""
        return [
            managed.to_dict()
            for managed in self._matches.values()
            if managed.is_joinable
        ]

    def remove_match(self, match_id: str) -> bool:
        """Drop a match and release its players."""
        managed = self._matches.pop(match_id, None)
        if managed is None:
            return False

        for player_id in managed.seats:
            self._player_matches.pop(player_id, None)
        logger.info(f"Match {match_id} removed")
        return True

    def remove_finished_matches(self) -> int:
        """
        Drop every finished match and release its players.

        Returns:
            Number of matches removed
        """
        finished = [mid for mid, managed in self._matches.items() if managed.is_finished]
        for match_id in finished:
            self.remove_match(match_id)
        return len(finished)

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_stats(self) -> dict[str, Any]:
        """Get match manager statistics."""
        active = sum(1 for m in self._matches.values() if m.is_started and not m.is_finished)
        waiting = sum(1 for m in self._matches.values() if not m.is_started)
        finished = sum(1 for m in self._matches.values() if m.is_finished)

        return {
            "total_matches": len(self._matches),
            "active_matches": active,
            "waiting_matches": waiting,
            "finished_matches": finished,
            "total_players_in_matches": len(self._player_matches),
        }
