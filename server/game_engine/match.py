"""
Match orchestration - ties players, turns and scoring together.

A Match is a plain object owned by whoever created it (the MatchManager in
the server); there is no process-wide match state. Every public method runs
under the match's lock, and action methods build the status snapshot inside
the same critical section so dice, scores and turn owner are consistent.
"""
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from shared.constants import MAX_PLAYERS
from shared.enums import GamePhase, PlayerAction, TurnState

from . import messages
from .dice import Dice
from .player import Player
from .rules import RuleEngine, ValidationResult, ActionResult
from .scoring import combination_hints
from .turn import Turn


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class GameEvent:
    """Represents something that happened in the match."""
    event_type: str
    data: dict
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict:
        return {
            "event_type": self.event_type,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class TurnStatus:
    """Status snapshot returned after every intent and on state queries."""
    success: bool = True
    message: str = ""
    phase: GamePhase = GamePhase.WAITING_FOR_PLAYERS
    current_player: Optional[dict] = None
    opponent_player: Optional[dict] = None
    dice_on_plate: List[int] = field(default_factory=list)
    kept_dice: List[int] = field(default_factory=list)
    turn_score: int = 0
    available_actions: List[PlayerAction] = field(default_factory=list)
    combination_hints: List[dict] = field(default_factory=list)
    events: List[str] = field(default_factory=list)
    winner: Optional[dict] = None
    error: Optional[ActionResult] = None
    change_version: int = 0

    @property
    def current_player_id(self) -> Optional[int]:
        return self.current_player["id"] if self.current_player else None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "message": self.message,
            "phase": self.phase.value,
            "current_player": self.current_player,
            "opponent_player": self.opponent_player,
            "dice_on_plate": list(self.dice_on_plate),
            "kept_dice": list(self.kept_dice),
            "turn_score": self.turn_score,
            "available_actions": [a.value for a in self.available_actions],
            "combination_hints": list(self.combination_hints),
            "events": list(self.events),
            "winner": self.winner,
            "error": self.error.name if self.error else None,
            "change_version": self.change_version,
        }


@dataclass
class Match:
    """
    Two-player Farkle match.

    Owns the roster, the active/opponent pointers, the current turn, the win
    check and the change counter used by pollers.
    """

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = "Farkle Match"
    created_at: datetime = field(default_factory=_utcnow)

    # Match components
    dice: Dice = field(default_factory=Dice)
    rules: RuleEngine = field(default_factory=RuleEngine)

    # Players
    players: Dict[int, Player] = field(default_factory=dict)
    active_player: Optional[Player] = None
    opponent_player: Optional[Player] = None

    # Match state
    current_turn: Optional[Turn] = None
    game_over: bool = False
    turn_number: int = 0

    # Change notification for pollers
    change_version: int = 0

    # Event log
    events: List[GameEvent] = field(default_factory=list)

    def __post_init__(self):
        self._poll_watermarks: Dict[str, int] = {}
        self._next_player_id = 0
        self._lock = threading.RLock()
        self._winner: Optional[Player] = None

    # =========== Properties ===========

    @property
    def is_ready(self) -> bool:
        """Two players seated and a turn in progress."""
        return (
            len(self.players) == MAX_PLAYERS
            and self.current_turn is not None
            and self.active_player is not None
            and self.opponent_player is not None
        )

    @property
    def current_player_id(self) -> Optional[int]:
        return self.active_player.id if self.active_player else None

    @property
    def live_dice(self) -> List[int]:
        return list(self.current_turn.live_dice) if self.current_turn else []

    @property
    def kept_dice(self) -> List[int]:
        return list(self.current_turn.kept_dice) if self.current_turn else []

    @property
    def turn_score(self) -> int:
        return self.current_turn.turn_score if self.current_turn else 0

    @property
    def winner(self) -> Optional[Player]:
        """Player who reached the winning score, or the one left after a quit."""
        return self._winner if self.game_over else None

    def get_player(self, player_id: int) -> Optional[Player]:
        return self.players.get(player_id)

    def last_event(self, event_type: str) -> Optional[GameEvent]:
        """Most recent logged event of the given type."""
        with self._lock:
            for event in reversed(self.events):
                if event.event_type == event_type:
                    return event
            return None

    # =========== Internal Helpers ===========

    def _log_event(self, event_type: str, data: dict) -> GameEvent:
        """Log a match event."""
        event = GameEvent(event_type=event_type, data=data)
        self.events.append(event)
        return event

    def _mark_changed(self) -> None:
        self.change_version += 1

    def _begin_turn(self) -> None:
        self.current_turn = Turn(self.active_player, self.dice)
        self.turn_number += 1
        self._log_event("turn_started", {
            "player_id": self.active_player.id,
            "turn_number": self.turn_number,
        })
        logger.info(f"Match {self.id}: turn {self.turn_number} for {self.active_player.name}")

    def _start_match(self) -> None:
        seated = sorted(self.players.values(), key=lambda p: p.id)
        self.active_player = seated[0]
        self.opponent_player = seated[1]
        self.game_over = False
        self._log_event("match_started", {
            "player_order": [p.id for p in seated],
        })
        self._begin_turn()

    def _switch_player(self) -> None:
        """Hand the dice to the opponent with a fresh turn."""
        if self.game_over:
            return
        self.active_player, self.opponent_player = self.opponent_player, self.active_player
        self._begin_turn()

    # =========== Player Management ===========

    def join(self, name: str) -> Tuple[Optional[Player], TurnStatus]:
        """
        Seat a player.

        The second player to join starts the match with the first player
        active.

        Returns:
            Tuple of (player or None if rejected, status snapshot)
        """
        with self._lock:
            validation = self.rules.validate_join(len(self.players), self.game_over)
            if not validation:
                return None, self._build_status(validation)

            player_id = self._next_player_id
            self._next_player_id += 1
            name = (name or "").strip() or f"Player {player_id + 1}"

            player = Player(name=name, id=player_id)
            self.players[player.id] = player
            self._log_event("player_joined", {
                "player_id": player.id,
                "player_name": player.name,
            })
            logger.info(f"Match {self.id}: {player.name} joined as player {player.id}")

            events = [f"{player.name} joined the match"]
            if len(self.players) == self.rules.max_players:
                self._start_match()
                events.append(messages.game_ready())
                events.append(messages.player_turn(self.active_player.name))

            self._mark_changed()
            return player, self._build_status(ValidationResult.success(events[-1], events))

    def quit(self, player_id: Optional[int]) -> TurnStatus:
        """Remove a player. The match is over afterwards."""
        with self._lock:
            validation = self.rules.validate_quit(player_id, self.players)
            if not validation:
                return self._build_status(validation)

            player = self.players.pop(player_id)
            if self.current_turn:
                self.current_turn.end_turn()
            if self.active_player is player:
                self.active_player = None
            if self.opponent_player is player:
                self.opponent_player = None
            if not self.game_over and self.players:
                self._winner = max(self.players.values(), key=lambda p: p.score)
            self.game_over = True

            self._log_event("player_left", {"player_id": player_id})
            logger.info(f"Match {self.id}: {player.name} quit, match over")

            self._mark_changed()
            return self._build_status(ValidationResult.success(f"{player.name} left the match"))

    def reset(self) -> TurnStatus:
        """Clear the roster and start over. Poll watermarks are kept."""
        with self._lock:
            self.players.clear()
            self.active_player = None
            self.opponent_player = None
            self.current_turn = None
            self.game_over = False
            self.turn_number = 0
            self._winner = None
            self._next_player_id = 0
            self._log_event("match_reset", {})
            logger.info(f"Match {self.id}: reset")

            self._mark_changed()
            return self._build_status(ValidationResult.success("The match has been reset"))

    # =========== Turn Actions ===========

    def _validate_turn_action(self, player_id: Optional[int]) -> ValidationResult:
        return self.rules.validate_turn_action(
            self.is_ready,
            self.game_over,
            self.active_player,
            player_id,
        )

    def roll(self, player_id: Optional[int] = None) -> TurnStatus:
        """
        Roll the live dice for the active player.

        A pending hot dice choice is resolved as "keep rolling" first. On a
        bust the snapshot describes the busted turn; the opponent's turn has
        already begun when this returns.
        """
        with self._lock:
            validation = self._validate_turn_action(player_id)
            if not validation:
                return self._build_status(validation)

            turn = self.current_turn
            if not (turn.can_roll or turn.hot_dice_pending):
                return self._build_status(ValidationResult.failure(
                    ActionResult.CANNOT_ROLL, messages.cannot_roll_now()
                ))

            events = []
            if turn.hot_dice_pending:
                events.extend(turn.resolve_hot_dice_choice(choose_bank=False).events)

            result = turn.roll()
            if not result:
                raise RuntimeError(f"Roll rejected in state {turn.state.value} after validation")
            events.extend(result.events)

            self._log_event("dice_rolled", {
                "player_id": self.active_player.id,
                "dice": list(turn.last_roll),
                "turn_score": turn.turn_score,
            })
            self._mark_changed()

            if turn.is_busted:
                logger.info(f"Match {self.id}: {self.active_player.name} busted")
                self._log_event("bust", {"player_id": self.active_player.id})
                status = self._build_status(
                    ValidationResult.success(result.message, events),
                    phase=GamePhase.BUST,
                )
                turn.end_turn()
                self._switch_player()
                return status

            return self._build_status(ValidationResult.success(result.message, events))

    def select(self, dice_values: str, player_id: Optional[int] = None) -> TurnStatus:
        """Keep scoring dice from the plate."""
        with self._lock:
            validation = self._validate_turn_action(player_id)
            if not validation:
                return self._build_status(validation)

            result = self.current_turn.select(dice_values)
            if not result:
                return self._build_status(result)

            self._log_event("dice_selected", {
                "player_id": self.active_player.id,
                "kept": list(self.current_turn.kept_dice),
                "turn_score": self.current_turn.turn_score,
            })
            self._mark_changed()
            return self._build_status(result)

    def bank(self, player_id: Optional[int] = None) -> TurnStatus:
        """
        Bank the turn's points into the active player's score.

        Ends the match if the player reaches the winning score, otherwise
        hands the dice to the opponent. The snapshot describes the banked
        turn.
        """
        with self._lock:
            validation = self._validate_turn_action(player_id)
            if not validation:
                return self._build_status(validation)

            turn = self.current_turn
            points = turn.bankable_score
            if points <= 0:
                if turn.state == TurnState.AWAITING_ROLL:
                    message = messages.cannot_bank_zero()
                else:
                    message = messages.cannot_bank_now()
                return self._build_status(ValidationResult.failure(ActionResult.CANNOT_BANK, message))

            events = []
            if turn.hot_dice_pending:
                events.extend(turn.resolve_hot_dice_choice(choose_bank=True).events)
            turn.end_turn()

            player = self.active_player
            player.add_score(points)
            events.append(messages.banked_points(player.name, points, player.score))
            self._log_event("banked", {
                "player_id": player.id,
                "points": points,
                "total": player.score,
            })
            logger.info(f"Match {self.id}: {player.name} banked {points} (total {player.score})")
            self._mark_changed()

            if self.rules.is_winning_score(player.score):
                self.game_over = True
                self._winner = player
                self._log_event("match_won", {"player_id": player.id, "score": player.score})
                logger.info(f"Match {self.id}: {player.name} wins with {player.score}")
                return self._build_status(ValidationResult.success(
                    messages.victory(player.name, player.score), events
                ))

            status = self._build_status(
                ValidationResult.success(messages.banker(), events),
                phase=GamePhase.TURN_BANKED,
            )
            status.turn_score = points
            self._switch_player()
            return status

    # =========== Polling ===========

    def consume_change_flag(self, poller_id: str = "default") -> bool:
        """
        Report whether anything changed since this poller last asked.

        Each poller has its own watermark; several changes between two polls
        collapse into one notification and a consumed change is never
        reported again.
        """
        with self._lock:
            last_seen = self._poll_watermarks.get(poller_id, 0)
            if self.change_version > last_seen:
                self._poll_watermarks[poller_id] = self.change_version
                return True
            return False

    def forget_poller(self, poller_id: str) -> None:
        with self._lock:
            self._poll_watermarks.pop(poller_id, None)

    # =========== Status ===========

    def get_status(self) -> TurnStatus:
        """Current status snapshot."""
        with self._lock:
            return self._build_status(ValidationResult.success())

    def _build_status(
        self,
        result: ValidationResult,
        phase: Optional[GamePhase] = None
    ) -> TurnStatus:
        status = TurnStatus(
            success=result.valid,
            message=result.message,
            events=list(result.events),
            error=None if result.valid else result.result,
            change_version=self.change_version,
            current_player=self.active_player.to_dict() if self.active_player else None,
            opponent_player=self.opponent_player.to_dict() if self.opponent_player else None,
        )

        if self.game_over:
            status.phase = GamePhase.GAME_OVER
            winner = self.winner
            if winner:
                status.winner = {"name": winner.name, "score": winner.score}
                if result.valid and not status.message:
                    status.message = messages.victory(winner.name, winner.score)
            return status

        if not self.is_ready:
            status.phase = GamePhase.WAITING_FOR_PLAYERS
            if not status.message:
                status.message = messages.waiting_for_players()
            status.available_actions = [PlayerAction.QUIT_GAME] if self.players else []
            return status

        turn = self.current_turn
        status.dice_on_plate = list(turn.live_dice)
        status.kept_dice = list(turn.kept_dice)
        status.turn_score = turn.turn_score
        status.phase = phase or self._phase_for(turn)

        actions = []
        if turn.can_roll or turn.hot_dice_pending:
            actions.append(PlayerAction.ROLL)
        if turn.can_select:
            actions.append(PlayerAction.SELECT_DICE)
            status.combination_hints = combination_hints(turn.live_dice)
        if turn.can_bank:
            actions.append(PlayerAction.BANK)
        actions.append(PlayerAction.QUIT_GAME)
        status.available_actions = actions

        if not status.message:
            status.message = self._prompt_for(status.phase, turn)
        return status

    @staticmethod
    def _phase_for(turn: Turn) -> GamePhase:
        if turn.state == TurnState.HOT_DICE_CHOICE:
            return GamePhase.HOT_DICE_CHOICE
        if turn.state == TurnState.AWAITING_SELECTION:
            return GamePhase.POST_ROLL_CHOICE
        if turn.state == TurnState.AWAITING_ROLL_OR_BANK:
            return GamePhase.POST_SELECTION_CHOICE
        if turn.state == TurnState.BUSTED:
            return GamePhase.BUST
        if turn.state == TurnState.ENDED:
            return GamePhase.TURN_BANKED
        return GamePhase.BEGIN_TURN

    @staticmethod
    def _prompt_for(phase: GamePhase, turn: Turn) -> str:
        if phase == GamePhase.HOT_DICE_CHOICE:
            return messages.hot_dice_prompt(turn.turn_score)
        if phase == GamePhase.POST_ROLL_CHOICE:
            return messages.select_prompt()
        if phase in (GamePhase.BEGIN_TURN, GamePhase.POST_SELECTION_CHOICE):
            return messages.new_roll()
        return ""

    # =========== Serialization ===========

    def to_dict(self) -> dict:
        """Summary of the match for listings."""
        with self._lock:
            return {
                "id": self.id,
                "name": self.name,
                "created_at": self.created_at.isoformat(),
                "game_over": self.game_over,
                "turn_number": self.turn_number,
                "current_player_id": self.current_player_id,
                "players": [
                    self.players[pid].to_dict()
                    for pid in sorted(self.players)
                ],
                "winner_id": self.winner.id if self.winner else None,
                "change_version": self.change_version,
            }
