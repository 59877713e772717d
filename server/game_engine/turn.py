"""
A single player's turn: the Farkle state machine.

The turn owns the split between live dice (on the plate) and kept dice (set
aside this turn), the unrealized turn score, and decides which of roll,
select and bank are legal. Each action dispatches on the explicit
``TurnState``; an action with no handler for the current state is rejected
without touching anything.
"""
from typing import Callable

from shared.constants import DICE_PER_SET, COMBO_SIMPLE
from shared.enums import TurnState

from . import messages
from .dice import Dice
from .player import Player
from .rules import ActionResult, ValidationResult
from .scoring import (
    score, scoring_dice, is_sub_multiset, is_valid_selection,
    special_combo_name, parse_dice_values,
)


# States in which the live dice show the result of an actual throw
_ROLLED_STATES = (TurnState.AWAITING_SELECTION, TurnState.AWAITING_ROLL_OR_BANK)

_BANKABLE_STATES = (
    TurnState.AWAITING_ROLL,
    TurnState.AWAITING_SELECTION,
    TurnState.AWAITING_ROLL_OR_BANK,
    TurnState.HOT_DICE_CHOICE,
)


class Turn:
    """
    One player's turn, created when the turn begins and discarded when it
    ends. Never reused.
    """

    def __init__(self, player: Player, dice: Dice | None = None):
        """
        Start a turn with six fresh dice on the plate.

        Args:
            player: The player taking this turn
            dice: Dice roller (seeded or scripted in tests)
        """
        self.player = player
        self._dice = dice or Dice()

        self.live_dice: list[int] = self._dice.deal(DICE_PER_SET)
        self.kept_dice: list[int] = []
        self.last_roll: list[int] = []
        self.turn_score: int = 0
        self.state: TurnState = TurnState.AWAITING_ROLL

        self._roll_handlers: dict[TurnState, Callable[[], ValidationResult]] = {
            TurnState.AWAITING_ROLL: self._roll_live_dice,
            TurnState.AWAITING_ROLL_OR_BANK: self._roll_live_dice,
        }
        self._select_handlers: dict[TurnState, Callable[[list[int]], ValidationResult]] = {
            TurnState.AWAITING_SELECTION: self._keep_selection,
        }

    # =========== State Queries ===========

    @property
    def can_roll(self) -> bool:
        return self.state in self._roll_handlers

    @property
    def can_select(self) -> bool:
        return self.state in self._select_handlers

    @property
    def can_bank(self) -> bool:
        return self.bankable_score > 0

    @property
    def hot_dice_pending(self) -> bool:
        return self.state == TurnState.HOT_DICE_CHOICE

    @property
    def is_busted(self) -> bool:
        return self.state == TurnState.BUSTED

    @property
    def is_over(self) -> bool:
        return self.state in (TurnState.BUSTED, TurnState.ENDED)

    @property
    def bankable_score(self) -> int:
        """
        Points a bank would transfer right now.

        House rule: scoring dice still on the plate after a throw are counted
        on top of the turn score.
        """
        if self.state not in _BANKABLE_STATES:
            return 0
        bonus = 0
        if self.state in _ROLLED_STATES:
            bonus = score(scoring_dice(self.live_dice))
        return self.turn_score + bonus

    # =========== Roll ===========

    def roll(self) -> ValidationResult:
        """
        Throw every live die and evaluate the result.

        A throw with no scoring die busts the turn. A throw where every die
        scores banks its points into the turn score and opens the hot dice
        choice. Anything else waits for the player to select.
        """
        handler = self._roll_handlers.get(self.state)
        if handler is None:
            return ValidationResult.failure(ActionResult.CANNOT_ROLL, messages.cannot_roll_now())
        return handler()

    def _roll_live_dice(self) -> ValidationResult:
        events = []
        if not self.live_dice:
            self.live_dice = self._dice.deal(DICE_PER_SET)
            self.kept_dice = []
            events.append(messages.fresh_dice())

        self.live_dice = self._dice.roll(len(self.live_dice)).to_list()
        self.last_roll = list(self.live_dice)
        events.append(messages.dice_rolled(self.live_dice))

        scoring = scoring_dice(self.live_dice)

        if not scoring:
            self.turn_score = 0
            self.state = TurnState.BUSTED
            events.append(messages.bust())
            return ValidationResult.success(events[-1], events)

        if len(scoring) == len(self.live_dice):
            gained = score(self.live_dice)
            combo = special_combo_name(self.live_dice)
            if combo == COMBO_SIMPLE:
                events.append(messages.hot_dice_generic())
            else:
                events.append(messages.hot_dice_special(combo, gained))
            events.append(messages.points_added_automatically(gained))

            self.turn_score += gained
            self.kept_dice.extend(self.live_dice)
            self.live_dice = []
            self.state = TurnState.HOT_DICE_CHOICE
            self._check_dice_conservation()
            return ValidationResult.success(messages.hot_dice_prompt(self.turn_score), events)

        self.state = TurnState.AWAITING_SELECTION
        self._check_dice_conservation()
        return ValidationResult.success(messages.select_prompt(), events)

    # =========== Select ===========

    def select(self, dice_values: str | list[int]) -> ValidationResult:
        """
        Keep a scoring subset of the live dice.

        Args:
            dice_values: Faces to keep, as text ("1 5", "155") or a list

        The whole selection is rejected if any requested face has no matching
        live die, or if any selected die does not score.
        """
        handler = self._select_handlers.get(self.state)
        if handler is None:
            return ValidationResult.failure(ActionResult.CANNOT_SELECT, messages.cannot_select_now())

        values = parse_dice_values(dice_values)
        if values is None:
            return ValidationResult.failure(ActionResult.MALFORMED_SELECTION, messages.malformed_selection())
        return handler(values)

    def _keep_selection(self, values: list[int]) -> ValidationResult:
        if not values or not is_sub_multiset(values, self.live_dice):
            return ValidationResult.failure(ActionResult.INVALID_SELECTION, messages.invalid_selection())
        if not is_valid_selection(values, self.live_dice):
            return ValidationResult.failure(ActionResult.INVALID_SELECTION, messages.invalid_selection())

        gained = score(values)
        remaining = list(self.live_dice)
        for value in values:
            remaining.remove(value)

        self.turn_score += gained
        self.kept_dice.extend(values)
        self.live_dice = remaining
        events = [messages.dice_kept(values, gained)]

        if not self.live_dice:
            self.state = TurnState.HOT_DICE_CHOICE
            events.append(messages.hot_dice_by_selection())
            message = messages.hot_dice_prompt(self.turn_score)
        else:
            self.state = TurnState.AWAITING_ROLL_OR_BANK
            message = events[0]

        self._check_dice_conservation()
        return ValidationResult.success(message, events)

    # =========== Hot Dice ===========

    def resolve_hot_dice_choice(self, choose_bank: bool) -> ValidationResult:
        """
        Settle a pending hot dice choice.

        Banking ends the turn (the match transfers the points). Continuing
        puts six fresh dice on the plate and keeps the turn score.
        """
        if self.state != TurnState.HOT_DICE_CHOICE:
            return ValidationResult.failure(ActionResult.NO_HOT_DICE_CHOICE, messages.no_hot_dice_choice())

        if choose_bank:
            self.state = TurnState.ENDED
            return ValidationResult.success(messages.hot_dice_resolved_bank(), [messages.hot_dice_resolved_bank()])

        self.kept_dice = []
        self.live_dice = self._dice.deal(DICE_PER_SET)
        self.state = TurnState.AWAITING_ROLL
        return ValidationResult.success(messages.hot_dice_resolved_roll(), [messages.hot_dice_resolved_roll()])

    # =========== End ===========

    def end_turn(self) -> None:
        """Disable every action. Called by the match after a bank or a bust."""
        if self.state != TurnState.BUSTED:
            self.state = TurnState.ENDED

    def _check_dice_conservation(self) -> None:
        total = len(self.live_dice) + len(self.kept_dice)
        if total not in (0, DICE_PER_SET):
            raise RuntimeError(
                f"Dice lost or duplicated: {len(self.live_dice)} live + {len(self.kept_dice)} kept"
            )

    def to_dict(self) -> dict:
        """Convert turn to dictionary for transmission."""
        return {
            "player_id": self.player.id,
            "state": self.state.value,
            "live_dice": list(self.live_dice),
            "kept_dice": list(self.kept_dice),
            "last_roll": list(self.last_roll),
            "turn_score": self.turn_score,
            "can_roll": self.can_roll,
            "can_select": self.can_select,
            "can_bank": self.can_bank,
            "hot_dice_pending": self.hot_dice_pending,
        }
