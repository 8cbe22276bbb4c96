"""Per-turn action economy tracking."""

import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

from .errors import RuleViolationError

logger = logging.getLogger(__name__)


class ActionCost(Enum):
    """Part of the turn economy an action consumes."""

    ACTION = "action"
    BONUS_ACTION = "bonus_action"
    REACTION = "reaction"
    FREE = "free"
    MOVEMENT = "movement"


@dataclass
class TurnState:
    """Resources a participant has spent during the current turn."""

    action_used: bool = False
    bonus_action_used: bool = False
    reaction_used: bool = False
    has_dashed: bool = False
    disengaged_this_turn: bool = False
    is_dodging: bool = False
    movement_used: int = 0

    def movement_budget(self, speed: int) -> int:
        """Total movement in feet available this turn."""
        return speed * 2 if self.has_dashed else speed

    def remaining_movement(self, speed: int) -> int:
        """Movement in feet not yet spent this turn."""
        return max(0, self.movement_budget(speed) - self.movement_used)

    def check_movement(self, feet: int, speed: int) -> None:
        """Raise if moving the given distance would exceed the budget.

        Raises:
            RuleViolationError: If not enough movement remains
        """
        available = self.remaining_movement(speed)
        if feet > available:
            raise RuleViolationError(f"Insufficient movement: need {feet}ft, have {available}ft remaining")

    def spend_movement(self, feet: int, speed: int) -> int:
        """Consume movement. Nothing changes when the budget is exceeded.

        Args:
            feet: Distance to move
            speed: The mover's current speed

        Returns:
            Movement remaining after the move
        """
        self.check_movement(feet, speed)
        self.movement_used += feet
        return self.remaining_movement(speed)

    def spend(self, cost: ActionCost) -> None:
        """Mark the resource behind an action cost as used."""
        if cost == ActionCost.ACTION:
            self.action_used = True
        elif cost == ActionCost.BONUS_ACTION:
            self.bonus_action_used = True
        elif cost == ActionCost.REACTION:
            self.reaction_used = True

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class TurnTracker:
    """Turn states keyed by encounter and participant, created on first use."""

    def __init__(self):
        self._states: dict[tuple[str, str], TurnState] = {}

    def get(self, encounter_id: str, participant_id: str) -> TurnState:
        """Get the turn state for a participant, creating it if needed."""
        key = (encounter_id, participant_id)
        if key not in self._states:
            self._states[key] = TurnState()
        return self._states[key]

    def reset(self, encounter_id: str, participant_id: str) -> TurnState:
        """Start a fresh turn for a participant."""
        state = TurnState()
        self._states[(encounter_id, participant_id)] = state
        logger.debug(f"Turn state reset for {participant_id} in {encounter_id}")
        return state

    def clear(self, encounter_id: str | None = None) -> None:
        """Drop turn states for one encounter, or all of them."""
        if encounter_id is None:
            self._states.clear()
            return
        for key in [k for k in self._states if k[0] == encounter_id]:
            del self._states[key]

    def snapshot(self, encounter_id: str) -> dict[str, dict[str, Any]]:
        """Turn states for an encounter keyed by participant id."""
        return {pid: state.to_dict() for (eid, pid), state in self._states.items() if eid == encounter_id}
