"""Game mechanics module for dice, conditions, turns, encounters and actions."""

from .actions import ActionKind, ActionRequest, ActionResolver, RollMode, ShoveDirection
from .conditions import ConditionEffect, ConditionKind, ConditionLedger, CustomCondition, parse_condition
from .dice import DiceRoller, roll
from .encounter import Encounter, EncounterManager, Participant, Position, Terrain
from .errors import CombatError, NotFoundError, PreconditionError, RuleViolationError
from .turns import ActionCost, TurnState, TurnTracker

__all__ = [
    "ActionKind", "ActionRequest", "ActionResolver", "RollMode", "ShoveDirection",
    "ConditionEffect", "ConditionKind", "ConditionLedger", "CustomCondition", "parse_condition",
    "DiceRoller", "roll",
    "Encounter", "EncounterManager", "Participant", "Position", "Terrain",
    "CombatError", "NotFoundError", "PreconditionError", "RuleViolationError",
    "ActionCost", "TurnState", "TurnTracker",
]
