"""D&D 5e combat encounter and condition resolution engine."""

from .engine import CombatEngine
from .results import OperationResult

__all__ = ["CombatEngine", "OperationResult"]
