"""Exceptions raised by the combat core.

Every error here is a normal, recoverable outcome. The service boundary
turns them into failed operation results.
"""


class CombatError(Exception):
    """Base class for combat rule and lookup failures."""

    kind = "error"


class NotFoundError(CombatError):
    """Unknown encounter, actor, or target."""

    kind = "not_found"


class PreconditionError(CombatError):
    """A required field is missing or the request cannot apply."""

    kind = "precondition"


class RuleViolationError(CombatError):
    """The request breaks a rule, e.g. moving past the movement budget."""

    kind = "rule_violation"
