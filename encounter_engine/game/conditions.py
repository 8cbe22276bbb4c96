"""Condition ledger and status effect mechanics for D&D 5e."""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import PreconditionError

logger = logging.getLogger(__name__)

MAX_EXHAUSTION = 6
REMOVE_ALL = "all"


class ConditionKind(Enum):
    """Built-in 5e conditions."""

    BLINDED = "blinded"
    CHARMED = "charmed"
    DEAFENED = "deafened"
    FRIGHTENED = "frightened"
    GRAPPLED = "grappled"
    INCAPACITATED = "incapacitated"
    INVISIBLE = "invisible"
    PARALYZED = "paralyzed"
    PETRIFIED = "petrified"
    POISONED = "poisoned"
    PRONE = "prone"
    RESTRAINED = "restrained"
    STUNNED = "stunned"
    UNCONSCIOUS = "unconscious"
    EXHAUSTION = "exhaustion"


@dataclass(frozen=True)
class CustomCondition:
    """A homebrew condition identified only by its name."""

    name: str

    @property
    def value(self) -> str:
        return self.name


Condition = ConditionKind | CustomCondition


class SymbolicDuration(Enum):
    """Durations that are not measured in rounds."""

    CONCENTRATION = "concentration"
    UNTIL_DISPELLED = "until_dispelled"
    UNTIL_REST = "until_rest"
    SAVE_ENDS = "save_ends"


Duration = int | SymbolicDuration


class Ability(Enum):
    """Ability scores used for saving throws."""

    STR = "str"
    DEX = "dex"
    CON = "con"
    INT = "int"
    WIS = "wis"
    CHA = "cha"


def parse_condition(value: "str | Condition") -> Condition:
    """Resolve a condition name to a built-in kind or a custom condition.

    Args:
        value: Condition name, e.g. "Poisoned" or "hexed"

    Returns:
        ConditionKind for built-ins, CustomCondition otherwise

    Raises:
        PreconditionError: If the name is empty
    """
    if isinstance(value, (ConditionKind, CustomCondition)):
        return value

    name = value.strip()
    if not name:
        raise PreconditionError("condition name must not be empty")

    key = name.lower().replace(" ", "_").replace("-", "_")
    try:
        return ConditionKind(key)
    except ValueError:
        return CustomCondition(name)


@dataclass
class ConditionEffect:
    """Mechanical effects of a condition on a character's stats."""

    # Multipliers (0.5 = halved)
    max_hp_multiplier: float | None = None
    speed_multiplier: float | None = None

    # Flat adjustments
    max_hp_modifier: int | None = None
    speed_modifier: int | None = None
    ac_modifier: int | None = None

    # Roll categories, e.g. "attack_rolls", "ability_checks", "dex_saves"
    disadvantage_on: list[str] = field(default_factory=list)
    advantage_on: list[str] = field(default_factory=list)
    auto_fail_saves: list[str] = field(default_factory=list)

    # Movement restrictions
    cannot_move: bool = False
    can_only_crawl: bool = False

    incapacitated: bool = False
    is_dead: bool = False

    custom_effects: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, omitting unset fields."""
        data: dict[str, Any] = {}
        for key, value in self.__dict__.items():
            if value is None or value is False or value == [] or value == {}:
                continue
            data[key] = list(value) if isinstance(value, list) else value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConditionEffect":
        """Create from dictionary data.

        Raises:
            ValueError: If any key is not an effect field
        """
        unknown = sorted(key for key in data if key not in cls.__dataclass_fields__)
        if unknown:
            raise ValueError(f"Unknown mechanical effects: {', '.join(unknown)}")
        return cls(**data)


# Rules text shown when a condition is added or queried
CONDITION_DESCRIPTIONS: dict[ConditionKind, str] = {
    ConditionKind.BLINDED: "Can't see and auto-fails sight checks. Attacks have disadvantage, attacks against have advantage.",
    ConditionKind.CHARMED: "Can't attack the charmer. The charmer has advantage on social checks against you.",
    ConditionKind.DEAFENED: "Can't hear and auto-fails hearing checks.",
    ConditionKind.FRIGHTENED: "Disadvantage on ability checks and attacks while the source is visible. Can't move closer to it.",
    ConditionKind.GRAPPLED: "Speed becomes 0. Ends if the grappler is incapacitated or moved away.",
    ConditionKind.INCAPACITATED: "Can't take actions or reactions.",
    ConditionKind.INVISIBLE: "Can't be seen without special senses. Attacks have advantage, attacks against have disadvantage.",
    ConditionKind.PARALYZED: "Incapacitated, can't move or speak. Auto-fails STR and DEX saves. Melee hits within 5ft are critical.",
    ConditionKind.PETRIFIED: "Turned to stone, incapacitated, can't move. Auto-fails STR and DEX saves. Resistant to all damage.",
    ConditionKind.POISONED: "Disadvantage on attack rolls and ability checks.",
    ConditionKind.PRONE: "Can only crawl. Attacks have disadvantage. Melee attacks against have advantage.",
    ConditionKind.RESTRAINED: "Speed becomes 0. Attacks and DEX saves have disadvantage. Attacks against have advantage.",
    ConditionKind.STUNNED: "Incapacitated, can't move. Auto-fails STR and DEX saves. Attacks against have advantage.",
    ConditionKind.UNCONSCIOUS: "Incapacitated, unaware, falls prone. Auto-fails STR and DEX saves. Melee hits within 5ft are critical.",
    ConditionKind.EXHAUSTION: "Stacking penalty with 6 levels.",
}

EXHAUSTION_LEVELS: dict[int, str] = {
    1: "Disadvantage on ability checks",
    2: "Speed halved",
    3: "Disadvantage on attack rolls and saving throws",
    4: "Hit point maximum halved",
    5: "Speed reduced to 0",
    6: "Death",
}

_BUILT_IN_EFFECTS: dict[ConditionKind, ConditionEffect] = {
    ConditionKind.POISONED: ConditionEffect(disadvantage_on=["attack_rolls", "ability_checks"]),
    ConditionKind.GRAPPLED: ConditionEffect(cannot_move=True),
    ConditionKind.RESTRAINED: ConditionEffect(
        cannot_move=True,
        disadvantage_on=["attack_rolls", "dex_saves"],
    ),
    ConditionKind.PRONE: ConditionEffect(can_only_crawl=True, disadvantage_on=["attack_rolls"]),
    ConditionKind.PARALYZED: ConditionEffect(incapacitated=True, auto_fail_saves=["str", "dex"], cannot_move=True),
    ConditionKind.STUNNED: ConditionEffect(incapacitated=True, auto_fail_saves=["str", "dex"], cannot_move=True),
    ConditionKind.UNCONSCIOUS: ConditionEffect(incapacitated=True, auto_fail_saves=["str", "dex"], cannot_move=True),
    ConditionKind.PETRIFIED: ConditionEffect(incapacitated=True, cannot_move=True, auto_fail_saves=["str", "dex"]),
    ConditionKind.INCAPACITATED: ConditionEffect(incapacitated=True),
}


def exhaustion_effects(level: int) -> ConditionEffect:
    """Build the cumulative effects of an exhaustion level.

    Args:
        level: Exhaustion level 1-6

    Returns:
        ConditionEffect including every lower level's penalty
    """
    effects = ConditionEffect()
    if level >= 1:
        effects.disadvantage_on.append("ability_checks")
    if level >= 2:
        effects.speed_multiplier = 0.5
    if level >= 3:
        effects.disadvantage_on.extend(["attack_rolls", "saving_throws"])
    if level >= 4:
        effects.max_hp_multiplier = 0.5
    if level >= 5:
        effects.cannot_move = True
    if level >= 6:
        effects.is_dead = True
    return effects


def built_in_effects(condition: Condition, exhaustion_level: int | None = None) -> ConditionEffect | None:
    """Look up the built-in mechanical effects for a condition.

    Returns None for conditions without stat effects (blinded, charmed,
    deafened, frightened, invisible) and for custom conditions.
    """
    if condition is ConditionKind.EXHAUSTION:
        return exhaustion_effects(exhaustion_level or 1)
    if isinstance(condition, ConditionKind):
        return _BUILT_IN_EFFECTS.get(condition)
    return None


@dataclass
class ActiveCondition:
    """A condition currently applied to a target."""

    target_id: str
    condition: Condition
    source: str | None = None
    duration: Duration | None = None
    rounds_remaining: int | None = None
    exhaustion_level: int | None = None
    save_dc: int | None = None
    save_ability: Ability | None = None
    description: str | None = None
    mechanical_effects: ConditionEffect | None = None

    @property
    def name(self) -> str:
        """Lowercase identifier of the condition."""
        return self.condition.value

    @property
    def label(self) -> str:
        """Display label, e.g. "Poisoned" or "Exhaustion 3"."""
        if self.condition is ConditionKind.EXHAUSTION:
            return f"Exhaustion {self.exhaustion_level}"
        return self.name.replace("_", " ").capitalize()

    @property
    def effects(self) -> ConditionEffect | None:
        """Mechanical effects: the override if supplied, else the built-in table."""
        if self.mechanical_effects is not None:
            return self.mechanical_effects
        return built_in_effects(self.condition, self.exhaustion_level)

    @property
    def rules_text(self) -> str:
        """Description shown to players."""
        if self.description:
            return self.description
        if self.condition is ConditionKind.EXHAUSTION:
            return EXHAUSTION_LEVELS[self.exhaustion_level or 1]
        if isinstance(self.condition, ConditionKind):
            return CONDITION_DESCRIPTIONS[self.condition]
        return "Custom condition"

    def duration_text(self) -> str | None:
        """Human-readable remaining duration, if any."""
        if self.rounds_remaining is not None:
            plural = "s" if self.rounds_remaining != 1 else ""
            return f"{self.rounds_remaining} round{plural}"
        if isinstance(self.duration, SymbolicDuration):
            return self.duration.value.replace("_", " ")
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        duration: Any = self.duration
        if isinstance(duration, SymbolicDuration):
            duration = duration.value
        return {
            "condition": self.name,
            "custom": isinstance(self.condition, CustomCondition),
            "source": self.source,
            "duration": duration,
            "rounds_remaining": self.rounds_remaining,
            "exhaustion_level": self.exhaustion_level,
            "save_dc": self.save_dc,
            "save_ability": self.save_ability.value if self.save_ability else None,
        }


class UpdateStatus(Enum):
    """Outcome of an add or remove on the ledger."""

    ADDED = "added"
    ALREADY_ACTIVE = "already_active"
    INCREASED = "increased"
    REMOVED = "removed"
    REDUCED = "reduced"
    NOT_FOUND = "not_found"
    CLEARED = "cleared"


@dataclass
class ConditionUpdate:
    """Result of an add or remove operation."""

    target_id: str
    status: UpdateStatus
    condition: Condition | None
    conditions: list[ActiveCondition] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status is not UpdateStatus.NOT_FOUND


@dataclass
class TickReport:
    """Conditions that expired or counted down during a tick."""

    target_id: str
    expired: list[ActiveCondition] = field(default_factory=list)
    remaining: list[ActiveCondition] = field(default_factory=list)


@dataclass
class StatValue:
    """A base stat and its condition-modified value."""

    base: int
    effective: int
    modified: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"base": self.base, "effective": self.effective, "modified": self.modified}


@dataclass
class EffectiveStats:
    """Stats after all active condition effects are applied."""

    target_id: str
    max_hp: StatValue
    speed: StatValue
    ac: StatValue | None
    condition_effects: list[str] = field(default_factory=list)
    active_conditions: list[str] = field(default_factory=list)
    incapacitated: bool = False
    is_dead: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "target_id": self.target_id,
            "max_hp": self.max_hp.to_dict(),
            "speed": self.speed.to_dict(),
            "ac": self.ac.to_dict() if self.ac else None,
            "condition_effects": list(self.condition_effects),
            "active_conditions": list(self.active_conditions),
            "incapacitated": self.incapacitated,
            "is_dead": self.is_dead,
        }


class ConditionLedger:
    """Tracks active conditions per target and derives their effects."""

    def __init__(self):
        """Initialize an empty ledger."""
        self._entries: dict[str, list[ActiveCondition]] = {}

    def add(
        self,
        target_id: str,
        condition: "str | Condition",
        source: str | None = None,
        duration: Duration | None = None,
        save_dc: int | None = None,
        save_ability: Ability | None = None,
        exhaustion_levels: int = 1,
        mechanical_effects: ConditionEffect | None = None,
        description: str | None = None,
    ) -> ConditionUpdate:
        """Add a condition to a target.

        Adding a condition the target already has is a no-op reported as
        ALREADY_ACTIVE. Exhaustion stacks instead, clamped to level 6.

        Args:
            target_id: Target identifier
            condition: Condition kind or name
            source: What caused the condition
            duration: Rounds, or a symbolic duration
            save_dc: DC of the save that ends the condition
            save_ability: Ability used for that save
            exhaustion_levels: Levels to add when condition is exhaustion
            mechanical_effects: Override for the built-in effect table
            description: Override for the built-in rules text

        Returns:
            ConditionUpdate describing the change
        """
        kind = parse_condition(condition)
        entries = self._entries.setdefault(target_id, [])

        if kind is ConditionKind.EXHAUSTION:
            return self._add_exhaustion(target_id, entries, exhaustion_levels, source)

        existing = self._find(entries, kind)
        if existing is not None:
            return ConditionUpdate(target_id, UpdateStatus.ALREADY_ACTIVE, kind, [existing])

        entry = ActiveCondition(
            target_id=target_id,
            condition=kind,
            source=source,
            duration=duration,
            rounds_remaining=duration if isinstance(duration, int) else None,
            save_dc=save_dc,
            save_ability=save_ability,
            description=description,
            mechanical_effects=mechanical_effects,
        )
        entries.append(entry)
        logger.debug(f"Added {entry.name} to {target_id} (duration={duration})")
        return ConditionUpdate(target_id, UpdateStatus.ADDED, kind, [entry])

    def _add_exhaustion(
        self,
        target_id: str,
        entries: list[ActiveCondition],
        levels: int,
        source: str | None,
    ) -> ConditionUpdate:
        if levels < 1:
            raise PreconditionError("exhaustion_levels must be at least 1")

        existing = self._find(entries, ConditionKind.EXHAUSTION)
        if existing is not None:
            existing.exhaustion_level = min(MAX_EXHAUSTION, (existing.exhaustion_level or 1) + levels)
            logger.debug(f"Exhaustion on {target_id} increased to {existing.exhaustion_level}")
            return ConditionUpdate(target_id, UpdateStatus.INCREASED, ConditionKind.EXHAUSTION, [existing])

        entry = ActiveCondition(
            target_id=target_id,
            condition=ConditionKind.EXHAUSTION,
            source=source,
            exhaustion_level=min(MAX_EXHAUSTION, levels),
        )
        entries.append(entry)
        logger.debug(f"Exhaustion level {entry.exhaustion_level} added to {target_id}")
        return ConditionUpdate(target_id, UpdateStatus.ADDED, ConditionKind.EXHAUSTION, [entry])

    def remove(
        self,
        target_id: str,
        condition: "str | Condition",
        exhaustion_levels: int = 1,
    ) -> ConditionUpdate:
        """Remove a condition, some exhaustion levels, or everything.

        Args:
            target_id: Target identifier
            condition: Condition kind or name, or "all"
            exhaustion_levels: Levels to remove when condition is exhaustion

        Returns:
            ConditionUpdate; NOT_FOUND when the target lacks the condition
        """
        entries = self._entries.get(target_id, [])

        if isinstance(condition, str) and condition.strip().lower() == REMOVE_ALL:
            removed = list(entries)
            self._entries[target_id] = []
            logger.debug(f"Cleared {len(removed)} condition(s) from {target_id}")
            return ConditionUpdate(target_id, UpdateStatus.CLEARED, None, removed)

        kind = parse_condition(condition)
        existing = self._find(entries, kind)
        if existing is None:
            return ConditionUpdate(target_id, UpdateStatus.NOT_FOUND, kind)

        if kind is ConditionKind.EXHAUSTION:
            if exhaustion_levels < 1:
                raise PreconditionError("exhaustion_levels must be at least 1")
            new_level = (existing.exhaustion_level or 1) - exhaustion_levels
            if new_level > 0:
                existing.exhaustion_level = new_level
                logger.debug(f"Exhaustion on {target_id} reduced to {new_level}")
                return ConditionUpdate(target_id, UpdateStatus.REDUCED, kind, [existing])

        entries.remove(existing)
        logger.debug(f"Removed {existing.name} from {target_id}")
        return ConditionUpdate(target_id, UpdateStatus.REMOVED, kind, [existing])

    def query(self, target_id: str) -> list[ActiveCondition]:
        """Get all active conditions on a target."""
        return list(self._entries.get(target_id, []))

    def get(self, target_id: str, condition: "str | Condition") -> ActiveCondition | None:
        """Get a single active condition, or None."""
        return self._find(self._entries.get(target_id, []), parse_condition(condition))

    def has(self, target_id: str, condition: "str | Condition") -> bool:
        """Check if a condition is active on a target."""
        return self.get(target_id, condition) is not None

    def tick(self, target_id: str) -> TickReport:
        """Advance round-based durations on a target by one round.

        Conditions without a numeric duration are untouched.

        Returns:
            TickReport listing expired and still-running conditions
        """
        report = TickReport(target_id=target_id)
        kept: list[ActiveCondition] = []

        for entry in self._entries.get(target_id, []):
            if entry.rounds_remaining is None:
                kept.append(entry)
                continue

            entry.rounds_remaining -= 1
            if entry.rounds_remaining <= 0:
                report.expired.append(entry)
            else:
                report.remaining.append(entry)
                kept.append(entry)

        self._entries[target_id] = kept
        if report.expired:
            logger.debug(f"Expired on {target_id}: {[e.name for e in report.expired]}")
        return report

    def calculate_effective_stats(
        self,
        target_id: str,
        max_hp: int,
        speed: int,
        ac: int | None = None,
    ) -> EffectiveStats:
        """Apply every active condition's mechanical effects to base stats.

        Effects are applied in the order the conditions were added: HP
        maximum multiplier then modifier, speed multiplier then modifier,
        cannot-move forcing speed to 0, then AC modifier.

        Args:
            target_id: Target identifier
            max_hp: Base hit point maximum
            speed: Base walking speed in feet
            ac: Base armor class, if known

        Returns:
            EffectiveStats with base and effective values and effect notes
        """
        stats = EffectiveStats(
            target_id=target_id,
            max_hp=StatValue(max_hp, max_hp),
            speed=StatValue(speed, speed),
            ac=StatValue(ac, ac) if ac is not None else None,
        )
        notes = stats.condition_effects

        for entry in self._entries.get(target_id, []):
            stats.active_conditions.append(entry.label)
            effects = entry.effects
            if effects is None:
                continue
            label = entry.label

            if effects.max_hp_multiplier is not None:
                stats.max_hp.effective = math.floor(stats.max_hp.effective * effects.max_hp_multiplier)
                stats.max_hp.modified = True
                notes.append(f"{label}: HP max ×{effects.max_hp_multiplier:g}")
            if effects.max_hp_modifier is not None:
                stats.max_hp.effective += effects.max_hp_modifier
                stats.max_hp.modified = True
                notes.append(f"{label}: HP max {effects.max_hp_modifier:+d}")

            if effects.speed_multiplier is not None:
                stats.speed.effective = math.floor(stats.speed.effective * effects.speed_multiplier)
                stats.speed.modified = True
                notes.append(f"{label}: speed ×{effects.speed_multiplier:g}")
            if effects.speed_modifier is not None:
                stats.speed.effective += effects.speed_modifier
                stats.speed.modified = True
                notes.append(f"{label}: speed {effects.speed_modifier:+d}")
            if effects.cannot_move:
                stats.speed.effective = 0
                stats.speed.modified = True
                notes.append(f"{label}: speed 0 (cannot move)")
            if effects.can_only_crawl:
                notes.append(f"{label}: crawl only")

            if stats.ac is not None and effects.ac_modifier is not None:
                stats.ac.effective += effects.ac_modifier
                stats.ac.modified = True
                notes.append(f"{label}: AC {effects.ac_modifier:+d}")

            if effects.disadvantage_on:
                notes.append(f"{label}: disadvantage on {', '.join(effects.disadvantage_on)}")
            if effects.advantage_on:
                notes.append(f"{label}: advantage on {', '.join(effects.advantage_on)}")
            if effects.auto_fail_saves:
                notes.append(f"{label}: auto-fail {', '.join(effects.auto_fail_saves).upper()} saves")
            if effects.incapacitated:
                stats.incapacitated = True
                notes.append(f"{label}: incapacitated")
            if effects.is_dead:
                stats.is_dead = True
                notes.append(f"{label}: dead")

        stats.max_hp.effective = max(0, stats.max_hp.effective)
        stats.speed.effective = max(0, stats.speed.effective)
        return stats

    def disadvantage_on(self, target_id: str, category: str) -> list[str]:
        """Labels of active conditions imposing disadvantage on a roll category."""
        sources = []
        for entry in self._entries.get(target_id, []):
            effects = entry.effects
            if effects is not None and category in effects.disadvantage_on:
                sources.append(entry.label)
        return sources

    def is_incapacitated(self, target_id: str) -> bool:
        """Check if any active condition incapacitates the target."""
        for entry in self._entries.get(target_id, []):
            effects = entry.effects
            if effects is not None and (effects.incapacitated or effects.is_dead):
                return True
        return False

    def clear(self, target_id: str | None = None) -> None:
        """Remove all conditions from one target, or from every target."""
        if target_id is None:
            self._entries.clear()
        else:
            self._entries.pop(target_id, None)

    @staticmethod
    def _find(entries: list[ActiveCondition], condition: Condition) -> ActiveCondition | None:
        for entry in entries:
            if entry.condition == condition:
                return entry
        return None
