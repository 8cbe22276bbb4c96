"""Encounter roster, initiative order and turn pointer for 5e combat."""

import logging
import random
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .dice import DiceRoller
from .errors import NotFoundError, PreconditionError, RuleViolationError

logger = logging.getLogger(__name__)


class Size(Enum):
    """Creature size categories."""

    TINY = "tiny"
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    HUGE = "huge"
    GARGANTUAN = "gargantuan"


class DamageType(Enum):
    """Types of damage."""

    ACID = "acid"
    BLUDGEONING = "bludgeoning"
    COLD = "cold"
    FIRE = "fire"
    FORCE = "force"
    LIGHTNING = "lightning"
    NECROTIC = "necrotic"
    PIERCING = "piercing"
    POISON = "poison"
    PSYCHIC = "psychic"
    RADIANT = "radiant"
    SLASHING = "slashing"
    THUNDER = "thunder"


class Lighting(Enum):
    """Ambient light level of an encounter."""

    BRIGHT = "bright"
    DIM = "dim"
    DARKNESS = "darkness"
    MAGICAL_DARKNESS = "magical_darkness"


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


@dataclass
class Position:
    """A square on the battle grid."""

    x: int
    y: int
    z: int = 0

    def chebyshev(self, other: "Position") -> int:
        """Grid distance in squares; diagonals cost the same as straight moves."""
        return max(abs(self.x - other.x), abs(self.y - other.y))

    def step_away_from(self, origin: "Position") -> "Position":
        """The adjacent square directly away from origin.

        Returns an unchanged copy when both positions share a square.
        """
        return Position(
            self.x + _sign(self.x - origin.x),
            self.y + _sign(self.y - origin.y),
            self.z,
        )

    def to_dict(self) -> dict[str, int]:
        return {"x": self.x, "y": self.y, "z": self.z}

    def __str__(self) -> str:
        text = f"({self.x}, {self.y})"
        if self.z:
            text += f" ↑{self.z}"
        return text


@dataclass
class Hazard:
    """A dangerous square on the map."""

    position: str
    type: str
    damage: str | None = None
    dc: int | None = None

    def __str__(self) -> str:
        text = f"{self.position}: {self.type}"
        if self.dc:
            text += f" (DC {self.dc})"
        if self.damage:
            text += f" {self.damage} damage"
        return text


@dataclass
class Terrain:
    """Battle map description. Squares are given as "x,y" strings."""

    width: int = 20
    height: int = 20
    obstacles: list[str] = field(default_factory=list)
    difficult_terrain: list[str] = field(default_factory=list)
    water: list[str] = field(default_factory=list)
    hazards: list[Hazard] = field(default_factory=list)

    def summary(self) -> dict[str, int]:
        """Map dimensions and feature counts."""
        return {
            "width": self.width,
            "height": self.height,
            "obstacles": len(self.obstacles),
            "difficult_terrain": len(self.difficult_terrain),
            "water": len(self.water),
            "hazards": len(self.hazards),
        }


@dataclass
class Participant:
    """A creature taking part in an encounter."""

    id: str
    name: str
    hp: int
    max_hp: int
    position: Position
    ac: int = 10
    initiative_bonus: int = 0
    speed: int = 30
    size: Size = Size.MEDIUM
    is_enemy: bool = False

    # Damage and condition modifiers
    resistances: list[DamageType] = field(default_factory=list)
    immunities: list[DamageType] = field(default_factory=list)
    vulnerabilities: list[DamageType] = field(default_factory=list)
    condition_immunities: list[str] = field(default_factory=list)

    initiative: int = 0
    surprised: bool = False

    def __post_init__(self):
        self.hp = max(0, min(self.hp, self.max_hp))

    @property
    def is_down(self) -> bool:
        """Check if the participant has dropped to 0 HP."""
        return self.hp == 0

    def set_hp(self, value: int) -> None:
        """Set hit points, clamped to [0, max_hp]."""
        self.hp = max(0, min(value, self.max_hp))

    def take_damage(self, amount: int) -> int:
        """Apply damage.

        Args:
            amount: Damage amount

        Returns:
            Actual HP lost
        """
        old_hp = self.hp
        self.set_hp(self.hp - amount)
        return old_hp - self.hp

    def heal(self, amount: int) -> int:
        """Restore hit points.

        Args:
            amount: Healing amount

        Returns:
            Actual amount healed
        """
        old_hp = self.hp
        self.set_hp(self.hp + amount)
        return self.hp - old_hp

    def damage_multiplier(self, damage_type: DamageType) -> float:
        """Multiplier applied to incoming damage of a given type."""
        if damage_type in self.immunities:
            return 0
        multiplier = 1.0
        if damage_type in self.resistances:
            multiplier *= 0.5
        if damage_type in self.vulnerabilities:
            multiplier *= 2
        return multiplier

    def is_immune_to(self, condition_name: str) -> bool:
        """Check if the participant ignores a condition."""
        return condition_name.lower() in (c.lower() for c in self.condition_immunities)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "initiative": self.initiative,
            "initiative_bonus": self.initiative_bonus,
            "hp": self.hp,
            "max_hp": self.max_hp,
            "ac": self.ac,
            "speed": self.speed,
            "position": self.position.to_dict(),
            "size": self.size.value,
            "is_enemy": self.is_enemy,
            "surprised": self.surprised,
            "resistances": [d.value for d in self.resistances],
            "immunities": [d.value for d in self.immunities],
            "vulnerabilities": [d.value for d in self.vulnerabilities],
            "condition_immunities": list(self.condition_immunities),
        }


@dataclass
class TurnAdvance:
    """Where the turn pointer landed after advancing."""

    previous: Participant
    current: Participant
    round: int
    new_round: bool
    skipped: list[Participant] = field(default_factory=list)


@dataclass
class Encounter:
    """One combat scenario with a fixed initiative order."""

    id: str
    participants: list[Participant]
    terrain: Terrain = field(default_factory=Terrain)
    lighting: Lighting = Lighting.BRIGHT
    seed: str | None = None
    round: int = 1
    turn_index: int = 0

    @property
    def current_participant(self) -> Participant | None:
        """The participant whose turn it is."""
        if not self.participants:
            return None
        return self.participants[self.turn_index]

    def find(self, ref: str | None) -> Participant | None:
        """Look up a participant by id, then by case-insensitive name."""
        if not ref:
            return None
        for participant in self.participants:
            if participant.id == ref:
                return participant
        lowered = ref.lower()
        for participant in self.participants:
            if participant.name.lower() == lowered:
                return participant
        return None

    def require(self, ref: str | None, role: str = "Participant") -> Participant:
        """Look up a participant, raising when it does not exist.

        Raises:
            NotFoundError: If no participant matches
        """
        participant = self.find(ref)
        if participant is None:
            raise NotFoundError(f"{role} not found: {ref or 'No ' + role.lower() + ' specified'}")
        return participant

    def opponents_of(self, participant: Participant) -> list[Participant]:
        """Participants on the opposite side."""
        return [p for p in self.participants if p.is_enemy != participant.is_enemy]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        current = self.current_participant
        return {
            "encounter_id": self.id,
            "round": self.round,
            "lighting": self.lighting.value,
            "current_turn": current.name if current else None,
            "turn_index": self.turn_index,
            "participants": [p.to_dict() for p in self.participants],
            "terrain": self.terrain.summary(),
            "seed": self.seed,
        }


class EncounterManager:
    """Creates encounters and owns their rosters."""

    def __init__(self, roller: DiceRoller | None = None):
        """Initialize the manager.

        Args:
            roller: Dice roller used for initiative when no seed is given
        """
        self.roller = roller or DiceRoller()
        self._encounters: dict[str, Encounter] = {}

    def create(
        self,
        participants: list[Participant],
        terrain: Terrain | None = None,
        lighting: Lighting = Lighting.BRIGHT,
        surprise: list[str] | None = None,
        seed: str | None = None,
    ) -> Encounter:
        """Create an encounter and roll initiative.

        Each participant rolls 1d20 plus their initiative bonus. The order
        is highest total first, ties going to the higher bonus.

        Args:
            participants: Roster; ids must be unique
            terrain: Battle map, 20x20 and empty if omitted
            lighting: Ambient light
            surprise: Ids of surprised participants
            seed: Makes the initiative rolls reproducible

        Returns:
            The stored Encounter, at round 1 with the first participant up

        Raises:
            PreconditionError: On an empty roster or a duplicate id
        """
        if not participants:
            raise PreconditionError("An encounter needs at least one participant")

        seen: set[str] = set()
        for participant in participants:
            if participant.id in seen:
                raise PreconditionError(f"Duplicate participant ID: {participant.id}")
            seen.add(participant.id)

        roller = DiceRoller(random.Random(seed)) if seed is not None else self.roller
        surprised = set(surprise or [])

        for participant in participants:
            participant.initiative = roller.roll_d20().total + participant.initiative_bonus
            participant.surprised = participant.id in surprised

        order = sorted(
            participants,
            key=lambda p: (p.initiative, p.initiative_bonus),
            reverse=True,
        )

        encounter = Encounter(
            id=str(uuid.uuid4()),
            participants=order,
            terrain=terrain or Terrain(),
            lighting=lighting,
            seed=seed,
        )
        self._encounters[encounter.id] = encounter

        logger.info(
            f"Encounter {encounter.id} created: "
            f"{', '.join(f'{p.name} ({p.initiative})' for p in order)}"
        )
        return encounter

    def get(self, encounter_id: str) -> Encounter:
        """Get an encounter by id.

        Raises:
            NotFoundError: If the encounter does not exist
        """
        encounter = self._encounters.get(encounter_id)
        if encounter is None:
            raise NotFoundError(f"Encounter not found: {encounter_id}")
        return encounter

    def get_participant(self, encounter_id: str, participant_id: str) -> Participant:
        """Get a participant of an encounter by id or name."""
        return self.get(encounter_id).require(participant_id)

    def all(self) -> list[Encounter]:
        """All stored encounters."""
        return list(self._encounters.values())

    def clear(self) -> None:
        """Remove every encounter."""
        self._encounters.clear()

    def advance_turn(self, encounter: Encounter) -> TurnAdvance:
        """Move the turn pointer to the next participant able to act.

        Enemies at 0 HP are skipped. Allies at 0 HP still get a turn for
        their death saving throw. Passing the end of the order starts a
        new round.

        Raises:
            RuleViolationError: If nobody in the encounter can act
        """
        previous = encounter.current_participant
        if previous is None:
            raise RuleViolationError("Encounter has no participants")

        skipped: list[Participant] = []
        new_round = False
        index = encounter.turn_index

        for _ in range(len(encounter.participants)):
            index = (index + 1) % len(encounter.participants)
            if index == 0:
                new_round = True

            candidate = encounter.participants[index]
            if candidate.is_enemy and candidate.is_down:
                skipped.append(candidate)
                continue

            encounter.turn_index = index
            if new_round:
                encounter.round += 1
            logger.info(f"Encounter {encounter.id}: round {encounter.round}, {candidate.name}'s turn")
            return TurnAdvance(
                previous=previous,
                current=candidate,
                round=encounter.round,
                new_round=new_round,
                skipped=skipped,
            )

        raise RuleViolationError("No participant is able to act")
