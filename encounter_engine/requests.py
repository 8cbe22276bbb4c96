"""Request models for the combat engine operations."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import CombatConfig, TerrainConfig
from .game.actions import ActionKind, ActionRequest, ShoveDirection
from .game.conditions import Ability, ConditionEffect, SymbolicDuration
from .game.encounter import DamageType, Hazard, Lighting, Participant, Position, Size, Terrain
from .game.errors import PreconditionError
from .game.turns import ActionCost


class PositionSpec(BaseModel):
    x: int
    y: int
    z: int = 0

    def to_position(self) -> Position:
        return Position(self.x, self.y, self.z)


class HazardSpec(BaseModel):
    position: str
    type: str
    damage: str | None = None
    dc: int | None = None


class TerrainSpec(BaseModel):
    width: int | None = Field(default=None, ge=5, le=100)
    height: int | None = Field(default=None, ge=5, le=100)
    obstacles: list[str] = Field(default_factory=list)
    difficult_terrain: list[str] = Field(default_factory=list)
    water: list[str] = Field(default_factory=list)
    hazards: list[HazardSpec] = Field(default_factory=list)

    def to_terrain(self, defaults: TerrainConfig) -> Terrain:
        width = self.width or defaults.default_width
        height = self.height or defaults.default_height
        for label, value in (("width", width), ("height", height)):
            if not defaults.min_size <= value <= defaults.max_size:
                raise PreconditionError(
                    f"Terrain {label} must be between {defaults.min_size} and {defaults.max_size}"
                )
        return Terrain(
            width=width,
            height=height,
            obstacles=list(self.obstacles),
            difficult_terrain=list(self.difficult_terrain),
            water=list(self.water),
            hazards=[Hazard(**h.model_dump()) for h in self.hazards],
        )


class ParticipantSpec(BaseModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    hp: int = Field(gt=0)
    max_hp: int = Field(gt=0)
    position: PositionSpec
    ac: int | None = Field(default=None, ge=0)
    initiative_bonus: int = 0
    speed: int | None = Field(default=None, ge=0)
    size: Size | None = None
    is_enemy: bool = False
    resistances: list[DamageType] = Field(default_factory=list)
    immunities: list[DamageType] = Field(default_factory=list)
    vulnerabilities: list[DamageType] = Field(default_factory=list)
    condition_immunities: list[str] = Field(default_factory=list)

    def to_participant(self, defaults: CombatConfig) -> Participant:
        """Build a participant, filling unset stats from the combat config."""
        return Participant(
            id=self.id,
            name=self.name,
            hp=self.hp,
            max_hp=self.max_hp,
            position=self.position.to_position(),
            ac=self.ac if self.ac is not None else defaults.default_ac,
            initiative_bonus=self.initiative_bonus,
            speed=self.speed if self.speed is not None else defaults.default_speed,
            size=self.size or Size(defaults.default_size),
            is_enemy=self.is_enemy,
            resistances=list(self.resistances),
            immunities=list(self.immunities),
            vulnerabilities=list(self.vulnerabilities),
            condition_immunities=list(self.condition_immunities),
        )


class CreateEncounterRequest(BaseModel):
    participants: list[ParticipantSpec] = Field(min_length=1)
    terrain: TerrainSpec | None = None
    lighting: Lighting | None = None
    surprise: list[str] = Field(default_factory=list)
    seed: str | None = None


class ConditionOperation(Enum):
    """Operations on the condition ledger."""

    ADD = "add"
    REMOVE = "remove"
    QUERY = "query"
    TICK = "tick"


class ConditionEffectSpec(BaseModel):
    """Custom mechanical effects overriding a condition's built-in ones."""

    model_config = ConfigDict(extra="forbid")

    max_hp_multiplier: float | None = Field(default=None, ge=0)
    speed_multiplier: float | None = Field(default=None, ge=0)
    max_hp_modifier: int | None = None
    speed_modifier: int | None = None
    ac_modifier: int | None = None
    disadvantage_on: list[str] = Field(default_factory=list)
    advantage_on: list[str] = Field(default_factory=list)
    auto_fail_saves: list[str] = Field(default_factory=list)
    cannot_move: bool = False
    can_only_crawl: bool = False
    incapacitated: bool = False
    is_dead: bool = False
    custom_effects: dict[str, Any] = Field(default_factory=dict)

    def to_effect(self) -> ConditionEffect:
        return ConditionEffect.from_dict(self.model_dump())


class ConditionRequest(BaseModel):
    target_id: str = Field(min_length=1)
    operation: ConditionOperation
    condition: str | None = None
    source: str | None = None
    duration: int | SymbolicDuration | None = None
    save_dc: int | None = Field(default=None, ge=1, le=30)
    save_ability: Ability | None = None
    exhaustion_levels: int = Field(default=1, ge=1, le=6)
    mechanical_effects: ConditionEffectSpec | None = None
    description: str | None = None
    encounter_id: str | None = None

    @field_validator("duration")
    @classmethod
    def positive_rounds(cls, value):
        if isinstance(value, int) and value < 1:
            raise ValueError("duration in rounds must be at least 1")
        return value


class ConditionBatchRequest(BaseModel):
    batch: list[ConditionRequest] = Field(min_length=1)


class ExecuteActionRequest(BaseModel):
    encounter_id: str
    action_type: ActionKind
    actor_id: str | None = None
    actor_name: str | None = None
    action_cost: ActionCost = ActionCost.ACTION
    target_id: str | None = None
    target_name: str | None = None
    weapon_name: str | None = None
    damage_expression: str | None = None
    damage_type: DamageType = DamageType.SLASHING
    move_to: PositionSpec | None = None
    advantage: bool = False
    disadvantage: bool = False
    manual_attack_roll: int | None = Field(default=None, ge=1)
    manual_damage_roll: int | None = Field(default=None, ge=0)
    shove_direction: ShoveDirection = ShoveDirection.AWAY

    def to_action_request(self) -> ActionRequest:
        return ActionRequest(
            encounter_id=self.encounter_id,
            actor=self.actor_id or self.actor_name,
            action=self.action_type,
            target=self.target_id or self.target_name,
            action_cost=self.action_cost,
            weapon=self.weapon_name,
            damage_expression=self.damage_expression,
            damage_type=self.damage_type,
            move_to=self.move_to.to_position() if self.move_to else None,
            advantage=self.advantage,
            disadvantage=self.disadvantage,
            manual_attack_roll=self.manual_attack_roll,
            manual_damage_roll=self.manual_damage_roll,
            shove_direction=self.shove_direction,
        )


class AdvanceTurnRequest(BaseModel):
    encounter_id: str
