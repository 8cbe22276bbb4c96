"""Action resolution for 5e combat: attacks, movement and tactical actions."""

import logging
import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, ClassVar

from ..config import CombatConfig
from .conditions import ConditionLedger
from .dice import DicePool, DiceRoller, RollType, dice_only
from .encounter import DamageType, Encounter, EncounterManager, Participant, Position
from .errors import PreconditionError
from .turns import ActionCost, TurnState, TurnTracker

logger = logging.getLogger(__name__)


class ActionKind(Enum):
    """Actions a participant can take on their turn."""

    ATTACK = "attack"
    CAST_SPELL = "cast_spell"
    DASH = "dash"
    DISENGAGE = "disengage"
    DODGE = "dodge"
    HELP = "help"
    HIDE = "hide"
    READY = "ready"
    SEARCH = "search"
    USE_OBJECT = "use_object"
    USE_MAGIC_ITEM = "use_magic_item"
    USE_SPECIAL_ABILITY = "use_special_ability"
    SHOVE = "shove"
    GRAPPLE = "grapple"


class ShoveDirection(Enum):
    """What a successful shove does to the target."""

    AWAY = "away"
    PRONE = "prone"


class RollMode(Enum):
    """How an attack roll was produced."""

    MANUAL = "manual"
    NORMAL = "normal"
    ADVANTAGE = "advantage"
    DISADVANTAGE = "disadvantage"
    CANCELLED = "cancelled"  # advantage and disadvantage together


@dataclass
class ActionRequest:
    """A single action to resolve within an encounter."""

    encounter_id: str
    actor: str
    action: ActionKind
    target: str | None = None
    action_cost: ActionCost = ActionCost.ACTION
    weapon: str | None = None
    damage_expression: str | None = None
    damage_type: DamageType = DamageType.SLASHING
    move_to: Position | None = None
    advantage: bool = False
    disadvantage: bool = False
    manual_attack_roll: int | None = None
    manual_damage_roll: int | None = None
    shove_direction: ShoveDirection = ShoveDirection.AWAY


@dataclass
class MovementResult:
    """A completed move."""

    start: Position
    end: Position
    feet: int
    remaining: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "from": self.start.to_dict(),
            "to": self.end.to_dict(),
            "feet": self.feet,
            "remaining": self.remaining,
        }

    def __str__(self) -> str:
        return f"Moved from {self.start} to {self.end} - {self.feet}ft ({self.remaining}ft left)"


@dataclass
class OpportunityAttack:
    """A reaction attack provoked by leaving an opponent's reach."""

    attacker_id: str
    attacker_name: str
    roll: int
    target_ac: int
    hit: bool
    damage: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "attacker": self.attacker_name,
            "attacker_id": self.attacker_id,
            "roll": self.roll,
            "hit": self.hit,
            "damage": self.damage,
        }

    def __str__(self) -> str:
        if self.hit:
            return f"Roll: {self.roll} vs AC {self.target_ac} - HIT! {self.damage} damage"
        return f"Roll: {self.roll} vs AC {self.target_ac} - MISS"


@dataclass
class AttackRoll:
    """The d20 behind an attack."""

    value: int
    mode: RollMode
    rolls: list[int] = field(default_factory=list)
    reason: str | None = None

    @property
    def description(self) -> str:
        if self.mode == RollMode.MANUAL:
            return f"{self.value} (manual)"
        if self.mode in (RollMode.ADVANTAGE, RollMode.DISADVANTAGE):
            reason = self.reason or self.mode.value
            return f"{self.value} ({', '.join(str(r) for r in self.rolls)} - {reason})"
        if self.mode == RollMode.CANCELLED:
            return f"{self.value} (adv/disadv cancel)"
        return str(self.value)


@dataclass
class DamageRoll:
    """Damage dealt by a hit, before and after resistances."""

    expression: str
    damage_type: DamageType
    rolls: list[int]
    modifier: int
    raw: int
    amount: int
    critical: bool = False
    manual: bool = False

    @property
    def description(self) -> str:
        if self.manual:
            text = f"{self.raw} (manual"
        else:
            text = f"{self.raw} ({', '.join(str(r) for r in self.rolls)}"
        if self.modifier:
            text += f" {self.modifier:+d}"
        text += " - CRITICAL!)" if self.critical else ")"
        if self.amount != self.raw:
            text += f" → {self.amount}"
        return text

    def to_dict(self) -> dict[str, Any]:
        return {
            "amount": self.amount,
            "raw": self.raw,
            "type": self.damage_type.value,
            "rolls": list(self.rolls),
            "modifier": self.modifier,
            "critical": self.critical,
            "description": self.description,
        }


def _render_opportunity_attacks(lines: list[str], attacks: list[OpportunityAttack]) -> None:
    if not attacks:
        return
    lines.append("")
    lines.append("### ⚔️ Opportunity Attacks")
    for oa in attacks:
        icon = "🔴" if oa.hit else "🟢"
        lines.append(f"- {icon} **{oa.attacker_name}:** {oa}")


@dataclass
class AttackOutcome:
    """Result of an attack action."""

    action: ClassVar[ActionKind] = ActionKind.ATTACK

    actor: Participant
    target: Participant
    roll: AttackRoll
    target_ac: int
    hit: bool
    critical: bool
    critical_miss: bool
    hp_before: int
    action_cost: ActionCost
    damage: DamageRoll | None = None
    movement: MovementResult | None = None
    opportunity_attacks: list[OpportunityAttack] = field(default_factory=list)
    advantage: bool = False
    disadvantage: bool = False
    weapon: str | None = None

    @property
    def result_text(self) -> str:
        if self.critical:
            return "CRITICAL HIT!"
        if self.critical_miss:
            return "Critical Miss"
        return "Hit" if self.hit else "Miss"

    def to_dict(self) -> dict[str, Any]:
        return {
            "action_type": self.action.value,
            "attacker": self.actor.name,
            "target": self.target.name,
            "weapon": self.weapon,
            "attack": {
                "roll": self.roll.value,
                "rolls": list(self.roll.rolls),
                "mode": self.roll.mode.value,
                "roll_description": self.roll.description,
                "target_ac": self.target_ac,
                "hit": self.hit,
                "critical": self.critical,
                "critical_miss": self.critical_miss,
                "advantage": self.advantage,
                "disadvantage": self.disadvantage,
            },
            "damage": self.damage.to_dict() if self.damage else None,
            "target_hp": {
                "before": self.hp_before,
                "after": self.target.hp,
                "max": self.target.max_hp,
                "down": self.target.is_down,
            },
            "movement": self.movement.to_dict() if self.movement else None,
            "opportunity_attacks": [oa.to_dict() for oa in self.opportunity_attacks],
            "action_cost": self.action_cost.value,
        }

    def __str__(self) -> str:
        icons = {"CRITICAL HIT!": "⭐", "Critical Miss": "💀", "Hit": "🎯", "Miss": "🛡️"}
        lines = [f"## {icons[self.result_text]} {self.actor.name} → {self.target.name}", ""]
        if self.weapon:
            lines.append(f"**Weapon:** {self.weapon}")

        mode = ""
        if self.roll.mode in (RollMode.ADVANTAGE, RollMode.DISADVANTAGE):
            mode = f" *({self.roll.mode.value})*"
        lines.append(f"**Attack:** {self.roll.description}{mode} vs AC {self.target_ac} - **{self.result_text}**")

        if self.hit and self.damage:
            hp_percent = round(self.target.hp / self.target.max_hp * 100)
            lines.append("")
            lines.append(f"**Damage:** {self.damage.description} {self.damage.damage_type.value}")
            lines.append(
                f"**{self.target.name} HP:** {self.hp_before} → {self.target.hp}/{self.target.max_hp} ({hp_percent}%)"
            )
            if self.target.is_down:
                lines.append("")
                lines.append("☠️ **TARGET DOWN!**")

        _render_opportunity_attacks(lines, self.opportunity_attacks)
        if self.movement:
            lines.append("")
            lines.append(f"**Movement:** {self.movement}")

        lines.append("")
        lines.append(f"*Action Cost: {self.action_cost.value}*")
        return "\n".join(lines)


@dataclass
class DashOutcome:
    """Result of a dash action."""

    action: ClassVar[ActionKind] = ActionKind.DASH

    actor: Participant
    speed: int
    action_cost: ActionCost
    movement: MovementResult | None = None
    opportunity_attacks: list[OpportunityAttack] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "action_type": self.action.value,
            "actor": {"id": self.actor.id, "name": self.actor.name},
            "speed": {"original": self.speed, "dashed": self.speed * 2},
            "movement": self.movement.to_dict() if self.movement else None,
            "opportunity_attacks": [oa.to_dict() for oa in self.opportunity_attacks],
            "action_cost": self.action_cost.value,
        }

    def __str__(self) -> str:
        lines = [f"## 🏃 {self.actor.name} Dashes!", ""]
        lines.append(f"**Movement:** {self.speed}ft → {self.speed * 2}ft (doubled)")
        _render_opportunity_attacks(lines, self.opportunity_attacks)
        if self.movement:
            lines.append("")
            lines.append(f"**Movement:** {self.movement}")
        lines.append("")
        lines.append(f"*Action Cost: {self.action_cost.value}*")
        return "\n".join(lines)


@dataclass
class StanceOutcome:
    """Result of an action that only sets a turn flag (disengage, dodge)."""

    actor: Participant
    action: ActionKind
    effects: list[str]
    action_cost: ActionCost

    def to_dict(self) -> dict[str, Any]:
        return {
            "action_type": self.action.value,
            "actor": {"id": self.actor.id, "name": self.actor.name},
            "effects": list(self.effects),
            "action_cost": self.action_cost.value,
        }

    def __str__(self) -> str:
        if self.action == ActionKind.DODGE:
            lines = [f"## 🛡️ {self.actor.name} Dodges!", "", "**Until next turn:**"]
        else:
            lines = [f"## 🏃 {self.actor.name} Disengages!", ""]
        lines.extend(f"- {effect}" for effect in self.effects)
        lines.append("")
        lines.append(f"*Action Cost: {self.action_cost.value}*")
        return "\n".join(lines)


@dataclass
class ContestOutcome:
    """Result of a grapple or shove contest."""

    actor: Participant
    target: Participant
    action: ActionKind
    actor_roll: int
    defender_roll: int
    action_cost: ActionCost
    shove_direction: ShoveDirection | None = None
    new_position: Position | None = None

    @property
    def success(self) -> bool:
        """Actor wins only on a strictly higher roll."""
        return self.actor_roll > self.defender_roll

    @property
    def effect(self) -> str:
        if self.action == ActionKind.GRAPPLE:
            return "Target grappled" if self.success else "Grapple failed"
        if not self.success:
            return "Shove failed"
        return "Target prone" if self.shove_direction == ShoveDirection.PRONE else "Target pushed 5ft"

    def to_dict(self) -> dict[str, Any]:
        data = {
            "action_type": self.action.value,
            "actor": {"id": self.actor.id, "name": self.actor.name},
            "target": {"id": self.target.id, "name": self.target.name},
            "contest": {
                "attacker_roll": self.actor_roll,
                "defender_roll": self.defender_roll,
                "success": self.success,
            },
            "effect": self.effect,
            "action_cost": self.action_cost.value,
        }
        if self.action == ActionKind.SHOVE:
            data["shove_direction"] = self.shove_direction.value if self.shove_direction else None
            data["new_position"] = self.new_position.to_dict() if self.new_position else None
        return data

    def __str__(self) -> str:
        verb = "Grapples" if self.action == ActionKind.GRAPPLE else "Shoves"
        icon = "✅" if self.success else "❌"
        lines = [
            f"## {icon} {self.actor.name} {verb} {self.target.name}",
            "",
            "### Contested Athletics",
            f"- **{self.actor.name}:** {self.actor_roll}",
            f"- **{self.target.name}:** {self.defender_roll}",
            "",
        ]

        if self.action == ActionKind.GRAPPLE:
            if self.success:
                lines.append(f"**Success!** {self.target.name} can be **grappled** (Speed 0, can attempt escape)")
            else:
                lines.append(f"**Failed!** {self.target.name} breaks free!")
        elif not self.success:
            lines.append(f"**Failed!** {self.target.name} holds their ground!")
        elif self.shove_direction == ShoveDirection.PRONE:
            lines.append(f"**Success!** {self.target.name} is knocked **prone**")
        else:
            lines.append(f"**Success!** {self.target.name} pushed 5ft away!")
            lines.append(f"New position: {self.target.position}")

        lines.append("")
        lines.append(f"*Action Cost: {self.action_cost.value}*")
        return "\n".join(lines)


@dataclass
class NotImplementedOutcome:
    """An action kind the resolver does not handle."""

    actor: Participant
    action: ActionKind
    supported: list[ActionKind]

    def to_dict(self) -> dict[str, Any]:
        return {
            "action_type": self.action.value,
            "actor": self.actor.name,
            "error": "Action type not implemented",
            "supported_actions": [kind.value for kind in self.supported],
        }

    def __str__(self) -> str:
        supported = ", ".join(kind.value for kind in self.supported)
        return "\n".join([
            f"## ⚠️ {self.actor.name} uses {self.action.value}",
            "",
            "*Action type not yet implemented*",
            "",
            f"**Supported actions:** {supported}",
        ])


ActionOutcome = AttackOutcome | DashOutcome | StanceOutcome | ContestOutcome | NotImplementedOutcome


class ActionResolver:
    """Resolves actions against an encounter's state.

    The resolver owns no state of its own: HP and positions live in the
    encounter, spent resources in the turn tracker, status effects in the
    condition ledger. All randomness comes from the injected roller.
    """

    def __init__(
        self,
        encounters: EncounterManager,
        conditions: ConditionLedger,
        turns: TurnTracker,
        roller: DiceRoller | None = None,
        config: CombatConfig | None = None,
    ):
        self.encounters = encounters
        self.conditions = conditions
        self.turns = turns
        self.roller = roller or DiceRoller()
        self.config = config or CombatConfig()

        self._handlers: dict[ActionKind, Callable[[Encounter, Participant, ActionRequest], ActionOutcome]] = {
            ActionKind.ATTACK: self._attack,
            ActionKind.DASH: self._dash,
            ActionKind.DISENGAGE: self._disengage,
            ActionKind.DODGE: self._dodge,
            ActionKind.GRAPPLE: self._grapple,
            ActionKind.SHOVE: self._shove,
        }

    @property
    def supported_actions(self) -> list[ActionKind]:
        return list(self._handlers)

    def execute(self, request: ActionRequest) -> ActionOutcome:
        """Resolve one action.

        Args:
            request: The action to resolve

        Returns:
            Outcome of the action; NotImplementedOutcome for unhandled kinds

        Raises:
            NotFoundError: Unknown encounter, actor or target
            PreconditionError: Missing target for a targeted action
            RuleViolationError: Movement beyond the remaining budget
            ValueError: Invalid damage expression
        """
        encounter = self.encounters.get(request.encounter_id)
        actor = encounter.require(request.actor, "Actor")

        handler = self._handlers.get(request.action)
        if handler is None:
            logger.info(f"{actor.name} attempted unsupported action {request.action.value}")
            return NotImplementedOutcome(actor, request.action, self.supported_actions)

        outcome = handler(encounter, actor, request)
        self.turns.get(encounter.id, actor.id).spend(request.action_cost)
        logger.info(f"Encounter {encounter.id}: {actor.name} {request.action.value} resolved")
        return outcome

    def effective_speed(self, participant: Participant) -> int:
        """Walking speed after condition effects."""
        stats = self.conditions.calculate_effective_stats(participant.id, participant.max_hp, participant.speed)
        return stats.speed.effective

    def _attack(self, encounter: Encounter, actor: Participant, request: ActionRequest) -> AttackOutcome:
        target = self._require_target(encounter, request)
        state = self.turns.get(encounter.id, actor.id)

        # Everything that can fail is checked before anything changes
        pool = self.roller.parse_notation(request.damage_expression) if request.damage_expression else None
        if request.move_to is not None:
            state.check_movement(self._distance_feet(actor.position, request.move_to), self.effective_speed(actor))

        target_dodging = self.turns.get(encounter.id, target.id).is_dodging
        condition_sources = self.conditions.disadvantage_on(actor.id, "attack_rolls")
        disadvantage = request.disadvantage or target_dodging or bool(condition_sources)

        roll = self._roll_attack(request, disadvantage, target_dodging, condition_sources)
        critical = roll.value == 20
        critical_miss = roll.value == 1
        hit = critical or (not critical_miss and roll.value >= target.ac)

        hp_before = target.hp
        damage = None
        if hit and pool is not None:
            damage = self._roll_damage(request, pool, target, critical)
            target.take_damage(damage.amount)

        outcome = AttackOutcome(
            actor=actor,
            target=target,
            roll=roll,
            target_ac=target.ac,
            hit=hit,
            critical=critical,
            critical_miss=critical_miss,
            hp_before=hp_before,
            action_cost=request.action_cost,
            damage=damage,
            advantage=request.advantage,
            disadvantage=disadvantage,
            weapon=request.weapon,
        )

        if request.move_to is not None:
            outcome.opportunity_attacks = self._opportunity_attacks(encounter, actor, request.move_to, state)
            outcome.movement = self._move(actor, request.move_to, state)

        return outcome

    def _roll_attack(
        self,
        request: ActionRequest,
        disadvantage: bool,
        target_dodging: bool,
        condition_sources: list[str],
    ) -> AttackRoll:
        if request.manual_attack_roll is not None:
            return AttackRoll(request.manual_attack_roll, RollMode.MANUAL, [request.manual_attack_roll])

        if request.advantage and disadvantage:
            result = self.roller.roll_d20()
            return AttackRoll(result.total, RollMode.CANCELLED, result.rolls)

        if request.advantage:
            result = self.roller.roll_d20(RollType.ADVANTAGE)
            return AttackRoll(result.total, RollMode.ADVANTAGE, result.rolls, "advantage")

        if disadvantage:
            if target_dodging:
                reason = "target dodging"
            elif condition_sources and not request.disadvantage:
                reason = ", ".join(condition_sources)
            else:
                reason = "disadvantage"
            result = self.roller.roll_d20(RollType.DISADVANTAGE)
            return AttackRoll(result.total, RollMode.DISADVANTAGE, result.rolls, reason)

        result = self.roller.roll_d20()
        return AttackRoll(result.total, RollMode.NORMAL, result.rolls)

    def _roll_damage(self, request: ActionRequest, pool: DicePool, target: Participant, critical: bool) -> DamageRoll:
        if request.manual_damage_roll is not None:
            dice_total = request.manual_damage_roll * (2 if critical else 1)
            rolls = [request.manual_damage_roll] * (2 if critical else 1)
            manual = True
        else:
            rolls = list(self.roller.roll_pool(dice_only(pool)).kept)
            if critical:
                rolls.extend(self.roller.roll_pool(dice_only(pool)).kept)
            dice_total = sum(rolls)
            manual = False

        raw = max(0, dice_total + pool.modifier)
        amount = math.floor(raw * target.damage_multiplier(request.damage_type))
        logger.debug(f"Damage {request.damage_expression}: raw {raw}, applied {amount} {request.damage_type.value}")
        return DamageRoll(
            expression=request.damage_expression or "",
            damage_type=request.damage_type,
            rolls=rolls,
            modifier=pool.modifier,
            raw=raw,
            amount=amount,
            critical=critical,
            manual=manual,
        )

    def _dash(self, encounter: Encounter, actor: Participant, request: ActionRequest) -> DashOutcome:
        state = self.turns.get(encounter.id, actor.id)
        speed = self.effective_speed(actor)

        if request.move_to is not None:
            dashed = replace(state, has_dashed=True)
            dashed.check_movement(self._distance_feet(actor.position, request.move_to), speed)

        state.has_dashed = True
        outcome = DashOutcome(actor=actor, speed=speed, action_cost=request.action_cost)

        if request.move_to is not None:
            outcome.opportunity_attacks = self._opportunity_attacks(encounter, actor, request.move_to, state)
            outcome.movement = self._move(actor, request.move_to, state)

        return outcome

    def _disengage(self, encounter: Encounter, actor: Participant, request: ActionRequest) -> StanceOutcome:
        self.turns.get(encounter.id, actor.id).disengaged_this_turn = True
        return StanceOutcome(
            actor=actor,
            action=ActionKind.DISENGAGE,
            effects=["Movement will **not provoke opportunity attacks** this turn"],
            action_cost=request.action_cost,
        )

    def _dodge(self, encounter: Encounter, actor: Participant, request: ActionRequest) -> StanceOutcome:
        self.turns.get(encounter.id, actor.id).is_dodging = True
        return StanceOutcome(
            actor=actor,
            action=ActionKind.DODGE,
            effects=["Attacks against you have **disadvantage**", "DEX saves have **advantage**"],
            action_cost=request.action_cost,
        )

    def _grapple(self, encounter: Encounter, actor: Participant, request: ActionRequest) -> ContestOutcome:
        target = self._require_target(encounter, request)
        actor_roll, defender_roll = self._contest(request)
        return ContestOutcome(
            actor=actor,
            target=target,
            action=ActionKind.GRAPPLE,
            actor_roll=actor_roll,
            defender_roll=defender_roll,
            action_cost=request.action_cost,
        )

    def _shove(self, encounter: Encounter, actor: Participant, request: ActionRequest) -> ContestOutcome:
        target = self._require_target(encounter, request)
        actor_roll, defender_roll = self._contest(request)
        outcome = ContestOutcome(
            actor=actor,
            target=target,
            action=ActionKind.SHOVE,
            actor_roll=actor_roll,
            defender_roll=defender_roll,
            action_cost=request.action_cost,
            shove_direction=request.shove_direction,
        )

        if outcome.success and request.shove_direction == ShoveDirection.AWAY:
            target.position = target.position.step_away_from(actor.position)
            outcome.new_position = target.position
            logger.debug(f"{target.name} shoved to {target.position}")

        return outcome

    def _contest(self, request: ActionRequest) -> tuple[int, int]:
        if request.manual_attack_roll is not None:
            actor_roll = request.manual_attack_roll
        else:
            actor_roll = self.roller.roll_d20().total
        defender_roll = self.roller.roll_d20().total
        return actor_roll, defender_roll

    def _opportunity_attacks(
        self,
        encounter: Encounter,
        mover: Participant,
        destination: Position,
        state: TurnState,
    ) -> list[OpportunityAttack]:
        """Resolve reactions from every opponent the move leaves behind.

        Each attack is a single d20 compared straight against the mover's AC.
        Natural 20 and natural 1 carry no special meaning here. The reaction
        is spent whether the attack hits or misses.
        """
        if state.disengaged_this_turn:
            return []

        reach = self.config.melee_reach
        attacks = []
        for opponent in encounter.opponents_of(mover):
            if opponent.is_down or self.conditions.is_incapacitated(opponent.id):
                continue
            opponent_state = self.turns.get(encounter.id, opponent.id)
            if opponent_state.reaction_used:
                continue
            if mover.position.chebyshev(opponent.position) > reach:
                continue
            if destination.chebyshev(opponent.position) <= reach:
                continue

            opponent_state.reaction_used = True
            roll = self.roller.roll_d20()
            hit = roll.total >= mover.ac
            damage = 0
            if hit:
                damage = mover.take_damage(self.roller.roll(self.config.opportunity_attack_damage).total)

            attack = OpportunityAttack(
                attacker_id=opponent.id,
                attacker_name=opponent.name,
                roll=roll.total,
                target_ac=mover.ac,
                hit=hit,
                damage=damage,
            )
            logger.debug(f"Opportunity attack {opponent.name} → {mover.name}: {attack}")
            attacks.append(attack)

        return attacks

    def _move(self, actor: Participant, destination: Position, state: TurnState) -> MovementResult:
        feet = self._distance_feet(actor.position, destination)
        remaining = state.spend_movement(feet, self.effective_speed(actor))
        start = actor.position
        actor.position = Position(destination.x, destination.y, destination.z)
        logger.debug(f"{actor.name} moved {start} → {actor.position} ({feet}ft)")
        return MovementResult(start=start, end=actor.position, feet=feet, remaining=remaining)

    def _distance_feet(self, start: Position, end: Position) -> int:
        return start.chebyshev(end) * self.config.grid_square_feet

    @staticmethod
    def _require_target(encounter: Encounter, request: ActionRequest) -> Participant:
        if not request.target:
            raise PreconditionError(f"{request.action.value} requires a target")
        return encounter.require(request.target, "Target")
