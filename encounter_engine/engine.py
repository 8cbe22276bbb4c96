"""Combat engine service: the single entry point for encounter operations."""

import logging
import random
from typing import Any, Callable

from pydantic import BaseModel, ValidationError

from .config import AppConfig, get_config
from .display import (
    render_batch,
    render_condition_query,
    render_condition_update,
    render_encounter,
    render_stats,
    render_tick,
    render_turn,
)
from .game.actions import ActionResolver, NotImplementedOutcome
from .game.conditions import ConditionLedger, UpdateStatus, parse_condition
from .game.dice import DiceRoller
from .game.encounter import EncounterManager, Lighting, Participant
from .game.errors import CombatError, NotFoundError, PreconditionError
from .game.turns import TurnTracker
from .requests import (
    AdvanceTurnRequest,
    ConditionBatchRequest,
    ConditionOperation,
    ConditionRequest,
    CreateEncounterRequest,
    ExecuteActionRequest,
    TerrainSpec,
)
from .results import OperationResult

logger = logging.getLogger(__name__)


def _validate(model: type[BaseModel], request: BaseModel | dict[str, Any]) -> Any:
    if isinstance(request, model):
        return request
    if isinstance(request, BaseModel):
        request = request.model_dump()
    return model.model_validate(request)


class CombatEngine:
    """Owns all combat state and exposes the engine operations.

    One instance holds one set of stores. Operations never raise: rule
    and lookup failures come back as a failed OperationResult.
    """

    def __init__(self, config: AppConfig | None = None, rng: random.Random | None = None):
        """Initialize the engine.

        Args:
            config: Application config. Uses the global config if not provided.
            rng: Random source for every roll. Seeded from config if not provided.
        """
        self.config = config or get_config()
        self.roller = DiceRoller(rng or random.Random(self.config.dice.seed))
        self.conditions = ConditionLedger()
        self.turns = TurnTracker()
        self.encounters = EncounterManager(self.roller)
        self.resolver = ActionResolver(
            self.encounters,
            self.conditions,
            self.turns,
            self.roller,
            self.config.combat,
        )

    def _guard(self, operation: str, func: Callable[[], OperationResult]) -> OperationResult:
        try:
            return func()
        except ValidationError as e:
            message = f"Invalid {operation} request: " + "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            logger.warning(message)
            return OperationResult.fail(message, data={"type": operation, "error_kind": "validation"})
        except CombatError as e:
            logger.warning(f"{operation} failed: {e}")
            return OperationResult.fail(str(e), data={"type": operation, "error_kind": e.kind})
        except ValueError as e:
            logger.warning(f"{operation} failed: {e}")
            return OperationResult.fail(str(e), data={"type": operation, "error_kind": "invalid_value"})

    # Conditions

    def manage_condition(
        self,
        request: ConditionRequest | ConditionBatchRequest | dict[str, Any],
    ) -> OperationResult:
        """Add, remove, query or tick conditions, singly or in a batch."""
        if isinstance(request, ConditionBatchRequest) or (isinstance(request, dict) and "batch" in request):
            return self._guard("condition", lambda: self._condition_batch(_validate(ConditionBatchRequest, request)))
        return self._guard("condition", lambda: self._condition_op(_validate(ConditionRequest, request)))

    def _condition_batch(self, batch: ConditionBatchRequest) -> OperationResult:
        limit = self.config.combat.max_batch_size
        if len(batch.batch) > limit:
            raise PreconditionError(f"Batch exceeds {limit} operations")

        results = []
        for op in batch.batch:
            result = self._guard("condition", lambda op=op: self._condition_op(op))
            entry = {
                "target_id": op.target_id,
                "operation": op.operation.value,
                "success": result.success,
                "data": result.data,
            }
            if result.success:
                entry["summary"] = result.display.splitlines()[0].lstrip("# ")
            else:
                entry["error"] = result.error
            results.append(entry)

        succeeded = sum(1 for r in results if r["success"])
        data = {
            "type": "condition",
            "operation": "batch",
            "results": results,
            "succeeded": succeeded,
            "failed": len(results) - succeeded,
        }
        return OperationResult.ok(data, render_batch(results))

    def _condition_target(self, op: ConditionRequest) -> tuple[str, Participant | None]:
        if op.encounter_id is None:
            return op.target_id, None
        participant = self.encounters.get(op.encounter_id).find(op.target_id)
        if participant is None:
            return op.target_id, None
        return participant.name, participant

    def _condition_op(self, op: ConditionRequest) -> OperationResult:
        name, participant = self._condition_target(op)
        target_id = participant.id if participant else op.target_id
        base = {"type": "condition", "operation": op.operation.value, "target": {"id": target_id, "name": name}}

        if op.operation == ConditionOperation.QUERY:
            conditions = self.conditions.query(target_id)
            data = {**base, "conditions": [c.to_dict() for c in conditions]}
            return OperationResult.ok(data, render_condition_query(name, conditions))

        if op.operation == ConditionOperation.TICK:
            report = self.conditions.tick(target_id)
            data = {
                **base,
                "expired": [c.to_dict() for c in report.expired],
                "remaining": [c.to_dict() for c in report.remaining],
            }
            return OperationResult.ok(data, render_tick(name, report))

        if not op.condition:
            raise PreconditionError(f"condition is required for {op.operation.value}")

        if op.operation == ConditionOperation.ADD:
            kind = parse_condition(op.condition)
            if participant is not None and participant.is_immune_to(kind.value):
                raise PreconditionError(f"{name} is immune to {kind.value}")
            effects = op.mechanical_effects.to_effect() if op.mechanical_effects else None
            update = self.conditions.add(
                target_id,
                kind,
                source=op.source,
                duration=op.duration,
                save_dc=op.save_dc,
                save_ability=op.save_ability,
                exhaustion_levels=op.exhaustion_levels,
                mechanical_effects=effects,
                description=op.description,
            )
        else:
            update = self.conditions.remove(target_id, op.condition, exhaustion_levels=op.exhaustion_levels)

        data = {**base, "status": update.status.value, "conditions": [c.to_dict() for c in update.conditions]}
        display = render_condition_update(update, name)
        if update.status == UpdateStatus.NOT_FOUND:
            logger.warning(f"Condition {op.condition} not found on {target_id}")
            return OperationResult.fail(f"{name} does not have {op.condition}", data=data, display=display)
        return OperationResult.ok(data, display)

    # Encounters

    def create_encounter(self, request: CreateEncounterRequest | dict[str, Any]) -> OperationResult:
        """Create an encounter and roll initiative."""
        return self._guard("encounter", lambda: self._create_encounter(_validate(CreateEncounterRequest, request)))

    def _create_encounter(self, request: CreateEncounterRequest) -> OperationResult:
        combat = self.config.combat
        terrain = request.terrain or TerrainSpec()
        encounter = self.encounters.create(
            [spec.to_participant(combat) for spec in request.participants],
            terrain=terrain.to_terrain(self.config.terrain),
            lighting=request.lighting or Lighting(combat.default_lighting),
            surprise=request.surprise,
            seed=request.seed,
        )
        data = {"type": "encounter", **encounter.to_dict()}
        suggestions = ["Execute an attack action", "Query conditions on combatants", "Advance the turn"]
        return OperationResult.ok(data, render_encounter(encounter), suggestions)

    def get_encounter(self, encounter_id: str) -> OperationResult:
        """Snapshot of an encounter with conditions and turn state."""
        return self._guard("encounter", lambda: self._get_encounter(encounter_id))

    def _get_encounter(self, encounter_id: str) -> OperationResult:
        encounter = self.encounters.get(encounter_id)
        data = {"type": "encounter", **encounter.to_dict()}
        for entry in data["participants"]:
            entry["conditions"] = [c.label for c in self.conditions.query(entry["id"])]
        data["turn_states"] = self.turns.snapshot(encounter.id)
        return OperationResult.ok(data, render_encounter(encounter, title="## ⚔️ Encounter Status"))

    def advance_turn(self, request: AdvanceTurnRequest | dict[str, Any]) -> OperationResult:
        """End the current turn and start the next participant's."""
        return self._guard("turn", lambda: self._advance_turn(_validate(AdvanceTurnRequest, request)))

    def _advance_turn(self, request: AdvanceTurnRequest) -> OperationResult:
        encounter = self.encounters.get(request.encounter_id)
        ending = encounter.current_participant
        if ending is None:
            raise NotFoundError(f"Encounter has no participants: {encounter.id}")

        advance = self.encounters.advance_turn(encounter)
        report = self.conditions.tick(ending.id)
        self.turns.reset(encounter.id, advance.current.id)

        death_save = not advance.current.is_enemy and advance.current.is_down
        data = {
            "type": "turn",
            "encounter_id": encounter.id,
            "round": advance.round,
            "new_round": advance.new_round,
            "previous": {"id": advance.previous.id, "name": advance.previous.name},
            "current": {"id": advance.current.id, "name": advance.current.name},
            "skipped": [p.id for p in advance.skipped],
            "expired_conditions": [c.to_dict() for c in report.expired],
            "death_save": death_save,
        }
        suggestions = ["Roll a death saving throw"] if death_save else []
        return OperationResult.ok(data, render_turn(advance, report, death_save), suggestions)

    # Actions

    def execute_action(self, request: ExecuteActionRequest | dict[str, Any]) -> OperationResult:
        """Resolve one action in an encounter."""
        return self._guard("action", lambda: self._execute_action(_validate(ExecuteActionRequest, request)))

    def _execute_action(self, request: ExecuteActionRequest) -> OperationResult:
        outcome = self.resolver.execute(request.to_action_request())
        data = {"type": "action", **outcome.to_dict()}

        if isinstance(outcome, NotImplementedOutcome):
            return OperationResult.fail("Action type not implemented", data=data, display=str(outcome))

        suggestions = ["Continue combat"]
        target = getattr(outcome, "target", None)
        if target is not None and target.is_down:
            suggestions = ["Target is down - consider next action"]
        return OperationResult.ok(data, str(outcome), suggestions)

    # Stats

    def effective_stats(self, target_id: str, encounter_id: str) -> OperationResult:
        """Condition-modified max HP, speed and AC for a participant."""
        return self._guard("stats", lambda: self._effective_stats(target_id, encounter_id))

    def _effective_stats(self, target_id: str, encounter_id: str) -> OperationResult:
        participant = self.encounters.get_participant(encounter_id, target_id)
        stats = self.conditions.calculate_effective_stats(
            participant.id,
            max_hp=participant.max_hp,
            speed=participant.speed,
            ac=participant.ac,
        )
        data = {"type": "stats", **stats.to_dict()}
        return OperationResult.ok(data, render_stats(participant.name, stats))

    def clear(self) -> None:
        """Reset every store."""
        self.encounters.clear()
        self.conditions.clear()
        self.turns.clear()
