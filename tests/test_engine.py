"""Tests for the combat engine service boundary."""

from encounter_engine.config import AppConfig, CombatConfig, TerrainConfig
from encounter_engine.engine import CombatEngine
from encounter_engine.requests import ConditionRequest, CreateEncounterRequest, ExecuteActionRequest


class TestCreateEncounter:
    """Test encounter creation through the engine."""

    def test_fighter_and_goblin(self, engine, scripted_rng):
        """Test initiative order and the critical hit example."""
        scripted_rng.queue(13, 14)
        created = engine.create_encounter({
            "participants": [
                {"id": "fighter", "name": "Fighter", "hp": 45, "max_hp": 45, "ac": 18,
                 "initiative_bonus": 2, "position": {"x": 0, "y": 0}},
                {"id": "goblin", "name": "Goblin", "hp": 7, "max_hp": 7, "ac": 13,
                 "initiative_bonus": 1, "position": {"x": 1, "y": 0}, "is_enemy": True},
            ],
        })

        assert created.success
        assert [p["id"] for p in created.data["participants"]] == ["fighter", "goblin"]
        assert created.data["current_turn"] == "Fighter"

        attack = engine.execute_action({
            "encounter_id": created.data["encounter_id"],
            "actor_id": "fighter",
            "action_type": "attack",
            "target_id": "goblin",
            "manual_attack_roll": 20,
            "damage_expression": "1d8+3",
            "manual_damage_roll": 6,
        })

        assert attack.success
        assert attack.data["type"] == "action"
        assert attack.data["attack"]["critical"] is True
        assert attack.data["damage"]["amount"] == 15
        assert attack.data["target_hp"] == {"before": 7, "after": 0, "max": 7, "down": True}
        assert attack.suggestions == ["Target is down - consider next action"]

    def test_payload_and_display(self, engine, skirmish):
        """Test the created encounter payload."""
        result = engine.get_encounter(skirmish)

        assert result.data["round"] == 1
        assert result.data["lighting"] == "bright"
        assert result.data["terrain"] == {
            "width": 20, "height": 20, "obstacles": 0, "difficult_terrain": 0, "water": 0, "hazards": 0,
        }
        assert "Initiative Order" in result.display
        assert skirmish in result.display

    def test_terrain_and_model_request(self, engine, scripted_rng):
        """Test a typed request with terrain and surprise."""
        scripted_rng.queue(10)
        request = CreateEncounterRequest.model_validate({
            "participants": [{"id": "a", "name": "A", "hp": 5, "max_hp": 5, "position": {"x": 1, "y": 1}}],
            "terrain": {
                "width": 30, "height": 10, "obstacles": ["3,3"],
                "hazards": [{"position": "4,4", "type": "lava", "damage": "2d10", "dc": 15}],
            },
            "lighting": "dim",
            "surprise": ["a"],
        })

        result = engine.create_encounter(request)

        assert result.success
        assert result.data["terrain"]["hazards"] == 1
        assert result.data["participants"][0]["surprised"] is True
        assert "4,4: lava (DC 15) 2d10 damage" in result.display

    def test_duplicate_ids_fail(self, engine, scripted_rng):
        """Test duplicate ids come back as a failed result."""
        participant = {"id": "a", "name": "A", "hp": 5, "max_hp": 5, "position": {"x": 0, "y": 0}}
        result = engine.create_encounter({"participants": [participant, participant]})

        assert not result.success
        assert "Duplicate participant ID" in result.error
        assert result.data["error_kind"] == "precondition"

    def test_invalid_shape_fails(self, engine):
        """Test validation errors are reported, not raised."""
        result = engine.create_encounter({"participants": []})
        assert not result.success
        assert result.data["error_kind"] == "validation"

        result = engine.create_encounter({
            "participants": [{"id": "a", "name": "A", "hp": 5, "max_hp": 5, "position": {"x": 0, "y": 0}}],
            "terrain": {"width": 200},
        })
        assert not result.success
        assert "terrain.width" in result.error

    def test_config_defaults(self, scripted_rng):
        """Test unset stats and map size come from the config."""
        config = AppConfig(
            combat=CombatConfig(default_ac=12, default_speed=25, default_lighting="dim"),
            terrain=TerrainConfig(default_width=40, default_height=30),
        )
        engine = CombatEngine(config=config, rng=scripted_rng.queue(10))

        result = engine.create_encounter({
            "participants": [{"id": "a", "name": "A", "hp": 5, "max_hp": 5, "position": {"x": 0, "y": 0}}],
        })

        participant = result.data["participants"][0]
        assert (participant["ac"], participant["speed"]) == (12, 25)
        assert result.data["lighting"] == "dim"
        assert (result.data["terrain"]["width"], result.data["terrain"]["height"]) == (40, 30)

    def test_terrain_outside_configured_bounds(self, scripted_rng):
        """Test map sizes are checked against the configured bounds."""
        engine = CombatEngine(config=AppConfig(terrain=TerrainConfig(max_size=50)), rng=scripted_rng)

        result = engine.create_encounter({
            "participants": [{"id": "a", "name": "A", "hp": 5, "max_hp": 5, "position": {"x": 0, "y": 0}}],
            "terrain": {"width": 60},
        })

        assert not result.success
        assert result.error == "Terrain width must be between 5 and 50"

    def test_seeded_encounters_match(self):
        """Test the same seed yields the same initiative."""
        engine = CombatEngine(config=AppConfig())
        request = {
            "seed": "ambush",
            "participants": [
                {"id": p, "name": p, "hp": 5, "max_hp": 5, "position": {"x": 0, "y": 0}} for p in "abcde"
            ],
        }
        first = engine.create_encounter(request).data["participants"]
        second = engine.create_encounter(request).data["participants"]
        assert [p["initiative"] for p in first] == [p["initiative"] for p in second]


class TestExecuteAction:
    """Test action execution through the engine."""

    def test_unknown_encounter(self, engine):
        """Test unknown encounters are a not-found failure."""
        result = engine.execute_action({"encounter_id": "nope", "actor_id": "a", "action_type": "dodge"})
        assert not result.success
        assert result.data["error_kind"] == "not_found"

    def test_not_implemented(self, engine, skirmish):
        """Test unsupported actions report the supported list."""
        result = engine.execute_action({"encounter_id": skirmish, "actor_name": "wizard", "action_type": "cast_spell"})

        assert not result.success
        assert result.error == "Action type not implemented"
        assert "grapple" in result.data["supported_actions"]
        assert "Supported actions" in result.display

    def test_movement_beyond_budget(self, engine, skirmish):
        """Test over-budget movement fails and leaves position alone."""
        result = engine.execute_action(ExecuteActionRequest(
            encounter_id=skirmish, actor_id="wizard", action_type="dash", move_to={"x": 2, "y": 15},
        ))

        assert not result.success
        assert "Insufficient movement" in result.error
        assert result.data["error_kind"] == "rule_violation"
        wizard = engine.encounters.get_participant(skirmish, "wizard")
        assert (wizard.position.x, wizard.position.y) == (2, 2)

    def test_opportunity_attack_reported(self, engine, skirmish, scripted_rng):
        """Test opportunity attacks appear in the payload and display."""
        scripted_rng.queue(19, 3)

        result = engine.execute_action({
            "encounter_id": skirmish, "actor_id": "fighter", "action_type": "dash", "move_to": {"x": 5, "y": 8},
        })

        assert result.success
        assert result.data["opportunity_attacks"] == [
            {"attacker": "Goblin", "attacker_id": "goblin", "roll": 19, "hit": True, "damage": 5},
        ]
        assert "Opportunity Attacks" in result.display

    def test_bad_damage_expression(self, engine, skirmish):
        """Test invalid dice notation is reported as a failure."""
        result = engine.execute_action({
            "encounter_id": skirmish, "actor_id": "fighter", "action_type": "attack",
            "target_id": "goblin", "manual_attack_roll": 15, "damage_expression": "1d",
        })
        assert not result.success
        assert "Invalid dice notation" in result.error


class TestManageCondition:
    """Test condition operations through the engine."""

    def test_add_and_query(self, engine):
        """Test adding then querying a condition."""
        added = engine.manage_condition({
            "target_id": "hero", "operation": "add", "condition": "poisoned",
            "source": "Giant spider", "duration": 2,
        })
        assert added.success
        assert added.data["status"] == "added"
        assert "Condition Added" in added.display

        query = engine.manage_condition(ConditionRequest(target_id="hero", operation="query"))
        assert query.data["conditions"] == [{
            "condition": "poisoned", "custom": False, "source": "Giant spider", "duration": 2,
            "rounds_remaining": 2, "exhaustion_level": None, "save_dc": None, "save_ability": None,
        }]

    def test_already_active(self, engine):
        """Test duplicate adds report already active."""
        engine.manage_condition({"target_id": "hero", "operation": "add", "condition": "prone"})
        result = engine.manage_condition({"target_id": "hero", "operation": "add", "condition": "prone"})
        assert result.success
        assert result.data["status"] == "already_active"

    def test_remove_missing_fails(self, engine):
        """Test removing an absent condition is a failed result."""
        result = engine.manage_condition({"target_id": "hero", "operation": "remove", "condition": "blinded"})
        assert not result.success
        assert "Condition Not Found" in result.display

    def test_add_requires_condition(self, engine):
        """Test add without a condition is a precondition failure."""
        result = engine.manage_condition({"target_id": "hero", "operation": "add"})
        assert not result.success
        assert result.data["error_kind"] == "precondition"

    def test_unknown_operation(self, engine):
        """Test an unknown operation is rejected."""
        result = engine.manage_condition({"target_id": "hero", "operation": "explode"})
        assert not result.success

    def test_symbolic_duration(self, engine):
        """Test symbolic durations pass through."""
        result = engine.manage_condition({
            "target_id": "hero", "operation": "add", "condition": "charmed", "duration": "concentration",
        })
        assert result.data["conditions"][0]["duration"] == "concentration"
        assert result.data["conditions"][0]["rounds_remaining"] is None

    def test_exhaustion_display(self, engine):
        """Test exhaustion levels render their effects."""
        result = engine.manage_condition({
            "target_id": "hero", "operation": "add", "condition": "exhaustion", "exhaustion_levels": 6,
        })
        assert "Exhaustion Added" in result.display
        assert "Level 6: Death" in result.display

    def test_tick(self, engine):
        """Test ticking reports expired conditions."""
        engine.manage_condition({"target_id": "hero", "operation": "add", "condition": "blinded", "duration": 1})
        result = engine.manage_condition({"target_id": "hero", "operation": "tick"})
        assert [c["condition"] for c in result.data["expired"]] == ["blinded"]

    def test_condition_immunity(self, engine, scripted_rng):
        """Test participants immune to a condition reject it."""
        scripted_rng.queue(10)
        created = engine.create_encounter({
            "participants": [{
                "id": "golem", "name": "Iron Golem", "hp": 50, "max_hp": 50,
                "position": {"x": 0, "y": 0}, "condition_immunities": ["poisoned"],
            }],
        })

        result = engine.manage_condition({
            "target_id": "golem", "operation": "add", "condition": "poisoned",
            "encounter_id": created.data["encounter_id"],
        })

        assert not result.success
        assert "Iron Golem is immune to poisoned" in result.error
        assert engine.conditions.query("golem") == []

    def test_batch(self, engine):
        """Test batch operations succeed or fail independently."""
        result = engine.manage_condition({"batch": [
            {"target_id": "a", "operation": "add", "condition": "prone"},
            {"target_id": "b", "operation": "remove", "condition": "prone"},
            {"target_id": "c", "operation": "add", "condition": "exhaustion", "exhaustion_levels": 2},
        ]})

        assert result.success
        assert [r["success"] for r in result.data["results"]] == [True, False, True]
        assert (result.data["succeeded"], result.data["failed"]) == (2, 1)
        assert "2/3" in result.display

    def test_batch_limit(self):
        """Test batches over the configured size are rejected."""
        engine = CombatEngine(config=AppConfig(combat=CombatConfig(max_batch_size=2)))
        ops = [{"target_id": str(i), "operation": "query"} for i in range(3)]

        result = engine.manage_condition({"batch": ops})

        assert not result.success
        assert result.error == "Batch exceeds 2 operations"

    def test_batch_limit_can_be_raised(self):
        """Test a larger configured batch size is honoured."""
        engine = CombatEngine(config=AppConfig(combat=CombatConfig(max_batch_size=30)))
        ops = [{"target_id": str(i), "operation": "query"} for i in range(25)]

        result = engine.manage_condition({"batch": ops})

        assert result.success
        assert result.data["succeeded"] == 25

    def test_custom_effects_apply(self, engine, skirmish):
        """Test a custom effect override changes effective stats."""
        added = engine.manage_condition({
            "target_id": "wizard", "operation": "add", "condition": "slowed", "encounter_id": skirmish,
            "mechanical_effects": {"speed_multiplier": 0.5, "ac_modifier": -2},
        })
        assert added.success

        stats = engine.effective_stats("wizard", skirmish)

        assert stats.data["speed"]["effective"] == 15
        assert stats.data["ac"]["effective"] == 10

    def test_mistyped_custom_effect_rejected(self, engine, skirmish):
        """Test a non-numeric multiplier fails validation and leaves the target usable."""
        result = engine.manage_condition({
            "target_id": "wizard", "operation": "add", "condition": "slowed", "encounter_id": skirmish,
            "mechanical_effects": {"speed_multiplier": "half"},
        })

        assert not result.success
        assert result.data["error_kind"] == "validation"
        assert "mechanical_effects.speed_multiplier" in result.error
        assert engine.conditions.query("wizard") == []

        stats = engine.effective_stats("wizard", skirmish)
        assert stats.success
        assert stats.data["speed"]["effective"] == 30

    def test_unknown_custom_effect_rejected(self, engine):
        """Test unknown effect names are reported instead of ignored."""
        result = engine.manage_condition({
            "target_id": "hero", "operation": "add", "condition": "slowed",
            "mechanical_effects": {"speedMultiplier": 0.5},
        })

        assert not result.success
        assert "mechanical_effects.speedMultiplier" in result.error
        assert engine.conditions.query("hero") == []


class TestAdvanceTurn:
    """Test turn advancement."""

    def test_advance_resets_turn_state(self, engine, skirmish):
        """Test the next participant starts with a fresh turn."""
        engine.execute_action({"encounter_id": skirmish, "actor_id": "goblin", "action_type": "dodge"})

        result = engine.advance_turn({"encounter_id": skirmish})

        assert result.data["current"]["id"] == "goblin"
        assert engine.turns.get(skirmish, "goblin").is_dodging is False

    def test_round_wraps(self, engine, skirmish):
        """Test passing the last participant starts a new round."""
        for _ in range(3):
            engine.advance_turn({"encounter_id": skirmish})

        result = engine.advance_turn({"encounter_id": skirmish})

        assert result.data["new_round"] is True
        assert result.data["round"] == 2
        assert result.data["current"]["id"] == "fighter"
        assert "Round 2" in result.display

    def test_ending_turn_ticks_conditions(self, engine, skirmish):
        """Test the ending participant's conditions count down."""
        engine.manage_condition({"target_id": "fighter", "operation": "add", "condition": "blinded", "duration": 1})

        result = engine.advance_turn({"encounter_id": skirmish})

        assert [c["condition"] for c in result.data["expired_conditions"]] == ["blinded"]
        assert not engine.conditions.has("fighter", "blinded")

    def test_skips_downed_enemy_and_reminds_death_save(self, engine, skirmish):
        """Test downed enemies are skipped and downed allies roll death saves."""
        engine.encounters.get_participant(skirmish, "goblin").set_hp(0)
        engine.encounters.get_participant(skirmish, "wizard").set_hp(0)

        result = engine.advance_turn({"encounter_id": skirmish})

        assert result.data["current"]["id"] == "wizard"
        assert result.data["skipped"] == ["goblin"]
        assert result.data["death_save"] is True
        assert "death saving throw" in result.display


class TestEffectiveStats:
    """Test effective stats through the engine."""

    def test_poisoned_participant(self, engine, skirmish):
        """Test poisoned leaves the numbers alone."""
        engine.manage_condition({"target_id": "fighter", "operation": "add", "condition": "poisoned"})

        result = engine.effective_stats("fighter", skirmish)

        assert result.data["max_hp"] == {"base": 45, "effective": 45, "modified": False}
        assert result.data["ac"]["effective"] == 18
        assert any("disadvantage on attack_rolls, ability_checks" in n for n in result.data["condition_effects"])

    def test_unknown_participant(self, engine, skirmish):
        """Test an unknown participant fails."""
        result = engine.effective_stats("dragon", skirmish)
        assert not result.success


class TestClear:
    """Test resetting the engine."""

    def test_clear(self, engine, skirmish):
        """Test all stores are emptied."""
        engine.manage_condition({"target_id": "fighter", "operation": "add", "condition": "prone"})

        engine.clear()

        assert not engine.get_encounter(skirmish).success
        assert engine.conditions.query("fighter") == []
