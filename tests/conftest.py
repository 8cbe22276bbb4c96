"""Shared fixtures for the encounter engine tests."""

import random

import pytest

from encounter_engine.config import AppConfig
from encounter_engine.engine import CombatEngine


class ScriptedRandom(random.Random):
    """Random source whose randint returns queued values in order."""

    def __init__(self):
        super().__init__(0)
        self.values: list[int] = []
        self.calls: list[tuple[int, int]] = []

    def queue(self, *values: int) -> "ScriptedRandom":
        self.values.extend(values)
        return self

    def randint(self, a: int, b: int) -> int:
        self.calls.append((a, b))
        if not self.values:
            raise AssertionError(f"Unexpected roll: randint({a}, {b})")
        value = self.values.pop(0)
        assert a <= value <= b, f"Scripted value {value} outside {a}..{b}"
        return value


@pytest.fixture
def scripted_rng():
    """A random source that only returns values queued by the test."""
    return ScriptedRandom()


@pytest.fixture
def engine(scripted_rng):
    """Combat engine driven by the scripted random source."""
    return CombatEngine(config=AppConfig(), rng=scripted_rng)


@pytest.fixture
def skirmish(engine, scripted_rng):
    """Fighter and wizard against two goblins; fighter acts first.

    Initiative rolls: fighter 15+2, goblin 10+1, wizard 8+1, archer 5+1.
    The fighter stands adjacent to the goblin; the archer stands far away.
    """
    scripted_rng.queue(15, 10, 8, 5)
    result = engine.create_encounter({
        "participants": [
            {"id": "fighter", "name": "Fighter", "hp": 45, "max_hp": 45, "ac": 18,
             "initiative_bonus": 2, "position": {"x": 5, "y": 5}},
            {"id": "goblin", "name": "Goblin", "hp": 7, "max_hp": 7, "ac": 13,
             "initiative_bonus": 1, "position": {"x": 6, "y": 5}, "is_enemy": True},
            {"id": "wizard", "name": "Wizard", "hp": 20, "max_hp": 20, "ac": 12,
             "initiative_bonus": 1, "position": {"x": 2, "y": 2}},
            {"id": "archer", "name": "Goblin Archer", "hp": 9, "max_hp": 9, "ac": 13,
             "initiative_bonus": 1, "position": {"x": 15, "y": 15}, "is_enemy": True},
        ],
    })
    assert result.success, result.error
    return result.data["encounter_id"]
