"""Tests for configuration management."""

import logging
import tempfile
from pathlib import Path

from encounter_engine import config as config_module
from encounter_engine.config import (
    AppConfig,
    CombatConfig,
    DiceConfig,
    LoggingConfig,
    TerrainConfig,
    configure_logging,
    load_config,
    reload_config,
    save_config,
)


class TestCombatConfig:
    """Test combat configuration."""

    def test_default_values(self):
        """Test default combat config."""
        config = CombatConfig()
        assert config.default_ac == 10
        assert config.default_speed == 30
        assert config.grid_square_feet == 5
        assert config.melee_reach == 1
        assert config.opportunity_attack_damage == "1d6+2"
        assert config.max_batch_size == 20

    def test_custom_values(self):
        """Test custom combat config."""
        config = CombatConfig(melee_reach=2, opportunity_attack_damage="1d8+3")
        assert config.melee_reach == 2
        assert config.opportunity_attack_damage == "1d8+3"


class TestTerrainConfig:
    """Test terrain configuration."""

    def test_default_values(self):
        """Test default map bounds."""
        config = TerrainConfig()
        assert (config.default_width, config.default_height) == (20, 20)
        assert (config.min_size, config.max_size) == (5, 100)


class TestAppConfig:
    """Test main application configuration."""

    def test_default_config(self):
        """Test default app config creation."""
        config = AppConfig()
        assert isinstance(config.combat, CombatConfig)
        assert isinstance(config.terrain, TerrainConfig)
        assert isinstance(config.dice, DiceConfig)
        assert isinstance(config.logging, LoggingConfig)
        assert config.dice.seed is None
        assert config.logging.level == "INFO"


class TestConfigFileOperations:
    """Test config file save/load operations."""

    def test_save_and_load_config(self):
        """Test saving and loading configuration."""
        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "test_config.yaml"

            config = AppConfig(
                combat=CombatConfig(default_ac=12, max_batch_size=5),
                dice=DiceConfig(seed=42),
            )

            save_config(config, config_path)
            assert config_path.exists()

            loaded = load_config(config_path)
            assert loaded.combat.default_ac == 12
            assert loaded.combat.max_batch_size == 5
            assert loaded.dice.seed == 42

    def test_load_nonexistent_config(self):
        """Test loading returns defaults when file doesn't exist."""
        config = load_config(Path("/nonexistent/path/config.yaml"))
        assert config == AppConfig()

    def test_load_partial_config(self):
        """Test missing sections keep their defaults."""
        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "partial.yaml"
            config_path.write_text("combat:\n  melee_reach: 2\n")

            config = load_config(config_path)

            assert config.combat.melee_reach == 2
            assert config.combat.default_speed == 30
            assert config.terrain.default_width == 20

    def test_load_empty_file(self):
        """Test an empty file gives defaults."""
        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "empty.yaml"
            config_path.write_text("")
            assert load_config(config_path) == AppConfig()

    def test_config_yaml_format(self):
        """Test that saved config is valid YAML."""
        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "test.yaml"

            save_config(AppConfig(), config_path)

            content = config_path.read_text()
            assert "combat:" in content
            assert "terrain:" in content
            assert "opportunity_attack_damage: 1d6+2" in content

    def test_reload_replaces_global(self, monkeypatch):
        """Test reload swaps the cached global config."""
        monkeypatch.setattr(config_module, "_config", None)
        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "reload.yaml"
            save_config(AppConfig(dice=DiceConfig(seed=7)), config_path)

            reloaded = reload_config(config_path)

            assert reloaded.dice.seed == 7
            assert config_module.get_config() is reloaded


class TestConfigureLogging:
    """Test logging setup from config."""

    def test_level_applied(self, monkeypatch):
        """Test the configured level reaches basicConfig."""
        calls = {}
        monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.update(kwargs))

        configure_logging(AppConfig(logging=LoggingConfig(level="debug")))

        assert calls["level"] == logging.DEBUG
        assert calls["format"] == LoggingConfig().format

    def test_unknown_level_falls_back_to_info(self, monkeypatch):
        """Test an unknown level name uses INFO."""
        calls = {}
        monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.update(kwargs))

        configure_logging(AppConfig(logging=LoggingConfig(level="chatty")))

        assert calls["level"] == logging.INFO
