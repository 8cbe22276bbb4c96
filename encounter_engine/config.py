"""Configuration management for the encounter engine."""

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field


class CombatConfig(BaseModel):
    """Combat rules configuration."""

    default_ac: int = 10
    default_speed: int = 30
    default_size: str = "medium"
    default_lighting: str = "bright"
    grid_square_feet: int = 5
    melee_reach: int = 1  # squares
    opportunity_attack_damage: str = "1d6+2"
    max_batch_size: int = 20


class TerrainConfig(BaseModel):
    """Battle map configuration."""

    default_width: int = 20
    default_height: int = 20
    min_size: int = 5
    max_size: int = 100


class DiceConfig(BaseModel):
    """Dice roller configuration."""

    seed: int | None = None


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class AppConfig(BaseModel):
    """Main application configuration."""

    combat: CombatConfig = Field(default_factory=CombatConfig)
    terrain: TerrainConfig = Field(default_factory=TerrainConfig)
    dice: DiceConfig = Field(default_factory=DiceConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: Path | str | None = None) -> AppConfig:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config file. Defaults to ./config.yaml

    Returns:
        AppConfig instance with loaded or default values
    """
    if config_path is None:
        config_path = Path("config.yaml")
    else:
        config_path = Path(config_path)

    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return AppConfig(**data)

    return AppConfig()


def save_config(config: AppConfig, config_path: Path | str | None = None) -> None:
    """Save configuration to YAML file.

    Args:
        config: AppConfig instance to save
        config_path: Path to save to. Defaults to ./config.yaml
    """
    if config_path is None:
        config_path = Path("config.yaml")
    else:
        config_path = Path(config_path)

    with open(config_path, "w", encoding="utf-8") as f:
        yaml.dump(config.model_dump(), f, default_flow_style=False, sort_keys=False)


def configure_logging(config: AppConfig) -> None:
    """Apply the logging section to the root logger."""
    logging.basicConfig(
        level=getattr(logging, config.logging.level.upper(), logging.INFO),
        format=config.logging.format,
    )


# Global config instance
_config: AppConfig | None = None


def get_config() -> AppConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config(config_path: Path | str | None = None) -> AppConfig:
    """Reload configuration from disk.

    Args:
        config_path: Path to config file

    Returns:
        Newly loaded AppConfig instance
    """
    global _config
    _config = load_config(config_path)
    return _config
