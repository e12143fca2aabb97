"""
Configuration management using Pydantic models loaded from YAML.
"""

import logging
from pathlib import Path

import pendulum
import yaml
from pydantic import BaseModel, field_validator

from .domain.conflict_validator import MAX_SLOTS_PER_WINDOW


class SchedulerConfig(BaseModel):
    """Scheduler configuration."""
    timezone: str = "UTC"
    max_slots_per_window: int = MAX_SLOTS_PER_WINDOW
    list_horizon_days: int = 30
    log_level: str = "INFO"

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Ensure the timezone is a known IANA identifier."""
        try:
            pendulum.timezone(value)
        except (ValueError, KeyError) as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator("max_slots_per_window")
    @classmethod
    def validate_max_slots(cls, value: int) -> int:
        """A window may never hold more than five slots."""
        if not 1 <= value <= MAX_SLOTS_PER_WINDOW:
            raise ValueError(
                f"max_slots_per_window must be between 1 and {MAX_SLOTS_PER_WINDOW}, got {value}"
            )
        return value

    @field_validator("list_horizon_days")
    @classmethod
    def validate_horizon(cls, value: int) -> int:
        """Ensure the default listing horizon is positive."""
        if value <= 0:
            raise ValueError("list_horizon_days must be greater than zero")
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return level

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "SchedulerConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            SchedulerConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**data)


def configure_logging(config: SchedulerConfig) -> None:
    """Install a basic root handler at the configured level."""
    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
