"""
Configuration management using Pydantic models loaded from YAML.
"""

from pathlib import Path
from typing import List

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.timerange import TIME_PATTERN, to_minutes


def _check_time(value: str) -> str:
    if not TIME_PATTERN.match(value):
        raise ValueError(f"Time must be in HH:MM format, got {value!r}")
    return value


class BookingPolicyConfig(BaseModel):
    """Rules applied to every booking and reschedule."""
    slot_granularity_minutes: int = 15
    min_duration_minutes: int = 15
    max_duration_minutes: int = 240
    business_start: str = "08:00"
    business_end: str = "18:00"
    min_advance_hours: float = 2
    max_advance_days: int = 90

    @field_validator("business_start", "business_end")
    @classmethod
    def validate_time(cls, value: str) -> str:
        """Ensure business hours are HH:MM strings."""
        return _check_time(value)

    @field_validator("slot_granularity_minutes", "min_duration_minutes", "max_duration_minutes")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Durations must be greater than zero")
        return value

    @field_validator("min_advance_hours", "max_advance_days")
    @classmethod
    def validate_not_negative(cls, value):
        if value < 0:
            raise ValueError("Advance booking limits cannot be negative")
        return value

    @model_validator(mode="after")
    def validate_ranges(self) -> "BookingPolicyConfig":
        """Ensure the configured windows open before they close."""
        if to_minutes(self.business_end) <= to_minutes(self.business_start):
            raise ValueError("business_end must be later than business_start")
        if self.max_duration_minutes < self.min_duration_minutes:
            raise ValueError("max_duration_minutes must not be below min_duration_minutes")
        return self


class ScheduleRulesConfig(BaseModel):
    """Limits for weekly schedules and overrides."""
    min_slot_minutes: int = 30
    max_slot_minutes: int = 12 * 60
    override_range_days: int = 90

    @model_validator(mode="after")
    def validate_slot_bounds(self) -> "ScheduleRulesConfig":
        if self.min_slot_minutes <= 0:
            raise ValueError("min_slot_minutes must be greater than zero")
        if self.max_slot_minutes < self.min_slot_minutes:
            raise ValueError("max_slot_minutes must not be below min_slot_minutes")
        return self


class SearchConfig(BaseModel):
    """Defaults for slot browsing."""
    duration_minutes: int = 30
    max_days_to_scan: int = 30
    max_days_cap: int = 90
    skip_weekdays: List[int] = Field(default_factory=list)  # 0=Monday, 6=Sunday

    @field_validator("duration_minutes")
    @classmethod
    def validate_duration(cls, value: int) -> int:
        """Ensure slot duration is positive."""
        if value <= 0:
            raise ValueError("duration_minutes must be greater than zero")
        return value

    @field_validator("skip_weekdays")
    @classmethod
    def validate_skip_weekdays(cls, value: List[int]) -> List[int]:
        """Ensure weekdays are in valid range and deduplicated."""
        invalid_days = [day for day in value if day not in range(7)]
        if invalid_days:
            raise ValueError(f"skip_weekdays must be between 0 and 6, got {invalid_days}")
        # Preserve order while removing duplicates
        return list(dict.fromkeys(value))

    @model_validator(mode="after")
    def validate_scan_limits(self) -> "SearchConfig":
        if not 1 <= self.max_days_to_scan <= self.max_days_cap:
            raise ValueError("max_days_to_scan must be between 1 and max_days_cap")
        return self


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "UTC"
    tenant_id: str = "default"
    booking: BookingPolicyConfig = Field(default_factory=BookingPolicyConfig)
    schedule: ScheduleRulesConfig = Field(default_factory=ScheduleRulesConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    cache_ttl_seconds: int = 1800
    log_level: str = "INFO"
    data_file: str = ""  # Optional: JSON demo data for the CLI

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Ensure the timezone is a known IANA name."""
        try:
            pendulum.timezone(value)
        except (ValueError, KeyError) as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return level

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

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

    def resolve_data_file(self, config_path: Path) -> Path | None:
        """Resolve ``data_file`` relative to the config file's directory."""
        if not self.data_file:
            return None
        path = Path(self.data_file)
        if not path.is_absolute():
            path = config_path.parent / path
        return path


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
