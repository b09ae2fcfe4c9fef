"""Configuration management for Overseer."""

import json
import logging
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


class ConfigError(ValueError):
    """Raised when a configuration file cannot be loaded or validated."""


class DecompositionConfig(BaseModel):
    """Bounds for the decomposition engine."""
    max_depth: int = Field(3, ge=1)
    min_subtask_minutes: int = Field(15, ge=1)
    max_subtask_minutes: int = Field(45, ge=1)
    coverage_ratio: float = Field(0.8, ge=0.0, le=1.0)
    minutes_threshold: int = 45
    file_threshold: int = 3
    component_threshold: int = 10


class GuardConfig(BaseModel):
    """Hard limits enforced on generative agent replies."""
    confidence_threshold: int = Field(50, ge=0, le=100)
    default_confidence: int = Field(50, ge=0, le=100)
    max_clarification_rounds: int = Field(5, ge=1)
    clarity_pass_score: int = Field(85, ge=0, le=100)
    default_clarity_score: int = Field(50, ge=0, le=100)


class HealthConfig(BaseModel):
    """Thresholds for deterministic health checks."""
    overload_threshold: int = 20
    escalation_backlog_threshold: int = 5
    drift_threshold: float = 0.2  # fraction of plan tasks failed or needing recheck
    failure_limit: int = 3
    failure_window_hours: int = 24
    stale_ticket_hours: int = 48
    stale_action_limit: int = 3
    proactive_window_hours: int = 24
    proactive_action_limit: int = 3


class OverseerSettings(BaseSettings):
    """Overseer configuration loaded from environment variables.

    Section values can be overridden with ``OVERSEER_<SECTION>__<FIELD>``,
    e.g. ``OVERSEER_GUARD__CONFIDENCE_THRESHOLD=60``.
    """

    anthropic_api_key: Optional[str] = Field(None, alias="ANTHROPIC_API_KEY")

    # Model client
    provider: str = Field("anthropic", alias="OVERSEER_PROVIDER")
    model_timeout: Optional[float] = Field(60.0, alias="OVERSEER_MODEL_TIMEOUT")

    # Logging configuration
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_file: Optional[str] = Field(None, alias="LOG_FILE")

    decomposition: DecompositionConfig = Field(default_factory=DecompositionConfig)
    guard: GuardConfig = Field(default_factory=GuardConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="OVERSEER_",
        env_nested_delimiter="__",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the allowed values."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed}, got: {v}")
        return v_upper

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        """Validate the provider name."""
        allowed = ["anthropic", "mock"]
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"OVERSEER_PROVIDER must be one of {allowed}, got: {v}")
        return v_lower

    @field_validator("model_timeout")
    @classmethod
    def validate_timeout(cls, v: Optional[float]) -> Optional[float]:
        """Validate timeout is positive when set."""
        if v is not None and v <= 0:
            raise ValueError(f"OVERSEER_MODEL_TIMEOUT must be positive, got: {v}")
        return v

    def ensure_directories(self) -> None:
        """Ensure the log directory exists."""
        if self.log_file:
            Path(self.log_file).parent.mkdir(parents=True, exist_ok=True)


def load_environment(env_file: str = ".env") -> None:
    """Load environment variables from .env file.

    Args:
        env_file: Path to .env file (default: .env in current directory)
    """
    env_path = Path(env_file)
    if env_path.exists():
        load_dotenv(env_path)
        # Also try project root .env if we're in a subdirectory
        if not env_path.is_absolute():
            root_env = Path.cwd() / ".env"
            if root_env.exists() and root_env != env_path.absolute():
                load_dotenv(root_env)


def load_settings(config_file: Optional[Union[str, Path]] = None) -> OverseerSettings:
    """Load settings from the environment, overlaid with a JSON file.

    Values in the file win over environment variables.

    Args:
        config_file: Optional path to a JSON configuration file

    Returns:
        Validated OverseerSettings

    Raises:
        ConfigError: If the file is missing, unreadable or invalid
    """
    load_environment()

    data: dict = {}
    if config_file is not None:
        path = Path(config_file)
        if not path.exists():
            raise ConfigError(f"Config not found: {path}")
        try:
            with open(path) as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config root must be an object: {path}")

    try:
        return OverseerSettings(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def configure_logging(settings: OverseerSettings) -> None:
    """Configure root logging from settings.

    Args:
        settings: Loaded settings (log level and optional log file)
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.log_file:
        settings.ensure_directories()
        handlers.append(logging.FileHandler(settings.log_file))

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        handlers=handlers,
        force=True,
    )
