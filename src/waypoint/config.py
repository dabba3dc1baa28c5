"""
Configuration — the settings bag threaded (read-only) through every run.

Uses pydantic-settings so the poll cadence, log indentation and driver
parameters can come from the environment or a .env file:

    WAYPOINT_WAIT_INTERVAL=0.25
    WAYPOINT_WAIT_TIMEOUT=30
    WAYPOINT_LOG_INDENT=4
    WAYPOINT_LOG_RENDERER=json
    WAYPOINT_DRIVER__BROWSER=chrome

The engine never mutates Settings once a run begins; the model is frozen.
The only live part is the LogStream, a private attribute that subscribers
attach to before calling run().
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field, PrivateAttr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from waypoint.logstream import LogStream

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class Settings(BaseSettings):
    """
    Settings for one or more runs.

    Load order (highest priority first):
      1. Keyword arguments / Settings.create(**overrides)
      2. WAYPOINT_* environment variables
      3. .env file in the working directory
      4. Default values
    """

    model_config = SettingsConfigDict(
        env_prefix="WAYPOINT_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        frozen=True,
    )

    log_level: str = Field(default="INFO", description="structlog filtering level")
    log_renderer: Literal["console", "json"] = Field(
        default="console", description="structlog output format"
    )
    log_indent: int = Field(default=2, ge=0, description="Spaces per nesting level")
    wait_interval: float = Field(
        default=0.5, gt=0, description="Default wait_until poll interval (seconds)"
    )
    wait_timeout: float = Field(
        default=10.0, gt=0, description="Default wait_until wait budget (seconds)"
    )
    driver: dict[str, Any] = Field(
        default_factory=dict,
        description="Opaque driver-construction parameters, carried untouched",
    )

    _log_stream: LogStream = PrivateAttr(default_factory=LogStream)

    @field_validator("log_level")
    @classmethod
    def normalise_log_level(cls, value: str) -> str:
        """Upper-case known levels; anything else falls back to INFO."""
        level = value.strip().upper()
        return level if level in _LOG_LEVELS else "INFO"

    @property
    def log_stream(self) -> LogStream:
        return self._log_stream

    @classmethod
    def create(cls, **overrides: Any) -> Settings:
        """Build settings with explicit overrides on top of env/defaults."""
        return cls(**overrides)
