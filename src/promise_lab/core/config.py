"""Configuration management.

Loads from TOML config files + environment variables.
Uses pydantic-settings for validation and env var overriding.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


class ObservabilityConfig(BaseModel):
    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "console"


class Settings(BaseSettings):
    """Top-level settings.

    Loaded from TOML config files, overridden by environment variables.
    """

    sleep_ms: int = 1000  # Delay before an operation's timer settles it
    settle_grace_ms: int = 1900  # Bounded wait for "never resumes" checks

    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    model_config = {"env_prefix": "PROMISE_LAB_", "env_nested_delimiter": "__"}

    def validate_timing(self) -> None:
        """The grace period must outlast every operation timer."""
        from .errors import ConfigError

        if self.sleep_ms < 0:
            raise ConfigError(f"sleep_ms must be >= 0, got {self.sleep_ms}")
        if self.settle_grace_ms <= self.sleep_ms:
            raise ConfigError(
                f"settle_grace_ms ({self.settle_grace_ms}) must exceed "
                f"sleep_ms ({self.sleep_ms})."
            )


def load_settings(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> Settings:
    """Load settings from TOML file + env vars.

    Args:
        config_path: Path to TOML config file (optional).
        overrides: Dict of overrides to apply on top.
    """
    data: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            import tomli

            with open(path, "rb") as f:
                data = tomli.load(f)

    if overrides:
        data.update(overrides)

    settings = Settings(**data)
    settings.validate_timing()
    return settings
