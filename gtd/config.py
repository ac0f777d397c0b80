"""Configuration models for gtd."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from gtd.errors import ConfigurationError
from gtd.prompts import COMMIT_MESSAGE_PROMPT

CONFIG_FILE_NAMES = ["gtd.yaml", "gtd.yml", ".gtd.yaml", ".gtd.yml"]


class AgentConfig(BaseModel):
    """Which agent to run and how to guard it."""

    provider: str = Field(default="auto")
    # Seconds without any agent event before the run is aborted; 0 disables
    inactivity_timeout: float = Field(default=300, ge=0)
    forbidden_tools: list[str] = Field(default_factory=lambda: ["AskUserQuestion"])


class ModelsConfig(BaseModel):
    """Per-mode model overrides passed to the agent CLI."""

    plan: str | None = Field(default=None)
    build: str | None = Field(default=None)
    learn: str | None = Field(default=None)
    commit: str | None = Field(default=None)
    explore: str | None = Field(default=None)


class ConsoleNotificationConfig(BaseModel):
    """Console notification settings."""

    enabled: bool = Field(default=True)
    colors: bool = Field(default=True)


class WebhookNotificationConfig(BaseModel):
    """Webhook notification settings."""

    enabled: bool = Field(default=False)
    url: str | None = Field(default=None)
    events: list[str] = Field(
        default_factory=lambda: ["phase_complete", "phase_failed", "agent_aborted"]
    )


class NotificationsConfig(BaseModel):
    """Configuration for notifications."""

    console: ConsoleNotificationConfig = Field(default_factory=ConsoleNotificationConfig)
    webhook: WebhookNotificationConfig = Field(default_factory=WebhookNotificationConfig)


class LoggingConfig(BaseModel):
    """Structured run log settings."""

    enabled: bool = Field(default=True)
    # Relative paths are resolved against the repository root
    log_dir: str = Field(default=".git/gtd-logs")


class GtdConfig(BaseModel):
    """Main configuration for gtd runs."""

    file: str = Field(default="TODO.md")
    agent: AgentConfig = Field(default_factory=AgentConfig)
    models: ModelsConfig = Field(default_factory=ModelsConfig)
    test_cmd: str = Field(default="")
    test_retries: int = Field(default=10, ge=0)
    commit_prompt: str = Field(default=COMMIT_MESSAGE_PROMPT)
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def find_config_file(cls, base_dir: Path | None = None) -> Path | None:
        base = base_dir or Path(".")
        for name in CONFIG_FILE_NAMES:
            path = base / name
            if path.exists():
                return path
        return None

    @classmethod
    def load(
        cls,
        config_path: Path | None = None,
        base_dir: Path | None = None,
        environ: dict[str, str] | None = None,
    ) -> GtdConfig:
        """
        Load configuration from a YAML file, then apply ``GTD_*`` overrides.

        Args:
            config_path: Explicit file; otherwise the standard names are searched
            base_dir: Directory searched for the standard names
            environ: Environment to read overrides from (defaults to os.environ)

        Raises:
            ConfigurationError: If the file or an override is invalid
        """
        if config_path is None:
            config_path = cls.find_config_file(base_dir)

        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            try:
                with open(config_path) as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e
            if not isinstance(data, dict):
                raise ConfigurationError(f"Config file {config_path} must contain a mapping")
        elif config_path is not None:
            raise ConfigurationError(f"Config file not found: {config_path}")

        _apply_env_overrides(data, os.environ if environ is None else environ)

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary."""
        return self.model_dump()

    def save(self, config_path: Path) -> None:
        """Save configuration to a YAML file."""
        with open(config_path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

    def model_for(self, mode: str) -> str | None:
        """Model override for an invocation mode, if any."""
        return getattr(self.models, mode, None)

    def log_path(self, repo_path: Path) -> Path:
        log_dir = Path(self.logging.log_dir)
        return log_dir if log_dir.is_absolute() else repo_path / log_dir


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


# Environment variable -> (section, key) in the config mapping
_ENV_OVERRIDES: dict[str, tuple[str | None, str]] = {
    "GTD_FILE": (None, "file"),
    "GTD_AGENT": ("agent", "provider"),
    "GTD_AGENT_INACTIVITY_TIMEOUT": ("agent", "inactivity_timeout"),
    "GTD_AGENT_FORBIDDEN_TOOLS": ("agent", "forbidden_tools"),
    "GTD_TEST_CMD": (None, "test_cmd"),
    "GTD_TEST_RETRIES": (None, "test_retries"),
    "GTD_COMMIT_PROMPT": (None, "commit_prompt"),
    "GTD_MODEL_PLAN": ("models", "plan"),
    "GTD_MODEL_BUILD": ("models", "build"),
    "GTD_MODEL_LEARN": ("models", "learn"),
    "GTD_MODEL_COMMIT": ("models", "commit"),
    "GTD_MODEL_EXPLORE": ("models", "explore"),
}


def _apply_env_overrides(data: dict[str, Any], environ: Any) -> None:
    """Overlay ``GTD_*`` variables onto raw config data; pydantic validates them."""
    for env_name, (section, key) in _ENV_OVERRIDES.items():
        if env_name not in environ:
            continue
        value: Any = environ[env_name]
        if key == "forbidden_tools":
            value = _split_list(value)

        if section is None:
            data[key] = value
            continue

        target = data.get(section)
        if not isinstance(target, dict):
            target = {}
            data[section] = target
        target[key] = value
