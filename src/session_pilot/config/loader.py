"""Loading, layering and saving of session-pilot settings."""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from ..utils.logging import ConfigurationError

ENV_PREFIX = "SESSION_PILOT_"
CONFIG_PATH_ENV_VAR = f"{ENV_PREFIX}CONFIG"

DEFAULT_CONFIG_DIR = Path("~/.config/session-pilot")

OUTPUT_FORMATS = ("human", "json")


class PilotConfig(BaseModel):
    """Configuration model for session-pilot."""

    # Multiplexer backend
    backend: str = Field(default="auto", description="Multiplexer backend (auto, tmux or zellij)")
    backend_path: str | None = Field(
        default=None, description="Explicit path to the multiplexer binary"
    )
    session_prefix: str = Field(
        default="session-pilot", description="Namespace prepended to backend session names"
    )
    default_command: str = Field(
        default="claude", description="Command started in new sessions"
    )
    command_timeout: float = Field(
        default=10.0, description="Timeout in seconds for backend commands"
    )

    # Storage
    sessions_dir: str = Field(
        default=str(DEFAULT_CONFIG_DIR / "sessions"),
        description="Directory holding session records",
    )

    # Logging
    log_enabled: bool = Field(default=False, description="Enable logging")
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str | None = Field(
        default=str(DEFAULT_CONFIG_DIR / "session-pilot.log"), description="Log file path"
    )

    # Output formatting
    default_output_format: str = Field(
        default="human", description="Default output format"
    )

    @field_validator("backend", "default_output_format")
    @classmethod
    def _normalize_lower(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        value = value.strip().upper()
        if value not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level: {value}")
        return value

    @field_validator("default_output_format")
    @classmethod
    def _validate_output_format(cls, value: str) -> str:
        if value not in OUTPUT_FORMATS:
            raise ValueError(f"output format must be one of {', '.join(OUTPUT_FORMATS)}")
        return value

    @field_validator("session_prefix")
    @classmethod
    def _validate_prefix(cls, value: str) -> str:
        if not value:
            raise ValueError("session_prefix must not be empty")
        return value

    @field_validator("command_timeout")
    @classmethod
    def _validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("command_timeout must be positive")
        return value

    @property
    def sessions_path(self) -> Path:
        return Path(self.sessions_dir).expanduser()

    @property
    def log_path(self) -> Path | None:
        return Path(self.log_file).expanduser() if self.log_file else None


def config_search_paths() -> list[Path]:
    """Standard configuration file locations, in search order."""
    return [
        Path.cwd() / "session-pilot.yaml",
        Path.cwd() / "session-pilot.yml",
        Path.home() / ".config" / "session-pilot" / "config.yaml",
        Path.home() / ".session-pilot.yaml",
    ]


def find_config_file(custom_path: str | None = None) -> Path | None:
    """Find configuration file in standard locations.

    An explicit path (argument, then ``SESSION_PILOT_CONFIG``) must exist.
    """
    custom_path = custom_path or os.environ.get(CONFIG_PATH_ENV_VAR)
    if custom_path:
        path = Path(custom_path).expanduser()
        if path.exists():
            return path
        raise ConfigurationError(
            f"Config file not found: {custom_path}", {"config_path": custom_path}
        )

    for path in config_search_paths():
        if path.exists():
            return path

    return None


def load_config_file(config_path: Path) -> dict[str, Any]:
    """Read one YAML config file; an empty file yields an empty mapping."""
    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Invalid YAML in config file {config_path}: {e}",
            {"config_path": str(config_path)},
        ) from e
    except OSError as e:
        raise ConfigurationError(
            f"Failed to read config file {config_path}: {e}",
            {"config_path": str(config_path)},
        ) from e

    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Config file {config_path} must contain a mapping",
            {"config_path": str(config_path)},
        )
    return data


def load_env_vars() -> dict[str, Any]:
    """Collect typed settings from ``SESSION_PILOT_*`` variables."""
    config: dict[str, Any] = {}

    # SESSION_PILOT_<FIELD> for every model field
    env_mappings = {
        f"{ENV_PREFIX}BACKEND": "backend",
        f"{ENV_PREFIX}BACKEND_PATH": "backend_path",
        f"{ENV_PREFIX}SESSIONS_DIR": "sessions_dir",
        f"{ENV_PREFIX}SESSION_PREFIX": "session_prefix",
        f"{ENV_PREFIX}DEFAULT_COMMAND": "default_command",
        f"{ENV_PREFIX}COMMAND_TIMEOUT": "command_timeout",
        f"{ENV_PREFIX}LOG_ENABLED": "log_enabled",
        f"{ENV_PREFIX}LOG_LEVEL": "log_level",
        f"{ENV_PREFIX}LOG_FILE": "log_file",
        f"{ENV_PREFIX}DEFAULT_OUTPUT_FORMAT": "default_output_format",
    }

    for env_var, config_key in env_mappings.items():
        if env_var in os.environ:
            env_value = os.environ[env_var]
            # Typed fields need conversion; unparsable numbers are ignored
            if config_key == "command_timeout":
                try:
                    config[config_key] = float(env_value)
                except ValueError:
                    continue
            elif config_key == "log_enabled":
                config[config_key] = env_value.lower() in ("true", "1", "yes", "on")
            else:
                config[config_key] = env_value

    return config


def load_config(
    config_path: str | None = None,
    profile: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> PilotConfig:
    """Load configuration from file and environment variables.

    Precedence order (highest to lowest):
    1. CLI flag overrides
    2. Environment variables
    3. Configuration file (with profile support)
    4. Default values
    """
    config_data: dict[str, Any] = {}

    config_file = find_config_file(config_path)
    if config_file:
        file_data = load_config_file(config_file)
        profiles = file_data.get("profiles") or {}

        config_data.update({k: v for k, v in file_data.items() if k != "profiles"})
        if profile:
            if profile not in profiles:
                raise ConfigurationError(
                    f"Unknown configuration profile: {profile}",
                    {"profile": profile, "config_path": str(config_file)},
                )
            config_data.update(profiles[profile])

    config_data.update(load_env_vars())

    if cli_overrides:
        config_data.update({k: v for k, v in cli_overrides.items() if v is not None})

    try:
        return PilotConfig(**config_data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def save_config(config: PilotConfig, config_path: str | None = None) -> Path:
    """Write ``config`` as YAML, creating the parent directory."""
    if config_path:
        path = Path(config_path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
    else:
        config_dir = DEFAULT_CONFIG_DIR.expanduser()
        config_dir.mkdir(parents=True, exist_ok=True)
        path = config_dir / "config.yaml"

    with open(path, "w") as f:
        yaml.dump(config.model_dump(), f, default_flow_style=False, sort_keys=True)

    return path


class ConfigurationLoader:
    """Remembers a config path and profile so callers can reload with overrides."""

    def __init__(self, config_path: str | None = None, profile: str | None = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to configuration file
            profile: Configuration profile to use
        """
        self.config_path = config_path
        self.profile = profile

    def load(self, cli_overrides: dict[str, Any] | None = None) -> PilotConfig:
        """Load configuration with current settings.

        Args:
            cli_overrides: CLI parameter overrides

        Returns:
            Loaded and validated configuration
        """
        return load_config(self.config_path, self.profile, cli_overrides)
