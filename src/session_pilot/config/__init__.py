"""Configuration management module."""

from .loader import (
    ConfigurationLoader,
    PilotConfig,
    find_config_file,
    load_config,
    save_config,
)

__all__ = [
    "ConfigurationLoader",
    "PilotConfig",
    "load_config",
    "save_config",
    "find_config_file",
]
