"""Configuration management commands."""

from typing import Any

import click
from pydantic import ValidationError

from ..config.loader import (
    CONFIG_PATH_ENV_VAR,
    ENV_PREFIX,
    PilotConfig,
    config_search_paths,
    find_config_file,
    load_config,
    load_config_file,
    save_config,
)
from ..utils.logging import ConfigurationError
from .utils import format_output, handle_error, quiet_echo

NULL_VALUES = ("none", "null", "")


def _load(ctx: click.Context) -> PilotConfig:
    obj = ctx.obj or {}
    return load_config(obj.get("config"), obj.get("profile"), obj.get("cli_overrides"))


@click.group()
def config() -> None:
    """Manage configuration settings."""
    pass


@config.command()
@click.pass_context
def show(ctx: click.Context) -> None:
    """Show current configuration."""
    try:
        config_obj = _load(ctx)
    except ConfigurationError as e:
        handle_error(f"Failed to load configuration: {e.message}")
        return

    format_output(ctx, {"configuration": config_obj.model_dump()})


@config.command()
@click.argument("key")
@click.pass_context
def get(ctx: click.Context, key: str) -> None:
    """Get a configuration value."""
    try:
        config_obj = _load(ctx)
    except ConfigurationError as e:
        handle_error(f"Failed to get configuration: {e.message}")
        return

    if key not in PilotConfig.model_fields:
        handle_error(f"Unknown configuration key: {key}")
        return

    format_output(ctx, {key: getattr(config_obj, key)})


@config.command()
@click.argument("key")
@click.argument("value")
@click.pass_context
def set(ctx: click.Context, key: str, value: str) -> None:
    """Set a configuration value and save it."""
    if key not in PilotConfig.model_fields:
        handle_error(f"Unknown configuration key: {key}")
        return

    config_path = (ctx.obj or {}).get("config")
    try:
        config_obj = _load(ctx)
    except ConfigurationError as e:
        handle_error(f"Failed to set configuration: {e.message}")
        return

    field = PilotConfig.model_fields[key]
    converted_value: Any = value
    if not field.is_required() and field.default is None and value.lower() in NULL_VALUES:
        converted_value = None

    config_dict = config_obj.model_dump()
    config_dict[key] = converted_value
    try:
        config_obj = PilotConfig(**config_dict)
    except ValidationError as e:
        handle_error(f"Invalid value for {key}: {value} ({e.errors()[0]['msg']})")
        return

    try:
        saved_path = save_config(config_obj, config_path)
    except OSError as e:
        handle_error(f"Failed to save configuration: {e}")
        return

    quiet_echo(ctx, f"Configuration updated: {key}={getattr(config_obj, key)}")
    quiet_echo(ctx, f"Saved to: {saved_path}")


@config.command()
@click.option("--path", help="Custom path for config file")
@click.pass_context
def init(ctx: click.Context, path: str | None) -> None:
    """Initialize configuration file with defaults."""
    try:
        saved_path = save_config(PilotConfig(), path)
    except OSError as e:
        handle_error(f"Failed to initialize configuration: {e}")
        return

    quiet_echo(ctx, f"Configuration initialized at: {saved_path}")


@config.command()
@click.pass_context
def profiles(ctx: click.Context) -> None:
    """List available configuration profiles."""
    try:
        config_file = find_config_file((ctx.obj or {}).get("config"))
        config_data = load_config_file(config_file) if config_file else None
    except ConfigurationError as e:
        handle_error(f"Failed to list profiles: {e.message}")
        return

    if config_data is None:
        quiet_echo(ctx, "No configuration file found. Use 'config init' to create one.")
        return

    if not config_data.get("profiles"):
        quiet_echo(ctx, "No profiles defined in configuration file.")
        return

    format_output(ctx, {"profiles": list(config_data["profiles"].keys())})


@config.command()
def locations() -> None:
    """Show configuration file search locations."""
    click.echo(f"Explicit file: --config PATH or {CONFIG_PATH_ENV_VAR}")
    click.echo("Configuration file search locations (in order):")
    for i, location in enumerate(config_search_paths(), 1):
        click.echo(f"  {i}. {location}")

    click.echo(f"\nEnvironment variables ({ENV_PREFIX}*):")
    for key in PilotConfig.model_fields:
        click.echo(f"  {ENV_PREFIX}{key.upper()}")
