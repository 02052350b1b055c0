"""Main CLI entry point for session-pilot."""

import click

from .. import __version__
from .config import config
from .sessions import attach, backends, create, details, kill, list_sessions


@click.group()
@click.version_option(version=__version__, prog_name="session-pilot")
@click.option("--config", "-c", help="Configuration file path")
@click.option("--profile", "-p", help="Configuration profile to use")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
# Configuration override flags
@click.option("--backend", help="Override backend setting (auto, tmux, zellij)")
@click.option("--sessions-dir", help="Override sessions_dir setting")
@click.option("--session-prefix", help="Override session_prefix setting")
@click.option("--log-level", help="Override log_level setting")
@click.pass_context
def main(
    ctx: click.Context,
    config: str | None,
    profile: str | None,
    verbose: bool,
    quiet: bool,
    json: bool,
    backend: str | None,
    sessions_dir: str | None,
    session_prefix: str | None,
    log_level: str | None,
) -> None:
    """session-pilot - Manage named, persistent terminal sessions.

    Each session is a record on disk paired with a live terminal multiplexer
    session (tmux or zellij). Sessions survive detaching and can be listed,
    inspected, re-attached and killed by name or ID.
    """
    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["profile"] = profile
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["json"] = json

    # Store CLI overrides for configuration
    ctx.obj["cli_overrides"] = {
        "backend": backend,
        "sessions_dir": sessions_dir,
        "session_prefix": session_prefix,
        "log_level": log_level,
    }
    # Remove None values
    ctx.obj["cli_overrides"] = {
        k: v for k, v in ctx.obj["cli_overrides"].items() if v is not None
    }

    # Validate conflicting options
    if verbose and quiet:
        raise click.UsageError("Cannot use both --verbose and --quiet options")


main.add_command(create)
main.add_command(list_sessions)
main.add_command(details)
main.add_command(attach)
main.add_command(kill)
main.add_command(backends)
main.add_command(config)


if __name__ == "__main__":
    main()
