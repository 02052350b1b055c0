"""Shared helpers for session-pilot commands: output, errors, client lookup."""

import json
import sys
from collections.abc import Callable
from functools import wraps
from typing import Any

import click

from ..core.client import SessionClient
from ..core.models import Session
from ..utils.logging import (
    BackendUnavailableError,
    ConfigurationError,
    InvalidSessionNameError,
    SessionNotFoundError,
    SessionPilotException,
)

PROG_NAME = "session-pilot"


class CliError(Exception):
    """A user-facing command failure with its exit code."""

    def __init__(self, message: str, exit_code: int = 1):
        """Initialize CLI error.

        Args:
            message: Error message
            exit_code: Exit code for the CLI
        """
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code


def error_handler(func: Callable[..., Any]) -> Callable[..., Any]:
    """Turn session-pilot exceptions into an error message, a hint and an exit code."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except (click.ClickException, click.Abort):
            raise
        except CliError as e:
            handle_error(e.message, e.exit_code)
        except SessionNotFoundError as e:
            handle_error(
                e.message,
                hint=f"Run '{PROG_NAME} list' to see sessions or "
                f"'{PROG_NAME} create' to create one.",
            )
        except BackendUnavailableError as e:
            handle_error(
                e.message,
                hint=f"Install {e.backend} or point backend_path at the binary "
                f"('{PROG_NAME} config set backend_path PATH').",
            )
        except ConfigurationError as e:
            handle_error(e.message, hint=f"Run '{PROG_NAME} config locations' for details.")
        except InvalidSessionNameError as e:
            handle_error(e.message, hint="Use letters, digits, '-' and '_' in session names.")
        except SessionPilotException as e:
            handle_error(e.message)
        except Exception as e:
            click.echo(click.style(f"Unexpected error: {e}", fg="red"), err=True)
            sys.exit(1)

    return wrapper


def success_message(message: str) -> None:
    """Print a green check-marked line."""
    click.echo(click.style(f"✓ {message}", fg="green"))


def output_json(data: Any) -> None:
    """Print ``data`` as indented JSON on stdout."""
    click.echo(json.dumps(data, indent=2, default=str))


def output_table(headers: list[str], rows: list[list[str]]) -> None:
    """Print rows as a ``|``-separated table sized to the widest cell per column."""
    if not rows:
        click.echo("No data to display")
        return

    widths = [
        max(len(str(cell)) for cell in column)
        for column in zip(headers, *rows, strict=False)
    ]

    def _line(cells: list[str]) -> str:
        return " | ".join(str(cell).ljust(width) for cell, width in zip(cells, widths, strict=False))

    header_line = _line(headers)
    click.echo(header_line)
    click.echo("-" * len(header_line))
    for row in rows:
        click.echo(_line(row))


def handle_error(message: str, exit_code: int = 1, hint: str | None = None) -> None:
    """Print an error (and optional hint) to stderr and exit."""
    click.echo(click.style(f"Error: {message}", fg="red"), err=True)
    if hint:
        click.echo(hint, err=True)
    sys.exit(exit_code)


def verbose_echo(ctx: click.Context, message: str) -> None:
    """Print a diagnostic line to stderr under --verbose."""
    if ctx.obj and ctx.obj.get("verbose"):
        click.echo(click.style(f"[VERBOSE] {message}", fg="blue"), err=True)


def quiet_echo(ctx: click.Context, message: str) -> None:
    """Print informational output unless --quiet is set."""
    if not (ctx.obj and ctx.obj.get("quiet")):
        click.echo(message)


def wants_json(ctx: click.Context) -> bool:
    """True if output should be JSON (flag or configured default)."""
    if not ctx.obj:
        return False
    if ctx.obj.get("json"):
        return True
    client = ctx.obj.get("client")
    return client is not None and client.get_config().default_output_format == "json"


def format_output(ctx: click.Context, data: Any, human_format_func: Any = None) -> None:
    """Print ``data`` as JSON or through ``human_format_func`` (key: value lines by default)."""
    if wants_json(ctx):
        output_json(data)
    elif human_format_func:
        human_format_func(data)
    else:
        for key, value in data.items():
            click.echo(f"{key}: {value}")


def get_client(ctx: click.Context) -> SessionClient:
    """Return the session client for this invocation, building it on first use."""
    ctx.ensure_object(dict)
    client = ctx.obj.get("client")
    if client is None:
        client = SessionClient.from_config(
            config_path=ctx.obj.get("config"),
            profile=ctx.obj.get("profile"),
            cli_overrides=ctx.obj.get("cli_overrides"),
            verbose=bool(ctx.obj.get("verbose")),
        )
        ctx.obj["client"] = client
        verbose_echo(ctx, f"Using {client.get_backend_name()} backend")
    return client


def session_to_dict(session: Session, include_messages: bool = True) -> dict[str, Any]:
    """Serialize a session for JSON output."""
    data = session.model_dump(mode="json")
    data["pane_count"] = session.pane_count
    if not include_messages:
        data.pop("messages", None)
    return data
