"""Session management commands."""

import click

from ..config.loader import load_config
from ..core.models import Session
from ..multiplexer.registry import AUTO, MultiplexerRegistry
from ..utils.logging import PartialFailureError
from .utils import (
    CliError,
    error_handler,
    format_output,
    get_client,
    output_table,
    quiet_echo,
    session_to_dict,
    success_message,
    wants_json,
)

STATUS_INDICATORS = {
    "active": "●",
    "connected": "◉",
    "inactive": "○",
    "error": "✗",
}

TIME_FORMAT = "%Y-%m-%d %H:%M"


def _format_time(session: Session, field: str) -> str:
    return getattr(session, field).astimezone().strftime(TIME_FORMAT)


def _print_session_details(session: Session) -> None:
    indicator = STATUS_INDICATORS.get(session.status.value, "?")
    click.echo(f"{indicator} {session.name}")
    click.echo(f"  ID: {session.id}")
    click.echo(f"  Status: {session.status.value}")
    click.echo(f"  Backend: {session.backend}")
    click.echo(f"  Panes: {session.pane_count}")
    click.echo(f"  Project: {session.project_path or '-'}")
    if session.description:
        click.echo(f"  Description: {session.description}")
    click.echo(f"  Created: {_format_time(session, 'created_at')}")
    click.echo(f"  Last active: {_format_time(session, 'last_active')}")
    if session.messages:
        click.echo(f"  Messages: {len(session.messages)}")


@click.command()
@click.argument("name", required=False, default="")
@click.option("--description", "-d", default="", help="Session description")
@click.option(
    "--project",
    "-p",
    "project_path",
    default="",
    help="Project directory (defaults to the current directory)",
)
@click.option("--command", "session_command", default="", help="Command to run in the session")
@click.option("--attach", "-a", "auto_attach", is_flag=True, help="Attach after creation")
@click.pass_context
@error_handler
def create(
    ctx: click.Context,
    name: str,
    description: str,
    project_path: str,
    session_command: str,
    auto_attach: bool,
) -> None:
    """Create a new session.

    NAME: Session name (generated from the current time when omitted)
    """
    client = get_client(ctx)

    try:
        session = client.create_session(
            name,
            description=description,
            project_path=project_path,
            command=session_command,
        )
    except PartialFailureError as e:
        if not wants_json(ctx):
            click.echo(click.style(f"Warning: {e.message}", fg="yellow"), err=True)
            click.echo(
                f"The session record was kept as '{e.session.status.value}'. "
                f"Remove it with 'session-pilot kill {e.session.name}'.",
                err=True,
            )
        raise CliError(f"Failed to start session '{e.session.name}'") from e

    if wants_json(ctx):
        format_output(ctx, session_to_dict(session))
    else:
        success_message(f"Created session '{session.name}'")
        quiet_echo(ctx, f"ID: {session.id}")
        quiet_echo(ctx, f"Backend: {session.backend}")
        quiet_echo(ctx, f"Project: {session.project_path}")
        if not auto_attach:
            quiet_echo(ctx, f"Attach with: session-pilot attach {session.name}")

    if auto_attach:
        client.attach_to_session(session.id)


@click.command(name="list")
@click.option(
    "--filter",
    "-f",
    "status_filter",
    default="",
    help="Only show sessions with this status (active, inactive, connected, error, all)",
)
@click.pass_context
@error_handler
def list_sessions(ctx: click.Context, status_filter: str) -> None:
    """List sessions with their live status."""
    client = get_client(ctx)

    try:
        sessions = client.list_filtered_sessions(status_filter)
    except ValueError as e:
        raise CliError(str(e)) from e

    if wants_json(ctx):
        format_output(ctx, [session_to_dict(s, include_messages=False) for s in sessions])
        return

    if not sessions:
        click.echo("No sessions found")
        return

    rows = [
        [
            f"{STATUS_INDICATORS.get(s.status.value, '?')} {s.name}",
            s.status.value,
            str(s.pane_count),
            _format_time(s, "created_at"),
            s.project_path or "-",
        ]
        for s in sessions
    ]
    output_table(["NAME", "STATUS", "PANES", "CREATED", "PROJECT"], rows)


@click.command()
@click.argument("identifier")
@click.pass_context
@error_handler
def details(ctx: click.Context, identifier: str) -> None:
    """Show details for one session.

    IDENTIFIER: Session ID or name
    """
    session = get_client(ctx).get_session(identifier)

    if wants_json(ctx):
        format_output(ctx, session_to_dict(session))
    else:
        _print_session_details(session)


@click.command()
@click.argument("identifier")
@click.pass_context
@error_handler
def attach(ctx: click.Context, identifier: str) -> None:
    """Attach the terminal to a session.

    IDENTIFIER: Session ID or name
    """
    client = get_client(ctx)
    quiet_echo(ctx, f"Attaching to session '{identifier}' (detach with Ctrl+b d)")
    client.attach_to_session(identifier)
    quiet_echo(ctx, f"Detached from session '{identifier}'")


@click.command()
@click.argument("identifier", required=False)
@click.option("--all", "kill_all", is_flag=True, help="Kill every session")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
@error_handler
def kill(ctx: click.Context, identifier: str | None, kill_all: bool, yes: bool) -> None:
    """Kill a session and delete its record.

    IDENTIFIER: Session ID or name
    """
    if kill_all and identifier:
        raise click.UsageError("Cannot use IDENTIFIER together with --all")
    if not kill_all and not identifier:
        raise click.UsageError("Missing IDENTIFIER (or use --all)")

    client = get_client(ctx)

    if kill_all:
        if not yes:
            click.confirm("Kill all sessions?", abort=True)
        client.kill_all_sessions()
        success_message("All sessions killed")
        return

    client.kill_session(identifier)
    success_message(f"Killed session '{identifier}'")


@click.command()
@click.pass_context
@error_handler
def backends(ctx: click.Context) -> None:
    """Show multiplexer backends and their availability."""
    obj = ctx.obj or {}
    config = load_config(obj.get("config"), obj.get("profile"), obj.get("cli_overrides"))
    registry = MultiplexerRegistry(
        binary_path=config.backend_path,
        command_timeout=config.command_timeout,
        default_command=config.default_command,
        binary_backend=config.backend,
    )

    available = registry.available_backends(config.session_prefix)
    data = {
        "configured": config.backend,
        "default": registry.default_backend(config.session_prefix),
        "backends": {name: name in available for name in registry.backends()},
    }

    def _print(data: dict) -> None:
        click.echo(f"Configured backend: {data['configured']}")
        if data["configured"] == AUTO:
            click.echo(f"Auto selects: {data['default']}")
        for name, is_available in data["backends"].items():
            state = "available" if is_available else "not found"
            click.echo(f"  {STATUS_INDICATORS['active' if is_available else 'inactive']} {name} ({state})")

    format_output(ctx, data, _print)
