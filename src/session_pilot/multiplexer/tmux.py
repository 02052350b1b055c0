"""
Tmux backend.

All interaction with tmux goes through a small fixed vocabulary of
subcommands: ``new-session``, ``list-sessions``, ``attach-session``,
``kill-session``, ``has-session`` and ``list-panes``. Listing relies on
``LIST_SESSIONS_FORMAT``; the parser below depends on its exact field order
and delimiter, so any change to one must be mirrored in the other.
"""

import os
import subprocess  # nosec B404
from datetime import datetime, timezone

from ..utils.logging import (
    AggregateFailureError,
    BackendUnavailableError,
    MultiplexerError,
    SessionAlreadyExistsError,
    SessionNotFoundError,
)
from .base import CreateSessionRequest, MultiplexerSession, TerminalMultiplexer, strip_handle
from .logging_utils import (
    log_binary_discovery,
    log_session_attach,
    log_session_list,
    log_session_operation,
    mux_logger,
)
from .process import discover_binary, run_captured, run_interactive

BACKEND_NAME = "tmux"

# Wire contract with tmux: name, creation time (unix seconds), attached client count
LIST_SESSIONS_FORMAT = "#{session_name},#{session_created},#{session_attached}"
LIST_SESSIONS_FIELDS = 3
FIELD_DELIMITER = ","

LIST_PANES_FORMAT = "#{pane_id}"

COMMON_LOCATIONS = (
    "/opt/homebrew/bin/tmux",
    "/usr/local/bin/tmux",
    "/usr/bin/tmux",
)

# stderr fragments tmux prints when there is simply nothing running
EMPTY_STATE_MARKERS = ("no server running", "no sessions", "error connecting to")
# list-panes reports a missing target as a missing window, not a missing session
MISSING_SESSION_MARKERS = ("can't find session", "can't find window", "session not found")

DEFAULT_SESSION_PREFIX = "session-pilot"


def parse_session_line(line: str, session_prefix: str) -> MultiplexerSession | None:
    """Parse one line of ``list-sessions -F LIST_SESSIONS_FORMAT`` output.

    Returns None for blank or malformed lines and for sessions outside the
    prefix namespace.
    """
    line = line.strip()
    if not line:
        return None

    # Session names may contain the delimiter; the two numeric fields cannot
    parts = line.rsplit(FIELD_DELIMITER, LIST_SESSIONS_FIELDS - 1)
    if len(parts) < LIST_SESSIONS_FIELDS:
        return None

    handle, created, attached = parts
    name = strip_handle(handle, session_prefix)
    if name is None:
        return None

    created_at = None
    if created:
        try:
            created_at = datetime.fromtimestamp(int(created), tz=timezone.utc)
        except ValueError:
            created_at = None

    try:
        attached_clients = int(attached)
    except ValueError:
        attached_clients = 0

    return MultiplexerSession(
        name=name,
        handle=handle,
        created_at=created_at,
        attached=attached_clients > 0,
        running=True,
    )


def parse_list_sessions_output(output: str, session_prefix: str) -> list[MultiplexerSession]:
    """Parse the full ``list-sessions`` output, keeping only prefixed sessions."""
    sessions = []
    for line in output.splitlines():
        session = parse_session_line(line, session_prefix)
        if session is not None:
            sessions.append(session)
    return sessions


def stderr_matches(stderr: str, markers: tuple[str, ...]) -> bool:
    lowered = stderr.lower()
    return any(marker in lowered for marker in markers)


class TmuxMultiplexer(TerminalMultiplexer):
    """Terminal multiplexer backend driving the tmux binary."""

    # tmux silently rewrites these to "_", so the handle would no longer match
    INVALID_NAME_CHARS = ".:"

    def __init__(
        self,
        session_prefix: str = DEFAULT_SESSION_PREFIX,
        binary_path: str | None = None,
        command_timeout: float = 10.0,
        default_command: str = TerminalMultiplexer.DEFAULT_COMMAND,
    ) -> None:
        """Initialize the tmux backend.

        Args:
            session_prefix: Namespace prepended to every session name
            binary_path: Explicit tmux executable, tried before discovery
            command_timeout: Seconds before a non-interactive command is abandoned
            default_command: Command started in new sessions when none is given
        """
        super().__init__(session_prefix or DEFAULT_SESSION_PREFIX)
        self._configured_path = binary_path
        self.command_timeout = command_timeout
        self.default_command = default_command
        self.tmux_path = self._discover()
        mux_logger.info(
            f"Tmux multiplexer initialized - prefix: {self.session_prefix}, "
            f"path: {self.tmux_path}"
        )

    def get_name(self) -> str:
        return BACKEND_NAME

    def is_available(self) -> bool:
        self.tmux_path = self._discover()
        return self.tmux_path is not None

    def create_session(self, request: CreateSessionRequest) -> MultiplexerSession:
        self.validate_name(request.name)
        handle = self.get_handle(request.name)

        if self.has_session(request.name):
            log_session_operation("create", handle, "error", {"reason": "already exists"})
            raise SessionAlreadyExistsError(request.name, {"backend": BACKEND_NAME})

        command = request.command or self.default_command
        args = ["new-session", "-d", "-s", handle]
        if request.working_dir:
            args.extend(["-c", request.working_dir])
        args.append(command)

        result = self._run(args)
        if result.returncode != 0:
            stderr = result.stderr.strip()
            log_session_operation("create", handle, "error", {"stderr": stderr})
            raise MultiplexerError(
                f"failed to create tmux session '{request.name}': {stderr}",
                {"command": args, "stderr": stderr},
            )

        log_session_operation("create", handle, "success", {"command": command})
        return MultiplexerSession(
            name=request.name,
            handle=handle,
            created_at=datetime.now(timezone.utc),
            attached=False,
            running=True,
            working_dir=request.working_dir,
        )

    def get_session(self, name: str) -> MultiplexerSession:
        for session in self.list_sessions():
            if session.name == name:
                return session
        raise SessionNotFoundError(name, {"backend": BACKEND_NAME})

    def list_sessions(self) -> list[MultiplexerSession]:
        result = self._run(["list-sessions", "-F", LIST_SESSIONS_FORMAT])
        if result.returncode != 0:
            if stderr_matches(result.stderr, EMPTY_STATE_MARKERS):
                log_session_list([])
                return []
            stderr = result.stderr.strip()
            raise MultiplexerError(
                f"failed to list tmux sessions: {stderr}",
                {"command": "list-sessions", "stderr": stderr},
            )

        sessions = parse_list_sessions_output(result.stdout, self.session_prefix)
        log_session_list([s.handle for s in sessions])
        return sessions

    def attach_to_session(self, name: str) -> None:
        """Attach the current terminal to a session.

        Blocks until the user detaches or the session exits. Standard input,
        output and error are handed straight to tmux. From inside an existing
        tmux client the current client is switched instead of nesting.
        """
        session = self.get_session(name)
        binary = self._require_binary()

        subcommand = "switch-client" if os.environ.get("TMUX") else "attach-session"
        log_session_attach(session.handle)
        run_interactive(BACKEND_NAME, binary, [subcommand, "-t", f"={session.handle}"])

    def kill_session(self, name: str) -> None:
        session = self.get_session(name)

        result = self._run(["kill-session", "-t", f"={session.handle}"])
        if result.returncode != 0:
            stderr = result.stderr.strip()
            log_session_operation("kill", session.handle, "error", {"stderr": stderr})
            raise MultiplexerError(
                f"failed to kill tmux session '{name}': {stderr}",
                {"command": "kill-session", "stderr": stderr},
            )

        log_session_operation("kill", session.handle, "success")

    def kill_all_sessions(self) -> None:
        """Kill every prefixed session, reporting all failures together."""
        sessions = self.list_sessions()
        failures: list[tuple[str, Exception]] = []

        for session in sessions:
            try:
                self.kill_session(session.name)
            except (MultiplexerError, SessionNotFoundError) as e:
                failures.append((session.name, e))

        if failures:
            raise AggregateFailureError("kill", failures, len(sessions))

    def has_session(self, name: str) -> bool:
        try:
            result = self._run(["has-session", "-t", f"={self.get_handle(name)}"])
        except BackendUnavailableError:
            return False
        return result.returncode == 0

    def get_session_pane_count(self, name: str) -> int:
        if not self.has_session(name):
            return 0

        handle = self.get_handle(name)
        result = self._run(["list-panes", "-s", "-t", f"={handle}", "-F", LIST_PANES_FORMAT])

        if result.returncode != 0:
            # The session can vanish between the two commands
            if stderr_matches(result.stderr, MISSING_SESSION_MARKERS + EMPTY_STATE_MARKERS):
                return 0
            stderr = result.stderr.strip()
            raise MultiplexerError(
                f"failed to list panes for tmux session '{name}': {stderr}",
                {"command": "list-panes", "stderr": stderr},
            )

        return sum(1 for line in result.stdout.splitlines() if line.strip())

    def _discover(self) -> str | None:
        path = discover_binary(BACKEND_NAME, self._configured_path, COMMON_LOCATIONS)
        log_binary_discovery(BACKEND_NAME, path)
        return path

    def _require_binary(self) -> str:
        if self.tmux_path is None:
            self.tmux_path = self._discover()
        if self.tmux_path is None:
            raise BackendUnavailableError(BACKEND_NAME)
        return self.tmux_path

    def _run(self, args: list[str]) -> subprocess.CompletedProcess[str]:
        binary = self._require_binary()
        try:
            return run_captured(BACKEND_NAME, binary, args, self.command_timeout)
        except BackendUnavailableError:
            self.tmux_path = None
            raise
