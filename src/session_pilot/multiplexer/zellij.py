"""
Zellij backend.

Zellij has no format string for ``list-sessions``; each line is a session
name followed by free-form annotations, optionally wrapped in ANSI colour
codes::

    session-pilot-web [Created 2h 3m 4s ago] (current)
    session-pilot-old [Created 1day ago] (EXITED - attach to resurrect)

Only the name, the ``EXITED`` and ``current`` markers and the age are read.
Exited sessions are listed with ``running=False`` until they are deleted.
"""

import re
import subprocess  # nosec B404
from datetime import datetime, timedelta, timezone

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

BACKEND_NAME = "zellij"

ZELLIJ_LOCATIONS = (
    "/opt/homebrew/bin/zellij",
    "/usr/local/bin/zellij",
    "/usr/bin/zellij",
    "~/.cargo/bin/zellij",
)

NO_SESSIONS_MARKER = "no active zellij sessions"
EXITED_MARKER = "EXITED"
CURRENT_MARKER = "(current)"

ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]")
CREATED_AGO = re.compile(r"\[Created (?P<age>[^\]]*?)\s*ago\]")
AGE_PART = re.compile(r"(?P<value>\d+)\s*(?P<unit>weeks?|days?|h|m|s)\b")

AGE_UNITS = {
    "week": timedelta(weeks=1),
    "weeks": timedelta(weeks=1),
    "day": timedelta(days=1),
    "days": timedelta(days=1),
    "h": timedelta(hours=1),
    "m": timedelta(minutes=1),
    "s": timedelta(seconds=1),
}

DEFAULT_SESSION_PREFIX = "session-pilot"

# Carriage return, sent after the command text to run it
ENTER_KEY = "13"


def parse_age(text: str) -> timedelta | None:
    """Parse a zellij age such as ``1day 2h 3m 4s``; None when nothing matches."""
    total = timedelta()
    matched = False
    for part in AGE_PART.finditer(text):
        total += int(part.group("value")) * AGE_UNITS[part.group("unit")]
        matched = True
    return total if matched else None


def parse_session_line(
    line: str, session_prefix: str, now: datetime | None = None
) -> MultiplexerSession | None:
    """Parse one line of ``zellij list-sessions`` output.

    ``created_at`` is derived from the reported age, so it is only as
    precise as zellij's rounding. Returns None for blank lines and for
    sessions outside the prefix namespace.
    """
    line = ANSI_ESCAPE.sub("", line).strip()
    if not line:
        return None

    handle = line.split()[0]
    name = strip_handle(handle, session_prefix)
    if name is None:
        return None

    annotations = line[len(handle) :]
    created_at = None
    created = CREATED_AGO.search(annotations)
    if created:
        age = parse_age(created.group("age"))
        if age is not None:
            created_at = (now or datetime.now(timezone.utc)) - age

    return MultiplexerSession(
        name=name,
        handle=handle,
        created_at=created_at,
        attached=CURRENT_MARKER in annotations,
        running=EXITED_MARKER not in annotations,
    )


def parse_list_sessions_output(
    output: str, session_prefix: str, now: datetime | None = None
) -> list[MultiplexerSession]:
    """Parse the full ``list-sessions`` output, keeping only prefixed sessions."""
    if NO_SESSIONS_MARKER in ANSI_ESCAPE.sub("", output).lower():
        return []

    sessions = []
    for line in output.splitlines():
        session = parse_session_line(line, session_prefix, now)
        if session is not None:
            sessions.append(session)
    return sessions


class ZellijMultiplexer(TerminalMultiplexer):
    """Terminal multiplexer backend driving the zellij binary.

    Sessions are started with ``attach --create-background`` and the command
    is typed into the first pane, so a new session always has exactly one
    pane running the command inside the user's shell.
    """

    # Whitespace would split the listing line; zellij refuses "/"
    INVALID_NAME_CHARS = "/ \t\n"

    def __init__(
        self,
        session_prefix: str = DEFAULT_SESSION_PREFIX,
        binary_path: str | None = None,
        command_timeout: float = 10.0,
        default_command: str = TerminalMultiplexer.DEFAULT_COMMAND,
    ) -> None:
        super().__init__(session_prefix or DEFAULT_SESSION_PREFIX)
        self._configured_path = binary_path
        self.command_timeout = command_timeout
        self.default_command = default_command
        self.zellij_path = self._discover()
        mux_logger.info(
            f"Zellij multiplexer initialized - prefix: {self.session_prefix}, "
            f"path: {self.zellij_path}"
        )

    def get_name(self) -> str:
        return BACKEND_NAME

    def is_available(self) -> bool:
        self.zellij_path = self._discover()
        return self.zellij_path is not None

    def create_session(self, request: CreateSessionRequest) -> MultiplexerSession:
        self.validate_name(request.name)
        handle = self.get_handle(request.name)

        existing = self._find(request.name)
        if existing is not None:
            if existing.running:
                log_session_operation("create", handle, "error", {"reason": "already exists"})
                raise SessionAlreadyExistsError(request.name, {"backend": BACKEND_NAME})
            # An exited session with this name would be resurrected instead
            self._delete_exited(existing)

        command = request.command or self.default_command
        self._check(
            "create",
            request.name,
            self._run(["attach", "--create-background", handle], cwd=request.working_dir),
        )
        self._check(
            "create",
            request.name,
            self._run(["--session", handle, "action", "write-chars", command]),
        )
        self._check(
            "create",
            request.name,
            self._run(["--session", handle, "action", "write", ENTER_KEY]),
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
        session = self._find(name)
        if session is None:
            raise SessionNotFoundError(name, {"backend": BACKEND_NAME})
        return session

    def list_sessions(self) -> list[MultiplexerSession]:
        result = self._run(["list-sessions"])
        combined = ANSI_ESCAPE.sub("", result.stdout + result.stderr).lower()
        if NO_SESSIONS_MARKER in combined:
            log_session_list([])
            return []
        if result.returncode != 0:
            stderr = result.stderr.strip()
            raise MultiplexerError(
                f"failed to list zellij sessions: {stderr}",
                {"command": "list-sessions", "stderr": stderr},
            )

        sessions = parse_list_sessions_output(result.stdout, self.session_prefix)
        log_session_list([s.handle for s in sessions])
        return sessions

    def attach_to_session(self, name: str) -> None:
        """Attach the current terminal to a session.

        Blocks until the user detaches or the session exits. An exited
        session is resurrected by zellij on attach.
        """
        session = self.get_session(name)
        binary = self._require_binary()

        log_session_attach(session.handle)
        run_interactive(BACKEND_NAME, binary, ["attach", session.handle])

    def kill_session(self, name: str) -> None:
        session = self.get_session(name)

        if not session.running:
            self._delete_exited(session)
            return

        result = self._run(["kill-session", session.handle])
        if result.returncode != 0:
            stderr = result.stderr.strip()
            log_session_operation("kill", session.handle, "error", {"stderr": stderr})
            raise MultiplexerError(
                f"failed to kill zellij session '{name}': {stderr}",
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
            session = self._find(name)
        except BackendUnavailableError:
            return False
        return session is not None and session.running

    def get_session_pane_count(self, name: str) -> int:
        # zellij exposes no pane listing; a running session has at least one
        return 1 if self.has_session(name) else 0

    def _find(self, name: str) -> MultiplexerSession | None:
        for session in self.list_sessions():
            if session.name == name:
                return session
        return None

    def _delete_exited(self, session: MultiplexerSession) -> None:
        result = self._run(["delete-session", session.handle])
        if result.returncode != 0:
            stderr = result.stderr.strip()
            log_session_operation("delete", session.handle, "error", {"stderr": stderr})
            raise MultiplexerError(
                f"failed to delete exited zellij session '{session.name}': {stderr}",
                {"command": "delete-session", "stderr": stderr},
            )
        log_session_operation("delete", session.handle, "success")

    def _check(self, operation: str, name: str, result: subprocess.CompletedProcess[str]) -> None:
        if result.returncode == 0:
            return
        stderr = result.stderr.strip()
        handle = self.get_handle(name)
        log_session_operation(operation, handle, "error", {"stderr": stderr})
        raise MultiplexerError(
            f"failed to {operation} zellij session '{name}': {stderr}",
            {"command": result.args, "stderr": stderr},
        )

    def _discover(self) -> str | None:
        path = discover_binary(BACKEND_NAME, self._configured_path, ZELLIJ_LOCATIONS)
        log_binary_discovery(BACKEND_NAME, path)
        return path

    def _require_binary(self) -> str:
        if self.zellij_path is None:
            self.zellij_path = self._discover()
        if self.zellij_path is None:
            raise BackendUnavailableError(BACKEND_NAME)
        return self.zellij_path

    def _run(self, args: list[str], cwd: str | None = None) -> subprocess.CompletedProcess[str]:
        binary = self._require_binary()
        try:
            return run_captured(BACKEND_NAME, binary, args, self.command_timeout, cwd=cwd)
        except BackendUnavailableError:
            self.zellij_path = None
            raise
