"""
Capability interface for terminal multiplexer backends.

A backend hosts named, detachable terminal sessions in an external process.
Every session created through this interface is namespaced with a prefix so
sessions owned by other users of the same binary stay invisible.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

from ..utils.logging import InvalidSessionNameError, MultiplexerError, SessionNotFoundError


def make_handle(session_prefix: str, name: str) -> str:
    """Namespace a session name under a prefix."""
    return f"{session_prefix}-{name}"


def strip_handle(handle: str, session_prefix: str) -> str | None:
    """Inverse of ``make_handle``.

    None for handles outside the prefix namespace or with an empty name.
    """
    prefix = make_handle(session_prefix, "")
    if not handle.startswith(prefix) or len(handle) == len(prefix):
        return None
    return handle[len(prefix) :]


@dataclass
class CreateSessionRequest:
    """Parameters for starting a new live session."""

    name: str
    description: str = ""
    working_dir: str = ""
    command: str = ""


@dataclass
class MultiplexerSession:
    """Live state of one session as observed by a backend.

    Produced fresh on every query; never persisted.
    """

    name: str
    handle: str
    created_at: datetime | None = None
    attached: bool = False
    running: bool = True
    pane_count: int = 0
    working_dir: str = ""


class TerminalMultiplexer(ABC):
    """Operations every multiplexer backend provides.

    ``attach_to_session`` differs from every other operation: it hands the
    current terminal to the external process and blocks until the user
    detaches or the session exits.
    """

    DEFAULT_COMMAND = "claude"

    # Characters a backend cannot keep in a session name
    INVALID_NAME_CHARS = ""

    def __init__(self, session_prefix: str) -> None:
        self.session_prefix = session_prefix

    @abstractmethod
    def get_name(self) -> str:
        """Backend name, e.g. ``tmux``."""

    @abstractmethod
    def is_available(self) -> bool:
        """True if the backend binary can be discovered."""

    @abstractmethod
    def create_session(self, request: CreateSessionRequest) -> MultiplexerSession:
        """Start a detached session.

        Raises:
            SessionAlreadyExistsError: If a live session with that name exists
            BackendUnavailableError: If the binary cannot be found
            MultiplexerError: If the backend rejects the command
        """

    @abstractmethod
    def get_session(self, name: str) -> MultiplexerSession:
        """Live state for one session.

        Raises:
            SessionNotFoundError: If no such live session exists
        """

    @abstractmethod
    def list_sessions(self) -> list[MultiplexerSession]:
        """Every live session owned by this prefix; empty when none or no server."""

    @abstractmethod
    def attach_to_session(self, name: str) -> None:
        """Attach the current terminal to a session. Blocks until detach or exit."""

    @abstractmethod
    def kill_session(self, name: str) -> None:
        """Terminate one session."""

    @abstractmethod
    def has_session(self, name: str) -> bool:
        """True if a live session with that name exists."""

    @abstractmethod
    def get_session_pane_count(self, name: str) -> int:
        """Number of panes in a session; zero when the session does not exist."""

    def get_handle(self, name: str) -> str:
        """The backend-side identity of a session name."""
        return make_handle(self.session_prefix, name)

    def strip_handle(self, handle: str) -> str | None:
        """Inverse of ``get_handle``; None for handles outside this prefix."""
        return strip_handle(handle, self.session_prefix)

    def validate_name(self, name: str) -> None:
        """Reject names the backend would silently rewrite or cannot address.

        Raises:
            InvalidSessionNameError: If ``name`` contains an ``INVALID_NAME_CHARS`` character
        """
        found = "".join(sorted({c for c in name if c in self.INVALID_NAME_CHARS}))
        if found:
            raise InvalidSessionNameError(name, self.get_name(), found)

    def is_session_running(self, name: str) -> bool:
        """True if the session is live and running."""
        try:
            return self.get_session(name).running
        except (SessionNotFoundError, MultiplexerError):
            return False
