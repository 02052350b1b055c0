"""
Pytest configuration and shared fixtures for session-pilot tests.
"""

import logging
import sys
from collections.abc import Generator
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from session_pilot.core.service import SessionService
from session_pilot.multiplexer.base import (
    CreateSessionRequest,
    MultiplexerSession,
    TerminalMultiplexer,
)
from session_pilot.storage.repository import FileSessionRepository
from session_pilot.utils.logging import (
    MultiplexerError,
    SessionAlreadyExistsError,
    SessionNotFoundError,
)


class FakeMultiplexer(TerminalMultiplexer):
    """In-memory multiplexer that records how it is called."""

    def __init__(self, session_prefix: str = "test-pilot"):
        super().__init__(session_prefix)
        self.sessions: dict[str, MultiplexerSession] = {}
        self.panes: dict[str, int] = {}
        self.available = True
        self.list_calls = 0
        self.get_calls = 0
        self.created: list[CreateSessionRequest] = []
        self.attached: list[str] = []
        self.killed: list[str] = []
        self.create_error: Exception | None = None
        self.list_error: Exception | None = None
        self.kill_errors: dict[str, Exception] = {}

    def add_live(self, name: str, attached: bool = False, panes: int = 1) -> None:
        """Simulate a live session started outside the service."""
        self.sessions[name] = MultiplexerSession(
            name=name,
            handle=self.get_handle(name),
            created_at=datetime.now(timezone.utc),
            attached=attached,
        )
        self.panes[name] = panes

    def get_name(self) -> str:
        return "fake"

    def is_available(self) -> bool:
        return self.available

    def create_session(self, request: CreateSessionRequest) -> MultiplexerSession:
        self.created.append(request)
        if self.create_error is not None:
            raise self.create_error
        if request.name in self.sessions:
            raise SessionAlreadyExistsError(request.name)
        self.add_live(request.name)
        self.sessions[request.name].working_dir = request.working_dir
        return self.sessions[request.name]

    def get_session(self, name: str) -> MultiplexerSession:
        self.get_calls += 1
        if name not in self.sessions:
            raise SessionNotFoundError(name)
        return self.sessions[name]

    def list_sessions(self) -> list[MultiplexerSession]:
        self.list_calls += 1
        if self.list_error is not None:
            raise self.list_error
        return list(self.sessions.values())

    def attach_to_session(self, name: str) -> None:
        self.get_session(name)
        self.attached.append(name)

    def kill_session(self, name: str) -> None:
        if name in self.kill_errors:
            raise self.kill_errors[name]
        if name not in self.sessions:
            raise SessionNotFoundError(name)
        del self.sessions[name]
        self.panes.pop(name, None)
        self.killed.append(name)

    def has_session(self, name: str) -> bool:
        return name in self.sessions

    def get_session_pane_count(self, name: str) -> int:
        if name not in self.sessions:
            return 0
        return self.panes.get(name, 0)


@pytest.fixture(autouse=True)
def restore_logging() -> Generator[None, None, None]:
    """Undo logging configuration changes made by a test."""
    root_logger = logging.getLogger()
    root_handlers = root_logger.handlers[:]
    root_level = root_logger.level
    package_logger = logging.getLogger("session_pilot")
    package_handlers = package_logger.handlers[:]

    yield

    root_logger.handlers[:] = root_handlers
    root_logger.setLevel(root_level)
    package_logger.handlers[:] = package_handlers
    package_logger.propagate = True


@pytest.fixture
def sessions_dir(tmp_path: Path) -> Path:
    """Directory holding session records for one test."""
    return tmp_path / "sessions"


@pytest.fixture
def repository(sessions_dir: Path) -> FileSessionRepository:
    """Repository backed by a temporary directory."""
    return FileSessionRepository(sessions_dir)


@pytest.fixture
def fake_mux() -> FakeMultiplexer:
    """In-memory multiplexer."""
    return FakeMultiplexer()


@pytest.fixture
def service(repository: FileSessionRepository, fake_mux: FakeMultiplexer) -> SessionService:
    """Session service wired to a temporary repository and the fake multiplexer."""
    return SessionService(repository, fake_mux, default_command="bash")


@pytest.fixture
def failing_list_mux(fake_mux: FakeMultiplexer) -> FakeMultiplexer:
    """Fake multiplexer whose batch listing fails."""
    fake_mux.list_error = MultiplexerError("list-sessions exploded")
    return fake_mux
