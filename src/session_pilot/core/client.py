"""
High-level session client.

Composition root shared by every front end: it loads configuration, sets up
logging, picks the multiplexer backend and wires the repository and service
together. Front ends talk to this class only.
"""

import os
from pathlib import Path
from typing import Any

from ..config.loader import PilotConfig, load_config
from ..multiplexer.registry import MultiplexerRegistry
from ..storage.repository import FileSessionRepository
from ..utils.logging import LogContext, disable_logging, get_logger, setup_logging
from .models import Message, Session
from .service import SessionService

logger = get_logger(__name__, LogContext.CLIENT)


def resolve_project_path(project_path: str = "") -> str:
    """Resolve a project path for a new session.

    Empty means the current directory, ``~`` and ``~/...`` expand to the
    home directory and relative paths are made absolute.
    """
    if not project_path:
        return os.getcwd()

    if project_path == "~" or project_path.startswith("~/"):
        project_path = os.path.expanduser(project_path)

    return os.path.abspath(project_path)


def configure_logging(config: PilotConfig, verbose: bool = False) -> None:
    """Apply the logging settings from ``config``.

    Logging stays silent unless it is enabled in the configuration or
    ``verbose`` is set. Verbose output goes to the console, otherwise logs
    are written to the configured file only.
    """
    if not (config.log_enabled or verbose):
        disable_logging()
        return

    setup_logging(
        log_level="DEBUG" if verbose else config.log_level,
        log_file=config.log_path,
        enable_structured=not verbose,
        enable_console=verbose,
    )


class SessionClient:
    """Session operations for command-line and other front ends."""

    def __init__(self, config: PilotConfig, service: SessionService) -> None:
        self.config = config
        self.service = service

    @classmethod
    def from_config(
        cls,
        config_path: str | None = None,
        profile: str | None = None,
        cli_overrides: dict[str, Any] | None = None,
        verbose: bool = False,
        registry: MultiplexerRegistry | None = None,
    ) -> "SessionClient":
        """Build a fully wired client.

        Raises:
            ConfigurationError: If the configuration is invalid or names an unknown backend
            BackendUnavailableError: If no multiplexer backend can be found
            RepositoryError: If the sessions directory cannot be initialized
        """
        config = load_config(config_path, profile, cli_overrides)
        configure_logging(config, verbose)

        if registry is None:
            registry = MultiplexerRegistry(
                binary_path=config.backend_path,
                command_timeout=config.command_timeout,
                default_command=config.default_command,
                binary_backend=config.backend,
            )

        multiplexer = registry.get(config.backend, config.session_prefix)
        repository = FileSessionRepository(config.sessions_path)
        service = SessionService(repository, multiplexer, config.default_command)

        logger.info(
            "Client initialized",
            backend=multiplexer.get_name(),
            sessions_dir=str(config.sessions_path),
            session_prefix=config.session_prefix,
            logging_enabled=config.log_enabled,
            verbose=verbose,
        )
        return cls(config, service)

    def get_config(self) -> PilotConfig:
        return self.config

    def get_backend_name(self) -> str:
        return self.service.get_backend_name()

    def create_session(
        self, name: str = "", description: str = "", project_path: str = "", command: str = ""
    ) -> Session:
        """Create a session in the resolved project directory."""
        return self.service.create_session(
            name,
            description=description,
            working_dir=resolve_project_path(project_path),
            command=command,
        )

    def get_session(self, identifier: str) -> Session:
        return self.service.get_session(identifier)

    def list_sessions(self) -> list[Session]:
        return self.service.list_sessions()

    def list_filtered_sessions(self, status_filter: str = "") -> list[Session]:
        return self.service.list_filtered_sessions(status_filter)

    def update_session(self, session: Session) -> None:
        self.service.update_session(session)

    def attach_to_session(self, identifier: str) -> None:
        """Attach the current terminal. Blocks until detach or session exit."""
        self.service.attach_to_session(identifier)

    def delete_session(self, identifier: str) -> None:
        self.service.delete_session(identifier)

    kill_session = delete_session

    def kill_all_sessions(self) -> None:
        self.service.kill_all_sessions()

    def is_session_running(self, identifier: str) -> bool:
        return self.service.is_session_running(identifier)

    def get_session_pane_count(self, identifier: str) -> int:
        return self.service.get_session_pane_count(identifier)

    def add_message(self, session_id: str, role: str, content: str) -> Message:
        return self.service.add_message(session_id, role, content)

    @property
    def sessions_dir(self) -> Path:
        return self.service.repository.sessions_dir
