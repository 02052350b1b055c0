"""
Session service.

The only component that sees both the persisted session records and the
live multiplexer state, and therefore the only one that decides a session's
effective status:

- ACTIVE: the multiplexer reports the session running with nobody attached
- CONNECTED: running and a terminal is attached
- INACTIVE: the multiplexer has no such session
- ERROR: reserved for records that never reached a running state

Status is recomputed on every read. The persisted value is a snapshot
written at creation and attach time and is never trusted on its own.
"""

from dataclasses import replace
from datetime import datetime

from ..multiplexer.base import CreateSessionRequest, MultiplexerSession, TerminalMultiplexer
from ..storage.repository import FileSessionRepository
from ..utils.logging import (
    AggregateFailureError,
    LogContext,
    MultiplexerError,
    PartialFailureError,
    RepositoryError,
    SessionAlreadyExistsError,
    SessionNotFoundError,
    SessionPilotException,
    audit_log,
    get_logger,
    log_performance,
)
from .enums import SessionStatus
from .models import Message, Session

logger = get_logger(__name__, LogContext.SERVICE)

ALL_SESSIONS_FILTER = "all"


class SessionService:
    """Session lifecycle and reconciliation between storage and the multiplexer."""

    def __init__(
        self,
        repository: FileSessionRepository,
        multiplexer: TerminalMultiplexer,
        default_command: str = TerminalMultiplexer.DEFAULT_COMMAND,
    ) -> None:
        """Initialize the service.

        Args:
            repository: Durable store for session records
            multiplexer: Backend hosting the live sessions
            default_command: Command started in new sessions when none is given
        """
        self.repository = repository
        self.multiplexer = multiplexer
        self.default_command = default_command

    def get_backend_name(self) -> str:
        """Name of the multiplexer backend in use."""
        return self.multiplexer.get_name()

    def create_session(
        self, name: str, description: str = "", working_dir: str = "", command: str = ""
    ) -> Session:
        """Create a session record and start its live session."""
        return self.create_session_advanced(
            CreateSessionRequest(
                name=name,
                description=description,
                working_dir=working_dir,
                command=command,
            )
        )

    @log_performance(LogContext.SERVICE)
    def create_session_advanced(self, request: CreateSessionRequest) -> Session:
        """Create a session from a full request.

        The record is persisted before the live session is started. If the
        multiplexer fails, the record is kept with status INACTIVE and a
        ``PartialFailureError`` carrying it is raised.

        Raises:
            InvalidSessionNameError: If the backend cannot represent the name
            SessionAlreadyExistsError: If a record with that name exists
            RepositoryError: If the initial record cannot be written
            PartialFailureError: If the record exists but the live session does not
        """
        request = replace(request)
        if not request.name:
            request.name = f"session-{datetime.now():%Y%m%d-%H%M%S}"
        if not request.command:
            request.command = self.default_command

        logger.debug(
            "Creating session",
            session_name=request.name,
            project_path=request.working_dir,
            command=request.command,
        )

        self.multiplexer.validate_name(request.name)
        if self.repository.exists(request.name):
            logger.warning("Session creation rejected: name exists", session_name=request.name)
            raise SessionAlreadyExistsError(request.name)

        session = Session(
            name=request.name,
            status=SessionStatus.ACTIVE,
            backend=self.multiplexer.get_name(),
            project_path=request.working_dir,
            description=request.description,
        )
        session_logger = logger.with_session(session.id, session.name)

        try:
            self.repository.save(session)
        except RepositoryError as e:
            session_logger.error("Failed to save session metadata", exception=e)
            raise

        try:
            self.multiplexer.create_session(request)
        except SessionPilotException as e:
            session_logger.error("Failed to create multiplexer session", error=e.message)
            session.status = SessionStatus.INACTIVE
            try:
                self.repository.save(session)
            except RepositoryError as save_error:
                session_logger.error("Failed to update session status", exception=save_error)
            self._save_index(session_logger)
            raise PartialFailureError(
                f"session '{session.name}' saved but the {self.get_backend_name()} "
                f"session failed to start: {e.message}",
                session,
                {"session_id": session.id, "backend": self.get_backend_name()},
            ) from e

        session.status = SessionStatus.ACTIVE
        try:
            self.repository.save(session)
        except RepositoryError as e:
            session_logger.error("Failed to update session status", exception=e)
            raise PartialFailureError(
                f"session '{session.name}' started but its status could not be saved",
                session,
                {"session_id": session.id},
            ) from e

        self._save_index(session_logger)
        session_logger.info("Session created", status=session.status.value)
        return session

    def get_session(self, identifier: str) -> Session:
        """Resolve a session by ID or name and reconcile its status.

        Raises:
            SessionNotFoundError: If neither lookup finds a record
        """
        session = self._resolve(identifier)
        return self._reconcile(session)

    @log_performance(LogContext.SERVICE)
    def list_sessions(self) -> list[Session]:
        """All sessions, reconciled against a single multiplexer listing."""
        sessions = self.repository.list()
        sessions.sort(key=lambda s: s.created_at)

        try:
            live_sessions = self.multiplexer.list_sessions()
        except MultiplexerError as e:
            logger.warning(
                "Multiplexer listing failed, reconciling sessions individually",
                error=e.message,
            )
            return [self._reconcile(session) for session in sessions]

        live_by_name = {live.name: live for live in live_sessions}
        for session in sessions:
            self._apply_live_state(session, live_by_name.get(session.name))

        logger.debug(
            "Sessions listed",
            count=len(sessions),
            live=len(live_sessions),
            skipped_records=len(self.repository.skipped_records),
        )
        return sessions

    def list_filtered_sessions(self, status_filter: str = "") -> list[Session]:
        """Reconciled sessions whose status matches ``status_filter``.

        An empty filter or ``all`` returns every session.

        Raises:
            ValueError: If the filter names no known status
        """
        if not status_filter or status_filter.lower() == ALL_SESSIONS_FILTER:
            return self.list_sessions()

        try:
            wanted = SessionStatus(status_filter.lower())
        except ValueError as e:
            valid = ", ".join([ALL_SESSIONS_FILTER] + [s.value for s in SessionStatus])
            raise ValueError(f"unknown session filter '{status_filter}' (expected one of: {valid})") from e

        return [session for session in self.list_sessions() if session.status == wanted]

    def update_session(self, session: Session) -> None:
        """Persist caller-modified metadata and bump ``last_active``.

        Raises:
            SessionNotFoundError: If the record does not exist
        """
        if not self.repository.exists(session.id):
            raise SessionNotFoundError(session.id)

        session.touch()
        self.repository.save(session)

    @audit_log("session.delete", LogContext.SERVICE)
    def delete_session(self, identifier: str) -> None:
        """Kill a session's live process, then remove its record.

        A failed kill leaves the record in place so the deletion can be
        retried.
        """
        session = self._resolve(identifier)
        session_logger = logger.with_session(session.id, session.name)

        if self.multiplexer.is_session_running(session.name):
            session_logger.debug("Killing running multiplexer session")
            try:
                self.multiplexer.kill_session(session.name)
            except SessionNotFoundError:
                session_logger.debug("Multiplexer session already gone")
            except MultiplexerError as e:
                session_logger.error("Failed to kill multiplexer session", error=e.message)
                raise

        self.repository.delete(session.id)
        self._save_index(session_logger)
        session_logger.info("Session deleted")

    @audit_log("session.kill_all", LogContext.SERVICE)
    def kill_all_sessions(self) -> None:
        """Delete every session, attempting all of them before reporting.

        Raises:
            AggregateFailureError: Listing every session that could not be deleted
        """
        sessions = self.list_sessions()
        failures: list[tuple[str, Exception]] = []

        for session in sessions:
            try:
                self.delete_session(session.id)
            except SessionPilotException as e:
                failures.append((session.name, e))

        if failures:
            raise AggregateFailureError("delete", failures, len(sessions))

    def attach_to_session(self, identifier: str) -> None:
        """Mark the session connected and attach to it.

        Blocks until the user detaches or the session exits. The status
        update is best effort and never prevents the attach.
        """
        session = self.get_session(identifier)
        session_logger = logger.with_session(session.id, session.name)

        session.status = SessionStatus.CONNECTED
        session.touch()
        try:
            self.repository.save(session)
        except RepositoryError as e:
            session_logger.warning("Failed to update session before attach", error=e.message)

        session_logger.info("Attaching to multiplexer session")
        self.multiplexer.attach_to_session(session.name)

    def is_session_running(self, identifier: str) -> bool:
        """True if the session exists and its live session is running."""
        try:
            session = self._resolve(identifier)
        except SessionPilotException:
            return False
        return self.multiplexer.is_session_running(session.name)

    def get_session_pane_count(self, identifier: str) -> int:
        """Pane count of the session's live session (zero when not running)."""
        session = self._resolve(identifier)
        return self.multiplexer.get_session_pane_count(session.name)

    def add_message(self, session_id: str, role: str, content: str) -> Message:
        """Append a message to a session's history.

        Raises:
            SessionNotFoundError: If the session does not exist
            ValueError: If the role is not ``user`` or ``assistant``
        """
        session = self.repository.find_by_id(session_id)
        message = Message(role=role, content=content)
        session.messages.append(message)
        session.touch()
        self.repository.save(session)
        return message

    def _resolve(self, identifier: str) -> Session:
        try:
            return self.repository.find_by_id(identifier)
        except SessionNotFoundError:
            pass

        try:
            return self.repository.find_by_name(identifier)
        except SessionNotFoundError:
            raise SessionNotFoundError(identifier) from None

    def _reconcile(self, session: Session) -> Session:
        try:
            live = self.multiplexer.get_session(session.name)
        except SessionNotFoundError:
            live = None
        except MultiplexerError as e:
            logger.warning(
                "Multiplexer query failed, reporting session inactive",
                session_name=session.name,
                error=e.message,
            )
            live = None

        self._apply_live_state(session, live)
        return session

    def _apply_live_state(self, session: Session, live: MultiplexerSession | None) -> None:
        if live is None or not live.running:
            session.status = SessionStatus.INACTIVE
            session.pane_count = 0
            return

        session.status = SessionStatus.CONNECTED if live.attached else SessionStatus.ACTIVE
        try:
            session.pane_count = self.multiplexer.get_session_pane_count(session.name)
        except MultiplexerError as e:
            logger.warning("Failed to get session pane count", session_name=session.name, error=e.message)
            session.pane_count = 0

    def _save_index(self, session_logger) -> None:
        try:
            self.repository.save_index()
        except RepositoryError as e:
            session_logger.warning("Failed to save name index", error=e.message)
