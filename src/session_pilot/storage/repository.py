"""
File-backed session repository.

Each session record is stored as ``<sessions_dir>/<id>.json``. A name to ID
index lives beside the records in ``.name_index.json``; it is a cache that
is rebuilt from the record files whenever it cannot be loaded.

Writes go to a temporary file in the same directory which is then renamed
over the target, so readers never observe a partially written record.
"""

import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from ..core.models import NameIndex, Session
from ..utils.logging import (
    CorruptRecordError,
    LogContext,
    RepositoryError,
    SessionNotFoundError,
    get_logger,
)
from .locking import ReadWriteLock

logger = get_logger(__name__, LogContext.REPOSITORY)

INDEX_FILE_NAME = ".name_index.json"
RECORD_SUFFIX = ".json"
TEMP_SUFFIX = ".tmp"

# Files in the sessions directory that are never session records
IGNORE_FILES = frozenset({INDEX_FILE_NAME})


class FileSessionRepository:
    """Stores session records as individual JSON files."""

    def __init__(self, sessions_dir: str | Path) -> None:
        """Open (and create if needed) the sessions directory.

        Args:
            sessions_dir: Directory holding record files and the name index

        Raises:
            RepositoryError: If the directory or the index cannot be initialized
        """
        self.sessions_dir = Path(sessions_dir).expanduser()
        self._name_index: dict[str, str] = {}
        self._index_lock = ReadWriteLock()
        self.skipped_records: list[Path] = []

        try:
            self.sessions_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise RepositoryError(
                f"failed to create sessions directory {self.sessions_dir}: {e}",
                {"sessions_dir": str(self.sessions_dir)},
            ) from e

        if not self._load_index():
            self.rebuild_index()

    @property
    def index_path(self) -> Path:
        return self.sessions_dir / INDEX_FILE_NAME

    def save(self, session: Session) -> None:
        """Persist a session record and update the in-memory name index.

        The index file itself is only written by ``save_index``.
        """
        with self._index_lock.write_locked():
            self._name_index[session.name] = session.id

        try:
            self._write_atomic(self._record_path(session.id), session.to_json())
        except OSError as e:
            raise RepositoryError(
                f"failed to write session {session.id}: {e}",
                {"session_id": session.id, "operation": "save"},
            ) from e

        logger.debug("Session record saved", session_id=session.id, session_name=session.name)

    def find_by_id(self, session_id: str) -> Session:
        """Load one record by ID.

        Raises:
            SessionNotFoundError: If no record file exists
            CorruptRecordError: If the file cannot be parsed
        """
        path = self._record_path(session_id)
        try:
            data = path.read_bytes()
        except FileNotFoundError as e:
            raise SessionNotFoundError(session_id, {"lookup": "id"}) from e
        except OSError as e:
            raise RepositoryError(
                f"failed to read session {session_id}: {e}",
                {"session_id": session_id, "operation": "find_by_id"},
            ) from e

        try:
            return Session.from_json(data)
        except (ValidationError, UnicodeDecodeError) as e:
            raise CorruptRecordError(path, str(e)) from e

    def find_by_name(self, name: str) -> Session:
        """Resolve a name through the index, then load the record.

        Raises:
            SessionNotFoundError: If the name is not indexed
        """
        with self._index_lock.read_locked():
            session_id = self._name_index.get(name)

        if session_id is None:
            raise SessionNotFoundError(name, {"lookup": "name"})

        return self.find_by_id(session_id)

    def list(self) -> list[Session]:
        """Return every readable record, skipping corrupt files.

        Paths skipped by this call are kept in ``skipped_records``.
        """
        sessions: list[Session] = []
        skipped: list[Path] = []

        for path in sorted(self.sessions_dir.glob(f"*{RECORD_SUFFIX}")):
            if path.name in IGNORE_FILES or not path.is_file():
                continue
            try:
                sessions.append(Session.from_json(path.read_bytes()))
            except (OSError, ValidationError, UnicodeDecodeError) as e:
                skipped.append(path)
                logger.warning(
                    "Skipping unreadable session record",
                    path=str(path),
                    error=str(e).splitlines()[0],
                )

        self.skipped_records = skipped
        return sessions

    def delete(self, session_id: str) -> None:
        """Remove a record file and its index entry.

        Raises:
            SessionNotFoundError: If the record does not exist
        """
        session = self.find_by_id(session_id)

        try:
            self._record_path(session_id).unlink()
        except FileNotFoundError as e:
            raise SessionNotFoundError(session_id, {"lookup": "id"}) from e
        except OSError as e:
            raise RepositoryError(
                f"failed to remove session {session_id}: {e}",
                {"session_id": session_id, "operation": "delete"},
            ) from e

        with self._index_lock.write_locked():
            if self._name_index.get(session.name) == session_id:
                del self._name_index[session.name]

        logger.debug("Session record deleted", session_id=session_id, session_name=session.name)

    def exists(self, identifier: str) -> bool:
        """True if ``identifier`` resolves as an ID or as a name."""
        for lookup in (self.find_by_id, self.find_by_name):
            try:
                lookup(identifier)
                return True
            except (SessionNotFoundError, RepositoryError):
                continue
        return False

    def save_index(self) -> None:
        """Write the in-memory name index to disk."""
        with self._index_lock.read_locked():
            index = NameIndex(name_to_id=dict(self._name_index))

        try:
            self._write_atomic(self.index_path, index.model_dump_json(indent=2))
        except OSError as e:
            raise RepositoryError(
                f"failed to write name index: {e}", {"operation": "save_index"}
            ) from e

    def rebuild_index(self) -> None:
        """Re-derive the name index from the record files and persist it."""
        sessions = self.list()

        with self._index_lock.write_locked():
            self._name_index = {session.name: session.id for session in sessions}

        logger.info("Name index rebuilt", sessions=len(sessions))
        self.save_index()

    def indexed_names(self) -> dict[str, str]:
        """Snapshot of the name to ID mapping."""
        with self._index_lock.read_locked():
            return dict(self._name_index)

    def _load_index(self) -> bool:
        try:
            index = NameIndex.model_validate_json(self.index_path.read_bytes())
        except FileNotFoundError:
            return False
        except (OSError, ValidationError, UnicodeDecodeError) as e:
            logger.warning("Name index unreadable, rebuilding", error=str(e).splitlines()[0])
            return False

        with self._index_lock.write_locked():
            self._name_index = dict(index.name_to_id)
        return True

    def _record_path(self, session_id: str) -> Path:
        # Guard against path traversal through crafted IDs
        return self.sessions_dir / f"{os.path.basename(session_id)}{RECORD_SUFFIX}"

    def _write_atomic(self, path: Path, content: str) -> None:
        fd, temp_name = tempfile.mkstemp(
            dir=self.sessions_dir, prefix=f".{path.stem}.", suffix=TEMP_SUFFIX
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(temp_name, 0o644)
            os.replace(temp_name, path)
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise

    def __repr__(self) -> str:
        return f"FileSessionRepository(sessions_dir={str(self.sessions_dir)!r})"
