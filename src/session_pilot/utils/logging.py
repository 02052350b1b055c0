"""
Logging and error handling framework for session-pilot.

This module provides:
- Structured logging configuration
- The session-pilot exception hierarchy
- Context-aware logging utilities
- Performance and audit logging decorators
"""

import functools
import json
import logging
import sys
import time
import traceback
from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any


class LogLevel(str, Enum):
    """Log level enumeration for type safety."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogContext(str, Enum):
    """Log context categories for structured logging."""

    REPOSITORY = "repository"
    MULTIPLEXER = "multiplexer"
    SERVICE = "service"
    CLIENT = "client"
    CLI = "cli"
    CONFIG = "config"


class SessionPilotException(Exception):
    """Base exception class for all session-pilot errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)


class SessionNotFoundError(SessionPilotException):
    """No record or live session exists for the given identifier."""

    def __init__(self, identifier: str, context: dict[str, Any] | None = None):
        super().__init__(
            f"session '{identifier}' not found",
            {"identifier": identifier, **(context or {})},
        )
        self.identifier = identifier


class SessionAlreadyExistsError(SessionPilotException):
    """A session with the same name already exists."""

    def __init__(self, identifier: str, context: dict[str, Any] | None = None):
        super().__init__(
            f"session with name '{identifier}' already exists",
            {"identifier": identifier, **(context or {})},
        )
        self.identifier = identifier


class InvalidSessionNameError(SessionPilotException):
    """A session name the multiplexer backend cannot represent."""

    def __init__(self, name: str, backend: str, invalid_chars: str):
        shown = " ".join(repr(c) for c in invalid_chars)
        super().__init__(
            f"invalid session name '{name}': {backend} does not allow {shown}",
            {"identifier": name, "backend": backend},
        )
        self.identifier = name
        self.backend = backend


class MultiplexerError(SessionPilotException):
    """An external multiplexer command failed."""

    pass


class BackendUnavailableError(MultiplexerError):
    """The multiplexer binary could not be discovered."""

    def __init__(self, backend: str, context: dict[str, Any] | None = None):
        super().__init__(
            f"{backend} is not available (install {backend} or set backend_path)",
            {"backend": backend, **(context or {})},
        )
        self.backend = backend


class RepositoryError(SessionPilotException):
    """Errors related to session record storage."""

    pass


class CorruptRecordError(RepositoryError):
    """A session record file exists but cannot be parsed."""

    def __init__(self, path: Path, reason: str):
        super().__init__(
            f"session record {path.name} is corrupt: {reason}",
            {"path": str(path)},
        )
        self.path = path


class PartialFailureError(SessionPilotException):
    """Metadata was persisted but the live session did not reach a running state.

    The persisted record is still usable and is available as ``session``.
    """

    def __init__(self, message: str, session: Any, context: dict[str, Any] | None = None):
        super().__init__(message, context)
        self.session = session


class AggregateFailureError(SessionPilotException):
    """A bulk operation failed for one or more items.

    ``failures`` holds one ``(name, exception)`` pair per failed item.
    """

    def __init__(self, operation: str, failures: list[tuple[str, Exception]], total: int):
        details = "; ".join(f"{name}: {error}" for name, error in failures)
        super().__init__(
            f"{operation} failed for {len(failures)} of {total} sessions: {details}",
            {"operation": operation, "failed": [name for name, _ in failures]},
        )
        self.failures = failures
        self.total = total


class ConfigurationError(SessionPilotException):
    """Errors related to configuration and setup."""

    pass


# Attributes every LogRecord carries; anything else on a record came from ``extra``
_RECORD_ATTRIBUTES = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


class StructuredFormatter(logging.Formatter):
    """Render each record as one JSON object per line.

    Keyword fields passed through ``ContextualLogger`` (session id, backend,
    command...) appear as top-level keys next to the standard ones.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        log_data.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES and not key.startswith("_")
        )

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, exc_tb = record.exc_info
            log_data["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": traceback.format_exception(exc_type, exc_value, exc_tb),
            }

        return json.dumps(log_data, default=str)


class ContextualLogger:
    """Logger with context management for structured logging."""

    def __init__(self, name: str, context: LogContext):
        self.logger = logging.getLogger(name)
        self.context = context.value
        self.session_id: str | None = None
        self.session_name: str | None = None

    def with_session(self, session_id: str, session_name: str) -> "ContextualLogger":
        """Return a child logger that tags every record with the session identity."""
        child = ContextualLogger(self.logger.name, LogContext(self.context))
        child.session_id = session_id
        child.session_name = session_name
        return child

    def _log(
        self,
        level: int,
        message: str,
        extra_context: dict[str, Any] | None = None,
        exc_info: BaseException | None = None,
    ) -> None:
        """Internal logging method with context injection."""
        extra: dict[str, Any] = {
            "context": self.context,
        }

        if self.session_id:
            extra["session_id"] = self.session_id

        if self.session_name:
            extra["session_name"] = self.session_name

        if extra_context:
            extra.update(extra_context)

        self.logger.log(level, message, exc_info=exc_info, extra=extra)

    def debug(self, message: str, **kwargs) -> None:
        """Log debug message with context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs) -> None:
        """Log info message with context."""
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs) -> None:
        """Log warning message with context."""
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, exception: Exception | None = None, **kwargs) -> None:
        """Log error message with context and optional exception."""
        self._log(logging.ERROR, message, kwargs, exc_info=exception)


def get_logger(name: str, context: LogContext) -> ContextualLogger:
    """Get a contextual logger instance."""
    return ContextualLogger(name, context)


PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _make_handler(handler: logging.Handler, structured: bool) -> logging.Handler:
    handler.setFormatter(StructuredFormatter() if structured else logging.Formatter(PLAIN_FORMAT))
    return handler


def setup_logging(
    log_level: str | LogLevel = LogLevel.INFO,
    log_file: Path | None = None,
    enable_structured: bool = True,
    enable_console: bool = True,
) -> None:
    """
    Install session-pilot log handlers on the root logger.

    Console output goes to stderr so command output on stdout stays clean.
    Any previously installed root handlers are replaced.

    Args:
        log_level: Minimum log level to capture
        log_file: Optional file path for log output
        enable_structured: Use JSON structured logging format
        enable_console: Enable console output
    """
    level = LogLevel(log_level.upper()) if isinstance(log_level, str) else log_level

    handlers: list[logging.Handler] = []
    if enable_console:
        handlers.append(_make_handler(logging.StreamHandler(sys.stderr), enable_structured))
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(_make_handler(logging.FileHandler(log_file), enable_structured))

    root_logger = logging.getLogger()
    root_logger.handlers[:] = handlers
    root_logger.setLevel(level.value)

    logging.getLogger("session_pilot").propagate = True


def disable_logging() -> None:
    """Silence session-pilot loggers (the default when logging is not enabled)."""
    package_logger = logging.getLogger("session_pilot")
    if not any(isinstance(h, logging.NullHandler) for h in package_logger.handlers):
        package_logger.addHandler(logging.NullHandler())
    package_logger.propagate = False


def log_performance(log_context: LogContext = LogContext.SERVICE):
    """Decorator to log function performance metrics."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger = get_logger(func.__module__, log_context)

            start_time = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.warning(
                    f"Performance: {func.__name__} failed",
                    function=func.__name__,
                    execution_time=time.perf_counter() - start_time,
                    status="error",
                    error=str(e),
                )
                raise

            logger.debug(
                f"Performance: {func.__name__} completed",
                function=func.__name__,
                execution_time=time.perf_counter() - start_time,
                status="success",
            )
            return result

        return wrapper

    return decorator


def audit_log(action: str, log_context: LogContext = LogContext.SERVICE):
    """Decorator for audit logging of destructive operations."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger = get_logger(f"{func.__module__}.audit", log_context)

            logger.info(
                f"Audit: {action} started",
                action=action,
                function=func.__name__,
                target=str(args[1:])[:100],
            )

            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f"Audit: {action} failed",
                    action=action,
                    function=func.__name__,
                    status="error",
                    error=str(e),
                )
                raise

            logger.info(
                f"Audit: {action} completed successfully",
                action=action,
                function=func.__name__,
                status="success",
            )
            return result

        return wrapper

    return decorator
