"""Unit tests for the logging and error handling framework."""

import json
import logging
import sys
from pathlib import Path

import pytest

from session_pilot.utils.logging import (
    AggregateFailureError,
    BackendUnavailableError,
    ContextualLogger,
    CorruptRecordError,
    LogContext,
    LogLevel,
    MultiplexerError,
    PartialFailureError,
    RepositoryError,
    SessionNotFoundError,
    SessionPilotException,
    StructuredFormatter,
    audit_log,
    disable_logging,
    get_logger,
    log_performance,
    setup_logging,
)


class TestExceptions:
    """Test the exception hierarchy."""

    def test_base_exception(self):
        error = SessionPilotException("something broke", {"key": "value"})
        assert str(error) == "something broke"
        assert error.context == {"key": "value"}
        assert error.timestamp.tzinfo is not None

    def test_not_found(self):
        error = SessionNotFoundError("web", {"lookup": "name"})
        assert error.message == "session 'web' not found"
        assert error.context == {"identifier": "web", "lookup": "name"}

    def test_backend_unavailable_is_multiplexer_error(self):
        error = BackendUnavailableError("tmux")
        assert isinstance(error, MultiplexerError)
        assert error.backend == "tmux"
        assert "install tmux" in error.message

    def test_corrupt_record_is_repository_error(self):
        error = CorruptRecordError(Path("/tmp/x.json"), "bad json")
        assert isinstance(error, RepositoryError)
        assert error.message == "session record x.json is corrupt: bad json"

    def test_partial_failure_carries_session(self):
        marker = object()
        assert PartialFailureError("half done", marker).session is marker

    def test_aggregate_failure_lists_every_failure(self):
        error = AggregateFailureError(
            "delete", [("a", MultiplexerError("x")), ("c", MultiplexerError("y"))], 3
        )
        assert str(error) == "delete failed for 2 of 3 sessions: a: x; c: y"
        assert error.context["failed"] == ["a", "c"]


class TestStructuredFormatter:
    """Test JSON log formatting."""

    def _record(self, **extra):
        record = logging.LogRecord("session_pilot.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_basic_fields(self):
        data = json.loads(StructuredFormatter().format(self._record()))
        assert data["message"] == "hello world"
        assert data["level"] == "INFO"
        assert data["logger"] == "session_pilot.test"

    def test_extra_fields(self):
        data = json.loads(
            StructuredFormatter().format(self._record(context="service", session_id="abc"))
        )
        assert data["context"] == "service"
        assert data["session_id"] == "abc"

    def test_exception_info(self):
        try:
            raise ValueError("bad")
        except ValueError:
            record = logging.LogRecord(
                "session_pilot.test", logging.ERROR, __file__, 1, "failed", (), sys.exc_info()
            )
        data = json.loads(StructuredFormatter().format(record))
        assert data["exception"]["type"] == "ValueError"


class TestContextualLogger:
    """Test contextual logging."""

    def test_context_and_kwargs_attached(self, caplog):
        logger = get_logger("session_pilot.test", LogContext.SERVICE)
        with caplog.at_level(logging.DEBUG, logger="session_pilot"):
            logger.info("hello", backend="tmux")

        record = caplog.records[-1]
        assert record.context == "service"
        assert record.backend == "tmux"

    def test_with_session(self, caplog):
        logger = get_logger("session_pilot.test", LogContext.SERVICE).with_session("id-1", "web")
        with caplog.at_level(logging.DEBUG, logger="session_pilot"):
            logger.warning("careful")

        record = caplog.records[-1]
        assert record.session_id == "id-1"
        assert record.session_name == "web"

    def test_error_with_exception(self, caplog):
        logger = ContextualLogger("session_pilot.test", LogContext.REPOSITORY)
        with caplog.at_level(logging.DEBUG, logger="session_pilot"):
            logger.error("failed", exception=ValueError("bad"))

        assert caplog.records[-1].exc_info[0] is ValueError


class TestSetupLogging:
    """Test logging configuration."""

    def test_file_logging(self, tmp_path):
        log_file = tmp_path / "logs" / "pilot.log"
        setup_logging(LogLevel.DEBUG, log_file, enable_structured=True, enable_console=False)

        get_logger("session_pilot.test", LogContext.CLI).info("to file")
        for handler in logging.getLogger().handlers:
            handler.flush()

        line = log_file.read_text().strip().splitlines()[-1]
        assert json.loads(line)["message"] == "to file"

    def test_console_logs_to_stderr(self, capsys):
        setup_logging("INFO", None, enable_structured=False, enable_console=True)

        get_logger("session_pilot.test", LogContext.CLI).info("visible")

        captured = capsys.readouterr()
        assert "visible" in captured.err
        assert captured.out == ""

    def test_disable_logging(self):
        disable_logging()
        disable_logging()

        package_logger = logging.getLogger("session_pilot")
        assert package_logger.propagate is False
        assert sum(isinstance(h, logging.NullHandler) for h in package_logger.handlers) == 1


class TestDecorators:
    """Test performance and audit decorators."""

    def test_log_performance_success(self, caplog):
        @log_performance(LogContext.SERVICE)
        def work(x):
            return x * 2

        with caplog.at_level(logging.DEBUG):
            assert work(21) == 42

        record = caplog.records[-1]
        assert record.function == "work"
        assert record.status == "success"

    def test_log_performance_failure_reraises(self, caplog):
        @log_performance(LogContext.SERVICE)
        def broken():
            raise MultiplexerError("nope")

        with caplog.at_level(logging.DEBUG):
            with pytest.raises(MultiplexerError):
                broken()

        assert caplog.records[-1].status == "error"

    def test_audit_log(self, caplog):
        @audit_log("session.delete")
        def delete(self, identifier):
            return identifier

        with caplog.at_level(logging.INFO):
            delete(None, "web")

        messages = [r.message for r in caplog.records]
        assert "Audit: session.delete started" in messages
        assert "Audit: session.delete completed successfully" in messages

    def test_audit_log_failure(self, caplog):
        @audit_log("session.delete")
        def delete(self, identifier):
            raise SessionNotFoundError(identifier)

        with caplog.at_level(logging.INFO):
            with pytest.raises(SessionNotFoundError):
                delete(None, "web")

        assert caplog.records[-1].message == "Audit: session.delete failed"
