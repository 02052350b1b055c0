"""Unit tests for the tmux backend with tmux itself mocked out."""

import os
import subprocess
from unittest.mock import patch

import pytest

from session_pilot.multiplexer.base import CreateSessionRequest
from session_pilot.multiplexer.process import discover_binary
from session_pilot.multiplexer.tmux import LIST_SESSIONS_FORMAT, TmuxMultiplexer
from session_pilot.utils.logging import (
    AggregateFailureError,
    BackendUnavailableError,
    InvalidSessionNameError,
    MultiplexerError,
    SessionAlreadyExistsError,
    SessionNotFoundError,
)

TMUX = "/usr/bin/tmux"


def completed(returncode: int = 0, stdout: str = "", stderr: str = ""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class FakeTmux:
    """Stand-in for subprocess.run that answers by tmux subcommand."""

    def __init__(self, **responses):
        self.responses = {key.replace("_", "-"): value for key, value in responses.items()}
        self.calls: list[list[str]] = []
        self.kwargs: list[dict] = []

    def __call__(self, cmd, **kwargs):
        self.calls.append(cmd)
        self.kwargs.append(kwargs)
        response = self.responses.get(cmd[1], completed())
        if callable(response):
            return response(cmd)
        if isinstance(response, BaseException):
            raise response
        return response

    def subcommands(self) -> list[str]:
        return [call[1] for call in self.calls]


@pytest.fixture
def which():
    with patch("session_pilot.multiplexer.process.shutil.which", return_value=TMUX) as mock:
        yield mock


@pytest.fixture
def tmux(which):
    return TmuxMultiplexer(session_prefix="session-pilot", default_command="claude")


def run_with(fake: FakeTmux):
    return patch("session_pilot.multiplexer.process.subprocess.run", side_effect=fake)


class TestDiscovery:
    """Test tmux binary discovery."""

    def _executable(self, path):
        path.write_text("#!/bin/sh\n")
        path.chmod(0o755)
        return str(path)

    def test_configured_path_wins(self, tmp_path, which):
        configured = self._executable(tmp_path / "tmux")
        assert discover_binary("tmux", configured) == configured
        which.assert_not_called()

    def test_invalid_configured_path_falls_back_to_path_search(self, tmp_path, which):
        assert discover_binary("tmux", str(tmp_path / "missing")) == TMUX

    def test_common_locations_used_when_not_on_path(self, tmp_path):
        fallback = self._executable(tmp_path / "tmux")
        with patch("session_pilot.multiplexer.process.shutil.which", return_value=None):
            assert discover_binary("tmux", None, (str(tmp_path / "nope"), fallback)) == fallback

    def test_non_executable_fallback_skipped(self, tmp_path):
        plain = tmp_path / "tmux"
        plain.write_text("")
        plain.chmod(0o644)
        with patch("session_pilot.multiplexer.process.shutil.which", return_value=None):
            assert discover_binary("tmux", None, (str(plain),)) is None

    def test_unavailable_backend(self):
        with patch("session_pilot.multiplexer.process.shutil.which", return_value=None), patch(
            "session_pilot.multiplexer.tmux.COMMON_LOCATIONS", ()
        ):
            tmux = TmuxMultiplexer()
            assert tmux.is_available() is False
            assert tmux.has_session("web") is False
            with pytest.raises(BackendUnavailableError, match="tmux is not available"):
                tmux.list_sessions()
            with pytest.raises(BackendUnavailableError):
                tmux.create_session(CreateSessionRequest(name="web"))

    def test_is_available(self, tmux):
        assert tmux.get_name() == "tmux"
        assert tmux.is_available() is True
        assert tmux.tmux_path == TMUX


class TestCreateSession:
    """Test session creation."""

    def test_create_builds_detached_session(self, tmux):
        fake = FakeTmux(has_session=completed(1, stderr="can't find session"))
        with run_with(fake):
            session = tmux.create_session(
                CreateSessionRequest(name="web", working_dir="/tmp/project", command="vim")
            )

        assert fake.calls[-1] == [
            TMUX, "new-session", "-d", "-s", "session-pilot-web", "-c", "/tmp/project", "vim",
        ]
        assert session.name == "web"
        assert session.handle == "session-pilot-web"
        assert session.running is True

    def test_create_uses_default_command(self, tmux):
        fake = FakeTmux(has_session=completed(1))
        with run_with(fake):
            tmux.create_session(CreateSessionRequest(name="web"))

        assert fake.calls[-1] == [TMUX, "new-session", "-d", "-s", "session-pilot-web", "claude"]

    def test_create_checks_existence_first(self, tmux):
        fake = FakeTmux(has_session=completed(0))
        with run_with(fake):
            with pytest.raises(SessionAlreadyExistsError):
                tmux.create_session(CreateSessionRequest(name="web"))

        assert fake.subcommands() == ["has-session"]
        assert fake.calls[0] == [TMUX, "has-session", "-t", "=session-pilot-web"]

    @pytest.mark.parametrize("name", ["my.proj", "host:1"])
    def test_create_rejects_names_tmux_would_rewrite(self, tmux, name):
        fake = FakeTmux()
        with run_with(fake):
            with pytest.raises(InvalidSessionNameError, match="tmux does not allow"):
                tmux.create_session(CreateSessionRequest(name=name))

        assert fake.calls == []

    def test_create_failure(self, tmux):
        fake = FakeTmux(
            has_session=completed(1),
            new_session=completed(1, stderr="no such directory\n"),
        )
        with run_with(fake):
            with pytest.raises(MultiplexerError, match="no such directory"):
                tmux.create_session(CreateSessionRequest(name="web", working_dir="/nope"))


class TestListSessions:
    """Test session listing."""

    def test_list_parses_prefixed_sessions(self, tmux):
        output = "session-pilot-api,1700000000,1\nmine,1700000000,0\nsession-pilot-docs,1700000001,0\n"
        fake = FakeTmux(list_sessions=completed(0, stdout=output))
        with run_with(fake):
            sessions = tmux.list_sessions()

        assert fake.calls[0] == [TMUX, "list-sessions", "-F", LIST_SESSIONS_FORMAT]
        assert [(s.name, s.attached) for s in sessions] == [("api", True), ("docs", False)]

    @pytest.mark.parametrize(
        "stderr",
        [
            "no server running on /tmp/tmux-1000/default\n",
            "no sessions\n",
            "error connecting to /tmp/tmux-1000/default (No such file or directory)\n",
        ],
    )
    def test_empty_state_is_empty_list(self, tmux, stderr):
        fake = FakeTmux(list_sessions=completed(1, stderr=stderr))
        with run_with(fake):
            assert tmux.list_sessions() == []

    def test_other_errors_raise(self, tmux):
        fake = FakeTmux(list_sessions=completed(1, stderr="protocol version mismatch"))
        with run_with(fake):
            with pytest.raises(MultiplexerError, match="protocol version mismatch"):
                tmux.list_sessions()

    def test_timeout_raises(self, tmux):
        fake = FakeTmux(list_sessions=subprocess.TimeoutExpired(cmd="tmux", timeout=10))
        with run_with(fake):
            with pytest.raises(MultiplexerError, match="timed out"):
                tmux.list_sessions()

    def test_binary_vanished(self, tmux):
        fake = FakeTmux(list_sessions=FileNotFoundError(TMUX))
        with run_with(fake):
            with pytest.raises(BackendUnavailableError):
                tmux.list_sessions()

    def test_commands_are_captured_with_timeout(self, tmux):
        fake = FakeTmux()
        with run_with(fake):
            tmux.list_sessions()

        assert fake.kwargs[0]["capture_output"] is True
        assert fake.kwargs[0]["timeout"] == tmux.command_timeout


class TestGetSession:
    """Test single-session lookups."""

    def test_get_session(self, tmux):
        fake = FakeTmux(list_sessions=completed(0, stdout="session-pilot-web,1700000000,0\n"))
        with run_with(fake):
            session = tmux.get_session("web")
            assert tmux.is_session_running("web") is True

        assert session.handle == "session-pilot-web"

    def test_get_missing_session(self, tmux):
        fake = FakeTmux(list_sessions=completed(0, stdout="session-pilot-webapp,1700000000,0\n"))
        with run_with(fake):
            with pytest.raises(SessionNotFoundError):
                tmux.get_session("web")
            assert tmux.is_session_running("web") is False

    def test_has_session_uses_exact_target(self, tmux):
        fake = FakeTmux(has_session=completed(0))
        with run_with(fake):
            assert tmux.has_session("web") is True

        assert fake.calls[0][-1] == "=session-pilot-web"


class TestKillSession:
    """Test killing sessions."""

    def test_kill_session(self, tmux):
        fake = FakeTmux(list_sessions=completed(0, stdout="session-pilot-web,1700000000,0\n"))
        with run_with(fake):
            tmux.kill_session("web")

        assert fake.calls[-1] == [TMUX, "kill-session", "-t", "=session-pilot-web"]

    def test_kill_missing_session(self, tmux):
        fake = FakeTmux(list_sessions=completed(1, stderr="no server running"))
        with run_with(fake):
            with pytest.raises(SessionNotFoundError):
                tmux.kill_session("web")

        assert "kill-session" not in fake.subcommands()

    def test_kill_all_attempts_every_session(self, tmux):
        output = "".join(f"session-pilot-{n},1700000000,0\n" for n in ("a", "b", "c"))

        def kill(cmd):
            if cmd[-1] == "=session-pilot-b":
                return completed(1, stderr="permission denied")
            return completed(0)

        fake = FakeTmux(list_sessions=completed(0, stdout=output), kill_session=kill)
        with run_with(fake):
            with pytest.raises(AggregateFailureError) as exc_info:
                tmux.kill_all_sessions()

        killed = [call[-1] for call in fake.calls if call[1] == "kill-session"]
        assert killed == ["=session-pilot-a", "=session-pilot-b", "=session-pilot-c"]
        assert [name for name, _ in exc_info.value.failures] == ["b"]
        assert "1 of 3" in str(exc_info.value)


class TestPaneCount:
    """Test pane counting."""

    def test_pane_count(self, tmux):
        fake = FakeTmux(list_panes=completed(0, stdout="%0\n%1\n%4\n"))
        with run_with(fake):
            assert tmux.get_session_pane_count("web") == 3

        assert fake.subcommands() == ["has-session", "list-panes"]
        assert fake.calls[-1] == [
            TMUX, "list-panes", "-s", "-t", "=session-pilot-web", "-F", "#{pane_id}",
        ]

    @pytest.mark.parametrize(
        "stderr",
        ["can't find session: session-pilot-web\n", "no server running on /tmp/tmux-1000/default\n"],
    )
    def test_pane_count_missing_session_skips_list_panes(self, tmux, stderr):
        fake = FakeTmux(has_session=completed(1, stderr=stderr))
        with run_with(fake):
            assert tmux.get_session_pane_count("web") == 0

        assert fake.subcommands() == ["has-session"]

    @pytest.mark.parametrize(
        "stderr",
        [
            # tmux 3.x reports a session-wide list-panes target as a window
            "can't find window: session-pilot-web\n",
            "can't find session: session-pilot-web\n",
            "no server running on /tmp/tmux-1000/default\n",
        ],
    )
    def test_pane_count_session_gone_before_list_panes(self, tmux, stderr):
        fake = FakeTmux(has_session=completed(0), list_panes=completed(1, stderr=stderr))
        with run_with(fake):
            assert tmux.get_session_pane_count("web") == 0

    def test_pane_count_other_error(self, tmux):
        fake = FakeTmux(list_panes=completed(1, stderr="server exited unexpectedly"))
        with run_with(fake):
            with pytest.raises(MultiplexerError):
                tmux.get_session_pane_count("web")


class TestAttach:
    """Test the interactive attach."""

    def _fake(self, attach_result=None):
        return FakeTmux(
            list_sessions=completed(0, stdout="session-pilot-web,1700000000,0\n"),
            attach_session=attach_result or completed(0),
            switch_client=attach_result or completed(0),
        )

    def test_attach_hands_over_the_terminal(self, tmux):
        fake = self._fake()
        with run_with(fake), patch.dict(os.environ, {}, clear=False):
            os.environ.pop("TMUX", None)
            tmux.attach_to_session("web")

        assert fake.calls[-1] == [TMUX, "attach-session", "-t", "=session-pilot-web"]
        assert "capture_output" not in fake.kwargs[-1]

    def test_attach_from_inside_tmux_switches_client(self, tmux):
        fake = self._fake()
        with run_with(fake), patch.dict(os.environ, {"TMUX": "/tmp/tmux-1000/default,1,0"}):
            tmux.attach_to_session("web")

        assert fake.calls[-1] == [TMUX, "switch-client", "-t", "=session-pilot-web"]

    def test_attach_failure(self, tmux):
        fake = self._fake(attach_result=completed(1))
        with run_with(fake), patch.dict(os.environ, {}, clear=False):
            os.environ.pop("TMUX", None)
            with pytest.raises(MultiplexerError, match="exited with status 1"):
                tmux.attach_to_session("web")

    def test_attach_missing_session(self, tmux):
        fake = FakeTmux(list_sessions=completed(0, stdout=""))
        with run_with(fake):
            with pytest.raises(SessionNotFoundError):
                tmux.attach_to_session("web")


class TestHandles:
    """Test prefix handling."""

    def test_get_and_strip_handle(self, tmux):
        assert tmux.get_handle("web") == "session-pilot-web"
        assert tmux.strip_handle("session-pilot-web") == "web"
        assert tmux.strip_handle("other-web") is None

    def test_empty_prefix_uses_default(self, which):
        assert TmuxMultiplexer(session_prefix="").session_prefix == "session-pilot"
