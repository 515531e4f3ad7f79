"""Tests for the tmux backend, with subprocess mocked out."""

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from resumer.errors import EnumerationError, TmuxError
from resumer.tmux import LIST_FORMAT, TmuxBackend, parse_list_output


def completed(returncode=0, stdout="", stderr=""):
    result = MagicMock()
    result.returncode = returncode
    result.stdout = stdout
    result.stderr = stderr
    return result


class TestParseListOutput:
    """Tests for list-sessions output parsing."""

    def test_parses_fields(self):
        out = "work\t1\t3\tvim\t/home/u/proj\nres_x_ab_123456\t0\t1\tbash\t/tmp\n"
        sessions = parse_list_output(out)
        assert [s.name for s in sessions] == ["work", "res_x_ab_123456"]
        assert sessions[0].attached == 1
        assert sessions[0].windows == 3
        assert sessions[0].current_command == "vim"
        assert sessions[0].current_path == "/home/u/proj"

    def test_tolerates_short_and_blank_lines(self):
        sessions = parse_list_output("\nlonely\n\n")
        assert len(sessions) == 1
        assert sessions[0].name == "lonely"
        assert sessions[0].attached == 0
        assert sessions[0].windows == 1
        assert sessions[0].current_path is None


class TestTmuxBackend:
    """Tests for TmuxBackend."""

    @patch("resumer.tmux.subprocess.run")
    def test_list_sessions(self, mock_run):
        mock_run.return_value = completed(stdout="work\t0\t1\tzsh\t/tmp\n")
        sessions = TmuxBackend().list_sessions()
        assert [s.name for s in sessions] == ["work"]
        args = mock_run.call_args[0][0]
        assert args == ["tmux", "list-sessions", "-F", LIST_FORMAT]

    @patch("resumer.tmux.subprocess.run")
    def test_no_server_is_empty(self, mock_run):
        mock_run.return_value = completed(1, stderr="no server running on /tmp/tmux-1000/default\n")
        assert TmuxBackend().list_sessions() == []

    @patch("resumer.tmux.subprocess.run")
    def test_missing_tmux_is_an_error(self, mock_run):
        mock_run.side_effect = FileNotFoundError("tmux")
        with pytest.raises(EnumerationError):
            TmuxBackend().list_sessions()

    @patch("resumer.tmux.subprocess.run")
    def test_other_failures_are_errors(self, mock_run):
        mock_run.return_value = completed(1, stderr="protocol version mismatch")
        with pytest.raises(EnumerationError):
            TmuxBackend().list_sessions()

    @patch("resumer.tmux.subprocess.run")
    def test_timeout_is_an_error(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired("tmux", 10)
        with pytest.raises(EnumerationError):
            TmuxBackend().list_sessions()

    @patch("resumer.tmux.subprocess.run")
    def test_get_env(self, mock_run):
        mock_run.return_value = completed(stdout="RESUMER_PROJECT_PATH=/tmp/a=b\n")
        assert TmuxBackend().get_env("work", "RESUMER_PROJECT_PATH") == "/tmp/a=b"

    @patch("resumer.tmux.subprocess.run")
    def test_get_env_unset(self, mock_run):
        mock_run.return_value = completed(stdout="-RESUMER_PROJECT_PATH\n")
        assert TmuxBackend().get_env("work", "RESUMER_PROJECT_PATH") is None
        mock_run.return_value = completed(1, stderr="unknown variable: RESUMER_PROJECT_PATH")
        assert TmuxBackend().get_env("work", "RESUMER_PROJECT_PATH") is None

    @patch("resumer.tmux.subprocess.run")
    def test_new_session_stamps_env(self, mock_run):
        mock_run.return_value = completed()
        TmuxBackend().new_session("s", "/tmp/a", command="claude", env={"RESUMER_MANAGED": "1"})
        calls = [c[0][0] for c in mock_run.call_args_list]
        assert calls[0] == ["tmux", "new-session", "-d", "-s", "s", "-c", "/tmp/a", "claude"]
        assert calls[1] == ["tmux", "set-environment", "-t", "s", "RESUMER_MANAGED", "1"]

    @patch("resumer.tmux.subprocess.run")
    def test_unset_env(self, mock_run):
        mock_run.return_value = completed()
        TmuxBackend().unset_env("s", "RESUMER_MANAGED")
        assert mock_run.call_args[0][0] == ["tmux", "set-environment", "-t", "s", "-u", "RESUMER_MANAGED"]

    @patch("resumer.tmux.subprocess.run")
    def test_kill_failure_raises(self, mock_run):
        mock_run.return_value = completed(1, stderr="can't find session: s")
        with pytest.raises(TmuxError):
            TmuxBackend().kill_session("s")

    @patch("resumer.tmux.subprocess.run")
    def test_has_session(self, mock_run):
        mock_run.return_value = completed()
        assert TmuxBackend().has_session("s")
        assert mock_run.call_args[0][0] == ["tmux", "has-session", "-t", "=s"]
        mock_run.return_value = completed(1)
        assert not TmuxBackend().has_session("s")
