"""Tests for SSHSession.pipe_exec and close."""

import threading
import time

import pytest

from sshsession.errors import (
    ExitError,
    ExitMissingError,
    NegotiationError,
    SessionStateError,
    TerminalError,
)
from sshsession.pipe import PipeWriter
from sshsession.session import SessionState, SSHSession
from tests.fakes import HANG, FakeChannel, RecordingSession


def start_pipe_exec(session: SSHSession, command: str) -> threading.Thread:
    runner = threading.Thread(target=session.pipe_exec, args=(command,), daemon=True)
    runner.start()
    return runner


class TestPipeExec:
    """Tests for one-shot piped execution."""

    def test_echo_hello(self, fake_terminal, local_streams):
        """Ready fires, output streams, done fires, no errors."""
        channel = FakeChannel(commands={"echo hello": (b"hello\n", b"", 0)})
        session = SSHSession(channel, streams=local_streams)

        runner = start_pipe_exec(session, "echo hello")

        assert session.ready.wait(2)
        assert session.stdout.readall() == b"hello\n"
        assert session.done.wait(2)
        assert list(session.errors) == []
        assert session.errors.closed
        runner.join(2)
        assert channel.exec_commands == ["echo hello"]

    def test_false_publishes_one_error(self, fake_terminal, local_streams):
        """A non-zero exit publishes exactly one error before done."""
        channel = FakeChannel(commands={"false": (b"", b"", 1)})
        session = SSHSession(channel, streams=local_streams)

        start_pipe_exec(session, "false")

        assert session.ready.wait(2)
        assert session.stdout.readall() == b""
        errors = list(session.errors)
        assert len(errors) == 1
        assert isinstance(errors[0], ExitError)
        assert errors[0].exit_status == 1
        assert session.done.is_set()

    def test_stderr_shares_the_output_pipe(self, fake_terminal, local_streams):
        channel = FakeChannel(commands={"oops": (b"", b"bad\n", 0)})
        session = SSHSession(channel, streams=local_streams)

        start_pipe_exec(session, "oops")

        assert session.ready.wait(2)
        assert session.stdout is session.stderr
        assert session.stdout.readall() == b"bad\n"
        assert session.done.wait(2)

    def test_ready_precedes_output(self, fake_terminal, local_streams):
        """Output is only reachable through the stream published at ready."""
        channel = FakeChannel(commands={"echo hi": (b"hi\n", b"", 0)})
        session = SSHSession(channel, streams=local_streams)
        assert session.stdout is None

        start_pipe_exec(session, "echo hi")

        assert session.ready.wait(2)
        assert session.stdout is not None
        assert session.stdout.readall() == b"hi\n"

    def test_requests_pty_with_terminal_size(self, fake_terminal, local_streams, monkeypatch):
        monkeypatch.setenv("TERM", "screen")
        channel = FakeChannel(commands={"true": (b"", b"", 0)})
        session = SSHSession(channel, streams=local_streams)

        start_pipe_exec(session, "true")

        assert session.done.wait(2)
        assert channel.pty == ("screen", 80, 24)

    def test_term_override(self, fake_terminal, local_streams):
        channel = FakeChannel(commands={"true": (b"", b"", 0)})
        session = SSHSession(channel, term_type="vt100", streams=local_streams)

        start_pipe_exec(session, "true")

        assert session.done.wait(2)
        assert channel.pty[0] == "vt100"

    def test_terminal_size_failure_short_circuits(self, monkeypatch, local_streams):
        def broken_size(fd):
            raise TerminalError("not a terminal", fd=fd)

        monkeypatch.setattr("sshsession.session.get_terminal_size", broken_size)
        channel = FakeChannel()
        session = SSHSession(channel, streams=local_streams)

        session.pipe_exec("echo hello")

        errors = list(session.errors)
        assert len(errors) == 1
        assert isinstance(errors[0], TerminalError)
        assert session.done.is_set()
        assert not session.ready.is_set()
        assert channel.pty is None
        assert channel.exec_commands == []

    def test_pty_failure_short_circuits(self, fake_terminal, local_streams):
        channel = FakeChannel(pty_error="pty refused")
        session = SSHSession(channel, streams=local_streams)

        session.pipe_exec("echo hello")

        errors = list(session.errors)
        assert len(errors) == 1
        assert isinstance(errors[0], NegotiationError)
        assert "pty refused" in str(errors[0])
        assert session.done.is_set()
        assert not session.ready.is_set()
        assert channel.exec_commands == []

    def test_no_signals_after_done(self, fake_terminal, local_streams):
        channel = FakeChannel(commands={"true": (b"", b"", 0)})
        session = SSHSession(channel, streams=local_streams)

        session.pipe_exec("true")

        assert session.done.is_set()
        assert session.errors.closed
        assert session.done.fire() is False
        assert session.errors.get(timeout=0.1) is None
        with pytest.raises(SessionStateError):
            session.errors.publish(RuntimeError("late"))

    def test_second_mode_rejected(self, fake_terminal, local_streams):
        channel = FakeChannel(commands={"true": (b"", b"", 0)})
        session = SSHSession(channel, streams=local_streams)
        session.pipe_exec("true")

        with pytest.raises(SessionStateError):
            session.pipe_exec("true")
        with pytest.raises(SessionStateError):
            session.terminal()


class TestClose:
    """Tests for SSHSession.close."""

    def test_close_twice(self, local_streams):
        channel = FakeChannel()
        session = SSHSession(channel, streams=local_streams)

        session.close()
        session.close()

        assert channel.closed
        assert session.state == SessionState.CLOSED

    def test_close_after_natural_completion(self, fake_terminal, local_streams):
        channel = FakeChannel(commands={"true": (b"", b"", 0)})
        session = SSHSession(channel, streams=local_streams)
        session.pipe_exec("true")

        session.close()
        session.close()

        assert channel.closed

    def test_close_unblocks_running_command(self, fake_terminal, local_streams):
        """Closing mid-command ends the stream and finishes the session."""
        channel = FakeChannel(commands={"journalctl -f": HANG})
        session = SSHSession(channel, streams=local_streams)

        runner = start_pipe_exec(session, "journalctl -f")
        assert session.ready.wait(2)
        assert isinstance(session.channel.stdout, PipeWriter)

        session.close()

        assert session.done.wait(2)
        runner.join(2)
        assert not runner.is_alive()
        assert session.stdout.readall() == b""
        errors = list(session.errors)
        assert len(errors) == 1
        assert isinstance(errors[0], ExitMissingError)

    def test_close_releases_unread_output(self, fake_terminal, local_streams):
        """Closing with output nobody reads still finishes the session."""
        channel = FakeChannel(commands={"journalctl -f": HANG})
        session = RecordingSession(channel, streams=local_streams)

        runner = start_pipe_exec(session, "journalctl -f")
        assert session.ready.wait(2)
        channel.feed(stdout=b"log line\n")
        # Let the output copier block on the unread pipe
        time.sleep(0.1)

        session.close()

        assert session.done.wait(3)
        runner.join(2)
        assert not runner.is_alive()
        assert session.stdout.readall() == b""
        errors = list(session.errors)
        assert len(errors) == 1
        assert isinstance(errors[0], ExitMissingError)
        assert session.history.count(SessionState.CLOSED) == 1
        assert session.state == SessionState.CLOSED

    def test_mode_rejected_after_close(self, local_streams):
        session = SSHSession(FakeChannel(), streams=local_streams)
        session.close()

        with pytest.raises(SessionStateError):
            session.pipe_exec("true")


class TestConstructors:
    """Tests for the SSHSession constructors."""

    def test_new_has_no_escalation(self):
        session = SSHSession.new(FakeChannel())
        assert session.escalation is None
        assert session.state == SessionState.INIT
        assert not session.ready.is_set()
        assert not session.done.is_set()
        assert not session.shell_ready.is_set()

    def test_with_root_floors_delay(self):
        session = SSHSession.with_root(FakeChannel(), True, False, "rootpw", "userpw", cmd_delay=0.01)
        assert session.escalation.use_sudo is True
        assert session.escalation.no_password_sudo is False
        assert session.escalation.root_password == "rootpw"
        assert session.escalation.user_password == "userpw"
        assert session.escalation.cmd_delay == 0.1

    def test_with_root_keeps_longer_delay(self):
        session = SSHSession.with_root(FakeChannel(), False, False, "rootpw", "", cmd_delay=0.5)
        assert session.escalation.cmd_delay == 0.5
