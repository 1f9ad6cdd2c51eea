"""Lifecycle of a single remote command or interactive shell session."""

import logging
import threading
from datetime import datetime
from enum import Enum

import paramiko

from sshsession.channel import RemoteChannel
from sshsession.errors import SessionStateError
from sshsession.escalation import DEFAULT_CMD_DELAY, EscalationPlan, EscalationSequencer
from sshsession.keepalive import KeepAlive
from sshsession.pipe import PipeReader, PipeWriter, make_pipe
from sshsession.resize import ResizeWatcher, WindowSizeNotifier
from sshsession.signals import ErrorChannel, OneShot
from sshsession.terminal import LocalStreams, get_terminal_size, raw_mode, resolve_term_type

logger = logging.getLogger(__name__)

STDIN_CHUNK_SIZE = 128
OUTPUT_CHUNK_SIZE = 32 * 1024
JOIN_TIMEOUT = 5.0


class SessionMode(Enum):
    PIPE_EXEC = "pipe-exec"
    TERMINAL = "terminal"


class SessionState(Enum):
    INIT = "init"
    RAW_MODE = "raw-mode"
    PTY_REQUESTED = "pty-requested"
    STREAMS_WIRED = "streams-wired"
    SHELL_STARTED = "shell-started"
    ESCALATION_RUNNING = "escalation-running"
    WAITING = "waiting"
    CLOSED = "closed"


def format_closed_notice(now: datetime | None = None) -> str:
    """Default final line of an interactive session."""
    now = (now or datetime.now()).astimezone()
    return f"the connection was closed on the remote side on {now.strftime('%d %b %y %H:%M %Z')}"


class SSHSession:
    """
    Drive one remote channel through either a piped command or an
    interactive terminal.

    Progress is published through signals: `ready` once piped output can be
    read from `stdout`, `done` when a piped command has finished (after which
    `errors` is closed), and `shell_ready` once an interactive shell started.
    A session is used for exactly one mode.
    """

    def __init__(
        self,
        channel: "paramiko.Channel | RemoteChannel",
        escalation: EscalationPlan | None = None,
        term_type: str | None = None,
        streams: LocalStreams | None = None,
    ):
        """
        Args:
            channel: Open session channel on an authenticated transport
            escalation: Switch to root after the shell starts (terminal mode only)
            term_type: Remote terminal type; defaults to $TERM or xterm-256color
            streams: Local streams; defaults to the process's stdin/stdout/stderr
        """
        if not isinstance(channel, RemoteChannel):
            channel = RemoteChannel(channel)
        self._channel = channel
        self.escalation = escalation
        self.term_type = term_type
        self._streams = streams

        self._errors = ErrorChannel()
        self._ready = OneShot("ready")
        self._done = OneShot("done")
        self._shell_ready = OneShot("shell-ready")

        self.stdin = None
        self.stdout = None
        self.stderr = None
        self.exit_message = ""

        self._state = SessionState.INIT
        self._mode: SessionMode | None = None
        self._active = False
        self._closed = False
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._workers: list[threading.Thread] = []
        self._forwarders: list[threading.Thread] = []
        self._helpers_lock = threading.Lock()
        self._notifier: WindowSizeNotifier | None = None
        self._resize_watcher: ResizeWatcher | None = None
        self._keepalive: KeepAlive | None = None

    @classmethod
    def new(cls, channel: paramiko.Channel) -> "SSHSession":
        return cls(channel)

    @classmethod
    def with_root(
        cls,
        channel: paramiko.Channel,
        use_sudo: bool,
        no_password_sudo: bool,
        root_password: str,
        user_password: str,
        cmd_delay: float = DEFAULT_CMD_DELAY,
    ) -> "SSHSession":
        """
        Create a session that switches to root once the interactive shell is up.

        Args:
            channel: Open session channel
            use_sudo: Use 'sudo su - root' instead of 'su - root'
            no_password_sudo: sudo does not prompt for the user's password
            root_password: Password typed at the 'su' prompt
            user_password: Password typed at the 'sudo' prompt
            cmd_delay: Seconds to wait before each injected line (minimum 0.1)
        """
        plan = EscalationPlan(
            use_sudo=use_sudo,
            no_password_sudo=no_password_sudo,
            root_password=root_password,
            user_password=user_password,
            cmd_delay=cmd_delay,
        )
        return cls(channel, escalation=plan)

    @property
    def errors(self) -> ErrorChannel:
        return self._errors

    @property
    def ready(self) -> OneShot:
        return self._ready

    @property
    def done(self) -> OneShot:
        return self._done

    @property
    def shell_ready(self) -> OneShot:
        return self._shell_ready

    @property
    def channel(self) -> RemoteChannel:
        return self._channel

    @property
    def streams(self) -> LocalStreams:
        if self._streams is None:
            self._streams = LocalStreams.from_sys()
        return self._streams

    @property
    def state(self) -> SessionState:
        return self._state

    def _set_state(self, state: SessionState) -> None:
        logger.debug(f"Session state {self._state.value} -> {state.value}")
        self._state = state

    def _enter_mode(self, mode: SessionMode) -> None:
        with self._lock:
            if self._closed:
                raise SessionStateError("session is closed")
            if self._mode is not None:
                raise SessionStateError(f"session already used for {self._mode.value}")
            self._mode = mode
            self._active = True

    def _leave_mode(self, finished: bool) -> None:
        with self._lock:
            self._active = False
            if finished or self._closed:
                self._set_state(SessionState.CLOSED)

    def _record_exit_message(self, message: str) -> None:
        with self._lock:
            if not self.exit_message:
                self.exit_message = message

    def close(self) -> None:
        """
        Tear the session down.

        Session-owned pipe endpoints are closed first so blocked readers and
        writers wake up, then the channel is closed and background threads
        are stopped. It is safe to call after the session finished on its own;
        a second call does nothing.

        Raises:
            Exception: The first error hit while closing
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            active = self._active

        first_error: BaseException | None = None

        stdout = self._channel.stdout
        if isinstance(stdout, PipeWriter):
            try:
                stdout.close()
            except Exception as e:
                first_error = first_error or e

        stdin = self._channel.stdin
        if isinstance(stdin, PipeReader):
            try:
                stdin.close()
            except Exception as e:
                first_error = first_error or e

        try:
            self._channel.close()
        except Exception as e:
            first_error = first_error or e

        self._stop_helpers()
        if not active:
            # A running mode moves to CLOSED itself once it unwinds
            self._set_state(SessionState.CLOSED)
        logger.debug("Session closed")

        if first_error is not None:
            raise first_error

    # ------------------------------------------------------------------
    # Piped execution
    # ------------------------------------------------------------------

    def pipe_exec(self, command: str) -> None:
        """
        Run a command with its output readable from `stdout`.

        Blocks until the command finishes. Errors are published on `errors`
        rather than raised; `done` always fires and `errors` is closed last.
        The caller must consume `stdout` once `ready` fires, otherwise the
        remote side stalls on a full pipe.
        """
        self._enter_mode(SessionMode.PIPE_EXEC)
        try:
            try:
                width, height = get_terminal_size(self.streams.fd)
                self._channel.request_pty(resolve_term_type(self.term_type), height, width)
            except Exception as e:
                logger.debug(f"pipe_exec aborted before start: {e}")
                self._errors.publish(e)
                return
            self._set_state(SessionState.PTY_REQUESTED)

            reader, writer = make_pipe()
            self._channel.stdout = writer
            self._channel.stderr = writer
            self.stdout = reader
            self.stderr = reader
            self._set_state(SessionState.STREAMS_WIRED)
            self._ready.fire()

            try:
                logger.debug(f"Running command: {command}")
                self._set_state(SessionState.WAITING)
                self._channel.run(command)
            except Exception as e:
                logger.debug(f"Command failed: {e}")
                self._errors.publish(e)
            finally:
                writer.close()
        finally:
            self._leave_mode(finished=False)
            self._done.fire()
            self._errors.close()

    # ------------------------------------------------------------------
    # Interactive terminal
    # ------------------------------------------------------------------

    def terminal(self) -> None:
        """Open an interactive shell without keepalive."""
        self.terminal_with_keepalive(0)

    def terminal_with_keepalive(self, interval: float) -> None:
        """
        Open an interactive shell on the local terminal.

        The local terminal is in raw mode until the shell exits. Exactly one
        final line is written to local stdout: the recorded exit message, or
        a closed-connection notice with the current time.

        Args:
            interval: Seconds between keepalive requests; 0 disables them

        Raises:
            TerminalError: If the local terminal cannot be used
            NegotiationError: If the PTY or shell request is refused
            ExitError: If the shell exits with non-zero status
        """
        self._enter_mode(SessionMode.TERMINAL)
        try:
            with raw_mode(self.streams.fd):
                self._set_state(SessionState.RAW_MODE)
                try:
                    self._run_terminal(interval)
                finally:
                    self._stop_helpers()
                    self._close_notifier()
        finally:
            self._leave_mode(finished=True)
            self._print_exit_message()

    def _run_terminal(self, interval: float) -> None:
        streams = self.streams
        width, height = get_terminal_size(streams.fd)
        self._channel.request_pty(resolve_term_type(self.term_type), height, width)
        self._set_state(SessionState.PTY_REQUESTED)

        self._start_resize_watcher()

        self.stdin = self._channel.stdin_pipe()
        self.stdout = self._channel.stdout_pipe()
        self.stderr = self._channel.stderr_pipe()

        # Blocks on local input, so it is left behind rather than joined
        threading.Thread(target=self._forward_stdin, name="forward-stdin", daemon=True).start()
        self._forwarders = [
            self._spawn(self._forward_output, "forward-stdout", self.stdout, streams.stdout),
            self._spawn(self._forward_output, "forward-stderr", self.stderr, streams.stderr),
        ]
        self._set_state(SessionState.STREAMS_WIRED)

        keepalive = KeepAlive(self._channel, interval)
        with self._helpers_lock:
            self._keepalive = keepalive
        keepalive.start()

        self._channel.shell()
        self._set_state(SessionState.SHELL_STARTED)
        self._shell_ready.fire()

        if self.escalation is not None:
            thread = self._spawn(self._run_escalation, "escalation")
            with self._helpers_lock:
                self._workers.append(thread)
            self._set_state(SessionState.ESCALATION_RUNNING)

        self._set_state(SessionState.WAITING)
        try:
            self._channel.wait()
        finally:
            # Let remote output drain before the final line is printed
            for thread in self._forwarders:
                thread.join(timeout=JOIN_TIMEOUT)

    def _spawn(self, target, name: str, *args) -> threading.Thread:
        thread = threading.Thread(target=target, args=args, name=name, daemon=True)
        thread.start()
        return thread

    def _start_resize_watcher(self) -> None:
        notifier = WindowSizeNotifier()
        try:
            notifier.install()
        except ValueError as e:
            logger.warning(f"Terminal resize will not be propagated: {e}")
            return
        fd = self.streams.fd
        watcher = ResizeWatcher(
            self._channel,
            lambda: get_terminal_size(fd),
            notifier.subscribe(),
        )
        with self._helpers_lock:
            self._notifier = notifier
            self._resize_watcher = watcher
        watcher.start()

    def _forward_stdin(self) -> None:
        src = self.streams.stdin
        read = getattr(src, "read1", src.read)
        while True:
            try:
                chunk = read(STDIN_CHUNK_SIZE)
            except (OSError, ValueError) as e:
                logger.debug(f"Local stdin read failed: {e}")
                return
            if not chunk:
                # Local EOF stops forwarding; the shell keeps running
                logger.debug("Local stdin closed")
                return
            try:
                self.stdin.write(chunk)
            except Exception as e:
                logger.debug(f"Remote stdin write failed: {e}")
                self._record_exit_message(str(e))
                return

    def _forward_output(self, src, dst) -> None:
        while True:
            try:
                chunk = src.read(OUTPUT_CHUNK_SIZE)
                if not chunk:
                    return
                dst.write(chunk)
                dst.flush()
            except Exception as e:
                logger.debug(f"Output forwarding stopped: {e}")
                return

    def _run_escalation(self) -> None:
        sequencer = EscalationSequencer(self.escalation, self.stdin, self._stop)
        try:
            sequencer.run()
        except Exception as e:
            logger.error(f"Switching to root failed: {e}")
            self._record_exit_message(str(e))

    def _stop_helpers(self) -> None:
        self._stop.set()
        with self._helpers_lock:
            watcher, self._resize_watcher = self._resize_watcher, None
            keepalive, self._keepalive = self._keepalive, None
            workers, self._workers = self._workers, []
        if watcher:
            try:
                watcher.stop(timeout=JOIN_TIMEOUT)
            except Exception as e:
                logger.warning(f"Failed to stop resize watcher: {e}")
        if keepalive:
            try:
                keepalive.stop(timeout=JOIN_TIMEOUT)
            except Exception as e:
                logger.warning(f"Failed to stop keepalive: {e}")
        for thread in workers:
            if thread is not threading.current_thread():
                thread.join(timeout=JOIN_TIMEOUT)

    def _close_notifier(self) -> None:
        # Signal handlers can only be restored on the thread that installed them
        with self._helpers_lock:
            notifier, self._notifier = self._notifier, None
        if notifier:
            try:
                notifier.close()
            except Exception as e:
                logger.warning(f"Failed to restore SIGWINCH handler: {e}")

    def _print_exit_message(self) -> None:
        message = self.exit_message or format_closed_notice()
        out = self.streams.stdout
        try:
            out.write((message + "\n").encode())
            out.flush()
        except (OSError, ValueError) as e:
            logger.warning(f"Unable to print exit message: {e}")
