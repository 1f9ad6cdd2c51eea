"""Session channel adapter over an authenticated paramiko transport."""

import io
import logging
import threading

import paramiko

from sshsession.errors import (
    ExitError,
    ExitMissingError,
    NegotiationError,
    SessionStateError,
)

logger = logging.getLogger(__name__)

KEEPALIVE_REQUEST = "keepalive@sshsession"
COPY_BUFFER_SIZE = 32 * 1024


class ChannelReader(io.RawIOBase):
    """Readable view of the channel's stdout or stderr stream."""

    def __init__(self, channel: paramiko.Channel, stderr: bool = False):
        super().__init__()
        self._channel = channel
        self._recv = channel.recv_stderr if stderr else channel.recv

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            return self.readall()
        # paramiko returns b"" once the remote side sends EOF or the channel closes
        return self._recv(size)

    def readinto(self, buffer) -> int:
        data = self._recv(len(buffer))
        buffer[: len(data)] = data
        return len(data)

    def readall(self) -> bytes:
        chunks = []
        while True:
            chunk = self._recv(COPY_BUFFER_SIZE)
            if not chunk:
                return b"".join(chunks)
            chunks.append(chunk)


class ChannelWriter(io.RawIOBase):
    """Writable view of the channel's stdin stream. Closing sends EOF."""

    def __init__(self, channel: paramiko.Channel):
        super().__init__()
        self._channel = channel

    def writable(self) -> bool:
        return True

    def write(self, data) -> int:
        self._channel.sendall(bytes(data))
        return len(data)

    def close(self) -> None:
        if not self.closed:
            try:
                self._channel.shutdown_write()
            finally:
                super().close()


class RemoteChannel:
    """
    A single remote command or shell channel.

    Standard streams are bound either by assigning a local file object to
    stdin/stdout/stderr before start, or by taking a pipe endpoint from
    stdin_pipe()/stdout_pipe()/stderr_pipe(). Output copiers started for
    bound stdout/stderr are joined by wait().
    """

    def __init__(self, channel: paramiko.Channel):
        self._channel = channel
        self.stdin = None
        self.stdout = None
        self.stderr = None
        self._started = False
        self._stdin_piped = False
        self._stdout_piped = False
        self._stderr_piped = False
        self._output_copiers: list[threading.Thread] = []
        self._copy_errors: list[BaseException] = []
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._channel.closed

    @property
    def started(self) -> bool:
        return self._started

    def request_pty(self, term: str, rows: int, cols: int) -> None:
        """
        Request a pseudo-terminal on the remote side.

        Args:
            term: Terminal type, e.g. 'xterm-256color'
            rows: Terminal height in characters
            cols: Terminal width in characters

        Raises:
            NegotiationError: If the server refuses the request
        """
        logger.debug(f"Requesting pty {term} {cols}x{rows}")
        try:
            self._channel.get_pty(term=term, width=cols, height=rows)
        except paramiko.SSHException as e:
            raise NegotiationError("pty-req", str(e)) from e

    def window_change(self, rows: int, cols: int) -> None:
        """Tell the remote PTY about a new window size."""
        self._channel.resize_pty(width=cols, height=rows)

    def stdin_pipe(self) -> ChannelWriter:
        with self._lock:
            self._check_unbound("stdin", self.stdin, self._stdin_piped)
            self._stdin_piped = True
        return ChannelWriter(self._channel)

    def stdout_pipe(self) -> ChannelReader:
        with self._lock:
            self._check_unbound("stdout", self.stdout, self._stdout_piped)
            self._stdout_piped = True
        return ChannelReader(self._channel)

    def stderr_pipe(self) -> ChannelReader:
        with self._lock:
            self._check_unbound("stderr", self.stderr, self._stderr_piped)
            self._stderr_piped = True
        return ChannelReader(self._channel, stderr=True)

    def _check_unbound(self, name: str, bound, piped: bool) -> None:
        if self._started:
            raise SessionStateError(f"{name} pipe requested after process started")
        if bound is not None or piped:
            raise SessionStateError(f"{name} already set")

    def start(self, command: str) -> None:
        """Start a remote command without waiting for it to finish."""
        self._begin()
        try:
            self._channel.exec_command(command)
        except paramiko.SSHException as e:
            raise NegotiationError("exec", str(e)) from e
        self._start_copiers()

    def run(self, command: str) -> None:
        """Run a remote command to completion."""
        self.start(command)
        self.wait()

    def shell(self) -> None:
        """Start a login shell on the remote side."""
        self._begin()
        try:
            self._channel.invoke_shell()
        except paramiko.SSHException as e:
            raise NegotiationError("shell", str(e)) from e
        self._start_copiers()

    def _begin(self) -> None:
        with self._lock:
            if self._started:
                raise SessionStateError("session already started")
            self._started = True

    def _start_copiers(self) -> None:
        if self.stdout is not None and not self._stdout_piped:
            self._output_copiers.append(
                self._spawn("stdout", ChannelReader(self._channel), self.stdout)
            )
        if self.stderr is not None and not self._stderr_piped:
            self._output_copiers.append(
                self._spawn("stderr", ChannelReader(self._channel, stderr=True), self.stderr)
            )
        if self.stdin is not None and not self._stdin_piped:
            # Not joined by wait(): the local source may never reach EOF
            self._spawn("stdin", self.stdin, ChannelWriter(self._channel), close_dst=True)

    def _spawn(self, name: str, src, dst, close_dst: bool = False) -> threading.Thread:
        thread = threading.Thread(
            target=self._copy,
            args=(name, src, dst, close_dst),
            name=f"channel-{name}",
            daemon=True,
        )
        thread.start()
        return thread

    def _copy(self, name: str, src, dst, close_dst: bool) -> None:
        try:
            while True:
                chunk = src.read(COPY_BUFFER_SIZE)
                if not chunk:
                    break
                dst.write(chunk)
        except Exception as e:
            logger.debug(f"{name} copy stopped: {e}")
            with self._lock:
                self._copy_errors.append(e)
        finally:
            if close_dst:
                try:
                    dst.close()
                except Exception as e:
                    logger.debug(f"Error closing {name}: {e}")

    def wait(self) -> None:
        """
        Wait for the remote command or shell to exit.

        Raises:
            ExitError: If the remote side reported a non-zero exit status
            ExitMissingError: If the channel closed without an exit status
        """
        if not self._started:
            raise SessionStateError("session not started")
        status = self._channel.recv_exit_status()
        for thread in self._output_copiers:
            thread.join()
        if status == -1:
            raise ExitMissingError()
        if status != 0:
            raise ExitError(status)
        with self._lock:
            copy_error = self._copy_errors[0] if self._copy_errors else None
        if copy_error is not None:
            raise copy_error

    def send_keepalive(self) -> None:
        """
        Send a keepalive request on the underlying transport.

        Raises:
            paramiko.SSHException: If the transport is no longer active
        """
        transport = self._channel.get_transport()
        if transport is None or not transport.is_active():
            raise paramiko.SSHException("transport is not active")
        transport.global_request(KEEPALIVE_REQUEST, wait=True)

    def close(self) -> None:
        self._channel.close()
