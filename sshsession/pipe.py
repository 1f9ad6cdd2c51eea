"""Synchronous in-memory pipe connecting remote output to a local reader."""

import io
import threading

from sshsession.errors import ClosedPipeError


class _PipeState:
    """
    Shared state of one pipe.

    A write hands its buffer to readers and blocks until they have consumed
    all of it, so a slow reader stalls the writer instead of growing memory.
    Closing the write end fails a blocked write and drops its unread bytes.
    """

    def __init__(self):
        self.cond = threading.Condition()
        self.pending = b""
        self.reader_error: BaseException | None = None
        self.writer_error: BaseException | None = None
        self.write_lock = threading.Lock()

    def read(self, size: int) -> bytes:
        with self.cond:
            while True:
                if self.reader_error is not None:
                    raise ClosedPipeError("read on closed pipe")
                if self.pending:
                    if size < 0 or size >= len(self.pending):
                        data, self.pending = self.pending, b""
                    else:
                        data, self.pending = self.pending[:size], self.pending[size:]
                    self.cond.notify_all()
                    return data
                if self.writer_error is not None:
                    if isinstance(self.writer_error, EOFError):
                        return b""
                    raise self.writer_error
                self.cond.wait()

    def write(self, data: bytes) -> int:
        # One write at a time so concurrent writers never interleave chunks
        with self.write_lock, self.cond:
            if self.writer_error is not None:
                raise ClosedPipeError("write on closed pipe")
            if self.reader_error is not None:
                raise self._reader_failure()
            self.pending = bytes(data)
            while self.pending:
                written = len(data) - len(self.pending)
                if self.reader_error is not None:
                    self.pending = b""
                    raise self._reader_failure(written)
                if self.writer_error is not None:
                    # Closing the writer releases a blocked write; unread bytes are dropped
                    self.pending = b""
                    error = ClosedPipeError("write on closed pipe")
                    error.details["written"] = written
                    raise error
                self.cond.wait()
            return len(data)

    def _reader_failure(self, written: int = 0) -> BaseException:
        if isinstance(self.reader_error, EOFError):
            error = ClosedPipeError("write on closed pipe")
            error.details["written"] = written
            return error
        return self.reader_error

    def close_reader(self, error: BaseException | None) -> None:
        with self.cond:
            if self.reader_error is None:
                self.reader_error = error or EOFError()
            self.cond.notify_all()

    def close_writer(self, error: BaseException | None) -> None:
        with self.cond:
            if self.writer_error is None:
                self.writer_error = error or EOFError()
            self.cond.notify_all()


class PipeReader(io.RawIOBase):
    """Read half of an in-memory pipe."""

    def __init__(self, state: _PipeState):
        super().__init__()
        self._state = state

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        return self._state.read(size)

    def readinto(self, buffer) -> int:
        data = self._state.read(len(buffer))
        buffer[: len(data)] = data
        return len(data)

    def readall(self) -> bytes:
        chunks = []
        while True:
            chunk = self._state.read(-1)
            if not chunk:
                return b"".join(chunks)
            chunks.append(chunk)

    def close_with_error(self, error: BaseException) -> None:
        """Close the reader; pending and future writes raise error."""
        self._state.close_reader(error)
        super().close()

    def close(self) -> None:
        self._state.close_reader(None)
        super().close()


class PipeWriter(io.RawIOBase):
    """Write half of an in-memory pipe."""

    def __init__(self, state: _PipeState):
        super().__init__()
        self._state = state

    def writable(self) -> bool:
        return True

    def write(self, data) -> int:
        return self._state.write(data)

    def close_with_error(self, error: BaseException) -> None:
        """Close the writer; readers raise error once buffered data is consumed."""
        self._state.close_writer(error)
        super().close()

    def close(self) -> None:
        self._state.close_writer(None)
        super().close()


def make_pipe() -> tuple[PipeReader, PipeWriter]:
    """Create a connected (reader, writer) pair."""
    state = _PipeState()
    return PipeReader(state), PipeWriter(state)
