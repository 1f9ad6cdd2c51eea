"""Local terminal handling: size queries, TERM resolution and raw mode."""

import logging
import os
import sys
import termios
import threading
import tty
from contextlib import contextmanager
from dataclasses import dataclass
from typing import BinaryIO, Iterator, Mapping

from sshsession.errors import SessionStateError, TerminalError

logger = logging.getLogger(__name__)

DEFAULT_TERM_TYPE = "xterm-256color"

# Raw mode is process-wide state; only one session may hold it
_raw_mode_lock = threading.Lock()


@dataclass
class LocalStreams:
    """Local standard streams a session reads from and writes to."""

    stdin: BinaryIO
    stdout: BinaryIO
    stderr: BinaryIO
    fd: int

    @classmethod
    def from_sys(cls) -> "LocalStreams":
        """Use the process's standard streams, querying the terminal on stdin."""
        return cls(
            stdin=sys.stdin.buffer,
            stdout=sys.stdout.buffer,
            stderr=sys.stderr.buffer,
            fd=sys.stdin.fileno(),
        )


def get_terminal_size(fd: int) -> tuple[int, int]:
    """
    Get the size of the terminal attached to fd.

    Returns:
        (width, height) in characters

    Raises:
        TerminalError: If fd is not a terminal or the query fails
    """
    try:
        size = os.get_terminal_size(fd)
    except (OSError, ValueError) as e:
        raise TerminalError(f"unable to get terminal size: {e}", fd=fd) from e
    return size.columns, size.lines


def resolve_term_type(
    override: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Pick the remote terminal type: override, then $TERM, then xterm-256color."""
    if override:
        return override
    environ = os.environ if environ is None else environ
    return environ.get("TERM") or DEFAULT_TERM_TYPE


@contextmanager
def raw_mode(fd: int) -> Iterator[None]:
    """
    Put the terminal on fd into raw mode for the duration of the block.

    The saved attributes are restored on every exit path.

    Raises:
        SessionStateError: If another session already holds raw mode
        TerminalError: If the terminal attributes cannot be read or changed
    """
    if not _raw_mode_lock.acquire(blocking=False):
        raise SessionStateError("terminal is already in raw mode")
    try:
        try:
            saved = termios.tcgetattr(fd)
            tty.setraw(fd)
        except (termios.error, OSError) as e:
            raise TerminalError(f"unable to enter raw mode: {e}", fd=fd) from e
        logger.debug(f"Terminal fd {fd} in raw mode")
        try:
            yield
        finally:
            try:
                termios.tcsetattr(fd, termios.TCSADRAIN, saved)
            except termios.error as e:
                logger.warning(f"Failed to restore terminal fd {fd}: {e}")
            else:
                logger.debug(f"Terminal fd {fd} restored")
    finally:
        _raw_mode_lock.release()
