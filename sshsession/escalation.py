"""Scripted switch to the root user inside an interactive shell."""

import logging
import threading
from dataclasses import dataclass
from typing import BinaryIO

logger = logging.getLogger(__name__)

DEFAULT_CMD_DELAY = 0.1
MIN_CMD_DELAY = 0.1

SUDO_COMMAND = "sudo su - root && exit"
SU_COMMAND = "su - root && exit"

# Cursor up one line, then erase that line
_CLEAR_LINE = "\033[1A\033[2K"


@dataclass(frozen=True)
class EscalationPlan:
    """
    How to become root once the shell is up.

    cmd_delay is the pause (in seconds) before each injected line, giving the
    remote side time to print its banner and password prompt. It never drops
    below MIN_CMD_DELAY.
    """

    use_sudo: bool = False
    no_password_sudo: bool = False
    root_password: str = ""
    user_password: str = ""
    cmd_delay: float = DEFAULT_CMD_DELAY

    def __post_init__(self):
        if self.cmd_delay < MIN_CMD_DELAY:
            object.__setattr__(self, "cmd_delay", MIN_CMD_DELAY)

    @property
    def command_line(self) -> str:
        return (SUDO_COMMAND if self.use_sudo else SU_COMMAND) + "\n"

    @property
    def credential(self) -> str | None:
        """Password to type at the prompt, or None for passwordless sudo."""
        if self.use_sudo:
            return None if self.no_password_sudo else self.user_password
        return self.root_password

    @property
    def clear_lines(self) -> int:
        return 3 if self.no_password_sudo else 4

    @property
    def clear_command(self) -> str:
        return f'echo -e "{_CLEAR_LINE * self.clear_lines}"\n'

    def __repr__(self) -> str:
        # Keep credentials out of logs and tracebacks
        return (
            f"EscalationPlan(use_sudo={self.use_sudo}, "
            f"no_password_sudo={self.no_password_sudo}, cmd_delay={self.cmd_delay})"
        )


class EscalationSequencer:
    """
    Type the escalation command and password into the remote shell.

    Writes go to the same remote stdin as forwarded keystrokes, so keys typed
    by the user during a delay may land between injected lines.
    """

    def __init__(
        self,
        plan: EscalationPlan,
        writer: BinaryIO,
        stop_event: threading.Event | None = None,
    ):
        self.plan = plan
        self._writer = writer
        self._stop = stop_event or threading.Event()

    def run(self) -> bool:
        """
        Run the sequence.

        Returns:
            True if every line was written, False if stopped early

        Raises:
            Exception: The first write failure; nothing is retried
        """
        plan = self.plan
        if not self._pause():
            return False
        logger.debug("Sending escalation command")
        self._write(plan.command_line)

        credential = plan.credential
        if credential is not None:
            # Wait for the password prompt
            if not self._pause():
                return False
            self._write(credential + "\n")

        if not self._pause():
            return False
        self._write(plan.clear_command)
        logger.debug("Escalation sequence complete")
        return True

    def _pause(self) -> bool:
        return not self._stop.wait(self.plan.cmd_delay)

    def _write(self, text: str) -> None:
        self._writer.write(text.encode())
        flush = getattr(self._writer, "flush", None)
        if flush:
            flush()
