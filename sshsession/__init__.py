"""Lifecycle management for a single remote command or interactive shell session."""

from .channel import RemoteChannel
from .errors import (
    ClosedPipeError,
    ExitError,
    ExitMissingError,
    NegotiationError,
    SessionError,
    SessionStateError,
    TerminalError,
)
from .escalation import EscalationPlan
from .session import SessionState, SSHSession
from .terminal import LocalStreams

__all__ = [
    "SSHSession",
    "SessionState",
    "RemoteChannel",
    "EscalationPlan",
    "LocalStreams",
    "SessionError",
    "TerminalError",
    "NegotiationError",
    "ExitError",
    "ExitMissingError",
    "SessionStateError",
    "ClosedPipeError",
]
