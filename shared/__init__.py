"""Shared helpers for sshsession."""

from .logging_config import setup_logging
from .version import __version__

__all__ = [
    "setup_logging",
    "__version__",
]
