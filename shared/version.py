"""Version information for sshsession."""

__version__ = "0.1.0"
