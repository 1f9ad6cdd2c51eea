"""Configuration management for the sshsession CLI."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from sshsession.escalation import DEFAULT_CMD_DELAY

DEFAULT_CONFIG_DIR = Path.home() / ".sshsession"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
DEFAULT_KEY_FILE = Path.home() / ".ssh" / "id_ed25519"


@dataclass
class Config:
    """Connection and session settings. Passwords are never stored."""
    # Server connection
    host: str = "localhost"
    port: int = 22
    username: str = "root"
    key_file: Optional[str] = str(DEFAULT_KEY_FILE)
    connect_timeout: int = 10

    # Session behaviour
    term_type: Optional[str] = None       # None = $TERM, then xterm-256color
    keepalive_interval: int = 0           # Seconds, 0 = disabled

    # Automatic switch to root in interactive shells
    su_root: bool = False
    use_sudo: bool = False
    no_password_sudo: bool = False
    cmd_delay: float = DEFAULT_CMD_DELAY

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Config":
        """Load configuration from file."""
        path = path or DEFAULT_CONFIG_FILE

        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls(
            # Server connection
            host=data.get("host", "localhost"),
            port=data.get("port", 22),
            username=data.get("username", "root"),
            key_file=data.get("key_file", str(DEFAULT_KEY_FILE)),
            connect_timeout=data.get("connect_timeout", 10),
            # Session behaviour
            term_type=data.get("term_type"),
            keepalive_interval=data.get("keepalive_interval", 0),
            # Root switch
            su_root=data.get("su_root", False),
            use_sudo=data.get("use_sudo", False),
            no_password_sudo=data.get("no_password_sudo", False),
            cmd_delay=data.get("cmd_delay", DEFAULT_CMD_DELAY),
            # Logging
            log_level=data.get("log_level", "INFO"),
            log_file=data.get("log_file"),
        )

    def save(self, path: Optional[Path] = None) -> None:
        """Save configuration to file."""
        path = path or DEFAULT_CONFIG_FILE
        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            # Server connection
            "host": self.host,
            "port": self.port,
            "username": self.username,
            "key_file": self.key_file,
            "connect_timeout": self.connect_timeout,
            # Session behaviour
            "term_type": self.term_type,
            "keepalive_interval": self.keepalive_interval,
            # Root switch
            "su_root": self.su_root,
            "use_sudo": self.use_sudo,
            "no_password_sudo": self.no_password_sudo,
            "cmd_delay": self.cmd_delay,
            # Logging
            "log_level": self.log_level,
            "log_file": self.log_file,
        }

        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False)


def ensure_config_dir() -> Path:
    """Ensure the config directory exists and return its path."""
    DEFAULT_CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    return DEFAULT_CONFIG_DIR
