"""Open an authenticated session channel for the CLI."""

import logging
from pathlib import Path

import paramiko

from sshsession.config import Config

logger = logging.getLogger(__name__)

_KEY_CLASSES = (paramiko.Ed25519Key, paramiko.ECDSAKey, paramiko.RSAKey)


def load_private_key(path: Path, passphrase: str | None = None) -> paramiko.PKey:
    """
    Load a private key, trying each supported key type.

    Raises:
        FileNotFoundError: If the key file does not exist
        paramiko.SSHException: If no key type can parse the file
    """
    path = Path(path).expanduser()
    if not path.exists():
        raise FileNotFoundError(f"SSH key not found: {path}")

    errors = []
    for key_class in _KEY_CLASSES:
        try:
            return key_class.from_private_key_file(str(path), password=passphrase)
        except paramiko.PasswordRequiredException:
            raise
        except paramiko.SSHException as e:
            errors.append(f"{key_class.__name__}: {e}")
    raise paramiko.SSHException(f"Unsupported key file {path} ({'; '.join(errors)})")


def open_channel(
    config: Config,
    password: str | None = None,
) -> tuple[paramiko.SSHClient, paramiko.Channel]:
    """
    Connect to the configured host and open a session channel.

    Args:
        config: Connection settings
        password: Login password, used when no key file is configured

    Returns:
        (client, channel); close the client when the session is over
    """
    logger.info(f"Connecting to {config.username}@{config.host}:{config.port}")

    pkey = None
    if config.key_file and not password:
        pkey = load_private_key(Path(config.key_file))

    client = paramiko.SSHClient()
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
    try:
        client.connect(
            hostname=config.host,
            port=config.port,
            username=config.username,
            password=password,
            pkey=pkey,
            timeout=config.connect_timeout,
            look_for_keys=False,
            allow_agent=False,
        )

        transport = client.get_transport()
        if not transport:
            raise RuntimeError("Failed to get SSH transport")

        channel = transport.open_session()
    except Exception:
        client.close()
        raise

    logger.debug("Session channel opened")
    return client, channel
