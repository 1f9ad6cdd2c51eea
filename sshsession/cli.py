#!/usr/bin/env python3
"""
sshsession - run a remote command or open an interactive shell over SSH.
"""

import argparse
import getpass
import logging
import shutil
import signal
import sys
import threading
from pathlib import Path

import paramiko

from shared.logging_config import get_default_log_file, setup_logging
from shared.version import __version__
from sshsession.config import Config
from sshsession.connect import open_channel
from sshsession.errors import SessionError
from sshsession.escalation import EscalationPlan
from sshsession.session import SSHSession

logger = logging.getLogger("sshsession")

CANCEL_SIGNALS = (signal.SIGHUP, signal.SIGINT, signal.SIGTERM, signal.SIGQUIT)
EXIT_CANCELLED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run a remote command or open an interactive shell over SSH"
    )
    parser.add_argument("-c", "--config", type=Path, help="Path to config file")
    parser.add_argument("-H", "--host", help="Remote host (overrides config)")
    parser.add_argument("-p", "--port", type=int, help="Remote port (overrides config)")
    parser.add_argument("-u", "--user", help="Remote username (overrides config)")
    parser.add_argument("-k", "--key", type=Path, help="SSH private key file (overrides config)")
    parser.add_argument(
        "-P", "--ask-password", action="store_true", help="Prompt for a login password"
    )
    parser.add_argument("--term", help="Remote terminal type (default: $TERM or xterm-256color)")
    parser.add_argument("--log-file", type=Path, help="Write logs to this file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    commands = parser.add_subparsers(dest="command", required=True)

    exec_parser = commands.add_parser("exec", help="Run a command and stream its output")
    exec_parser.add_argument("remote_command", nargs="+", help="Command to run")

    shell_parser = commands.add_parser("shell", help="Open an interactive shell")
    shell_parser.add_argument(
        "--keepalive", type=int, help="Seconds between keepalive requests (overrides config)"
    )
    shell_parser.add_argument("--su-root", action="store_true", help="Switch to root after login")
    shell_parser.add_argument("--sudo", action="store_true", help="Use sudo to switch to root")
    shell_parser.add_argument(
        "--no-password-sudo", action="store_true", help="sudo does not ask for a password"
    )
    shell_parser.add_argument(
        "--cmd-delay", type=float, help="Seconds to wait between injected commands (min 0.1)"
    )
    return parser


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Apply command-line overrides to a loaded config."""
    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port
    if args.user:
        config.username = args.user
    if args.key:
        config.key_file = str(args.key)
    if args.term:
        config.term_type = args.term
    if args.log_file:
        config.log_file = str(args.log_file)
    if args.verbose:
        config.log_level = "DEBUG"

    if args.command == "shell":
        if args.keepalive is not None:
            config.keepalive_interval = args.keepalive
        if args.su_root:
            config.su_root = True
        if args.sudo:
            config.use_sudo = True
        if args.no_password_sudo:
            config.no_password_sudo = True
        if args.cmd_delay is not None:
            config.cmd_delay = args.cmd_delay
    return config


def build_escalation(config: Config, prompt=getpass.getpass) -> EscalationPlan | None:
    """Ask for the passwords the root switch needs. None when disabled."""
    if not config.su_root:
        return None

    root_password = ""
    user_password = ""
    if config.use_sudo:
        if not config.no_password_sudo:
            user_password = prompt(f"[sudo] password for {config.username}: ")
    else:
        root_password = prompt("root password: ")

    return EscalationPlan(
        use_sudo=config.use_sudo,
        no_password_sudo=config.no_password_sudo,
        root_password=root_password,
        user_password=user_password,
        cmd_delay=config.cmd_delay,
    )


def run_exec(session: SSHSession, command: str) -> int:
    """
    Stream a piped command to local stdout until it finishes or is cancelled.

    Returns:
        0 on success, 1 if the command reported errors, 130 when cancelled
    """
    cancelled = threading.Event()
    failures: list[BaseException] = []

    def on_signal(signum, frame):
        cancelled.set()

    previous = {sig: signal.signal(sig, on_signal) for sig in CANCEL_SIGNALS}

    def copy_output():
        session.ready.wait()
        try:
            shutil.copyfileobj(session.stdout, sys.stdout.buffer)
        except SessionError as e:
            logger.debug(f"Output copy stopped: {e}")
        sys.stdout.flush()

    def report_errors():
        for error in session.errors:
            failures.append(error)
            print(error, file=sys.stderr)

    runner = threading.Thread(target=session.pipe_exec, args=(command,), daemon=True)
    copier = threading.Thread(target=copy_output, daemon=True)
    reporter = threading.Thread(target=report_errors, daemon=True)
    try:
        copier.start()
        reporter.start()
        runner.start()

        while not session.done.wait(0.2):
            if cancelled.is_set():
                print("exit", file=sys.stderr)
                session.close()
                return EXIT_CANCELLED

        reporter.join()
        if session.ready.is_set():
            copier.join()
        logger.debug("done")
        return 1 if failures else 0
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def run_shell(session: SSHSession, keepalive_interval: int) -> int:
    """Run an interactive shell. Returns the process exit code."""
    try:
        session.terminal_with_keepalive(keepalive_interval)
    except (SessionError, paramiko.SSHException, OSError) as e:
        print(e, file=sys.stderr)
        return 1
    finally:
        session.close()
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = apply_overrides(Config.load(args.config), args)
    log_file = config.log_file
    if log_file is None and args.command == "shell":
        # Console logging would land in the remote shell's output
        log_file = get_default_log_file()
    setup_logging("sshsession", level=config.log_level, log_file=log_file)

    password = None
    if args.ask_password:
        password = getpass.getpass(f"{config.username}@{config.host}'s password: ")

    escalation = build_escalation(config) if args.command == "shell" else None

    try:
        client, channel = open_channel(config, password=password)
    except Exception as e:
        logger.error(f"Connection failed: {e}")
        return 1

    try:
        session = SSHSession(channel, escalation=escalation, term_type=config.term_type)
        if args.command == "exec":
            return run_exec(session, " ".join(args.remote_command))
        return run_shell(session, config.keepalive_interval)
    finally:
        client.close()


if __name__ == "__main__":
    sys.exit(main())
