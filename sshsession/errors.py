"""Exception classes raised by SSH sessions."""


class SessionError(Exception):
    """Base exception for session errors with a structured representation."""

    def __init__(
        self,
        code: str,
        message: str,
        details: dict | None = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to structured error response."""
        result = {
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class TerminalError(SessionError):
    """Raised when the local terminal cannot be queried or put into raw mode."""

    def __init__(self, message: str, fd: int | None = None):
        super().__init__(
            code="TERMINAL_ERROR",
            message=message,
            details={"fd": fd} if fd is not None else None,
        )


class NegotiationError(SessionError):
    """Raised when the remote side rejects a PTY or shell request."""

    def __init__(self, request: str, reason: str):
        super().__init__(
            code="NEGOTIATION_FAILED",
            message=f"{request} request failed: {reason}",
            details={"request": request},
        )


class ExitError(SessionError):
    """Raised when the remote command exits with non-zero status."""

    def __init__(self, exit_status: int):
        self.exit_status = exit_status
        super().__init__(
            code="EXIT_STATUS",
            message=f"Process exited with status {exit_status}",
            details={"exit_status": exit_status},
        )


class ExitMissingError(SessionError):
    """Raised when the channel closed without reporting an exit status."""

    def __init__(self):
        super().__init__(
            code="EXIT_MISSING",
            message="wait: remote command exited without exit status or exit signal",
        )


class SessionStateError(SessionError):
    """Raised when a session or channel is used out of order."""

    def __init__(self, message: str):
        super().__init__(code="INVALID_STATE", message=message)


class ClosedPipeError(SessionError):
    """Raised on read or write to a closed in-process pipe."""

    def __init__(self, message: str = "read/write on closed pipe"):
        super().__init__(code="CLOSED_PIPE", message=message)
