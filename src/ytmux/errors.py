"""Exceptions raised by ytmux."""


class YtmuxError(Exception):
    """Base class for all ytmux errors."""

    pass


class TransportError(YtmuxError):
    """Raised when an HTTP request cannot reach its server."""

    pass


class ApiError(YtmuxError):
    """Raised when the release API answers with a non-success status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ParseError(ApiError):
    """Raised when a release API body is not the JSON we expect."""

    pass


class SubprocessSpawnError(YtmuxError):
    """Raised when an external binary is missing or cannot be executed."""

    def __init__(self, message: str, command: list[str] | None = None):
        super().__init__(message)
        self.command = command or []


class SubprocessFailed(YtmuxError):
    """Raised when an external binary exits with a non-zero status."""

    def __init__(self, message: str, exit_code: int, command: list[str] | None = None):
        super().__init__(message)
        self.exit_code = exit_code
        self.command = command or []


class ArchiveError(YtmuxError):
    """Raised when an update archive is unreadable or lacks the wanted file."""

    pass


class InvalidUrl(YtmuxError):
    """Raised when a user supplied URL fails syntactic validation."""

    def __init__(self, url: str):
        super().__init__(f"Invalid URL: {url}")
        self.url = url


class RetriesExhausted(YtmuxError):
    """Raised when a bounded retry policy runs out of attempts."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts
