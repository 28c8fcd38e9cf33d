from __future__ import annotations

"""Error taxonomy shared by the link layer and the remote API clients."""


class LinkError(RuntimeError):
    """Base class for every error raised by dp2client."""


class ConnectivityError(LinkError):
    """Raised when the pipeline web service cannot be reached."""


class AuthenticationError(LinkError):
    """Raised for malformed client credentials or rejected signatures."""


class ValidationError(LinkError):
    """Raised when a request references slots or jobs that do not exist."""


class RemoteError(LinkError):
    """Raised when the web service answers a well-formed call with an error."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StartupError(LinkError):
    """Raised when a local pipeline instance could not be launched."""
