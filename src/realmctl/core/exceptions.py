"""Error types raised by realmctl.

Each class carries its own process exit code, so scripts can tell a bad
config (2) from a port clash (5) or an unreachable panel (6). ``hint`` is
shown under the message as a next step; ``details`` are extra lines such
as pydantic errors or the HTTP status.
"""

from typing import Optional


class RealmCtlError(Exception):
    """Root of every error realmctl reports to the user.

    Attributes:
        message: What went wrong, one line
        hint: What to try next
        details: Extra lines printed under the message
        exit_code: Process exit status for this kind of error
    """

    exit_code: int = 1

    def __init__(
        self,
        message: str,
        *,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.details = list(details) if details else []

    def __str__(self) -> str:
        return self.message


class ConfigurationError(RealmCtlError):
    """The config file is missing, unreadable or invalid, or the password is unset."""
    exit_code = 2


class ValidationError(RealmCtlError):
    """User input rejected locally, before any request is sent."""
    exit_code = 3


class InvalidPortError(ValidationError):
    pass


class InvalidAddressError(ValidationError):
    pass


class FormatError(RealmCtlError):
    """The panel answered with a body realmctl cannot interpret.

    Covers non-JSON bodies, a rule list that is not a list, rules without
    listen/remote and a ``total`` that is not a non-negative integer.
    """
    exit_code = 4


class ConflictError(RealmCtlError):
    """The local port is already taken by a known rule."""
    exit_code = 5

    def __init__(
        self,
        message: str,
        *,
        port: Optional[int] = None,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message, hint=hint, details=details)
        self.port = port


class ApiError(RealmCtlError):
    """A request to the panel failed in transport or came back non-2xx."""
    exit_code = 6

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        status_text: Optional[str] = None,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message, hint=hint, details=details)
        if status_code is not None:
            self.details.append(f"HTTP status: {status_code}")
        self.status_code = status_code
        self.status_text = status_text


class AuthError(ApiError):
    """Login was refused or no CSRF token could be obtained."""
    exit_code = 7


class MutationFailedError(ApiError):
    """The panel refused an add, a delete or a restart."""
    exit_code = 8


class FetchError(ApiError):
    """Listing rules failed."""
    exit_code = 9


class ServiceError(ApiError):
    """Starting or stopping the forwarding service failed."""
    exit_code = 10
