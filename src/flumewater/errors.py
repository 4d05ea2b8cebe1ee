"""Error kinds raised by the Flume client.

Every failure a caller can observe is a :class:`FlumeError`.  The
:attr:`~FlumeError.transient` flag tells a polling caller whether waiting
for the next attempt can help (``True``) or whether the user must fix
credentials or configuration first (``False``).
"""

from __future__ import annotations


class FlumeError(Exception):
    """Base class for all errors raised by :mod:`flumewater`."""

    transient: bool = True

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AuthorizationError(FlumeError):
    """Credentials were rejected, or the token could not be refreshed.

    The token store has already been invalidated when this is raised, so
    the next call starts a fresh token request.
    """

    transient = False


class NotFoundError(FlumeError):
    """The resource does not exist, or is not the expected device type."""

    transient = False


class TransportError(FlumeError):
    """The request never produced a response (connection error or timeout)."""

    def __init__(self, message: str, *, timed_out: bool = False) -> None:
        super().__init__(message)
        self.timed_out = timed_out


class RequestCanceledError(FlumeError):
    """The underlying HTTP request was cancelled before it completed."""


class MalformedResponseError(FlumeError):
    """The response envelope was not structurally valid, or reported failure."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status
