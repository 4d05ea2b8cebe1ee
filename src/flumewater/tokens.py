"""Token state and the store that holds it."""

from __future__ import annotations

import enum
from dataclasses import dataclass

from flumewater._jwt import ParsedIdentity


class TokenStatus(enum.Enum):
    """Freshness of a :class:`TokenState` at a given instant."""

    EMPTY = "empty"
    """No refresh token: a new password grant is needed."""

    VALID = "valid"
    """Access token present and not yet expired."""

    EXPIRED = "expired"
    """Refresh token present but the access token must be refreshed."""


@dataclass(frozen=True)
class TokenState:
    """Immutable snapshot of the credentials in use.

    A new snapshot replaces the old one on every accepted grant, so a
    reader holding one never sees a half-updated pair.
    """

    access_token: str | None = None
    refresh_token: str | None = None
    expires_at: float = 0.0
    """Epoch seconds after which the access token is treated as expired."""

    authorized: bool = False
    identity: ParsedIdentity | None = None

    def status(self, now: float) -> TokenStatus:
        if self.refresh_token is None:
            return TokenStatus.EMPTY
        if self.authorized and self.access_token and now < self.expires_at:
            return TokenStatus.VALID
        return TokenStatus.EXPIRED


EMPTY_STATE = TokenState()


class TokenStore:
    """Holds the current :class:`TokenState`.

    All operations are synchronous, so on the event loop each one is a
    single atomic step.
    """

    def __init__(self) -> None:
        self._state = EMPTY_STATE

    def read(self) -> TokenState:
        """Return the last committed state."""
        return self._state

    def compare_and_swap(self, expected: TokenState, new: TokenState) -> bool:
        """Replace the state with *new* only if it is still *expected*."""
        if self._state is not expected:
            return False
        self._state = new
        return True

    def clear(self) -> None:
        self._state = EMPTY_STATE
