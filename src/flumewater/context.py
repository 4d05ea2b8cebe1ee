"""The client context shared by every component."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field

import aiohttp

from flumewater.config import Credentials


@dataclass
class ClientContext:
    """Everything the components of one client share.

    Passed to each component's constructor; there is no module-level
    state.  If *session* is not supplied, one is opened on first use and
    closed by :meth:`close`.
    """

    credentials: Credentials
    session: aiohttp.ClientSession | None = None
    clock: Callable[[], float] = time.time
    """Returns the current time as epoch seconds."""

    _owns_session: bool = field(default=False, init=False, repr=False)

    def http(self) -> aiohttp.ClientSession:
        """Return the HTTP session, opening one if needed.

        Must be called from a running event loop.
        """
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession()
            self._owns_session = True
        return self.session

    async def close(self) -> None:
        if self._owns_session and self.session is not None:
            await self.session.close()
            self.session = None
            self._owns_session = False
