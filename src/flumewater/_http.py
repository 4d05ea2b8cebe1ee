"""Low-level request dispatch with transport error mapping."""

from __future__ import annotations

import asyncio
import logging

import aiohttp

from flumewater._constants import JSON_HEADERS, REQUEST_TIMEOUT
from flumewater.context import ClientContext
from flumewater.errors import RequestCanceledError, TransportError

_LOGGER = logging.getLogger(__name__)


async def dispatch(
    context: ClientContext,
    method: str,
    url: str,
    *,
    body: dict[str, object] | None = None,
    token: str | None = None,
) -> tuple[int, bytes]:
    """Send one request and return ``(http_status, body_bytes)``.

    Every request carries ``content-type: application/json`` and a total
    deadline of :data:`REQUEST_TIMEOUT` seconds.  Non-2xx statuses are not
    errors here; the envelope in the body is classified by the caller.

    Raises :class:`TransportError` on timeouts and connection failures and
    :class:`RequestCanceledError` if the request is cancelled from
    underneath the caller.  Cancellation of the calling task itself
    propagates unchanged.
    """
    headers = dict(JSON_HEADERS)
    if token is not None:
        headers["authorization"] = f"Bearer {token}"
    _LOGGER.debug("%s %s", method, url)
    try:
        async with context.http().request(
            method,
            url,
            json=body,
            headers=headers,
            timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT),
        ) as resp:
            return resp.status, await resp.read()
    except TimeoutError as e:
        raise TransportError(
            f"{method} {url} timed out after {REQUEST_TIMEOUT}s", timed_out=True
        ) from e
    except aiohttp.ClientError as e:
        raise TransportError(f"{method} {url} failed: {e}") from e
    except asyncio.CancelledError:
        if caller_cancelled():
            _LOGGER.debug("%s %s cancelled by caller", method, url)
            raise
        raise RequestCanceledError(f"{method} {url} was cancelled") from None


def caller_cancelled() -> bool:
    """True if the current task itself has a pending cancellation request."""
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0
