"""Flume water monitor API client.

Provides asynchronous access to Flume water sensors through the Flume
cloud API.  The :class:`Client` class is the main entry point::

    from flumewater import Client, Credentials

    async with Client(Credentials.from_env()) as client:
        sensors = await client.list_sensors()
        usage = await client.get_water_usage(sensors[0].device_id, 15)
        print(usage.value, usage.is_flowing)

Authorization is transparent: the first call obtains a token pair, later
calls refresh it shortly before it expires.  Failures are raised as the
kinds in :mod:`flumewater.errors`.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import datetime, timedelta

import aiohttp

from flumewater._constants import QUERY_DATETIME_FORMAT, QUERY_REQUEST_ID, USER_PATH
from flumewater.auth import TokenManager
from flumewater.config import Credentials
from flumewater.context import ClientContext
from flumewater.errors import MalformedResponseError, NotFoundError
from flumewater.models import Device, Request, WaterUsage
from flumewater.pipeline import RequestPipeline


class Client:
    """Flume water monitor API client.

    Construct with :class:`Credentials`, or use :meth:`from_saved` /
    :meth:`from_env`.  Pass *session* to share an existing
    :class:`aiohttp.ClientSession`; otherwise the client opens its own and
    closes it in :meth:`close`.
    """

    def __init__(
        self,
        credentials: Credentials,
        *,
        session: aiohttp.ClientSession | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._context = ClientContext(credentials, session=session, clock=clock)
        self._auth = TokenManager(self._context)
        self._pipeline = RequestPipeline(self._context, self._auth)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_saved(cls) -> Client:
        """Create a client from credentials saved by ``flumewater configure``.

        Raises :class:`FileNotFoundError` if no credentials file exists.
        """
        return cls(Credentials.from_saved())

    @classmethod
    def from_env(cls) -> Client:
        """Create a client from the ``FLUME_*`` environment variables."""
        return cls(Credentials.from_env())

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Cancel any in-flight token request and close an owned session."""
        await self._auth.close()
        await self._context.close()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def auth(self) -> TokenManager:
        """The token manager (for status inspection)."""
        return self._auth

    @property
    def user_id(self) -> int:
        """Numeric id of the authenticated account.

        Raises :class:`~flumewater.errors.AuthorizationError` before the
        first successful authorization.
        """
        return self._auth.identity.user_id

    async def authorize(self) -> None:
        """Obtain a token now rather than on the first request."""
        await self._auth.ensure_authorized()

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    async def list_devices(self) -> list[Device]:
        """Fetch every device (sensors and bridges) on the account."""
        envelope = await self._pipeline.send(Request(f"{USER_PATH}/devices"))
        return [Device.from_api(record) for record in envelope.data or []]

    async def list_sensors(self) -> list[Device]:
        """Fetch the water sensors on the account, skipping bridges."""
        return [d for d in await self.list_devices() if d.is_sensor and d.device_id > 0]

    async def get_device(self, device_id: int) -> Device:
        """Fetch one water sensor.

        The service returns any device for this path, so a record that is
        not a sensor raises :class:`~flumewater.errors.NotFoundError`.
        """
        record = await self._pipeline.send_one(Request(f"{USER_PATH}/devices/{device_id}"))
        device = Device.from_api(record)
        if not device.is_sensor:
            raise NotFoundError(
                f"Device {device_id} is not a water sensor (type {int(device.device_type)})"
            )
        return device

    async def get_water_usage(self, device_id: int, minutes: int) -> WaterUsage:
        """Query the water used by a sensor over the last *minutes* minutes.

        The window starts *minutes* ago, truncated to the whole minute, and
        ends now.
        """
        if minutes <= 0:
            raise ValueError(f"minutes must be positive, got {minutes}")
        until = datetime.fromtimestamp(self._context.clock())
        since = (until - timedelta(minutes=minutes)).replace(second=0, microsecond=0)
        request = Request(
            f"{USER_PATH}/devices/{device_id}/query",
            method="POST",
            body=_build_usage_query(since, until, minutes),
        )
        record = await self._pipeline.send_one(request)
        return WaterUsage(
            device_id=device_id,
            minutes=minutes,
            value=_parse_usage_value(record),
            since=since,
            until=until,
        )


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------


def _build_usage_query(since: datetime, until: datetime, minutes: int) -> dict[str, object]:
    """Build the body of a per-minute usage query summed over the window."""
    return {
        "queries": [
            {
                "request_id": QUERY_REQUEST_ID,
                "bucket": "MIN",
                "since_datetime": since.strftime(QUERY_DATETIME_FORMAT),
                "until_datetime": until.strftime(QUERY_DATETIME_FORMAT),
                "group_multiplier": minutes,
                "operation": "SUM",
                "sort_direction": "ASC",
                "units": "GALLONS",
            }
        ]
    }


def _parse_usage_value(record: object) -> float:
    """Sum the values of the query result series in *record*.

    The data element is keyed by request id::

        {"flumewater-usage": [{"datetime": "2024-01-01 10:00:00", "value": 1.5}]}

    A truncated window start can yield a second, partial bucket, so all
    buckets are summed.
    """
    if not isinstance(record, dict):
        raise MalformedResponseError("Usage query result is not an object")
    series = record.get(QUERY_REQUEST_ID)
    if not isinstance(series, list) or not series:
        raise MalformedResponseError(f"Usage query returned no data for '{QUERY_REQUEST_ID}'")
    total = 0.0
    for point in series:
        if not isinstance(point, dict):
            raise MalformedResponseError(f"Usage data point is not an object: {point!r}")
        try:
            total += float(point["value"])
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedResponseError(f"Usage data point has no numeric value: {point!r}") from e
    return total
