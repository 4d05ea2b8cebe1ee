"""Domain values returned by the client, and the request descriptor."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime

from flumewater.errors import MalformedResponseError


class DeviceType(enum.IntEnum):
    """Device categories reported in the ``type`` field."""

    BRIDGE = 1
    SENSOR = 2


class BatteryLevel(enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def percent(self) -> int:
        """Approximate charge, for displays that expect a percentage."""
        return _BATTERY_PERCENT[self]


_BATTERY_PERCENT: dict[BatteryLevel, int] = {
    BatteryLevel.LOW: 25,
    BatteryLevel.MEDIUM: 50,
    BatteryLevel.HIGH: 75,
}


@dataclass(frozen=True)
class Request:
    """Describes one outbound API call.

    *path* is relative to the API base and may contain a ``{user_id}``
    placeholder, filled in from the current token identity.
    """

    path: str
    method: str = "GET"
    body: dict[str, object] | None = None
    requires_authorization: bool = True


@dataclass
class Device:
    """A Flume device (water sensor or bridge)."""

    device_id: int
    """Numeric device ID used in API paths."""

    device_type: DeviceType | int
    """:class:`DeviceType`, or the raw int for categories we do not know."""

    location_id: int | None = None
    user_id: int | None = None
    bridge_id: int | None = None
    connected: bool | None = None
    battery_level: BatteryLevel | None = None
    last_seen: str | None = None
    product: str | None = None
    raw: dict[str, object] = field(default_factory=dict, repr=False)
    """The device record exactly as returned by the API."""

    @property
    def is_sensor(self) -> bool:
        return self.device_type == DeviceType.SENSOR

    @property
    def battery_percent(self) -> int | None:
        return self.battery_level.percent if self.battery_level else None

    @classmethod
    def from_api(cls, record: object) -> Device:
        """Build a device from one element of a device-list response.

        Raises :class:`MalformedResponseError` if the record is not an
        object or lacks a numeric ``id`` / ``type``.
        """
        if not isinstance(record, dict):
            raise MalformedResponseError(
                f"Device record is a {type(record).__name__}, expected an object"
            )
        device_id = _optional_int(record.get("id"))
        raw_type = _optional_int(record.get("type"))
        if device_id is None or raw_type is None:
            raise MalformedResponseError(f"Device record lacks a numeric id/type: {record!r}")
        try:
            device_type: DeviceType | int = DeviceType(raw_type)
        except ValueError:
            device_type = raw_type

        battery = record.get("battery_level")
        try:
            battery_level = BatteryLevel(str(battery).lower()) if battery else None
        except ValueError:
            battery_level = None

        connected = record.get("connected")
        return cls(
            device_id=device_id,
            device_type=device_type,
            location_id=_optional_int(record.get("location_id")),
            user_id=_optional_int(record.get("user_id")),
            bridge_id=_optional_int(record.get("bridge_id")),
            connected=connected if isinstance(connected, bool) else None,
            battery_level=battery_level,
            last_seen=str(record["last_seen"]) if record.get("last_seen") else None,
            product=str(record["product"]) if record.get("product") else None,
            raw=record,
        )


@dataclass(frozen=True)
class WaterUsage:
    """Water used by one sensor over a query window."""

    device_id: int
    minutes: int
    value: float
    """Total over the window, in the units requested (gallons)."""

    since: datetime
    until: datetime

    @property
    def is_flowing(self) -> bool:
        return self.value > 0


def _optional_int(value: object) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value))
    except ValueError:
        return None
