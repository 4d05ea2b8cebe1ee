"""Async client and CLI for Flume water monitors."""

from flumewater.client import Client
from flumewater.config import Credentials
from flumewater.errors import (
    AuthorizationError,
    FlumeError,
    MalformedResponseError,
    NotFoundError,
    RequestCanceledError,
    TransportError,
)
from flumewater.models import BatteryLevel, Device, DeviceType, WaterUsage

__all__ = [
    "AuthorizationError",
    "BatteryLevel",
    "Client",
    "Credentials",
    "Device",
    "DeviceType",
    "FlumeError",
    "MalformedResponseError",
    "NotFoundError",
    "RequestCanceledError",
    "TransportError",
    "WaterUsage",
]
