"""Thin CLI wrapper over :class:`flumewater.Client`."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any, NoReturn, TypeVar

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.syntax import Syntax

from flumewater.client import Client
from flumewater.config import Credentials
from flumewater.errors import AuthorizationError, FlumeError, NotFoundError
from flumewater.models import Device, DeviceType, WaterUsage

T = TypeVar("T")

app = typer.Typer(help="Query Flume water monitors.", invoke_without_command=True)

EXIT_TRANSIENT = 1
EXIT_AUTHORIZATION = 2
EXIT_CONFIGURATION = 3

_TYPE_LABELS: dict[int, str] = {
    DeviceType.SENSOR: "Water sensor",
    DeviceType.BRIDGE: "Bridge",
}


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Query Flume water monitors."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(0)


def _print_json(obj: object) -> None:
    """Print JSON, syntax-highlighted when stdout is a TTY, compact otherwise."""
    if sys.stdout.isatty():
        Console().print(Syntax(json.dumps(obj, indent=2), "json"))
    else:
        typer.echo(json.dumps(obj))


def _ensure_client() -> Client:
    """Load saved credentials (or ``FLUME_*`` variables) or exit with an error."""
    try:
        return Client.from_saved()
    except FileNotFoundError:
        pass
    except ValueError as e:
        typer.echo(
            f"Saved credentials are unusable: {e}\nRun `flumewater configure` again.", err=True
        )
        raise typer.Exit(EXIT_CONFIGURATION) from None
    try:
        return Client.from_env()
    except ValueError:
        typer.echo("No saved credentials. Run `flumewater configure` first.", err=True)
        raise typer.Exit(EXIT_CONFIGURATION) from None


def _fail(error: FlumeError) -> NoReturn:
    """Report *error* the way a polling caller would, and exit."""
    if isinstance(error, AuthorizationError):
        typer.echo(
            f"Authorization failed: {error}\n"
            "Run `flumewater configure` to update your credentials.",
            err=True,
        )
        raise typer.Exit(EXIT_AUTHORIZATION)
    if isinstance(error, NotFoundError):
        typer.echo(f"Configuration error: {error}", err=True)
        raise typer.Exit(EXIT_CONFIGURATION)
    typer.echo(f"Communication error: {error}\nTry again later.", err=True)
    raise typer.Exit(EXIT_TRANSIENT)


def _run(coro: Coroutine[Any, Any, T]) -> T:
    try:
        return asyncio.run(coro)
    except FlumeError as e:
        _fail(e)


async def _using(client: Client, operation: Callable[[Client], Awaitable[T]]) -> T:
    async with client:
        return await operation(client)


def _type_label(device: Device) -> str:
    return _TYPE_LABELS.get(int(device.device_type), f"Type {int(device.device_type)}")


def _battery_label(device: Device) -> str:
    if device.battery_level is None:
        return "--"
    return f"{device.battery_level.value} ({device.battery_percent}%)"


def _connected_label(device: Device) -> str:
    if device.connected is None:
        return "--"
    return "yes" if device.connected else "no"


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def configure(
    client_id: str = typer.Option(..., prompt=True, help="Flume API client ID"),
    client_secret: str = typer.Option(
        ..., prompt=True, hide_input=True, help="Flume API client secret"
    ),
    username: str = typer.Option(..., prompt=True, help="Flume account email"),
    password: str = typer.Option(..., prompt=True, hide_input=True, help="Flume account password"),
) -> None:
    """Verify Flume API credentials and save them locally."""
    try:
        credentials = Credentials(client_id, client_secret, username, password)
    except ValueError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(EXIT_CONFIGURATION) from None

    typer.echo(f"Verifying credentials for {username}...")
    user_id = _run(_verify_async(credentials))
    credentials.save()
    typer.echo(f"Credentials saved. Flume user ID: {user_id}")


async def _verify_async(credentials: Credentials) -> int:
    async with Client(credentials) as client:
        await client.authorize()
        return client.user_id


@app.command()
def devices() -> None:
    """List all devices on the account (sensors and bridges)."""
    client = _ensure_client()
    all_devices = _run(_using(client, lambda c: c.list_devices()))
    if not all_devices:
        typer.echo("No devices found.", err=True)
        raise typer.Exit(EXIT_CONFIGURATION)

    for dev in all_devices:
        location = f"  (location {dev.location_id})" if dev.location_id is not None else ""
        typer.echo(f"  [{dev.device_id}] {_type_label(dev)}{location}")
        if dev.is_sensor:
            typer.echo(
                f"        Battery: {_battery_label(dev)}  Connected: {_connected_label(dev)}"
            )


@app.command("device")
def show_device(
    device_id: int = typer.Argument(..., help="Sensor device ID"),
    as_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Show the status of one water sensor."""
    client = _ensure_client()
    dev = _run(_using(client, lambda c: c.get_device(device_id)))
    if as_json:
        _print_json(dev.raw)
        return

    if sys.stdout.isatty():
        typer.echo(typer.style(f"Sensor {dev.device_id}", bold=True))
    else:
        typer.echo(f"Sensor {dev.device_id}")
    typer.echo(f"  Battery: {_battery_label(dev)}")
    typer.echo(f"  Connected: {_connected_label(dev)}")
    if dev.last_seen:
        typer.echo(f"  Last seen: {dev.last_seen}")
    if dev.bridge_id is not None:
        typer.echo(f"  Bridge: {dev.bridge_id}")


@app.command()
def usage(
    device_id: int = typer.Argument(..., help="Sensor device ID"),
    minutes: int = typer.Option(5, "--minutes", "-m", min=1, help="Query window in minutes"),
    as_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Show water used by a sensor over the last few minutes."""
    client = _ensure_client()
    result: WaterUsage = _run(_using(client, lambda c: c.get_water_usage(device_id, minutes)))
    if as_json:
        _print_json(
            {
                "device_id": result.device_id,
                "minutes": result.minutes,
                "value": result.value,
                "is_flowing": result.is_flowing,
                "since": result.since.isoformat(),
                "until": result.until.isoformat(),
            }
        )
        return

    state = "flowing" if result.is_flowing else "off"
    typer.echo(f"{result.value:.2f} gal in the last {result.minutes} min (water {state})")


@app.command()
def debug() -> None:
    """Dump raw API responses for troubleshooting."""
    client = _ensure_client()
    _run(_using(client, _debug_async))


async def _debug_async(client: Client) -> None:
    """Async implementation of the debug command."""
    import aiohttp

    from flumewater._constants import API_BASE, JSON_HEADERS, REQUEST_TIMEOUT, USER_PATH

    await client.authorize()
    typer.echo(f"Token status: {client.auth.status.value}")
    typer.echo(f"User ID: {client.user_id}")

    headers = {**JSON_HEADERS, "authorization": f"Bearer {client.auth.state.access_token}"}
    path = USER_PATH.format(user_id=client.user_id) + "/devices"
    timeout = aiohttp.ClientTimeout(total=REQUEST_TIMEOUT)

    async with aiohttp.ClientSession() as session:
        typer.echo(f"\n=== GET {path} ===")
        try:
            async with session.get(f"{API_BASE}{path}", headers=headers, timeout=timeout) as resp:
                typer.echo(f"Status: {resp.status}")
                _print_json(await resp.json(content_type=None))
        except (aiohttp.ClientError, TimeoutError, ValueError) as e:
            typer.echo(f"Error: {e}")
