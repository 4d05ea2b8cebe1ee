"""Tests for flumewater.cli."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from unittest.mock import AsyncMock, PropertyMock, patch

import pytest
from typer.testing import CliRunner

from flumewater import _constants
from flumewater.cli import EXIT_AUTHORIZATION, EXIT_CONFIGURATION, EXIT_TRANSIENT, app
from flumewater.client import Client
from flumewater.config import Credentials
from flumewater.errors import (
    AuthorizationError,
    MalformedResponseError,
    NotFoundError,
    TransportError,
)
from flumewater.models import Device, WaterUsage

runner = CliRunner()

CREDS = Credentials("cid", "csecret", "user@example.com", "hunter2")
SENSOR_ID = 6248148189204194987

SENSOR = Device.from_api(
    {
        "id": SENSOR_ID,
        "type": 2,
        "bridge_id": 5551,
        "connected": True,
        "battery_level": "high",
        "last_seen": "2024-01-01T10:00:00.000Z",
    }
)
BRIDGE = Device.from_api({"id": 5551, "type": 1, "connected": True})


def _saved_client() -> object:
    """Patch ``Client.from_saved`` to return a client with test credentials."""
    return patch.object(Client, "from_saved", return_value=Client(CREDS))


@pytest.fixture
def cred_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    cred_dir = tmp_path / "flumewater"
    path = cred_dir / "credentials.json"
    monkeypatch.setattr(_constants, "CRED_DIR", cred_dir)
    monkeypatch.setattr(_constants, "CRED_FILE", path)
    return path


class TestHelp:
    def test_no_command_prints_help(self):
        result = runner.invoke(app, [])
        assert result.exit_code == 0
        assert "Query Flume water monitors" in result.output
        assert "usage" in result.output


class TestDevicesCommand:
    def test_lists_sensors_and_bridges(self):
        with (
            _saved_client(),
            patch.object(Client, "list_devices", AsyncMock(return_value=[BRIDGE, SENSOR])),
        ):
            result = runner.invoke(app, ["devices"])

        assert result.exit_code == 0
        assert "[5551] Bridge" in result.output
        assert f"[{SENSOR_ID}] Water sensor" in result.output
        assert "Battery: high (75%)" in result.output
        assert "Connected: yes" in result.output

    def test_no_devices(self):
        with _saved_client(), patch.object(Client, "list_devices", AsyncMock(return_value=[])):
            result = runner.invoke(app, ["devices"])

        assert result.exit_code == EXIT_CONFIGURATION
        assert "No devices found" in result.output

    def test_falls_back_to_environment(self, monkeypatch: pytest.MonkeyPatch):
        for key, value in {
            "FLUME_CLIENT_ID": "cid",
            "FLUME_CLIENT_SECRET": "csecret",
            "FLUME_USERNAME": "user@example.com",
            "FLUME_PASSWORD": "hunter2",
        }.items():
            monkeypatch.setenv(key, value)
        with (
            patch.object(Client, "from_saved", side_effect=FileNotFoundError("none")),
            patch.object(Client, "list_devices", AsyncMock(return_value=[SENSOR])),
        ):
            result = runner.invoke(app, ["devices"])

        assert result.exit_code == 0
        assert "Water sensor" in result.output

    def test_incomplete_saved_credentials(self, cred_file: Path):
        cred_file.parent.mkdir(parents=True)
        cred_file.write_text('{"client_id": "x"}')
        result = runner.invoke(app, ["devices"])

        assert result.exit_code == EXIT_CONFIGURATION
        assert "client_secret" in result.output
        assert "flumewater configure" in result.output

    def test_corrupt_saved_credentials(self, cred_file: Path):
        cred_file.parent.mkdir(parents=True)
        cred_file.write_text("{not json")
        result = runner.invoke(app, ["devices"])

        assert result.exit_code == EXIT_CONFIGURATION
        assert "flumewater configure" in result.output

    def test_no_credentials(self):
        with (
            patch.object(Client, "from_saved", side_effect=FileNotFoundError("none")),
            patch.object(Client, "from_env", side_effect=ValueError("Missing")),
        ):
            result = runner.invoke(app, ["devices"])

        assert result.exit_code == EXIT_CONFIGURATION
        assert "flumewater configure" in result.output


class TestErrorExitCodes:
    def test_authorization_error(self):
        error = AuthorizationError("Token request rejected: 400 Bad Request")
        with _saved_client(), patch.object(Client, "list_devices", AsyncMock(side_effect=error)):
            result = runner.invoke(app, ["devices"])

        assert result.exit_code == EXIT_AUTHORIZATION
        assert "Authorization failed" in result.output
        assert "Token request rejected" in result.output

    def test_transport_error(self):
        error = TransportError("GET https://api.flumetech.com/x timed out after 3s", timed_out=True)
        with _saved_client(), patch.object(Client, "list_devices", AsyncMock(side_effect=error)):
            result = runner.invoke(app, ["devices"])

        assert result.exit_code == EXIT_TRANSIENT
        assert "Communication error" in result.output
        assert "Try again later" in result.output

    def test_malformed_response(self):
        error = MalformedResponseError("Response is not valid JSON")
        with _saved_client(), patch.object(Client, "get_device", AsyncMock(side_effect=error)):
            result = runner.invoke(app, ["device", str(SENSOR_ID)])

        assert result.exit_code == EXIT_TRANSIENT

    def test_not_found(self):
        error = NotFoundError("Device 5551 is not a water sensor (type 1)")
        with _saved_client(), patch.object(Client, "get_device", AsyncMock(side_effect=error)):
            result = runner.invoke(app, ["device", "5551"])

        assert result.exit_code == EXIT_CONFIGURATION
        assert "Configuration error" in result.output
        assert "not a water sensor" in result.output


class TestDeviceCommand:
    def test_shows_sensor(self):
        mock = AsyncMock(return_value=SENSOR)
        with _saved_client(), patch.object(Client, "get_device", mock):
            result = runner.invoke(app, ["device", str(SENSOR_ID)])

        assert result.exit_code == 0
        mock.assert_awaited_once_with(SENSOR_ID)
        assert f"Sensor {SENSOR_ID}" in result.output
        assert "Battery: high (75%)" in result.output
        assert "Connected: yes" in result.output
        assert "Last seen: 2024-01-01T10:00:00.000Z" in result.output
        assert "Bridge: 5551" in result.output

    def test_json_output(self):
        with _saved_client(), patch.object(Client, "get_device", AsyncMock(return_value=SENSOR)):
            result = runner.invoke(app, ["device", str(SENSOR_ID), "--json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["id"] == SENSOR_ID
        assert data["battery_level"] == "high"


class TestUsageCommand:
    USAGE = WaterUsage(
        device_id=SENSOR_ID,
        minutes=15,
        value=1.75,
        since=datetime(2024, 1, 1, 10, 0),
        until=datetime(2024, 1, 1, 10, 15, 42),
    )

    def test_shows_usage(self):
        mock = AsyncMock(return_value=self.USAGE)
        with _saved_client(), patch.object(Client, "get_water_usage", mock):
            result = runner.invoke(app, ["usage", str(SENSOR_ID), "--minutes", "15"])

        assert result.exit_code == 0
        mock.assert_awaited_once_with(SENSOR_ID, 15)
        assert "1.75 gal in the last 15 min (water flowing)" in result.output

    def test_default_window(self):
        idle = WaterUsage(SENSOR_ID, 5, 0.0, self.USAGE.since, self.USAGE.until)
        mock = AsyncMock(return_value=idle)
        with _saved_client(), patch.object(Client, "get_water_usage", mock):
            result = runner.invoke(app, ["usage", str(SENSOR_ID)])

        assert result.exit_code == 0
        mock.assert_awaited_once_with(SENSOR_ID, 5)
        assert "(water off)" in result.output

    def test_json_output(self):
        with (
            _saved_client(),
            patch.object(Client, "get_water_usage", AsyncMock(return_value=self.USAGE)),
        ):
            result = runner.invoke(app, ["usage", str(SENSOR_ID), "-m", "15", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["value"] == 1.75
        assert data["is_flowing"] is True
        assert data["since"] == "2024-01-01T10:00:00"

    def test_rejects_empty_window(self):
        result = runner.invoke(app, ["usage", str(SENSOR_ID), "--minutes", "0"])
        assert result.exit_code != 0


class TestConfigureCommand:
    ARGS = [
        "configure",
        "--client-id",
        "cid",
        "--client-secret",
        "csecret",
        "--username",
        "user@example.com",
        "--password",
        "hunter2",
    ]

    def test_saves_verified_credentials(self, cred_file: Path):
        with (
            patch.object(Client, "authorize", AsyncMock()),
            patch.object(Client, "user_id", new_callable=PropertyMock, return_value=1234),
        ):
            result = runner.invoke(app, self.ARGS)

        assert result.exit_code == 0
        assert "Verifying credentials for user@example.com" in result.output
        assert "Flume user ID: 1234" in result.output
        assert Credentials.from_saved() == CREDS

    def test_prompts_for_values(self, cred_file: Path):
        with (
            patch.object(Client, "authorize", AsyncMock()),
            patch.object(Client, "user_id", new_callable=PropertyMock, return_value=1234),
        ):
            result = runner.invoke(
                app, ["configure"], input="cid\ncsecret\nuser@example.com\nhunter2\n"
            )

        assert result.exit_code == 0
        assert cred_file.exists()

    def test_rejected_credentials_not_saved(self, cred_file: Path):
        error = AuthorizationError("Token request rejected: 400 Bad Request")
        with patch.object(Client, "authorize", AsyncMock(side_effect=error)):
            result = runner.invoke(app, self.ARGS)

        assert result.exit_code == EXIT_AUTHORIZATION
        assert not cred_file.exists()
