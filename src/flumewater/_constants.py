"""Internal constants for the Flume cloud API."""

from __future__ import annotations

from pathlib import Path

API_BASE = "https://api.flumetech.com"
TOKEN_PATH = "/oauth/token"
USER_PATH = "/users/{user_id}"

# Total deadline for every outbound request, in seconds.
REQUEST_TIMEOUT = 3

# Subtracted from the server-declared token lifetime.
TOKEN_EXPIRY_BUFFER = 300

QUERY_REQUEST_ID = "flumewater-usage"
QUERY_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"

# Codes the service uses for a rejected or invalid JWT (503 included).
AUTH_FAILURE_CODES = frozenset({401, 403, 503})

CRED_DIR = Path.home() / ".config" / "flumewater"
CRED_FILE = CRED_DIR / "credentials.json"

ENV_CLIENT_ID = "FLUME_CLIENT_ID"
ENV_CLIENT_SECRET = "FLUME_CLIENT_SECRET"
ENV_USERNAME = "FLUME_USERNAME"
ENV_PASSWORD = "FLUME_PASSWORD"

JSON_HEADERS: dict[str, str] = {
    "content-type": "application/json",
}
