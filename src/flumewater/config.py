"""Account configuration: the credentials used for the password grant."""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass, fields

from flumewater import _constants


@dataclass(frozen=True)
class Credentials:
    """Flume API client credentials plus the account login.

    The ``client_id`` / ``client_secret`` pair is issued per user on the
    Flume portal; ``username`` / ``password`` are the account login.
    """

    client_id: str
    client_secret: str
    username: str
    password: str

    def __post_init__(self) -> None:
        missing = [f.name for f in fields(self) if not getattr(self, f.name)]
        if missing:
            raise ValueError(f"Missing credential field(s): {', '.join(missing)}")

    def __repr__(self) -> str:
        return f"Credentials(client_id={self.client_id!r}, username={self.username!r})"

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> Credentials:
        return cls(**{f.name: str(data.get(f.name) or "") for f in fields(cls)})

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Credentials:
        """Build credentials from the ``FLUME_*`` environment variables.

        Raises :class:`ValueError` if any of them is unset or empty.
        """
        env = os.environ if environ is None else environ
        return cls(
            client_id=env.get(_constants.ENV_CLIENT_ID, ""),
            client_secret=env.get(_constants.ENV_CLIENT_SECRET, ""),
            username=env.get(_constants.ENV_USERNAME, ""),
            password=env.get(_constants.ENV_PASSWORD, ""),
        )

    @classmethod
    def from_saved(cls) -> Credentials:
        """Load credentials saved by :meth:`save`.

        Raises :class:`FileNotFoundError` if no credentials file exists.
        """
        cred_file = _constants.CRED_FILE
        if not cred_file.exists():
            raise FileNotFoundError(
                f"No saved credentials at {cred_file}. Run `flumewater configure` first."
            )
        return cls.from_mapping(json.loads(cred_file.read_text()))

    def save(self) -> None:
        """Persist to ``~/.config/flumewater/credentials.json`` (mode 0600)."""
        _constants.CRED_DIR.mkdir(parents=True, exist_ok=True)
        cred_file = _constants.CRED_FILE
        cred_file.write_text(json.dumps(asdict(self), indent=2))
        cred_file.chmod(0o600)

    def password_grant(self) -> dict[str, str]:
        """Body of a request for a brand-new token pair."""
        return {
            "grant_type": "password",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "username": self.username,
            "password": self.password,
        }

    def refresh_grant(self, refresh_token: str) -> dict[str, str]:
        """Body of a request to refresh the access token."""
        return {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
