"""Access-token payload decoding."""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field


@dataclass(frozen=True)
class ParsedIdentity:
    """The account identity carried in an access token's payload."""

    user_id: int
    claims: dict[str, object] = field(default_factory=dict, compare=False, repr=False)


def decode_identity(token: str | None) -> ParsedIdentity | None:
    """Extract the ``user_id`` claim from a JWT without verifying the signature.

    Returns ``None`` if the token cannot be decoded (not three segments,
    malformed base64 or JSON, missing or non-numeric claim).
    """
    if not token:
        return None
    parts = token.split(".")
    if len(parts) != 3:
        return None
    # base64url padding: length must be a multiple of 4
    padded = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        payload = json.loads(base64.urlsafe_b64decode(padded))
    except (binascii.Error, ValueError):
        return None
    if not isinstance(payload, dict):
        return None
    user_id = payload.get("user_id")
    if isinstance(user_id, bool):
        return None
    try:
        return ParsedIdentity(int(str(user_id)), claims=payload)
    except ValueError:
        return None
