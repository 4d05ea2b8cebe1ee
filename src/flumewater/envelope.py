"""Decoding and classification of the Flume response envelope.

Every Flume response, success or failure, is wrapped in the same JSON
object::

    {
        "success": true,
        "code": 200,
        "message": "Request OK",
        "http_message": "OK",
        "detailed": null,
        "data": [...],
        "count": 1,
        "pagination": null
    }

The service is not consistent about it: ``detailed`` is sometimes a list
of strings and sometimes a list of ``{"field", "message"}`` objects, and
``code`` and ``success`` have been observed to disagree.  Only ``code`` and
``success`` drive classification; ``detailed`` is kept as diagnostic text.
"""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass, field

from flumewater._constants import AUTH_FAILURE_CODES
from flumewater.errors import MalformedResponseError

_LOGGER = logging.getLogger(__name__)


class Outcome(enum.Enum):
    """Classification of a decoded envelope."""

    OK = "ok"
    AUTHORIZATION_FAILURE = "authorization_failure"
    NOT_FOUND = "not_found"
    FAILURE = "failure"


@dataclass(frozen=True)
class Pagination:
    """Links to neighbouring pages of a paginated GET."""

    next: str | None = None
    prev: str | None = None


@dataclass(frozen=True)
class ResponseEnvelope:
    """A decoded response envelope.

    When :attr:`succeeded` is false, :attr:`data` must not be trusted even
    if present.
    """

    succeeded: bool
    http_status: int
    message: str | None = None
    http_message: str | None = None
    detail: str | None = None
    data: list[object] | None = None
    count: int = 0
    pagination: Pagination | None = None
    raw: dict[str, object] = field(default_factory=dict, compare=False, repr=False)

    @property
    def description(self) -> str:
        """Human-readable summary for error messages and logs."""
        parts = [str(self.http_status)]
        if self.http_message:
            parts.append(self.http_message)
        if self.message:
            parts.append(self.message)
        text = " ".join(parts)
        if self.detail:
            text = f"{text} ({self.detail})"
        return text

    def first(self) -> object:
        """Return the first data element.

        Raises :class:`MalformedResponseError` if ``data`` is absent or
        empty, or its first element is null.
        """
        if not self.data:
            raise MalformedResponseError(
                "Response contained no data elements", status=self.http_status
            )
        item = self.data[0]
        if item is None:
            raise MalformedResponseError("First data element is null", status=self.http_status)
        return item


def parse_envelope(raw: bytes | str, *, status: int | None = None) -> ResponseEnvelope:
    """Decode *raw* response bytes into a :class:`ResponseEnvelope`.

    *status* is the HTTP status of the response; it stands in for
    ``code`` when the body omits it.

    Raises :class:`MalformedResponseError` when the body is not a JSON
    object or a field has the wrong type.  A ``detailed`` field of
    unexpected shape never fails the parse.
    """
    try:
        body = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as e:
        raise MalformedResponseError(f"Response is not valid JSON: {e}", status=status) from e
    if not isinstance(body, dict):
        raise MalformedResponseError(
            f"Response is a JSON {type(body).__name__}, expected an object", status=status
        )

    code = body.get("code", status)
    if code is None:
        code = 400
    if isinstance(code, bool) or not isinstance(code, (int, str)):
        raise MalformedResponseError(f"Envelope code has type {type(code).__name__}")
    try:
        http_status = int(code)
    except ValueError:
        raise MalformedResponseError(f"Envelope code {code!r} is not numeric") from None

    data = body.get("data")
    if data is not None and not isinstance(data, list):
        raise MalformedResponseError(
            f"Envelope data has type {type(data).__name__}, expected an array",
            status=http_status,
        )

    count = body.get("count")
    if not isinstance(count, int) or isinstance(count, bool):
        count = len(data) if data else 0

    return ResponseEnvelope(
        succeeded=body.get("success") is True,
        http_status=http_status,
        message=_optional_str(body.get("message")),
        http_message=_optional_str(body.get("http_message") or body.get("status_message")),
        detail=_detail_text(body.get("detailed")),
        data=data,
        count=count,
        pagination=_pagination(body.get("pagination")),
        raw=body,
    )


def classify(envelope: ResponseEnvelope) -> Outcome:
    """Classify an envelope.

    Status codes are checked before the ``success`` flag: the service has
    been seen returning ``code=400`` with ``success=true`` and vice versa.
    """
    if envelope.http_status in AUTH_FAILURE_CODES:
        return Outcome.AUTHORIZATION_FAILURE
    if envelope.http_status == 404:
        return Outcome.NOT_FOUND
    if not envelope.succeeded or envelope.http_status == 400:
        return Outcome.FAILURE
    return Outcome.OK


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    return str(value)


def _detail_text(detailed: object) -> str | None:
    """Flatten the ``detailed`` field into diagnostic text, best effort."""
    if detailed is None:
        return None
    try:
        if isinstance(detailed, str):
            return detailed or None
        if isinstance(detailed, list):
            items = []
            for entry in detailed:
                if isinstance(entry, dict):
                    if "field" in entry or "message" in entry:
                        items.append(f"{entry.get('field', '?')}: {entry.get('message', '')}")
                    else:
                        items.append(json.dumps(entry, sort_keys=True))
                elif entry is not None:
                    items.append(str(entry))
            return "; ".join(items) or None
        return json.dumps(detailed, sort_keys=True)
    except (TypeError, ValueError) as e:
        _LOGGER.debug("Ignoring undecodable 'detailed' field: %s", e)
        return None


def _pagination(value: object) -> Pagination | None:
    if not isinstance(value, dict):
        return None
    return Pagination(next=_optional_str(value.get("next")), prev=_optional_str(value.get("prev")))
