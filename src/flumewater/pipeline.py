"""Authorized request pipeline."""

from __future__ import annotations

import logging

from flumewater._constants import API_BASE
from flumewater._http import dispatch
from flumewater.auth import TokenManager
from flumewater.context import ClientContext
from flumewater.envelope import Outcome, ResponseEnvelope, classify, parse_envelope
from flumewater.errors import AuthorizationError, MalformedResponseError, NotFoundError
from flumewater.models import Request
from flumewater.tokens import TokenState

_LOGGER = logging.getLogger(__name__)


class RequestPipeline:
    """Sends :class:`Request` descriptors with a valid bearer token.

    Responses are decoded and classified; anything other than success is
    raised as one of the :mod:`flumewater.errors` kinds.
    """

    def __init__(self, context: ClientContext, auth: TokenManager) -> None:
        self._context = context
        self._auth = auth

    async def send(self, request: Request) -> ResponseEnvelope:
        """Send *request* and return its successful envelope.

        Raises:
            AuthorizationError: No token could be obtained, or the service
                rejected the one used.  The stored tokens are invalidated
                first, so the next call re-authorizes.
            NotFoundError: The service answered 404.
            TransportError: Timeout or connection failure.
            RequestCanceledError: The request was cancelled underneath us.
            MalformedResponseError: The envelope was invalid or reported
                failure.
        """
        _, envelope = await self._exchange(request)
        return envelope

    async def send_one(self, request: Request) -> object:
        """Send *request* and return the first element of its ``data``.

        For endpoints that always return exactly one record; an empty
        ``data`` array raises :class:`MalformedResponseError`.
        """
        path, envelope = await self._exchange(request)
        try:
            return envelope.first()
        except MalformedResponseError as e:
            _LOGGER.warning("Unexpected response to %s %s: %s", request.method, path, e)
            raise

    async def _exchange(self, request: Request) -> tuple[str, ResponseEnvelope]:
        """Return the resolved request path and the successful envelope."""
        state: TokenState | None = None
        path = request.path
        if request.requires_authorization:
            if not await self._auth.ensure_authorized():
                raise AuthorizationError("Not authorized with the Flume API")
            state = self._auth.state
            if "{user_id}" in path:
                if state.identity is None:
                    self._auth.invalidate(state)
                    raise AuthorizationError(
                        f"Cannot build {path}: the access token carries no user id"
                    )
                path = path.replace("{user_id}", str(state.identity.user_id))

        status, raw = await dispatch(
            self._context,
            request.method,
            f"{API_BASE}{path}",
            body=request.body,
            token=state.access_token if state is not None else None,
        )

        try:
            envelope = parse_envelope(raw, status=status)
        except MalformedResponseError as e:
            _LOGGER.warning("Malformed response to %s %s: %s", request.method, path, e)
            raise

        outcome = classify(envelope)
        if outcome is Outcome.AUTHORIZATION_FAILURE:
            _LOGGER.warning(
                "Authorization failure on %s %s: %s", request.method, path, envelope.description
            )
            if state is not None:
                self._auth.invalidate(state)
            raise AuthorizationError(
                f"{request.method} {path} was not authorized: {envelope.description}"
            )
        if outcome is Outcome.NOT_FOUND:
            raise NotFoundError(f"{request.method} {path} not found: {envelope.description}")
        if outcome is Outcome.FAILURE:
            _LOGGER.warning(
                "Request %s %s failed: %s", request.method, path, envelope.description
            )
            raise MalformedResponseError(
                f"{request.method} {path} failed: {envelope.description}",
                status=envelope.http_status,
            )
        return path, envelope
