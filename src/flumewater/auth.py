"""Access-token lifecycle: acquisition, refresh and single-flight coordination."""

from __future__ import annotations

import asyncio
import logging
import math

from flumewater._constants import API_BASE, TOKEN_EXPIRY_BUFFER, TOKEN_PATH
from flumewater._http import caller_cancelled, dispatch
from flumewater._jwt import ParsedIdentity, decode_identity
from flumewater.context import ClientContext
from flumewater.envelope import Outcome, ResponseEnvelope, classify, parse_envelope
from flumewater.errors import AuthorizationError, MalformedResponseError, RequestCanceledError
from flumewater.tokens import EMPTY_STATE, TokenState, TokenStatus, TokenStore

_LOGGER = logging.getLogger(__name__)


class TokenManager:
    """Keeps a valid access token available to the request pipeline.

    State is derived from the current :class:`TokenState` snapshot:

    * ``EMPTY`` -- no refresh token; :meth:`ensure_authorized` requests a
      new pair with the password grant.
    * ``VALID`` -- nothing to do.
    * ``EXPIRED`` -- the stored refresh token is exchanged for a new pair.

    At most one token request is outstanding at any time.  Callers that
    arrive while one is in flight await the same task and observe the same
    outcome; two refreshes with the same refresh token would make the
    service reject the second and void credentials that are still good.
    """

    def __init__(self, context: ClientContext) -> None:
        self._context = context
        self._store = TokenStore()
        self._pending: asyncio.Task[bool] | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> TokenState:
        """The current token snapshot."""
        return self._store.read()

    @property
    def status(self) -> TokenStatus:
        return self._store.read().status(self._context.clock())

    @property
    def identity(self) -> ParsedIdentity:
        """Identity decoded from the last accepted access token.

        Never blocks and never requests a token.  Raises
        :class:`AuthorizationError` if no token has been accepted yet, or
        the last one could not be decoded.
        """
        identity = self._store.read().identity
        if identity is None:
            raise AuthorizationError("No account identity: no decodable access token accepted")
        return identity

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    async def ensure_authorized(self) -> bool:
        """Make sure a non-expired access token is stored.

        Returns ``True`` once it is.  Raises :class:`AuthorizationError` if
        the service rejected the credentials (the store is then empty),
        and :class:`TransportError` / :class:`MalformedResponseError` for
        failures that leave the store as it was.
        """
        state = self._store.read()
        if state.status(self._context.clock()) is TokenStatus.VALID:
            return True

        pending = self._pending
        if pending is None:
            pending = asyncio.create_task(self._acquire(state))
            pending.add_done_callback(self._flight_done)
            self._pending = pending
        else:
            _LOGGER.debug("Token request already in flight; waiting for it")

        # Shielded: one waiter's cancellation must not abort the request
        # the others are waiting on.
        try:
            return await asyncio.shield(pending)
        except asyncio.CancelledError:
            if caller_cancelled():
                raise
            raise RequestCanceledError("Token request was cancelled") from None

    def invalidate(self, observed: TokenState) -> bool:
        """Clear the store if it still holds *observed*.

        Called after the service rejected a request authorized with
        *observed*.  A token accepted since then is left alone.
        """
        if self._store.compare_and_swap(observed, EMPTY_STATE):
            _LOGGER.debug("Stored tokens invalidated after an authorization failure")
            return True
        return False

    async def close(self) -> None:
        """Cancel an in-flight token request, if any."""
        pending = self._pending
        if pending is not None and not pending.done():
            pending.cancel()
            await asyncio.gather(pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Token requests
    # ------------------------------------------------------------------

    def _flight_done(self, task: asyncio.Task[bool]) -> None:
        if self._pending is task:
            self._pending = None
        if not task.cancelled():
            # Mark as retrieved even if every waiter went away.
            task.exception()

    async def _acquire(self, observed: TokenState) -> bool:
        credentials = self._context.credentials
        status = observed.status(self._context.clock())
        if status is TokenStatus.EMPTY or observed.refresh_token is None:
            _LOGGER.debug("Requesting a new access and refresh token")
            body = credentials.password_grant()
        else:
            _LOGGER.debug("Access token expired; refreshing it")
            body = credentials.refresh_grant(observed.refresh_token)

        try:
            envelope = await self._request_grant(body)
        except AuthorizationError:
            # A rejected refresh token is useless too: start over next time.
            self._store.clear()
            raise

        try:
            new_state = self._accept(envelope, observed)
        except MalformedResponseError as e:
            _LOGGER.warning("Unusable token response: %s", e)
            raise
        if not self._store.compare_and_swap(observed, new_state):
            # The tokens we started from were invalidated meanwhile; the
            # grant we just received supersedes whatever is stored now.
            _LOGGER.debug("Token state changed during the token request; replacing it")
            self._store.compare_and_swap(self._store.read(), new_state)
        _LOGGER.debug(
            "Access token accepted; valid for %.0fs",
            new_state.expires_at - self._context.clock(),
        )
        return new_state.authorized

    async def _request_grant(self, body: dict[str, str]) -> ResponseEnvelope:
        status, raw = await dispatch(self._context, "POST", f"{API_BASE}{TOKEN_PATH}", body=body)
        try:
            envelope = parse_envelope(raw, status=status)
        except MalformedResponseError as e:
            _LOGGER.warning("Malformed token response: %s", e)
            raise
        outcome = classify(envelope)
        # On the token endpoint a failed 400 means the grant itself was refused.
        rejected = outcome is Outcome.FAILURE and envelope.http_status == 400
        if outcome is Outcome.AUTHORIZATION_FAILURE or rejected:
            _LOGGER.warning("Token request rejected: %s", envelope.description)
            raise AuthorizationError(f"Token request rejected: {envelope.description}")
        if outcome is not Outcome.OK:
            _LOGGER.warning("Token request failed: %s", envelope.description)
            raise MalformedResponseError(
                f"Token request failed: {envelope.description}", status=envelope.http_status
            )
        return envelope

    def _accept(self, envelope: ResponseEnvelope, observed: TokenState) -> TokenState:
        grant = envelope.first()
        if not isinstance(grant, dict):
            raise MalformedResponseError("Token response data is not an object")

        access_token = grant.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise MalformedResponseError("Token response lacks an access token")
        # A refresh response may omit the refresh token; keep the old one then.
        refresh_token = grant.get("refresh_token") or observed.refresh_token
        if not isinstance(refresh_token, str):
            raise MalformedResponseError("Token response lacks a refresh token")
        try:
            lifetime = float(str(grant.get("expires_in")))
        except ValueError:
            raise MalformedResponseError(
                f"Token lifetime {grant.get('expires_in')!r} is not numeric"
            ) from None
        if not math.isfinite(lifetime) or lifetime <= 0:
            raise MalformedResponseError(f"Token lifetime {lifetime!r} is not positive")

        identity = decode_identity(access_token)
        if identity is None:
            _LOGGER.warning("Could not decode the account identity from the access token")
        # Short-lived tokens keep at least half their lifetime.
        remaining = max(lifetime - TOKEN_EXPIRY_BUFFER, lifetime / 2)
        return TokenState(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=self._context.clock() + remaining,
            authorized=True,
            identity=identity,
        )
