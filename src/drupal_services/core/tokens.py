"""CSRF token store with single-flight acquisition.

Services requires an ``X-CSRF-Token`` header on every request made within a
cookie session. The token is fetched lazily from ``POST /user/token``,
cached for the lifetime of the store, replaced after login and cleared on
logout.
"""

from __future__ import annotations

import asyncio
import logging

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from drupal_services.errors import TokenError, safe_error_message

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_PATH = "/user/token"


class TokenResponse(BaseModel):
    """Body of a token endpoint response."""

    model_config = ConfigDict(extra="ignore")

    token: str = Field(min_length=1)


def mask_token(token: str | None) -> str:
    """Render a token for logs without revealing it."""
    if not token:
        return "<none>"
    if len(token) <= 8:
        return "****"
    return f"{token[:4]}…{token[-2:]}"


class TokenStore:
    """Holds the current CSRF token for one client.

    Concurrent :meth:`get` calls issued while no token is cached share one
    underlying request, and its failure. A :meth:`reset` during an in-flight
    request discards that request's result.
    """

    def __init__(self, http_client: httpx.AsyncClient, url: str) -> None:
        self._http_client = http_client
        self._url = url
        self._token: str | None = None
        self._inflight: asyncio.Future[str] | None = None
        self._generation = 0

    @property
    def url(self) -> str:
        return self._url

    @property
    def token(self) -> str | None:
        """The cached token, without fetching."""
        return self._token

    async def get(self) -> str:
        if self._token is not None:
            return self._token

        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._fetch(self._generation))
            self._inflight.add_done_callback(self._clear_inflight)

        # Shield so one cancelled waiter does not cancel the shared request.
        return await asyncio.shield(self._inflight)

    def set(self, token: str | None) -> None:
        """Overwrite the cached token unconditionally."""
        self._token = token or None
        self._generation += 1
        self._inflight = None
        logger.debug("CSRF token set: %s", mask_token(self._token))

    def reset(self) -> None:
        """Clear the cache; the next :meth:`get` re-fetches."""
        self._token = None
        self._generation += 1
        self._inflight = None
        logger.debug("CSRF token reset")

    def _clear_inflight(self, future: asyncio.Future[str]) -> None:
        if self._inflight is future:
            self._inflight = None
        # Mark the failure as observed when every waiter has gone away.
        if not future.cancelled():
            future.exception()

    async def _fetch(self, generation: int) -> str:
        token = await self._request_token()
        if generation == self._generation:
            self._token = token
        else:
            logger.debug("Discarding CSRF token fetched before a reset")
        return token

    async def _request_token(self) -> str:
        try:
            response = await self._http_client.post(
                self._url,
                headers={"Content-Type": "application/json", "Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise TokenError(f"CSRF token request failed: {exc}") from exc

        if response.status_code < 200 or response.status_code >= 300:
            raise TokenError(
                "CSRF token request failed "
                f"({response.status_code}): {safe_error_message(response)}",
                status_code=response.status_code,
            )

        try:
            payload = TokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise TokenError("CSRF token endpoint returned no usable token") from exc

        logger.debug("Fetched CSRF token %s", mask_token(payload.token))
        return payload.token
