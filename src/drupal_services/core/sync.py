"""The request pipeline shared by every model, collection and session call.

:class:`SyncInterceptor` resolves the target URL against the application
root, sends through the shared cookie-carrying ``httpx.AsyncClient``, waits
for the CSRF token and injects it before any caller-supplied
``before_send`` hook runs.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Mapping
from typing import Any, Protocol, runtime_checkable

import httpx

from drupal_services.core.telemetry import record_status, request_span
from drupal_services.core.tokens import TokenStore
from drupal_services.errors import RequestError, TransportError, safe_error_message

logger = logging.getLogger(__name__)

DEFAULT_CSRF_HEADER = "X-CSRF-Token"

BeforeSend = Callable[[httpx.Request], None]


class SyncMethod(enum.StrEnum):
    """Persistence operation requested by a model or collection."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    PATCH = "patch"
    DELETE = "delete"


HTTP_METHODS: dict[SyncMethod, str] = {
    SyncMethod.CREATE: "POST",
    SyncMethod.READ: "GET",
    SyncMethod.UPDATE: "PUT",
    SyncMethod.PATCH: "PATCH",
    SyncMethod.DELETE: "DELETE",
}


@runtime_checkable
class Syncable(Protocol):
    """Anything with a resource path relative to the application root."""

    def resource_path(self) -> str: ...


def chain_before_send(first: BeforeSend, then: BeforeSend | None) -> BeforeSend:
    """Compose two pre-dispatch hooks, running *first* before *then*."""
    if then is None:
        return first

    def _chained(request: httpx.Request) -> None:
        first(request)
        then(request)

    return _chained


class SyncInterceptor:
    """Sends every request with credentials and the CSRF token attached."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        token_store: TokenStore,
        app_root: str,
        *,
        csrf_header: str = DEFAULT_CSRF_HEADER,
    ) -> None:
        self._http_client = http_client
        self._token_store = token_store
        self._app_root = app_root.rstrip("/")
        self._csrf_header = csrf_header

    @property
    def app_root(self) -> str:
        return self._app_root

    @property
    def token_store(self) -> TokenStore:
        return self._token_store

    def resolve_url(self, target: Syncable | None, url: str | None = None) -> str:
        """Join the application root with *url* or the target's resource path."""
        if url is None:
            if target is None:
                raise ValueError("A url is required when no target is given")
            url = target.resource_path()
        if url.startswith(("http://", "https://")):
            return url
        if not url.startswith("/"):
            url = f"/{url}"
        return f"{self._app_root}{url}"

    async def __call__(
        self,
        method: SyncMethod | str,
        target: Syncable | None = None,
        *,
        url: str | None = None,
        http_method: str | None = None,
        json: Any = None,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        before_send: BeforeSend | None = None,
    ) -> Any:
        """Perform *method* for *target* and return the decoded JSON body.

        *http_method* overrides the verb derived from *method* (the session
        posts through ``read``). ``None`` is returned for an empty body.

        Raises
        ------
        TokenError
            If the CSRF token cannot be obtained; nothing is sent.
        RequestError
            On a non-2xx status or a body that is not JSON.
        TransportError
            On connection-level failures.
        """
        sync_method = SyncMethod(method)
        verb = (http_method or HTTP_METHODS[sync_method]).upper()
        full_url = self.resolve_url(target, url)

        token = await self._token_store.get()

        def _inject_token(request: httpx.Request) -> None:
            request.headers[self._csrf_header] = token

        hook = chain_before_send(_inject_token, before_send)

        request_headers = {"Accept": "application/json"}
        if json is not None or verb in ("POST", "PUT", "PATCH"):
            request_headers["Content-Type"] = "application/json"
        if headers:
            request_headers.update(headers)

        with request_span(verb, full_url, request_headers) as span:
            request = self._http_client.build_request(
                verb,
                full_url,
                params=params,
                json=json,
                headers=request_headers,
            )
            hook(request)

            logger.debug("%s %s (%s)", verb, request.url, sync_method)
            try:
                response = await self._http_client.send(request)
            except httpx.HTTPError as exc:
                raise TransportError(f"{verb} {full_url} failed: {exc}") from exc

            record_status(span, response.status_code)

        if response.status_code < 200 or response.status_code >= 300:
            logger.warning("%s %s returned %s", verb, full_url, response.status_code)
            raise RequestError(
                status_code=response.status_code,
                method=verb,
                url=full_url,
                message=safe_error_message(response),
            )

        if not response.content.strip():
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RequestError(
                status_code=response.status_code,
                method=verb,
                url=full_url,
                message="Invalid JSON payload from Services endpoint",
            ) from exc
