"""Client façade wiring the token store, interceptor and session together."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import TracebackType
from typing import Any

import httpx

from drupal_services.config import ClientConfig
from drupal_services.core.sync import SyncInterceptor
from drupal_services.core.tokens import TokenStore
from drupal_services.entities.collection import Comparator, EntityCollection
from drupal_services.entities.model import Entity
from drupal_services.entities.types import EntityType
from drupal_services.session import Session


class DrupalClient:
    """One Services endpoint: HTTP client, CSRF token, session and factories.

    Requests share one ``httpx.AsyncClient`` so the session cookie set at
    login is sent with every later call. A client passed in by the caller is
    borrowed and left open by :meth:`aclose`.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self._owns_http_client = http_client is None
        self._http_client = (
            http_client
            if http_client is not None
            else httpx.AsyncClient(
                timeout=httpx.Timeout(config.timeout_s, connect=min(config.timeout_s, 10.0)),
                verify=config.verify_ssl,
            )
        )
        self.token_store = TokenStore(
            self._http_client, f"{config.app_root}{config.endpoints.token}"
        )
        self.sync = SyncInterceptor(
            self._http_client,
            self.token_store,
            config.app_root,
            csrf_header=config.csrf_header,
        )
        self.session = Session(
            self.sync,
            self.token_store,
            connect_path=config.endpoints.connect,
            login_path=config.endpoints.login,
            logout_path=config.endpoints.logout,
            revalidate=config.auth.revalidate_session,
        )

    @property
    def http_client(self) -> httpx.AsyncClient:
        return self._http_client

    @property
    def user(self) -> Entity:
        return self.session.user

    def entity(
        self,
        entity_type: EntityType | str,
        attributes: Mapping[str, Any] | None = None,
    ) -> Entity:
        """Build an entity bound to this client."""
        return Entity(
            entity_type,
            attributes,
            sync=self.sync,
            strict=self.config.strict_coercion,
        )

    def collection(
        self,
        entity_type: EntityType | str,
        models: Iterable[Entity | Mapping[str, Any]] | None = None,
        *,
        comparator: Comparator | None = None,
    ) -> EntityCollection:
        """Build a collection bound to this client."""
        return EntityCollection(
            entity_type,
            models,
            sync=self.sync,
            comparator=comparator,
            strict=self.config.strict_coercion,
        )

    async def login(self, username: str | None = None, password: str | None = None) -> Entity:
        """Log in with the given credentials, falling back to the configured ones."""
        username = username if username is not None else self.config.auth.username
        password = password if password is not None else self.config.auth.password
        if username is None or password is None:
            raise ValueError("login requires a username and password (argument or [drupal.auth])")
        return await self.session.login(username, password)

    async def logout(self) -> None:
        await self.session.logout()

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http_client.aclose()

    async def __aenter__(self) -> DrupalClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
