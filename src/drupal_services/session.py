"""User session: connect, login and logout against Services.

The session owns the current user entity and the authentication state. It
posts through the same :class:`~drupal_services.core.sync.SyncInterceptor`
as every model, so the CSRF token is acquired before the first exchange and
replaced by the one issued at login.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from drupal_services.core.events import Events
from drupal_services.core.sync import SyncInterceptor, SyncMethod
from drupal_services.core.tokens import TokenStore
from drupal_services.entities.coercion import coerce_integer
from drupal_services.entities.model import Entity
from drupal_services.entities.types import USER
from drupal_services.errors import RequestError

logger = logging.getLogger(__name__)

# uid of the anonymous user.
ANONYMOUS_UID = 0

DEFAULT_CONNECT_PATH = "/system/connect"
DEFAULT_LOGIN_PATH = "/user/login"
DEFAULT_LOGOUT_PATH = "/user/logout"


class SessionState(enum.StrEnum):
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"


class ConnectResponse(BaseModel):
    """Body of ``/system/connect`` and ``/user/login`` responses."""

    model_config = ConfigDict(extra="ignore")

    user: dict[str, Any] = Field(default_factory=dict)
    token: str | None = None
    sessid: str | None = None
    session_name: str | None = None

    @property
    def uid(self) -> int:
        return coerce_integer(self.user.get(USER.id_key))


class Session(Events):
    """Authentication state for one client.

    Events
    ------
    ``login`` (session, user) once a login completes, ``logout`` (session)
    after logging out.
    """

    def __init__(
        self,
        sync: SyncInterceptor,
        token_store: TokenStore,
        *,
        connect_path: str = DEFAULT_CONNECT_PATH,
        login_path: str = DEFAULT_LOGIN_PATH,
        logout_path: str = DEFAULT_LOGOUT_PATH,
        revalidate: bool = False,
    ) -> None:
        super().__init__()
        self._sync = sync
        self._token_store = token_store
        self._connect_path = connect_path
        self._login_path = login_path
        self._logout_path = logout_path
        self._revalidate = revalidate
        self._state = SessionState.ANONYMOUS
        self._login_lock = asyncio.Lock()
        self.user = Entity(USER, sync=sync)

    @property
    def state(self) -> SessionState:
        return self._state

    def logged_in(self) -> bool:
        return self._state is SessionState.AUTHENTICATED

    async def login(
        self,
        username: str,
        password: str,
        *,
        revalidate: bool | None = None,
    ) -> Entity:
        """Authenticate and return the user entity.

        When already authenticated the cached user is returned without
        contacting the server, unless *revalidate* (default: the session's
        setting) asks for a ``/system/connect`` check first. An existing
        server session (cookie) is adopted without sending credentials.

        Raises
        ------
        RequestError
            If any exchange fails, including rejected credentials. The
            session stays anonymous.
        """
        if revalidate is None:
            revalidate = self._revalidate

        async with self._login_lock:
            if self.logged_in():
                if not revalidate:
                    return self.user
                connected = await self._connect()
                if connected.uid != ANONYMOUS_UID:
                    self.user.set(connected.user)
                    return self.user
                logger.info("Server session for uid=%s expired; logging in again", self.user.id)
                self._state = SessionState.ANONYMOUS

            connected = await self._connect()
            if connected.uid != ANONYMOUS_UID:
                logger.info("Adopting existing server session for uid=%s", connected.uid)
                if connected.token:
                    self._token_store.set(connected.token)
                return self._authenticated(connected.user)

            login = await self._post_exchange(
                self._login_path, {"username": username, "password": password}
            )
            self._token_store.set(login.token)
            logger.info("Logged in as %r (uid=%s)", username, login.uid)
            return self._authenticated(login.user)

    async def logout(self) -> None:
        """End the server session and clear the CSRF token."""
        await self._post(self._logout_path)
        self._token_store.reset()
        self._state = SessionState.ANONYMOUS
        logger.info("Logged out uid=%s", self.user.id)
        self.trigger("logout", self)

    def _authenticated(self, user: dict[str, Any]) -> Entity:
        self.user.set(user)
        self._state = SessionState.AUTHENTICATED
        self.trigger("login", self, self.user)
        return self.user

    async def _connect(self) -> ConnectResponse:
        return await self._post_exchange(self._connect_path)

    async def _post_exchange(
        self, path: str, payload: dict[str, Any] | None = None
    ) -> ConnectResponse:
        body = await self._post(path, payload)
        try:
            return ConnectResponse.model_validate(body if body is not None else {})
        except ValidationError as exc:
            raise RequestError(
                status_code=200,
                method="POST",
                url=self._sync.resolve_url(None, path),
                message=f"Unexpected response shape: {exc.error_count()} error(s)",
            ) from exc

    async def _post(self, path: str, payload: dict[str, Any] | None = None) -> Any:
        # Posted as a "read" so no entity serialization is involved.
        return await self._sync(SyncMethod.READ, url=path, http_method="POST", json=payload)
