from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, List, Optional, Union

import httpx
from loguru import logger

from .api.client import ApiClient
from .api.errors import OrganLinkError
from .config import settings
from .memory.token_store import TokenStore
from .models.user import Portal, SessionUser
from .utils.security import token_expired

SessionListener = Callable[[Optional[SessionUser]], Union[Awaitable[None], None]]


class Session:
    """Authenticated state of one portal for the lifetime of the process.

    The bearer token lives in the token store under the portal key; the user
    projection lives in memory. ``sign_out`` clears both.
    """

    def __init__(
        self,
        portal: Portal,
        store: TokenStore | None = None,
        *,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.portal = portal
        self.store = store if store is not None else TokenStore(settings.token_store_path)
        self.client = ApiClient(base_url, token_provider=lambda: self.token, transport=transport)
        self.loading = False
        self._user: SessionUser | None = None
        self._listeners: List[SessionListener] = []

    @property
    def token(self) -> str | None:
        return self.store.get(self.portal.token_key)

    @property
    def user(self) -> SessionUser | None:
        return self._user

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _set_user(self, user: SessionUser | None) -> None:
        changed = user != self._user
        self._user = user
        if not changed:
            return
        for listener in list(self._listeners):
            result = listener(user)
            if inspect.isawaitable(result):
                await result

    async def restore(self) -> SessionUser | None:
        """Re-establish the session from a stored token, dropping stale ones."""
        token = self.token
        if not token:
            return None
        if token_expired(token):
            logger.info("Stored {} token expired; discarding", self.portal.value)
            self.store.remove(self.portal.token_key)
            await self._set_user(None)
            return None

        self.loading = True
        try:
            data = await self.client.get(f"{self.portal.api_prefix}/auth/verify", action="Verify")
            user = SessionUser.from_verify(self.portal, data)
        except (OrganLinkError, ValueError) as exc:
            logger.warning("{} auth check failed: {}", self.portal.value.capitalize(), exc)
            self.store.remove(self.portal.token_key)
            await self._set_user(None)
            return None
        finally:
            self.loading = False
        await self._set_user(user)
        return user

    async def sign_in(self, token: str, user: SessionUser | None = None) -> None:
        self.store.set(self.portal.token_key, token)
        if user is None:
            await self.restore()
        else:
            await self._set_user(user)

    async def sign_out(self) -> None:
        self.store.remove(self.portal.token_key)
        await self._set_user(None)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "Session":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
