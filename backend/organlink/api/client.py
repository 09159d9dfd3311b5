from __future__ import annotations

from typing import Any, Callable, Dict, Optional

import httpx
from loguru import logger

from ..config import settings
from .errors import ApplicationError, HttpStatusError, NetworkError

TokenProvider = Callable[[], Optional[str]]


def _error_field(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return None


class ApiClient:
    """Thin async JSON client for the OrganLink REST API.

    Every call carries ``Authorization: Bearer <token>`` when the token
    provider yields one. Failures are raised as ``OrganLinkError``
    subclasses; callers decide how to surface them.
    """

    def __init__(
        self,
        base_url: str | None = None,
        token_provider: TokenProvider | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
    ) -> None:
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self._token_provider = token_provider or (lambda: None)
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            transport=transport,
            timeout=httpx.Timeout(
                timeout or settings.request_timeout_s,
                connect=settings.connect_timeout_s,
            ),
        )

    def _headers(self) -> Dict[str, str]:
        token = self._token_provider()
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        action: str = "Request",
        check_success: bool = True,
    ) -> Any:
        try:
            response = await self._http.request(method, path, json=json, headers=self._headers())
        except httpx.TransportError as exc:
            logger.warning("{} {} failed before a response arrived: {}", method, path, exc)
            raise NetworkError("Network error occurred") from exc

        if not response.is_success:
            error = _error_field(response)
            raise HttpStatusError(
                error or f"{action} failed with status {response.status_code}",
                status_code=response.status_code,
                error=error,
            )

        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as exc:
            raise ApplicationError(f"{action} returned a non-JSON response") from exc

        if check_success and isinstance(data, dict) and data.get("success") is False:
            raise ApplicationError(data.get("error") or data.get("message") or f"{action} failed", data)
        return data

    async def get(self, path: str, **kwargs: Any) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> Any:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> Any:
        return await self.request("PUT", path, **kwargs)

    async def patch(self, path: str, **kwargs: Any) -> Any:
        return await self.request("PATCH", path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> Any:
        return await self.request("DELETE", path, **kwargs)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
