from __future__ import annotations

from typing import Any, Dict


class OrganLinkError(Exception):
    """Base class for every failure raised by the OrganLink client."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NetworkError(OrganLinkError):
    """The request never produced an HTTP response."""


class HttpStatusError(OrganLinkError):
    def __init__(self, message: str, status_code: int, error: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error = error


class ApplicationError(OrganLinkError):
    """A 2xx response whose body reports ``success: false``."""

    def __init__(self, message: str, payload: Dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.payload = payload or {}
