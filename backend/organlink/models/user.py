from __future__ import annotations

from enum import Enum
from typing import Any, Dict

from .base import ApiModel


class Portal(str, Enum):
    HOSPITAL = "hospital"
    ORGANIZATION = "organization"
    ADMIN = "admin"

    @property
    def token_key(self) -> str:
        return f"{self.value}_token"

    @property
    def api_prefix(self) -> str:
        return f"/api/{self.value}"


class SessionUser(ApiModel):
    id: str
    name: str
    email: str | None = None
    portal: Portal
    is_active: bool = True

    @classmethod
    def from_verify(cls, portal: Portal, payload: Dict[str, Any]) -> "SessionUser":
        """Project the portal's verify response onto a SessionUser."""
        account = payload.get(portal.value) or payload.get("user") or {}
        identifier = (
            account.get(f"{portal.value}_id")
            or account.get("id")
            or account.get("admin_id")
            or account.get("username")
        )
        if not identifier:
            raise ValueError(f"{portal.value} verify response carries no account id")
        name = (
            account.get(f"{portal.value}_name")
            or account.get("name")
            or account.get("full_name")
            or account.get("username")
            or str(identifier)
        )
        return cls(
            id=str(identifier),
            name=name,
            email=account.get("email"),
            portal=portal,
            is_active=account.get("is_active", True),
        )
