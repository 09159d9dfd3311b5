from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from jose import JWTError, jwt

from ..config import settings


def create_access_token(
    subject: str,
    portal: str,
    expires_delta: timedelta | None = None,
    secret: str | None = None,
) -> str:
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.jwt_expires_min)
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode: Dict[str, Any] = {"sub": subject, "portal": portal, "exp": expire}
    return jwt.encode(to_encode, secret or settings.sandbox_jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str, secret: str | None = None) -> Dict[str, Any]:
    try:
        return jwt.decode(token, secret or settings.sandbox_jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise ValueError("Invalid token") from exc


def token_claims(token: str) -> Dict[str, Any] | None:
    """Read claims without verifying the signature; the server stays authoritative."""
    try:
        return jwt.get_unverified_claims(token)
    except JWTError:
        return None


def token_expired(token: str, now: datetime | None = None) -> bool:
    claims = token_claims(token)
    if claims is None:
        # Opaque tokens are left for the server to judge.
        return False
    exp = claims.get("exp")
    if exp is None:
        return False
    now = now or datetime.now(timezone.utc)
    try:
        return now.timestamp() >= float(exp)
    except (TypeError, ValueError):
        return False
