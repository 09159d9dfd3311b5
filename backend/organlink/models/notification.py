from __future__ import annotations

import json
from typing import Any, Dict

from loguru import logger
from pydantic import field_validator

from .base import ApiModel


def parse_metadata(value: Any) -> Dict[str, Any] | None:
    """Normalize a notification ``metadata`` value to a dict or ``None``.

    Servers send metadata either as an object or as a JSON-encoded string.
    Blank strings, undecodable strings and JSON that is not an object all
    collapse to ``None``; this never raises.
    """
    if value is None:
        return None
    if isinstance(value, dict):
        return value
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8", errors="replace")
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        decoded = json.loads(value)
    except ValueError as exc:
        logger.debug("Discarding malformed notification metadata: {}", exc)
        return None
    return decoded if isinstance(decoded, dict) else None


def parse_flag(value: Any) -> bool:
    """Read a boolean the way loosely typed payloads send it; "false" and "0" are false."""
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


class Notification(ApiModel):
    notification_id: str | None = None
    hospital_id: str | None = None
    type: str = "info"
    title: str = ""
    message: str = ""
    related_id: str | None = None
    related_type: str | None = None
    metadata: Dict[str, Any] | None = None
    is_read: bool = False
    created_at: str | None = None
    updated_at: str | None = None

    @field_validator("metadata", mode="before")
    @classmethod
    def _parse_metadata(cls, value: Any) -> Dict[str, Any] | None:
        return parse_metadata(value)

    @field_validator("is_read", mode="before")
    @classmethod
    def _coerce_read_flag(cls, value: Any) -> bool:
        return parse_flag(value)
