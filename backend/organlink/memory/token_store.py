from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

from loguru import logger


class TokenStore:
    """Small persistent key/value store for bearer tokens and read markers.

    Keys mirror the browser storage keys used by the portals
    (``hospital_token``, ``organization_token``, ``admin_token``). With no
    path the store lives in memory only.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = Path(path) if path else None
        self._data: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Token store at {} unreadable ({}); starting empty", self.path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _flush(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self._data, indent=2), encoding="utf-8")

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._flush()

    def remove(self, key: str) -> None:
        if self._data.pop(key, None) is not None:
            self._flush()

    def clear(self) -> None:
        self._data.clear()
        self._flush()

    def __contains__(self, key: str) -> bool:
        return key in self._data
