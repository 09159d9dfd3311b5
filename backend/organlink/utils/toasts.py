from __future__ import annotations

import itertools
import time
from dataclasses import dataclass, field
from typing import Callable, List, Literal, Optional

from loguru import logger

from ..config import settings

ToastType = Literal["success", "error", "warning", "info"]

_LOG_LEVELS = {"success": "SUCCESS", "error": "ERROR", "warning": "WARNING", "info": "INFO"}


@dataclass
class Toast:
    id: str
    title: str
    type: ToastType
    description: Optional[str] = None
    created_at: float = field(default_factory=time.monotonic)


class ToastChannel:
    """Short-lived user feedback; every toast expires after ``ttl`` seconds."""

    def __init__(self, ttl: float | None = None, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = settings.toast_ttl_s if ttl is None else ttl
        self._clock = clock
        self._ids = itertools.count(1)
        self._toasts: List[Toast] = []

    def add(self, title: str, type: ToastType, description: str | None = None) -> Toast:
        toast = Toast(
            id=str(next(self._ids)),
            title=title,
            type=type,
            description=description,
            created_at=self._clock(),
        )
        self._toasts.append(toast)
        logger.log(_LOG_LEVELS[type], "Toast [{}] {}", type, title)
        return toast

    def success(self, title: str, description: str | None = None) -> Toast:
        return self.add(title, "success", description)

    def error(self, title: str, description: str | None = None) -> Toast:
        return self.add(title, "error", description)

    def warning(self, title: str, description: str | None = None) -> Toast:
        return self.add(title, "warning", description)

    def info(self, title: str, description: str | None = None) -> Toast:
        return self.add(title, "info", description)

    def dismiss(self, toast_id: str) -> None:
        self._toasts = [toast for toast in self._toasts if toast.id != toast_id]

    def active(self) -> List[Toast]:
        cutoff = self._clock() - self.ttl
        self._toasts = [toast for toast in self._toasts if toast.created_at > cutoff]
        return list(self._toasts)

    @property
    def last(self) -> Toast | None:
        return self._toasts[-1] if self._toasts else None

    def history(self) -> List[Toast]:
        return list(self._toasts)
