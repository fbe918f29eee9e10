"""User-facing notices raised by detection sessions."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
import time
from typing import Callable

from core.logging import log_error, log_info, logger


class NoticeLevel(str, Enum):
    """Severity of a notice."""

    INFO = "info"
    ERROR = "error"


@dataclass(frozen=True)
class Notice:
    """Short message meant for the person reviewing the video."""

    title: str
    description: str
    level: NoticeLevel = NoticeLevel.INFO
    created_at: float = field(default_factory=time.time)


NoticeHandler = Callable[[Notice], None]


class NotificationCenter:
    """Fan out notices to subscribers and keep the most recent ones."""

    def __init__(self, buffer_size: int = 50) -> None:
        self._recent: deque[Notice] = deque(maxlen=max(buffer_size, 1))
        self._subscribers: set[NoticeHandler] = set()

    def subscribe(self, callback: NoticeHandler) -> None:
        self._subscribers.add(callback)

    def unsubscribe(self, callback: NoticeHandler) -> None:
        self._subscribers.discard(callback)

    def notify(self, title: str, description: str, level: NoticeLevel = NoticeLevel.INFO) -> Notice:
        notice = Notice(title=title, description=description, level=level)
        self._recent.append(notice)
        if level is NoticeLevel.ERROR:
            log_error(f"{title}: {description}")
        else:
            log_info(f"{title}: {description}", style="bold green")

        for callback in list(self._subscribers):
            try:
                callback(notice)
            except Exception:
                logger.exception("Notice subscriber failed")
        return notice

    def info(self, title: str, description: str) -> Notice:
        return self.notify(title, description, NoticeLevel.INFO)

    def error(self, title: str, description: str) -> Notice:
        return self.notify(title, description, NoticeLevel.ERROR)

    def recent(self, n: int = 10) -> list[Notice]:
        """Return up to ``n`` notices ordered from oldest to newest."""

        if n <= 0:
            return []
        return list(self._recent)[-n:]
