from __future__ import annotations
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Deque, List, Optional

logger = logging.getLogger(__name__)

NoticeListener = Callable[["Notice"], None]


@dataclass(frozen=True, slots=True)
class Notice:
    message: str
    level: str = "info"
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "level": self.level,
            "timestamp": self.timestamp.isoformat(),
        }


class NotificationSystem:
    """Transient user-facing notices about rejected or failed operations.

    Notices are logged, kept in a short ring buffer and handed to listeners,
    which is how the API and CLI learn that a toggle was refused.
    """

    def __init__(self, maxlen: int = 50) -> None:
        self._notices: Deque[Notice] = deque(maxlen=maxlen)
        self._listeners: List[NoticeListener] = []

    @property
    def latest(self) -> Optional[Notice]:
        return self._notices[-1] if self._notices else None

    def recent(self) -> List[Notice]:
        return list(self._notices)

    def add_listener(self, listener: NoticeListener) -> None:
        self._listeners.append(listener)

    def notify_failure(self, message: str) -> Notice:
        logger.warning("NOTICE: %s", message)
        return self._emit(Notice(message, "warning"))

    def _emit(self, notice: Notice) -> Notice:
        self._notices.append(notice)
        for listener in list(self._listeners):
            try:
                listener(notice)
            except Exception:
                logger.exception("Notice listener raised for %r", notice.message)
        return notice
