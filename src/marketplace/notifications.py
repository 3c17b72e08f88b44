"""
Non-blocking user notifications.

Views push failures and confirmations here instead of raising into the
reconciliation loop. Listeners are called synchronously; a failing
listener is logged and skipped.
"""

import logging
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, List, Optional

logger = logging.getLogger(__name__)


class NoticeLevel(Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notice:
    level: NoticeLevel
    message: str
    topic: Optional[str] = None
    created_at: float = 0.0


class Notifier:
    """Bounded notice history plus listener fan-out"""

    def __init__(self, max_history: int = 100):
        self.history: Deque[Notice] = deque(maxlen=max_history)
        self._listeners: List[Callable[[Notice], None]] = []

    def add_listener(self, listener: Callable[[Notice], None]) -> Callable[[], None]:
        """
        Register a listener.

        Returns:
            Callable that removes the listener again
        """
        self._listeners.append(listener)

        def remove():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def notify(self, level: NoticeLevel, message: str, topic: Optional[str] = None) -> Notice:
        notice = Notice(level=level, message=message, topic=topic, created_at=time.time())
        self.history.append(notice)

        for listener in list(self._listeners):
            try:
                listener(notice)
            except Exception as e:
                logger.error(f"Notice listener error: {e}")

        return notice

    def info(self, message: str, topic: Optional[str] = None) -> Notice:
        return self.notify(NoticeLevel.INFO, message, topic)

    def success(self, message: str, topic: Optional[str] = None) -> Notice:
        return self.notify(NoticeLevel.SUCCESS, message, topic)

    def warning(self, message: str, topic: Optional[str] = None) -> Notice:
        return self.notify(NoticeLevel.WARNING, message, topic)

    def error(self, message: str, topic: Optional[str] = None) -> Notice:
        return self.notify(NoticeLevel.ERROR, message, topic)

    def latest(self, level: Optional[NoticeLevel] = None) -> Optional[Notice]:
        """Most recent notice, optionally of a given level"""
        for notice in reversed(self.history):
            if level is None or notice.level is level:
                return notice
        return None
