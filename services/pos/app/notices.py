"""
POS Service: 通知ボード

オペレータに見せる一時的な通知 (スナックバー相当)。
各コンポーネントは結果をここに報告する。通知は同時にログにも出す。
"""

import logging
from collections import deque
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class NoticeVariant(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


_LOG_LEVELS = {
    NoticeVariant.SUCCESS: logging.INFO,
    NoticeVariant.INFO: logging.INFO,
    NoticeVariant.WARNING: logging.WARNING,
    NoticeVariant.ERROR: logging.ERROR,
}


class Notice(BaseModel):
    message: str
    variant: NoticeVariant
    created_at: datetime


class NoticeBoard:
    def __init__(self, history: int = 50) -> None:
        self._notices: deque[Notice] = deque(maxlen=history)

    def push(self, message: str, variant: NoticeVariant = NoticeVariant.INFO) -> Notice:
        notice = Notice(
            message=message,
            variant=variant,
            created_at=datetime.now(timezone.utc),
        )
        self._notices.append(notice)
        logger.log(_LOG_LEVELS[variant], "[%s] %s", variant.value, message)
        return notice

    def success(self, message: str) -> Notice:
        return self.push(message, NoticeVariant.SUCCESS)

    def warning(self, message: str) -> Notice:
        return self.push(message, NoticeVariant.WARNING)

    def error(self, message: str) -> Notice:
        return self.push(message, NoticeVariant.ERROR)

    def recent(self) -> list[Notice]:
        """新しい順"""
        return list(reversed(self._notices))

    def latest(self) -> Notice | None:
        return self._notices[-1] if self._notices else None

    def __len__(self) -> int:
        return len(self._notices)
