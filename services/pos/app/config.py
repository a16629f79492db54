"""
POS Service: 設定

環境変数から読み込み、SessionConfig としてセッションに明示的に渡す。
エンジンの各コンポーネントはグローバルを参照しない。
"""

import os

from pydantic import BaseModel

POS_API_URL = os.environ.get("POS_API_URL", "http://localhost:8000/api")
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379")
POS_SEARCH_DEBOUNCE_SECONDS = float(os.environ.get("POS_SEARCH_DEBOUNCE_SECONDS", "0.4"))
POS_HTTP_TIMEOUT = float(os.environ.get("POS_HTTP_TIMEOUT", "10.0"))
POS_NOTICE_HISTORY = int(os.environ.get("POS_NOTICE_HISTORY", "50"))


class SessionConfig(BaseModel):
    api_url: str = POS_API_URL
    search_debounce_seconds: float = POS_SEARCH_DEBOUNCE_SECONDS
    http_timeout: float = POS_HTTP_TIMEOUT
    notice_history: int = POS_NOTICE_HISTORY

    @classmethod
    def from_env(cls) -> "SessionConfig":
        """環境変数を読み直して設定を作る"""
        return cls(
            api_url=os.environ.get("POS_API_URL", POS_API_URL),
            search_debounce_seconds=float(
                os.environ.get("POS_SEARCH_DEBOUNCE_SECONDS", POS_SEARCH_DEBOUNCE_SECONDS)
            ),
            http_timeout=float(os.environ.get("POS_HTTP_TIMEOUT", POS_HTTP_TIMEOUT)),
            notice_history=int(os.environ.get("POS_NOTICE_HISTORY", POS_NOTICE_HISTORY)),
        )
