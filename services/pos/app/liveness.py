"""
POS Service: セッション生存トークン

非同期処理の結果を状態に反映する前に、必ず token.alive を確認する。
セッションが破棄された後に届いたレスポンスは捨てられる。
"""

import asyncio
import logging
from typing import Coroutine

logger = logging.getLogger(__name__)


class SessionToken:
    """キャンセルトークン兼バックグラウンドタスクの管理"""

    def __init__(self) -> None:
        self._alive = True
        self._tasks: set[asyncio.Task] = set()

    @property
    def alive(self) -> bool:
        return self._alive

    def spawn(self, coro: Coroutine, name: str | None = None) -> asyncio.Task:
        """セッションに紐づくタスクを起動する。破棄時にまとめてキャンセルされる。"""
        if not self._alive:
            coro.close()
            raise RuntimeError("session already closed")
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def cancel(self) -> None:
        """セッションを破棄する。以降、結果は一切反映されない。"""
        if not self._alive:
            return
        self._alive = False
        for task in list(self._tasks):
            task.cancel()
        logger.debug("Session token cancelled (%d tasks)", len(self._tasks))

    async def drain(self) -> None:
        """未完了タスクの終了を待つ"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
