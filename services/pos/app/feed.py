"""
POS Service: 最近の購入フィード (RecentPurchaseFeed)

リフレッシュトークンを 1 増やすたびに購入一覧を取り直す。
サーバの状態は変更しない。

絞り込みは最後に取得したスナップショットに対する純粋なローカル処理で、
ネットワーク呼び出しは発生しない。
"""

import asyncio
import logging

from .client import PosApiClient
from .errors import PosError
from .liveness import SessionToken
from .models import Purchase
from .notices import NoticeBoard

logger = logging.getLogger(__name__)


def filter_purchases(purchases: list[Purchase], text: str) -> list[Purchase]:
    """顧客名または学籍番号の部分一致 (大文字小文字を区別しない)"""
    needle = text.strip().lower()
    if not needle:
        return list(purchases)
    result = []
    for p in purchases:
        name = (p.customer.display_name if p.customer else "").lower()
        reg = (p.customer.registration_number if p.customer else "").lower()
        if needle in name or needle in reg:
            result.append(p)
    return result


class RecentPurchaseFeed:
    def __init__(
        self,
        client: PosApiClient,
        notices: NoticeBoard,
        token: SessionToken,
    ):
        self._client = client
        self._notices = notices
        self._token = token

        self.refresh_token = 0
        self.purchases: list[Purchase] = []
        self.filter_text = ""
        self.last_error: PosError | None = None
        self._fetch_task: asyncio.Task | None = None

    @property
    def fetching(self) -> bool:
        return self._fetch_task is not None and not self._fetch_task.done()

    def request_refresh(self) -> int:
        """トークンを進めて再取得を開始する。古い取得は打ち切る。"""
        self.refresh_token += 1
        if self._fetch_task is not None and not self._fetch_task.done():
            self._fetch_task.cancel()
        if self._token.alive:
            self._fetch_task = self._token.spawn(
                self._fetch(self.refresh_token), name="pos-feed-refresh"
            )
        return self.refresh_token

    async def refresh(self) -> list[Purchase]:
        """再取得して完了まで待つ"""
        self.request_refresh()
        await self.settle()
        return self.purchases

    async def settle(self) -> None:
        while self.fetching:
            await asyncio.gather(self._fetch_task, return_exceptions=True)

    async def _fetch(self, refresh_token: int) -> None:
        try:
            purchases = await self._client.list_purchases()
        except PosError as e:
            if self._is_current(refresh_token):
                self.last_error = e
                self._notices.error(f"Error loading purchases: {e.message}")
            return

        if not self._is_current(refresh_token):
            logger.debug("Discarding stale purchase list (token %d)", refresh_token)
            return
        previous = {p.id: p for p in self.purchases}
        self.purchases = [_keep_reversed(previous.get(p.id), p) for p in purchases]
        self.last_error = None
        logger.info("Loaded %d recent purchases", len(self.purchases))

    def _is_current(self, refresh_token: int) -> bool:
        return self._token.alive and refresh_token == self.refresh_token

    # ── ローカル操作 ─────────────────────────────

    def set_filter(self, text: str) -> list[Purchase]:
        self.filter_text = text
        return self.visible()

    def visible(self) -> list[Purchase]:
        return filter_purchases(self.purchases, self.filter_text)

    def get(self, purchase_id: str) -> Purchase | None:
        for p in self.purchases:
            if p.id == purchase_id:
                return p
        return None

    def apply_update(self, purchase: Purchase) -> None:
        """サーバが返した購入で該当エントリを置き換える"""
        self.purchases = [
            _keep_reversed(p, purchase) if p.id == purchase.id else p
            for p in self.purchases
        ]


def _keep_reversed(old: Purchase | None, new: Purchase) -> Purchase:
    # reversed は True から戻らない
    if old is not None and old.reversed and not new.reversed:
        return new.model_copy(update={"reversed": True})
    return new
