"""
POS Service: POS セッション

1 台の食堂端末に対応するセッション。各コンポーネントを組み立てる。

  CartEngine ─────┐
                  ├──▶ PurchaseCoordinator ──▶ RecentPurchaseFeed (再取得)
  IdentityResolver┘                                  ▲
                                 ReversalCoordinator ┘

カートと顧客特定は可変状態を共有しないため、ロックは不要。
送信時にだけ合流する。
"""

import logging

import httpx
import redis.asyncio as aioredis

from .cart import CartEngine
from .catalog import Catalog
from .client import PosApiClient
from .config import SessionConfig
from .errors import Outcome, PosError
from .events import EventPublisher
from .feed import RecentPurchaseFeed
from .identity import IdentityResolver
from .liveness import SessionToken
from .location import LocationContext
from .models import Product, Purchase
from .notices import NoticeBoard
from .purchase import PurchaseCoordinator
from .reversal import ReversalCoordinator

logger = logging.getLogger(__name__)


class PosSession:
    def __init__(
        self,
        http: httpx.AsyncClient,
        config: SessionConfig | None = None,
        redis: aioredis.Redis | None = None,
    ):
        self.config = config or SessionConfig()
        self.token = SessionToken()
        self.notices = NoticeBoard(self.config.notice_history)
        self.location = LocationContext(redis)
        self.client = PosApiClient(http, location_id=self.location.location_id)
        self.events = EventPublisher(redis)

        self.cart = CartEngine()
        self.catalog = Catalog(self.client)
        self.identity = IdentityResolver(
            self.client,
            self.notices,
            self.token,
            debounce_seconds=self.config.search_debounce_seconds,
        )
        self.feed = RecentPurchaseFeed(self.client, self.notices, self.token)
        self.purchases = PurchaseCoordinator(
            self.client, self.cart, self.feed, self.notices, self.token, self.events
        )
        self.reversals = ReversalCoordinator(
            self.client, self.feed, self.notices, self.token, self.events
        )

    async def start(self) -> None:
        """設置場所を復元し、カタログと最近の購入を読み込む"""
        await self.location.restore()
        # どちらかが失敗しても起動は続ける。後から個別に再読み込みできる
        try:
            await self.location.load(self.client)
        except PosError as e:
            self.notices.error(f"Failed to load locations: {e.message}")
        try:
            await self.catalog.load()
        except PosError as e:
            self.notices.error(f"Failed to load items: {e.message}")
        self.feed.request_refresh()

    # ── カート ───────────────────────────────────

    def scan(self, product_id: str) -> Product:
        """カタログの商品を 1 ユニット追加する"""
        product = self.catalog.get(product_id)
        self.cart.add_item(product)
        return product

    # ── 送信・取消 ───────────────────────────────

    async def submit(self) -> Outcome[Purchase]:
        return await self.purchases.submit(
            self.cart.to_aggregated_payload(), self.identity.customer_id
        )

    async def reverse(self, purchase_id: str) -> Outcome[Purchase]:
        return await self.reversals.reverse(purchase_id)

    # ── ライフサイクル ───────────────────────────

    @property
    def alive(self) -> bool:
        return self.token.alive

    async def close(self) -> None:
        """セッションを破棄する。処理中のレスポンスは反映されない。"""
        self.token.cancel()
        await self.token.drain()
        logger.info("POS session closed")

    def snapshot(self) -> dict:
        payload = self.cart.to_aggregated_payload()
        return {
            "cart": [line.model_dump() for line in payload],
            "units": len(self.cart),
            "advisory_total": self.catalog.advisory_total(payload),
            "identity": self.identity.snapshot(),
            "submitting": self.purchases.busy,
            "feed_refresh_token": self.feed.refresh_token,
            "location": self.location.selected.model_dump() if self.location.selected else None,
        }
