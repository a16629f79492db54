"""
POS Service: 購入の送信 (PurchaseCoordinator)

カートの集約ペイロードと特定済みの顧客から購入を作成する。

  1. ローカル検証 (空カート・顧客未特定 → ValidationError、通信なし)
  2. 購入作成リクエストを 1 回だけ送る (送信中は busy で重複送信を防ぐ)
  3. 成功 → カートを空にし、フィードの再取得を依頼し、イベントを発行
     失敗 → カートと顧客はそのまま (オペレータが再送・修正できる)

合計金額はサーバが返した値が正。クライアントでは計算しない。
busy はローカルな重複防止であり、サーバ側の冪等性の代わりではない。
"""

import logging
from datetime import datetime, timezone

from .cart import CartEngine
from .client import PosApiClient
from .errors import ConflictError, Outcome, PosError, ValidationError
from .events import EventPublisher, PurchaseCreated
from .feed import RecentPurchaseFeed
from .liveness import SessionToken
from .models import CartLine, Purchase
from .notices import NoticeBoard

logger = logging.getLogger(__name__)


class PurchaseCoordinator:
    def __init__(
        self,
        client: PosApiClient,
        cart: CartEngine,
        feed: RecentPurchaseFeed,
        notices: NoticeBoard,
        token: SessionToken,
        events: EventPublisher | None = None,
    ):
        self._client = client
        self._cart = cart
        self._feed = feed
        self._notices = notices
        self._token = token
        self._events = events or EventPublisher()
        self.busy = False

    async def submit(
        self, lines: list[CartLine], customer_id: str | None
    ) -> Outcome[Purchase]:
        if self.busy:
            return self._reject(ConflictError("Purchase already in progress"))
        if not lines:
            return self._reject(ValidationError("Cart is empty"))
        if not customer_id:
            return self._reject(ValidationError("No customer selected"))
        if any(line.quantity <= 0 for line in lines):
            return self._reject(ValidationError("Cart quantities must be positive"))

        self.busy = True
        try:
            purchase = await self._client.create_purchase(customer_id, lines)
        except PosError as e:
            logger.warning("Purchase for customer %s failed: %s", customer_id, e.message)
            self._notices.error(e.message or "Purchase failed")
            return Outcome(error=e)
        finally:
            self.busy = False

        if not self._token.alive:
            return Outcome(value=purchase)

        self._cart.clear()
        self._feed.request_refresh()
        self._notices.success("Purchase processed successfully")
        logger.info(
            "Purchase %s created for %s (total %s)",
            purchase.id, customer_id, purchase.total_amount,
        )
        await self._events.publish(
            PurchaseCreated(
                purchase_id=purchase.id,
                customer_id=customer_id,
                products=[line.to_wire() for line in lines],
                total_amount=purchase.total_amount,
                timestamp=datetime.now(timezone.utc),
            )
        )
        return Outcome(value=purchase)

    def _reject(self, error: PosError) -> Outcome[Purchase]:
        self._notices.warning(error.message)
        return Outcome(error=error)
