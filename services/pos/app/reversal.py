"""
POS Service: 購入の取消 (ReversalCoordinator)

取消は一方向の状態遷移。取消済みの購入はローカルで拒否し (ConflictError)、
通信しない。同じ購入 ID の取消リクエストは同時に 1 つまで。

「1 回だけ取消」の最終的な保証はサーバ側の責任。
"""

import logging
from datetime import datetime, timezone

from .client import PosApiClient
from .errors import ConflictError, NotFoundError, Outcome, PosError
from .events import EventPublisher, PurchaseReversed
from .feed import RecentPurchaseFeed
from .liveness import SessionToken
from .models import Purchase
from .notices import NoticeBoard

logger = logging.getLogger(__name__)


class ReversalCoordinator:
    def __init__(
        self,
        client: PosApiClient,
        feed: RecentPurchaseFeed,
        notices: NoticeBoard,
        token: SessionToken,
        events: EventPublisher | None = None,
    ):
        self._client = client
        self._feed = feed
        self._notices = notices
        self._token = token
        self._events = events or EventPublisher()
        self._pending: set[str] = set()

    def is_pending(self, purchase_id: str) -> bool:
        return purchase_id in self._pending

    def can_reverse(self, purchase_id: str) -> bool:
        """取消ボタンを有効にしてよいか"""
        purchase = self._feed.get(purchase_id)
        return (
            purchase is not None
            and not purchase.reversed
            and purchase_id not in self._pending
        )

    async def reverse(self, purchase_id: str) -> Outcome[Purchase]:
        purchase = self._feed.get(purchase_id)
        if purchase is None:
            return self._reject(NotFoundError("Purchase not found"))
        if purchase.reversed:
            return self._reject(ConflictError("Purchase already reversed"))
        if purchase_id in self._pending:
            return self._reject(ConflictError("Reversal already in progress"))

        self._pending.add(purchase_id)
        try:
            updated = await self._client.reverse_purchase(purchase_id)
        except PosError as e:
            logger.warning("Reversal of %s failed: %s", purchase_id, e.message)
            self._notices.error(e.message or "Failed to reverse purchase")
            return Outcome(error=e)
        finally:
            self._pending.discard(purchase_id)

        if not updated.reversed:
            updated = updated.model_copy(update={"reversed": True})
        if not self._token.alive:
            return Outcome(value=updated)

        self._feed.apply_update(updated)
        self._notices.success("Purchase reversed successfully")
        logger.info("Purchase %s reversed", purchase_id)
        await self._events.publish(
            PurchaseReversed(
                purchase_id=purchase_id,
                customer_id=updated.customer_id,
                total_amount=updated.total_amount,
                timestamp=datetime.now(timezone.utc),
            )
        )
        return Outcome(value=updated)

    def _reject(self, error: PosError) -> Outcome[Purchase]:
        self._notices.warning(error.message)
        return Outcome(error=error)
