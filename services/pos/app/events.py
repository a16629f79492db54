"""
POS Service: イベント定義と発行

購入の作成・取消を過去形のイベントとして Redis Pub/Sub に発行する。
発行はベストエフォート: Redis がない・落ちていても POS の処理は止めない。
"""

import json
import logging
from datetime import datetime

import redis.asyncio as aioredis
from pydantic import BaseModel
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

POS_EVENTS_CHANNEL = "pos_events"


class PurchaseCreated(BaseModel):
    """購入が作成された"""
    purchase_id: str
    customer_id: str
    products: list[dict]
    total_amount: float
    timestamp: datetime


class PurchaseReversed(BaseModel):
    """購入が取り消された"""
    purchase_id: str
    customer_id: str | None
    total_amount: float
    timestamp: datetime


class EventPublisher:
    def __init__(self, redis: aioredis.Redis | None = None) -> None:
        self.redis = redis

    async def publish(self, event: BaseModel) -> None:
        if self.redis is None:
            return
        event_type = type(event).__name__
        try:
            await self.redis.publish(
                POS_EVENTS_CHANNEL,
                json.dumps(
                    {
                        "event_type": event_type,
                        "data": event.model_dump(mode="json"),
                    },
                    default=str,
                ),
            )
        except RedisError:
            logger.exception("Failed to publish %s", event_type)
