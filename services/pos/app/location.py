"""
POS Service: 設置場所コンテキスト (LocationContext)

選択中の設置場所を明示的なオブジェクトとして持つ。
選択は Redis に保存し (ベストエフォート)、起動時に restore() で復元する。

  load()     未取得なら一覧を取得し、選択を整合させる
  refresh()  一覧を取り直す。選択中の場所が残っていれば維持し、
             なければ先頭を選ぶ
  select()   明示的に選択する
"""

import logging

import redis.asyncio as aioredis
from pydantic import ValidationError as SchemaError
from redis.exceptions import RedisError

from .client import PosApiClient
from .errors import NotFoundError
from .models import Location

logger = logging.getLogger(__name__)

SELECTED_LOCATION_KEY = "pos:selected_location"


class LocationContext:
    def __init__(self, redis: aioredis.Redis | None = None):
        self._redis = redis
        self.locations: list[Location] = []
        self.selected: Location | None = None
        self._loaded = False

    def location_id(self) -> str | None:
        return self.selected.id if self.selected else None

    async def restore(self) -> Location | None:
        """保存済みの選択を復元する。壊れた値は削除する。"""
        if self._redis is None:
            return None
        try:
            raw = await self._redis.get(SELECTED_LOCATION_KEY)
            if not raw:
                return None
            try:
                self.selected = Location.model_validate_json(raw)
            except SchemaError:
                logger.warning("Dropping unreadable stored location")
                await self._redis.delete(SELECTED_LOCATION_KEY)
                return None
        except RedisError:
            logger.exception("Failed to restore selected location")
            return None
        return self.selected

    async def load(self, client: PosApiClient) -> list[Location]:
        if self._loaded:
            return self.locations
        return await self.refresh(client)

    async def refresh(self, client: PosApiClient) -> list[Location]:
        self.locations = await client.list_locations()
        self._loaded = True
        if not self.locations:
            return self.locations

        if self.selected is not None:
            for loc in self.locations:
                if loc.id == self.selected.id:
                    return self.locations

        await self._store(self.locations[0])
        return self.locations

    async def select(self, location_id: str) -> Location:
        for loc in self.locations:
            if loc.id == location_id:
                await self._store(loc)
                return loc
        raise NotFoundError(f"Location {location_id} not found")

    async def _store(self, location: Location) -> None:
        self.selected = location
        logger.info("Selected location %s (%s)", location.id, location.name)
        if self._redis is None:
            return
        try:
            await self._redis.set(SELECTED_LOCATION_KEY, location.model_dump_json())
        except RedisError:
            logger.exception("Failed to persist selected location")
