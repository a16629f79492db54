"""
POS Service: 商品カタログ

GET /items のスナップショット。在庫はクライアントで変更しない。
advisory_total は表示用の目安で、サーバには送らない。
"""

import logging

from .client import PosApiClient
from .errors import NotFoundError
from .models import CartLine, Product

logger = logging.getLogger(__name__)


class Catalog:
    def __init__(self, client: PosApiClient):
        self._client = client
        self._items: dict[str, Product] = {}

    async def load(self) -> list[Product]:
        items = await self._client.list_items()
        self._items = {item.id: item for item in items}
        logger.info("Loaded %d catalog items", len(self._items))
        return items

    def items(self) -> list[Product]:
        return list(self._items.values())

    def get(self, product_id: str) -> Product:
        try:
            return self._items[product_id]
        except KeyError:
            raise NotFoundError(f"Item {product_id} not found") from None

    def advisory_total(self, lines: list[CartLine]) -> float:
        total = 0.0
        for line in lines:
            product = self._items.get(line.product_id)
            if product is not None:
                total += product.unit_price * line.quantity
        return total
