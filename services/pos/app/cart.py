"""
POS Service: カートエンジン

スキャン 1 回 = 1 ユニット。商品ごとの数量は
(追加イベント数 − 削除イベント数) で、負になることはない。

内部は「商品 ID → 数量」の順序付きマッピング。
反復順は商品が最初に現れた順 (ID 順ではない)。
数量が 0 になった商品はマッピングから消える。
"""

from .models import CartLine, Product


class CartEngine:
    def __init__(self) -> None:
        self._counts: dict[str, int] = {}
        self._products: dict[str, Product] = {}

    def add_item(self, product: Product) -> None:
        """1 ユニット追加する"""
        self._counts[product.id] = self._counts.get(product.id, 0) + 1
        self._products[product.id] = product

    def remove_one(self, product_id: str) -> bool:
        """1 ユニット削除する。カートにない商品なら何もしない。"""
        count = self._counts.get(product_id)
        if not count:
            return False
        if count == 1:
            del self._counts[product_id]
            del self._products[product_id]
        else:
            self._counts[product_id] = count - 1
        return True

    def to_aggregated_payload(self) -> list[CartLine]:
        return [
            CartLine(product_id=product_id, quantity=quantity)
            for product_id, quantity in self._counts.items()
        ]

    def clear(self) -> None:
        self._counts.clear()
        self._products.clear()

    def quantity_of(self, product_id: str) -> int:
        return self._counts.get(product_id, 0)

    def products(self) -> list[Product]:
        return list(self._products.values())

    def is_empty(self) -> bool:
        return not self._counts

    def __len__(self) -> int:
        """スキャン済みユニットの総数"""
        return sum(self._counts.values())
