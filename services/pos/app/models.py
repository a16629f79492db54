"""
POS Service: ドメインモデル

バックエンド (食堂サーバ) から受け取るスナップショットを表す。
クライアントはこれらを変更しない。在庫・合計金額・取消フラグは
サーバだけが更新する。

バックエンドは 2 種類のフィールド名を返しうる:
  - 公開 API 名   : id / displayName / registrationNumber / totalAmount ...
  - ネイティブ名 : _id / student_name / registration_number / is_reversed ...
どちらでも受け取れるように AliasChoices で吸収する。
"""

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

# 顔特徴量は不透明な数値ベクトル
FaceDescriptor = list[float]


class _Snapshot(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")


class Product(_Snapshot):
    """カタログ商品"""
    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    name: str = Field(validation_alias=AliasChoices("name", "itemName"))
    unit_price: float = Field(
        0, validation_alias=AliasChoices("unitPrice", "unit_price", "price")
    )
    stock_quantity: int = Field(
        0, validation_alias=AliasChoices("stockQuantity", "stock_quantity")
    )


class Customer(_Snapshot):
    """支払う顧客 (生徒)"""
    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    display_name: str = Field(
        "", validation_alias=AliasChoices("displayName", "display_name", "student_name")
    )
    registration_number: str = Field(
        "",
        validation_alias=AliasChoices("registrationNumber", "registration_number"),
    )


class Location(_Snapshot):
    """食堂の設置場所"""
    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    name: str = Field("", validation_alias=AliasChoices("name", "locationName"))


class CartLine(BaseModel):
    """集約済みカート行 (送信ペイロードの 1 要素)"""
    product_id: str
    quantity: int

    def to_wire(self) -> dict:
        return {"productId": self.product_id, "quantity": self.quantity}


class PurchaseLine(_Snapshot):
    product_id: str
    quantity: int
    product_name: str = ""

    @model_validator(mode="before")
    @classmethod
    def _unwrap_product(cls, data: Any) -> Any:
        # productId が populate されたオブジェクトで返ることがある
        if not isinstance(data, dict):
            return data
        product = data.get("productId", data.get("product_id"))
        out = {
            "quantity": data.get("quantity", 0),
            "product_name": data.get("productName", data.get("product_name", "")),
        }
        if isinstance(product, dict):
            out["product_id"] = str(product.get("_id") or product.get("id") or "")
            out["product_name"] = product.get("itemName") or product.get("name") or ""
        else:
            out["product_id"] = product
        return out


class Purchase(_Snapshot):
    """
    購入記録

    reversed は単調: False → True のみ。サーバが返した total_amount が正。
    """
    id: str
    customer_id: str | None = None
    customer: Customer | None = None
    lines: list[PurchaseLine] = Field(default_factory=list)
    total_amount: float = 0
    created_at: datetime | None = None
    reversed: bool = False

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        raw_customer = data.get("customer", data.get("student_id"))
        customer_id = data.get("customerId", data.get("customer_id"))
        customer = None
        if isinstance(raw_customer, dict):
            customer = raw_customer
            customer_id = customer_id or raw_customer.get("_id") or raw_customer.get("id")
        elif raw_customer is not None:
            customer_id = customer_id or raw_customer
        reversed_flag = (
            data.get("reversed")
            or data.get("is_reversed")
            or data.get("isReversed")
            or data.get("status") == "reversed"
        )
        return {
            "id": data.get("id", data.get("_id")),
            "customer_id": customer_id,
            "customer": customer,
            "lines": data.get("lines", data.get("products")) or [],
            "total_amount": data.get("totalAmount", data.get("total_amount", 0)),
            "created_at": data.get("createdAt", data.get("created_at")),
            "reversed": bool(reversed_flag),
        }

    def summary(self) -> str:
        """フィード表示用の "商品 xN, ..." 文字列"""
        return ", ".join(
            f"{line.product_name or 'Item'} x{line.quantity}" for line in self.lines
        )
