"""
POS Service: バックエンド API クライアント

食堂バックエンドの REST API を httpx で呼び出す。
レスポンスは {success, data, message} のエンベロープで返るので、
ここで展開し、HTTP エラーを POS のエラー分類に変換する。

  404                         → NotFoundError
  409                         → ConflictError
  その他 4xx/5xx・通信エラー   → TransientServiceError
  success: false              → TransientServiceError
"""

import logging
from typing import Any, Callable

import httpx
from pydantic import ValidationError as SchemaError

from .errors import ConflictError, NotFoundError, TransientServiceError
from .models import CartLine, Customer, FaceDescriptor, Location, Product, Purchase

logger = logging.getLogger(__name__)


class PosApiClient:
    """食堂バックエンドへの非同期クライアント"""

    def __init__(
        self,
        http: httpx.AsyncClient,
        location_id: Callable[[], str | None] | None = None,
    ):
        self.http = http
        self._location_id = location_id or (lambda: None)

    # ── 顧客 ─────────────────────────────────────

    async def search_customers_exact(self, text: str) -> list[Customer]:
        """完全一致検索。該当なしは空リスト。"""
        body = await self._request("GET", "/customers", params={"exactData": text})
        return self._parse_list(Customer, body.get("data"))

    async def fetch_customer_by_face(self, descriptor: FaceDescriptor) -> Customer:
        """顔特徴量で顧客を照合する。該当なしは NotFoundError。"""
        body = await self._request(
            "POST",
            "/customers/fetch-by-face",
            json={"descriptor": list(descriptor)},
            allow_failure=True,
        )
        data = body.get("data")
        if not body.get("success", True) or not data:
            raise NotFoundError(body.get("message") or "Customer not found")
        return self._parse(Customer, data)

    # ── 購入 ─────────────────────────────────────

    async def list_purchases(self) -> list[Purchase]:
        body = await self._request("GET", "/purchases")
        return self._parse_list(Purchase, body.get("data"))

    async def create_purchase(
        self, customer_id: str, lines: list[CartLine]
    ) -> Purchase:
        body = await self._request(
            "POST",
            "/purchases",
            json={
                "customerId": customer_id,
                "products": [line.to_wire() for line in lines],
            },
        )
        return self._parse(Purchase, body.get("data"))

    async def reverse_purchase(self, purchase_id: str) -> Purchase:
        body = await self._request("POST", f"/purchases/{purchase_id}/reverse")
        return self._parse(Purchase, body.get("data"))

    # ── カタログ・設置場所 ─────────────────────────

    async def list_items(self) -> list[Product]:
        body = await self._request("GET", "/items")
        return self._parse_list(Product, body.get("data"))

    async def list_locations(self) -> list[Location]:
        body = await self._request("GET", "/locations")
        return self._parse_list(Location, body.get("data"))

    # ── 内部 ─────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        allow_failure: bool = False,
        **kwargs: Any,
    ) -> dict:
        headers = {}
        location_id = self._location_id()
        if location_id:
            headers["X-Location-Id"] = location_id

        logger.debug("%s %s", method, path)
        try:
            resp = await self.http.request(method, path, headers=headers, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            message = _error_message(e.response)
            status = e.response.status_code
            if status == 404:
                raise NotFoundError(message or "Not found") from e
            if status == 409:
                raise ConflictError(message or "Conflict") from e
            raise TransientServiceError(
                message or f"{method} {path} failed with status {status}"
            ) from e
        except httpx.HTTPError as e:
            raise TransientServiceError(f"{method} {path} failed: {e}") from e
        except (TypeError, ValueError) as e:
            # リクエスト本文を JSON にできない (NaN など)
            raise TransientServiceError(f"{method} {path} could not encode request") from e

        try:
            body = resp.json()
        except ValueError as e:
            raise TransientServiceError(f"{method} {path} returned invalid JSON") from e
        if not isinstance(body, dict):
            raise TransientServiceError(f"{method} {path} returned unexpected body")
        if body.get("success") is False and not allow_failure:
            raise TransientServiceError(body.get("message") or f"{method} {path} failed")
        return body

    @staticmethod
    def _parse(model, data):
        if data is None:
            raise TransientServiceError("Empty response from server")
        try:
            return model.model_validate(data)
        except SchemaError as e:
            raise TransientServiceError(f"Malformed {model.__name__} in response") from e

    @classmethod
    def _parse_list(cls, model, data) -> list:
        if data is None:
            return []
        if not isinstance(data, list):
            raise TransientServiceError(f"Expected a list of {model.__name__}")
        return [cls._parse(model, item) for item in data]


def _error_message(resp: httpx.Response) -> str | None:
    """エラーレスポンスの message を取り出す"""
    try:
        body = resp.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        message = body.get("message") or body.get("detail")
        return str(message) if message else None
    return None
