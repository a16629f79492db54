"""
POS Service: FastAPI エントリーポイント

食堂端末 1 台分の POS セッションを UI 層に HTTP で公開する。
セッションは食堂バックエンドを httpx で呼び出し、
購入イベントを Redis Pub/Sub に発行する。

  ┌──────────┐     ┌─────────────┐     ┌──────────────────┐
  │  POS UI  │────▶│ POS Service │────▶│ Canteen Backend  │
  │          │     │ (session)   │     │ /customers ...   │
  └──────────┘     └──────┬──────┘     └──────────────────┘
                          │ pos_events
                          ▼
                        Redis
"""

import logging
from contextlib import asynccontextmanager

import httpx
import redis.asyncio as aioredis
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from .config import REDIS_URL, SessionConfig
from .errors import ConflictError, NotFoundError, PosError, ValidationError
from .feed import filter_purchases
from .session import PosSession

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if getattr(app.state, "pos_session", None) is not None:
        # 組み立て済みのセッションが渡されていればそれを使う
        yield
        return

    config = SessionConfig.from_env()
    redis_pool = aioredis.from_url(REDIS_URL, decode_responses=True)
    http = httpx.AsyncClient(base_url=config.api_url, timeout=config.http_timeout)
    session = PosSession(http, config, redis_pool)
    await session.start()
    app.state.pos_session = session
    yield
    await session.close()
    app.state.pos_session = None
    await http.aclose()
    await redis_pool.aclose()


app = FastAPI(title="Canteen POS Service", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_session(request: Request) -> PosSession:
    session = getattr(request.app.state, "pos_session", None)
    if session is None or not session.alive:
        raise HTTPException(503, "POS session not available")
    return session


def _http_error(error: PosError) -> HTTPException:
    if isinstance(error, ValidationError):
        return HTTPException(422, error.message)
    if isinstance(error, NotFoundError):
        return HTTPException(404, error.message)
    if isinstance(error, ConflictError):
        return HTTPException(409, error.message)
    return HTTPException(502, error.message)


# ── Request Models ───────────────────────────────


class ScanRequest(BaseModel):
    product_id: str


class QueryRequest(BaseModel):
    text: str


class DescriptorRequest(BaseModel):
    descriptor: list[float]


class SelectLocationRequest(BaseModel):
    location_id: str


# ── カタログ・カート ─────────────────────────────


@app.get("/api/items")
async def list_items(session: PosSession = Depends(get_session)):
    """商品一覧 (最後に読み込んだスナップショット)"""
    return [item.model_dump() for item in session.catalog.items()]


@app.post("/api/items/reload")
async def reload_items(session: PosSession = Depends(get_session)):
    try:
        items = await session.catalog.load()
    except PosError as e:
        raise _http_error(e)
    return [item.model_dump() for item in items]


@app.get("/api/cart")
async def get_cart(session: PosSession = Depends(get_session)):
    return session.snapshot()


@app.post("/api/cart/items")
async def scan_item(req: ScanRequest, session: PosSession = Depends(get_session)):
    """1 ユニット追加"""
    try:
        session.scan(req.product_id)
    except PosError as e:
        raise _http_error(e)
    return session.snapshot()


@app.delete("/api/cart/items/{product_id}")
async def remove_item(product_id: str, session: PosSession = Depends(get_session)):
    """1 ユニット削除 (カートになければ何もしない)"""
    session.cart.remove_one(product_id)
    return session.snapshot()


@app.delete("/api/cart")
async def clear_cart(session: PosSession = Depends(get_session)):
    session.cart.clear()
    return session.snapshot()


# ── 顧客の特定 ───────────────────────────────────


@app.get("/api/identity")
async def get_identity(session: PosSession = Depends(get_session)):
    return session.identity.snapshot()


@app.post("/api/identity/query")
async def type_query(req: QueryRequest, session: PosSession = Depends(get_session)):
    """検索欄の入力。検索はデバウンス後にバックグラウンドで実行される。"""
    session.identity.type_query(req.text)
    return session.identity.snapshot()


@app.post("/api/identity/capture")
async def open_capture(session: PosSession = Depends(get_session)):
    if not session.identity.open_capture():
        raise HTTPException(409, "Face match already in progress")
    return session.identity.snapshot()


@app.delete("/api/identity/capture")
async def close_capture(session: PosSession = Depends(get_session)):
    session.identity.close_capture()
    return session.identity.snapshot()


@app.post("/api/identity/descriptor")
async def face_descriptor(
    req: DescriptorRequest, session: PosSession = Depends(get_session)
):
    """キャプチャ装置からの特徴量。照合中の重複イベントは無視される。"""
    accepted = session.identity.on_descriptor(req.descriptor)
    return {"accepted": accepted, **session.identity.snapshot()}


@app.delete("/api/identity")
async def clear_identity(session: PosSession = Depends(get_session)):
    session.identity.clear()
    return session.identity.snapshot()


# ── 購入・取消 ───────────────────────────────────


@app.post("/api/purchases")
async def submit_purchase(session: PosSession = Depends(get_session)):
    """カートと特定済みの顧客で購入を作成する"""
    outcome = await session.submit()
    if not outcome.ok:
        raise _http_error(outcome.error)
    return outcome.value.model_dump(mode="json")


@app.get("/api/purchases")
async def list_purchases(search: str = "", session: PosSession = Depends(get_session)):
    """最近の購入 (ローカル絞り込み、通信なし)"""
    feed = session.feed
    return {
        "refresh_token": feed.refresh_token,
        "fetching": feed.fetching,
        "error": feed.last_error.message if feed.last_error else None,
        "purchases": [
            {
                **p.model_dump(mode="json"),
                "summary": p.summary(),
                "can_reverse": session.reversals.can_reverse(p.id),
            }
            for p in filter_purchases(feed.purchases, search)
        ],
    }


@app.post("/api/purchases/refresh")
async def refresh_purchases(session: PosSession = Depends(get_session)):
    return {"refresh_token": session.feed.request_refresh()}


@app.post("/api/purchases/{purchase_id}/reverse")
async def reverse_purchase(purchase_id: str, session: PosSession = Depends(get_session)):
    outcome = await session.reverse(purchase_id)
    if not outcome.ok:
        raise _http_error(outcome.error)
    return outcome.value.model_dump(mode="json")


# ── 通知・設置場所 ───────────────────────────────


@app.get("/api/notices")
async def list_notices(session: PosSession = Depends(get_session)):
    return [n.model_dump(mode="json") for n in session.notices.recent()]


@app.get("/api/locations")
async def list_locations(session: PosSession = Depends(get_session)):
    return {
        "locations": [loc.model_dump() for loc in session.location.locations],
        "selected": session.location.location_id(),
    }


@app.post("/api/locations/refresh")
async def refresh_locations(session: PosSession = Depends(get_session)):
    try:
        await session.location.refresh(session.client)
    except PosError as e:
        raise _http_error(e)
    return await list_locations(session)


@app.post("/api/locations/select")
async def select_location(
    req: SelectLocationRequest, session: PosSession = Depends(get_session)
):
    try:
        await session.location.select(req.location_id)
    except PosError as e:
        raise _http_error(e)
    return await list_locations(session)


@app.get("/health")
async def health():
    return {"status": "ok", "service": "pos-service"}
