"""
POS Service: 顧客の特定 (IdentityResolver)

支払う顧客を 2 つの経路で特定する。セッションにつき 1 インスタンス。

  テキスト経路: Idle → Searching(query) → Resolved | NotFound
    - キー入力ごとに query を更新し、待機時間 (デバウンス) を再スタートする
    - 待機時間内に次の入力がなければ 1 回だけ完全一致検索を送る
    - 古い query に対するレスポンスは黙って捨てる

  顔経路: Idle → Capturing → Matching(descriptor) → Resolved | NotFound
    - 照合リクエストは single-flight: 処理中に届いた特徴量は完全に無視する
    - 完了 (成功・該当なし・エラー) で guard を解放し、キャプチャを閉じ、
      結果を 1 回だけ報告する

同時に処理中にできる特定処理は 1 つだけ。顔照合はテキスト検索を
打ち切って開始し、顔照合中のキー入力は query の更新のみ行う。
"""

import asyncio
import logging
import math
from enum import Enum

from .client import PosApiClient
from .errors import NotFoundError, PosError, TransientServiceError, ValidationError
from .liveness import SessionToken
from .models import Customer, FaceDescriptor
from .notices import NoticeBoard

logger = logging.getLogger(__name__)


class ResolverState(str, Enum):
    IDLE = "idle"
    SEARCHING = "searching"
    CAPTURING = "capturing"
    MATCHING = "matching"
    RESOLVED = "resolved"
    NOT_FOUND = "not_found"


class IdentityResolver:
    def __init__(
        self,
        client: PosApiClient,
        notices: NoticeBoard,
        token: SessionToken,
        debounce_seconds: float = 0.4,
    ):
        self._client = client
        self._notices = notices
        self._token = token
        self.debounce_seconds = debounce_seconds

        self.state = ResolverState.IDLE
        self.query = ""
        self.customer: Customer | None = None
        self.capture_open = False
        self.last_error: PosError | None = None

        self._search_task: asyncio.Task | None = None
        # single-flight guard: 顔照合の処理中タスク
        self._match_task: asyncio.Task | None = None

    @property
    def matching(self) -> bool:
        return self._match_task is not None

    @property
    def customer_id(self) -> str | None:
        return self.customer.id if self.customer else None

    # ── テキスト経路 ─────────────────────────────

    def type_query(self, text: str) -> None:
        """キー入力 1 回分。入力欄の現在値を渡す。"""
        if not self._token.alive:
            return
        self.query = text
        self.customer = None
        self.last_error = None
        self._cancel_search()

        if self.matching:
            logger.debug("Face match in flight, lookup for %r not scheduled", text)
            return
        if not text.strip():
            self.state = ResolverState.IDLE
            return

        self.state = ResolverState.SEARCHING
        self._search_task = self._token.spawn(
            self._debounced_search(text), name="pos-customer-search"
        )

    async def _debounced_search(self, text: str) -> None:
        await asyncio.sleep(self.debounce_seconds)

        try:
            customers = await self._client.search_customers_exact(text.strip())
        except PosError as e:
            if self._is_current(text):
                self._fail(e)
            return

        if not self._is_current(text):
            logger.debug("Discarding superseded search result for %r", text)
            return
        if not customers:
            self._fail(NotFoundError("Customer not found"))
            return
        self._resolve(customers[0])

    def _is_current(self, text: str) -> bool:
        return self._token.alive and text == self.query and not self.matching

    def _cancel_search(self) -> None:
        if self._search_task is not None and not self._search_task.done():
            self._search_task.cancel()
        self._search_task = None

    # ── 顔経路 ───────────────────────────────────

    def open_capture(self) -> bool:
        """キャプチャ画面を開く。直前に特定済みの顧客はクリアする。"""
        if not self._token.alive or self.matching:
            return False
        self._cancel_search()
        self.customer = None
        self.last_error = None
        self.capture_open = True
        self.state = ResolverState.CAPTURING
        return True

    def close_capture(self) -> None:
        """照合前にキャプチャを閉じる (照合中は閉じない)"""
        if self.matching or not self.capture_open:
            return
        self.capture_open = False
        if self.state == ResolverState.CAPTURING:
            self.state = ResolverState.IDLE

    def on_descriptor(self, descriptor: FaceDescriptor) -> bool:
        """
        キャプチャ装置からの特徴量イベント。

        同じ特徴量が短時間に何度も届くことがある。照合中・キャプチャが
        閉じている間のイベントは何もせずに捨てる。受け付けたら True。
        """
        if not self._token.alive or not self.capture_open or self.matching:
            logger.debug("Dropping face descriptor event")
            return False
        if not descriptor or not all(math.isfinite(v) for v in descriptor):
            # キャプチャは開いたまま。次のフレームで再試行できる
            self.last_error = ValidationError("Invalid face descriptor")
            self._notices.warning(self.last_error.message)
            return False

        self._cancel_search()
        self.state = ResolverState.MATCHING
        self._match_task = self._token.spawn(
            self._match(list(descriptor)), name="pos-face-match"
        )
        return True

    async def _match(self, descriptor: FaceDescriptor) -> None:
        customer = None
        error = None
        try:
            customer = await self._client.fetch_customer_by_face(descriptor)
        except PosError as e:
            error = e
        except Exception:
            logger.exception("Face match failed")
            error = TransientServiceError("Face ID fetch failed")
        finally:
            if self._token.alive:
                self._match_task = None
                self.capture_open = False

        if not self._token.alive:
            return
        if error is not None:
            self._fail(error)
            return
        self.query = customer.registration_number
        self._resolve(customer)
        self._notices.success(f"Customer resolved: {customer.display_name}")

    # ── 共通 ─────────────────────────────────────

    def _resolve(self, customer: Customer) -> None:
        self.customer = customer
        self.last_error = None
        self.state = ResolverState.RESOLVED
        logger.info("Resolved customer %s (%s)", customer.id, customer.registration_number)

    def _fail(self, error: PosError) -> None:
        self.customer = None
        self.last_error = error
        if isinstance(error, NotFoundError):
            self.state = ResolverState.NOT_FOUND
            self._notices.warning(error.message)
        else:
            self.state = ResolverState.IDLE
            self._notices.error(error.message)

    def clear(self) -> None:
        """特定済みの顧客と入力を消す (照合中は何もしない)"""
        if self.matching:
            return
        self._cancel_search()
        self.query = ""
        self.customer = None
        self.last_error = None
        self.capture_open = False
        self.state = ResolverState.IDLE

    async def settle(self) -> None:
        """処理中の検索・照合が終わるまで待つ"""
        while True:
            pending = [
                t for t in (self._search_task, self._match_task)
                if t is not None and not t.done()
            ]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def snapshot(self) -> dict:
        return {
            "state": self.state.value,
            "query": self.query,
            "customer": self.customer.model_dump() if self.customer else None,
            "capture_open": self.capture_open,
            "matching": self.matching,
            "error": self.last_error.message if self.last_error else None,
        }
