"""
POS Service: エラー分類

すべてのエラーはコンポーネント境界で捕捉され、通知として表示される。
自動リトライはしない (オペレータが再操作する)。

  ValidationError        ローカル検証エラー (ネットワーク呼び出しなし)
  NotFoundError          検索・顔照合で該当なし (致命的でない)
  ConflictError          取消済み購入の再取消、処理中の重複操作
  TransientServiceError  通信・サーバ障害
"""

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


class PosError(Exception):
    """POS エラーの基底クラス"""

    default_message = "POS operation failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(PosError):
    default_message = "Invalid request"


class NotFoundError(PosError):
    default_message = "Not found"


class ConflictError(PosError):
    default_message = "Conflicting operation"


class TransientServiceError(PosError):
    default_message = "Service unavailable"


@dataclass
class Outcome(Generic[T]):
    """コンポーネント境界での結果。エラーは例外として投げず、ここに入れる。"""
    value: T | None = None
    error: PosError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None
