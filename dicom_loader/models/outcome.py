"""アップロード試行の結果モデル"""
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional


class OutcomeKind(Enum):
    """1回のアップロード試行の分類"""
    SUCCESS = "success"
    ALREADY_EXISTS = "already_exists"
    RETRYABLE = "retryable"
    FATAL = "fatal"


@dataclass(frozen=True)
class UploadResponse:
    """取り込みサーバーからの応答"""
    status_code: int
    body: str = ""


@dataclass(frozen=True)
class AttemptOutcome:
    """分類済みの試行結果"""
    kind: OutcomeKind
    status_code: Optional[int] = None
    body: str = ""
    duplicate: bool = False

    @property
    def succeeded(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    def folded(self) -> 'AttemptOutcome':
        """ALREADY_EXISTSを成功に畳み込む"""
        if self.kind is OutcomeKind.ALREADY_EXISTS:
            return replace(self, kind=OutcomeKind.SUCCESS, duplicate=True)
        return self


@dataclass(frozen=True)
class RetryResult:
    """リトライポリシーの最終結果"""
    outcome: AttemptOutcome
    retries: int
