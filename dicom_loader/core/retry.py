"""指数バックオフ付きリトライポリシー"""
import random
import threading
import time
from typing import Callable, Iterable, Optional, Sequence, Tuple

from ..models.outcome import AttemptOutcome, OutcomeKind, RetryResult, UploadResponse
from ..utils.logger import LoggerManager
from .errors import PipelineCancelled, TransientUploadFailure


def build_delay_schedule(base_delays: Iterable[float], max_jitter_ms: int,
                         rng: Optional[random.Random] = None) -> Tuple[float, ...]:
    """バックオフ待ち時間(秒)の列を作る

    各待ち時間には 0 以上 max_jitter_ms 未満のジッターを作成時に一度だけ加える。
    同時にリトライするワーカー同士のタイミングをずらすため。
    """
    rng = rng or random.Random()
    schedule = []
    for base in base_delays:
        jitter = rng.randrange(max_jitter_ms) / 1000 if max_jitter_ms > 0 else 0.0
        schedule.append(base + jitter)
    return tuple(schedule)


def is_success_status(status_code: Optional[int]) -> bool:
    return status_code is not None and 200 <= status_code <= 299


class RetryPolicy:
    """1回分のアップロード試行をリトライで包む

    試行結果はステータスだけで分類する:
    2xx は成功、conflict_status は既存扱いの成功 (リトライも警告もしない)、
    fatal_statuses は即失敗、それ以外はスケジュールが尽きるまで再試行。
    """

    def __init__(
        self,
        schedule: Sequence[float],
        conflict_status: int = 409,
        fatal_statuses: Iterable[int] = (),
        log_retries_after: int = 3,
        sleep: Callable[[float], object] = time.sleep,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.schedule = tuple(schedule)
        self.conflict_status = conflict_status
        self.fatal_statuses = frozenset(fatal_statuses)
        self.log_retries_after = log_retries_after
        self.cancel_event = cancel_event
        self._sleep = sleep
        self.logger = LoggerManager.get_logger()

    @property
    def max_retries(self) -> int:
        return len(self.schedule)

    def classify(self, response: UploadResponse) -> AttemptOutcome:
        """応答ステータスを試行結果に分類"""
        status = response.status_code
        if is_success_status(status):
            kind = OutcomeKind.SUCCESS
        elif status == self.conflict_status:
            kind = OutcomeKind.ALREADY_EXISTS
        elif status in self.fatal_statuses:
            kind = OutcomeKind.FATAL
        else:
            kind = OutcomeKind.RETRYABLE
        return AttemptOutcome(kind, status, response.body)

    def execute(self, attempt: Callable[[], UploadResponse]) -> RetryResult:
        """attemptを実行し、最終結果を返す

        ALREADY_EXISTS は成功に畳み込んでから返す。
        リトライを使い切った場合は最後の結果をそのまま返す。
        """
        retries = 0
        while True:
            if self.cancel_event is not None and self.cancel_event.is_set():
                raise PipelineCancelled("Upload cancelled before attempt")

            try:
                outcome = self.classify(attempt())
            except TransientUploadFailure as e:
                outcome = AttemptOutcome(OutcomeKind.RETRYABLE, None, str(e))

            if outcome.kind is OutcomeKind.ALREADY_EXISTS:
                return RetryResult(outcome.folded(), retries)

            if outcome.kind is not OutcomeKind.RETRYABLE or retries >= self.max_retries:
                return RetryResult(outcome, retries)

            delay = self.schedule[retries]
            retries += 1
            if retries > self.log_retries_after:
                self.logger.warning(
                    f"Request failed with {outcome.status_code or outcome.body}. "
                    f"Waiting {delay:.3f}s before next retry. Retry attempt {retries}"
                )
            self._sleep(delay)
