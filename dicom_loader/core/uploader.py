"""1件分のアップロード処理と並列度制限付きワーカープール"""
import random
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, List, Optional, Tuple

from ..models.outcome import RetryResult
from ..utils.logger import LoggerManager
from ..utils.metrics import MetricsCollector
from .errors import PipelineCancelled, PoolClosedError, TerminalUploadFailure
from .retry import RetryPolicy


class UploadWorker:
    """オブジェクト1件を取得してDICOMサーバーへ送る"""

    def __init__(self, source, ingestion, retry_policy: RetryPolicy,
                 metrics: MetricsCollector, rng: Optional[random.Random] = None,
                 start_jitter_ms: int = 50, sleep: Callable[[float], object] = time.sleep,
                 cancel_event: Optional[threading.Event] = None):
        self.source = source
        self.ingestion = ingestion
        self.retry_policy = retry_policy
        self.metrics = metrics
        self.rng = rng or random.Random()
        self.start_jitter_ms = start_jitter_ms
        self.cancel_event = cancel_event
        self._sleep = sleep
        self.logger = LoggerManager.get_logger()

    def __call__(self, key: str) -> RetryResult:
        # オブジェクトストアへのアクセスが一斉に重ならないよう少し待つ
        if self.start_jitter_ms > 0:
            self._sleep(self.rng.randrange(self.start_jitter_ms) / 1000)

        self._check_cancelled(key)
        data = self.source.fetch(key)

        self._check_cancelled(key)
        result = self.retry_policy.execute(lambda: self.ingestion.upload(data))
        outcome = result.outcome

        if not outcome.succeeded:
            self.logger.error(
                f"Upload failed for {key} with status {outcome.status_code} "
                f"after {result.retries} retries: {outcome.body}"
            )
            raise TerminalUploadFailure(key, outcome.status_code, outcome.body)

        if outcome.duplicate:
            self.logger.info(f"Ignoring conflict for file: {key}")
        else:
            self.logger.debug(f"Uploaded {key} ({len(data)} bytes, {result.retries} retries)")

        self.metrics.collect()
        return result

    def _check_cancelled(self, key: str):
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise PipelineCancelled(f"Upload of {key} cancelled")


@dataclass
class PoolResult:
    """プール全体の処理結果"""
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    failures: List[Tuple[Any, BaseException]] = field(default_factory=list)


_SKIPPED = object()


class BoundedWorkerPool:
    """同時実行数を max_degree_of_parallelism に制限したワーカープール

    全スロットが埋まっている間 post() は呼び出し側をブロックする (バックプレッシャー)。
    fail_fast の場合、最初の失敗で cancel_event を立て、以降の post() と
    await_completion() はその例外を送出する。fail_fast でなければ失敗を記録して続行する。
    """

    def __init__(self, handler: Callable[[Any], Any], max_degree_of_parallelism: int = 8,
                 fail_fast: bool = True, cancel_event: Optional[threading.Event] = None):
        if max_degree_of_parallelism < 1:
            raise ValueError("max_degree_of_parallelism must be at least 1")
        self.handler = handler
        self.max_degree_of_parallelism = max_degree_of_parallelism
        self.fail_fast = fail_fast
        self.cancel_event = cancel_event or threading.Event()
        self.logger = LoggerManager.get_logger()
        self.posted = 0

        self._slots = threading.BoundedSemaphore(max_degree_of_parallelism)
        self._executor = ThreadPoolExecutor(
            max_workers=max_degree_of_parallelism, thread_name_prefix="upload-worker"
        )
        self._lock = threading.Lock()
        self._result = PoolResult()
        self._error: Optional[BaseException] = None
        self._closed = False

    def post(self, item):
        """処理を投入する。空きスロットができるまでブロックする"""
        if self._closed:
            raise PoolClosedError("Pool no longer accepts work")
        self._raise_if_failed()

        self._slots.acquire()
        if self._error is not None and self.fail_fast:
            self._slots.release()
            raise self._error

        try:
            future = self._executor.submit(self._run, item)
        except BaseException:
            self._slots.release()
            raise
        self.posted += 1
        future.add_done_callback(partial(self._on_done, item))

    def complete(self):
        """これ以上 post() しないことを通知"""
        self._closed = True

    def await_completion(self) -> PoolResult:
        """投入済みの処理がすべて終わるまで待つ"""
        self.complete()
        self._executor.shutdown(wait=True)
        self._raise_if_failed()
        return self.result

    def shutdown(self):
        """未着手の処理を取り消し、実行中の処理の終了を待つ"""
        self._closed = True
        self.cancel_event.set()
        self._executor.shutdown(wait=True, cancel_futures=True)

    @property
    def result(self) -> PoolResult:
        with self._lock:
            return PoolResult(
                completed=self._result.completed,
                failed=self._result.failed,
                skipped=self._result.skipped,
                failures=list(self._result.failures),
            )

    def _raise_if_failed(self):
        if self.fail_fast and self._error is not None:
            raise self._error

    def _run(self, item):
        if self.cancel_event.is_set():
            return _SKIPPED
        self.handler(item)
        return None

    def _on_done(self, item, future: Future):
        try:
            with self._lock:
                if future.cancelled():
                    self._result.skipped += 1
                    return

                error = future.exception()
                if error is None:
                    if future.result() is _SKIPPED:
                        self._result.skipped += 1
                    else:
                        self._result.completed += 1
                elif isinstance(error, PipelineCancelled):
                    self._result.skipped += 1
                else:
                    self._result.failed += 1
                    self._result.failures.append((item, error))
                    if self.fail_fast and self._error is None:
                        self._error = error
                        self.cancel_event.set()

            if error is not None and not isinstance(error, PipelineCancelled):
                self.logger.error(f"Upload task exception for {item}: {error}")
        finally:
            # 成否に関わらずスロットを返す
            self._slots.release()
