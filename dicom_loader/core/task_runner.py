"""オブジェクト一覧を辿ってワーカープールへ投入する"""
import random
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple

from ..models.config import Config
from ..utils.logger import LoggerManager
from ..utils.metrics import MetricsCollector, PeriodicReporter
from .dicom_client import DicomWebClient
from .retry import RetryPolicy, build_delay_schedule
from .s3_client import S3ClientManager, S3ObjectSource
from .uploader import BoundedWorkerPool, PoolResult, UploadWorker


@dataclass
class LoadSummary:
    """実行結果のまとめ"""
    posted: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    failures: List[Tuple[Any, BaseException]] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.failed == 0 and self.skipped == 0


class TaskRunner:
    """一覧の取得から送信完了までのパイプライン"""

    def __init__(self, config: Config, source=None, ingestion=None,
                 rng: Optional[random.Random] = None,
                 sleep: Optional[Callable[[float], object]] = None):
        self.config = config
        self.logger = LoggerManager.get_logger()
        options = config.options

        self.rng = rng or random.Random(options.seed)
        self.cancel_event = threading.Event()
        # 中断されたらバックオフ待ちも打ち切る
        self._sleep = sleep or self.cancel_event.wait

        if source is None:
            client_manager = S3ClientManager(config.aws)
            source = S3ObjectSource(
                client_manager.get_client(), config.source.bucket, config.source.page_size
            )
        if ingestion is None:
            ingestion = DicomWebClient(
                config.destination, pool_size=options.max_degree_of_parallelism
            )
        self.source = source
        self.ingestion = ingestion

        self.metrics = MetricsCollector(window_seconds=options.refresh_interval)
        self.retry_policy = RetryPolicy(
            build_delay_schedule(options.retry_delays, options.retry_jitter_ms, self.rng),
            conflict_status=options.conflict_status,
            fatal_statuses=options.fatal_statuses,
            log_retries_after=options.log_retries_after,
            sleep=self._sleep,
            cancel_event=self.cancel_event,
        )
        self.worker = UploadWorker(
            self.source,
            self.ingestion,
            self.retry_policy,
            self.metrics,
            rng=self.rng,
            start_jitter_ms=options.start_jitter_ms,
            sleep=self._sleep,
            cancel_event=self.cancel_event,
        )
        self.pool = BoundedWorkerPool(
            self.worker,
            options.max_degree_of_parallelism,
            fail_fast=options.fail_fast,
            cancel_event=self.cancel_event,
        )
        self.reporter = PeriodicReporter(self.metrics, options.refresh_interval)

    def run(self) -> LoadSummary:
        """全オブジェクトを送信し、結果を返す

        fail_fast の場合、失敗した1件の例外がそのまま送出される。
        """
        source = self.config.source
        self.logger.info(
            f"Loading s3://{source.bucket}/{source.prefix or ''} into "
            f"{self.config.destination.url} with "
            f"{self.pool.max_degree_of_parallelism} workers"
        )
        started = time.monotonic()

        with self.reporter:
            try:
                result = self.dispatch()
            except BaseException:
                self.pool.shutdown()
                self._log_summary(self._summarize(self.pool.result), time.monotonic() - started)
                raise

        summary = self._summarize(result)
        self._log_summary(summary, time.monotonic() - started)
        return summary

    def dispatch(self) -> PoolResult:
        """一覧の全キーをプールへ投入し、完了を待つ"""
        source = self.config.source
        pages = self.source.iter_pages(source.prefix, source.continuation_token)
        for page_number, page in enumerate(pages, 1):
            for key in page.keys:
                self.pool.post(key)

            self.logger.debug(
                f"Page {page_number}: posted {len(page.keys)} objects "
                f"(continuation token: {page.continuation_token})"
            )

        self.pool.complete()
        return self.pool.await_completion()

    def _summarize(self, result: PoolResult) -> LoadSummary:
        return LoadSummary(
            posted=self.pool.posted,
            completed=result.completed,
            failed=result.failed,
            skipped=result.skipped,
            failures=result.failures,
        )

    def _log_summary(self, summary: LoadSummary, elapsed: float):
        self.logger.info(
            f"Load finished in {elapsed:.1f}s: {summary.posted} posted, "
            f"{summary.completed} completed, {summary.failed} failed, "
            f"{summary.skipped} skipped"
        )
        for key, error in summary.failures:
            self.logger.error(f"Failed: {key}: {error}")
