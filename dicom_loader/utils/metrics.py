"""スループット計測と定期レポート"""
import time
import threading
from collections import deque
from typing import Callable, Deque, Optional

from .logger import LoggerManager


class MetricsCollector:
    """完了イベントを記録し、直近ウィンドウの毎秒件数を返す

    複数のワーカースレッドから同時に collect() されても件数は失われない。
    ウィンドウより古いイベントは collect()/読み出しのたびに捨てるので、
    保持するのは直近ウィンドウ分のタイムスタンプだけ。
    """

    def __init__(self, window_seconds: float = 5.0,
                 clock: Callable[[], float] = time.monotonic):
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.window_seconds = window_seconds
        self._clock = clock
        self._samples: Deque[float] = deque()
        self._total = 0
        self._lock = threading.Lock()

    def collect(self, timestamp: Optional[float] = None):
        """完了イベントを1件記録"""
        if timestamp is None:
            timestamp = self._clock()
        with self._lock:
            self._samples.append(timestamp)
            self._total += 1
            self._prune(timestamp)

    def events_per_second(self, now: Optional[float] = None) -> float:
        """直近ウィンドウ内のイベント数 / ウィンドウ秒数"""
        if now is None:
            now = self._clock()
        with self._lock:
            self._prune(now)
            return len(self._samples) / self.window_seconds

    @property
    def total(self) -> int:
        with self._lock:
            return self._total

    def _prune(self, now: float):
        cutoff = now - self.window_seconds
        while self._samples and self._samples[0] <= cutoff:
            self._samples.popleft()


class PeriodicReporter:
    """一定間隔でスループットを出力するバックグラウンドスレッド"""

    def __init__(self, metrics: MetricsCollector, interval_seconds: float,
                 emit: Optional[Callable[[str], None]] = None):
        self.metrics = metrics
        self.interval_seconds = interval_seconds
        self.logger = LoggerManager.get_logger()
        self._emit = emit or self.logger.info
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self):
        if self._thread is not None:
            raise RuntimeError("Reporter already started")
        self._thread = threading.Thread(
            target=self._run, name="metrics-reporter", daemon=True
        )
        self._thread.start()

    def stop(self):
        """ループを止めてスレッドの終了を待つ"""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self):
        while not self._stop_event.wait(self.interval_seconds):
            self._emit(f"Images per second: {self.metrics.events_per_second():.2f}")

    def __enter__(self) -> 'PeriodicReporter':
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
