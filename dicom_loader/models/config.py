"""設定管理用のデータクラス"""
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, List, Optional
import json
import os
import re


DEFAULT_RETRY_DELAYS = [2.0, 3.0, 5.0, 8.0, 12.0, 16.0]

# 再送しても結果が変わらないステータス
DEFAULT_FATAL_STATUSES = [400, 401, 403, 404, 405, 406, 410, 411, 413, 414, 415, 422]


@dataclass
class LoggingConfig:
    """ロギング設定"""
    level: str = "INFO"
    format: str = "%(asctime)s - %(levelname)s - %(message)s"
    file: Optional[str] = None


@dataclass
class AWSConfig:
    """AWS関連の設定"""
    region: str
    profile: Optional[str] = None
    endpoint_url: Optional[str] = None

    def __post_init__(self):
        if not self.region or not self.region.strip():
            raise ValueError("region cannot be empty")


@dataclass
class SourceConfig:
    """取り込み元バケットの設定"""
    bucket: str
    prefix: Optional[str] = None
    continuation_token: Optional[str] = None
    page_size: int = 1000

    def __post_init__(self):
        # S3のバケット名規則 (3-63文字、小文字英数字・ハイフン・ピリオド)
        bucket_pattern = r'^[a-z0-9][a-z0-9.-]{1,61}[a-z0-9]$'
        if not re.match(bucket_pattern, self.bucket or ""):
            raise ValueError(f"Invalid bucket name: {self.bucket}")

        if not (1 <= self.page_size <= 1000):
            raise ValueError(
                f"Invalid page_size: {self.page_size}. Must be between 1 and 1000"
            )


@dataclass
class DestinationConfig:
    """DICOMサーバーの設定"""
    url: str
    studies_path: str = "/studies"
    timeout_seconds: int = 300
    verify_ssl: bool = True

    def __post_init__(self):
        if not re.match(r'^https?://', self.url or ""):
            raise ValueError(
                f"Invalid url: {self.url}. Expected an http:// or https:// URL"
            )
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")


@dataclass
class PipelineOptions:
    """パイプラインの並列度・リトライ設定"""
    max_degree_of_parallelism: int = 8
    refresh_interval: int = 5
    retry_delays: List[float] = field(default_factory=lambda: list(DEFAULT_RETRY_DELAYS))
    retry_jitter_ms: int = 50
    start_jitter_ms: int = 50
    log_retries_after: int = 3
    conflict_status: int = 409
    fatal_statuses: List[int] = field(default_factory=lambda: list(DEFAULT_FATAL_STATUSES))
    fail_fast: bool = True
    seed: Optional[int] = None

    def __post_init__(self):
        if self.max_degree_of_parallelism < 1:
            raise ValueError(
                f"Invalid max_degree_of_parallelism: {self.max_degree_of_parallelism}. "
                "Must be at least 1"
            )
        if self.refresh_interval <= 0:
            raise ValueError("refresh_interval must be positive")

        if any(delay < 0 for delay in self.retry_delays):
            raise ValueError("retry_delays cannot contain negative values")

        # バックオフは非減少であること
        if list(self.retry_delays) != sorted(self.retry_delays):
            raise ValueError("retry_delays must be in non-decreasing order")

        if self.retry_jitter_ms < 0 or self.start_jitter_ms < 0:
            raise ValueError("jitter values cannot be negative")

        if 200 <= self.conflict_status <= 299:
            raise ValueError("conflict_status cannot be a success status")

        if self.conflict_status in self.fatal_statuses:
            raise ValueError(
                f"conflict_status {self.conflict_status} cannot also be a fatal status"
            )


@dataclass
class Config:
    """メイン設定クラス"""
    logging: LoggingConfig
    aws: AWSConfig
    source: SourceConfig
    destination: DestinationConfig
    options: PipelineOptions = field(default_factory=PipelineOptions)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """辞書から設定を組み立てる"""
        return cls(
            logging=LoggingConfig(**data.get("logging", {})),
            aws=AWSConfig(**data.get("aws", {})),
            source=SourceConfig(**data.get("source", {})),
            destination=DestinationConfig(**data.get("destination", {})),
            options=PipelineOptions(**data.get("options", {})),
        )

    @classmethod
    def from_file(cls, config_path: str) -> 'Config':
        """設定ファイルから読み込み"""
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file {config_path} not found.")

        try:
            with open(config_path, "r", encoding="utf-8") as file:
                data = json.load(file)
        except json.JSONDecodeError as e:
            raise ValueError(f"Error decoding JSON from {config_path}: {e}")

        try:
            return cls.from_dict(data)
        except (TypeError, ValueError) as e:
            raise RuntimeError(f"Error loading configuration: {e}")

    def with_overrides(self, **values: Any) -> 'Config':
        """Noneでない値で各セクションを上書きした設定を返す

        キーは各セクションのフィールド名 (例: bucket, url, max_degree_of_parallelism)。
        """
        values = {key: value for key, value in values.items() if value is not None}
        sections = {}
        for name in ("logging", "aws", "source", "destination", "options"):
            section = getattr(self, name)
            names = {f.name for f in fields(section)}
            changes = {key: values.pop(key) for key in list(values) if key in names}
            sections[name] = replace(section, **changes) if changes else section

        if values:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(values))}")
        return replace(self, **sections)
