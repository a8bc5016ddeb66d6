"""ローダーの例外定義"""
from typing import Optional


class LoaderError(Exception):
    """ローダー例外の基底クラス"""


class ListingFailure(LoaderError):
    """オブジェクト一覧の取得に失敗"""


class FetchFailure(LoaderError):
    """オブジェクトのダウンロードに失敗"""

    def __init__(self, key: str, message: str):
        super().__init__(f"Unable to fetch {key}: {message}")
        self.key = key


class TransientUploadFailure(LoaderError):
    """再試行で回復しうる送信エラー (接続断・タイムアウト)"""


class TerminalUploadFailure(LoaderError):
    """リトライを使い切った、または再試行不能なステータス"""

    def __init__(self, key: str, status_code: Optional[int], body: str = ""):
        super().__init__(
            f"Unable to upload {key} to server. Error code {status_code}"
        )
        self.key = key
        self.status_code = status_code
        self.body = body


class PipelineCancelled(LoaderError):
    """パイプラインの中断が通知された"""


class PoolClosedError(LoaderError):
    """complete()後にpost()が呼ばれた"""
