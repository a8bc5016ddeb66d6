"""DICOMweb (STOW-RS) への送信クライアント"""
import threading
from typing import Callable, Optional
from urllib.parse import urljoin

import requests
from requests.adapters import HTTPAdapter

from ..models.config import DestinationConfig
from ..models.outcome import UploadResponse
from ..utils.logger import LoggerManager
from .errors import TransientUploadFailure


def _default_session(pool_size: int) -> requests.Session:
    session = requests.Session()
    # リトライはRetryPolicy側で行う
    adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size, max_retries=0)
    session.mount('http://', adapter)
    session.mount('https://', adapter)
    return session


class DicomWebClient:
    """DICOMファイルを /studies にPOSTする

    requests.Session はスレッドごとに1つ持つ。
    """

    def __init__(self, config: DestinationConfig, pool_size: int = 8,
                 session_factory: Optional[Callable[[], requests.Session]] = None):
        self.config = config
        self.url = urljoin(config.url, config.studies_path)
        self.logger = LoggerManager.get_logger()
        self._session_factory = session_factory or (lambda: _default_session(pool_size))
        self._local = threading.local()

    def _get_session(self) -> requests.Session:
        if not hasattr(self._local, 'session'):
            self._local.session = self._session_factory()
        return self._local.session

    def upload(self, data: bytes) -> UploadResponse:
        """1ファイル分のバイト列を送信し、ステータスと本文を返す"""
        headers = {
            'Accept': 'application/dicom+json',
            'Content-Type': 'application/dicom',
        }
        try:
            response = self._get_session().post(
                self.url,
                data=data,
                headers=headers,
                timeout=self.config.timeout_seconds,
                verify=self.config.verify_ssl,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise TransientUploadFailure(f"Request to {self.url} failed: {e}") from e

        return UploadResponse(response.status_code, response.text)
