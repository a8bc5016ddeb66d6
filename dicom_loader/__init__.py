"""DICOM Loader パッケージ"""
from .models.config import Config
from .utils.logger import LoggerManager
from .core.task_runner import LoadSummary, TaskRunner


class DicomLoader:
    """S3上のDICOMファイルをDICOMサーバーへ一括投入するメインクラス"""

    def __init__(self, config: Config):
        self.config = config

        # ロガーをセットアップ
        self.logger = LoggerManager.setup(self.config.logging)
        self.logger.info("DICOM Loader initialized")

        self.task_runner = TaskRunner(self.config)

    @classmethod
    def from_file(cls, config_path: str = "config.json") -> 'DicomLoader':
        return cls(Config.from_file(config_path))

    def run(self) -> LoadSummary:
        """一覧の全オブジェクトを送信"""
        self.logger.info("Starting DICOM load process...")
        return self.task_runner.run()


__all__ = ['DicomLoader', 'Config', 'LoadSummary']
