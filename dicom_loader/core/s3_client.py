"""S3クライアント管理とオブジェクトの一覧・取得"""
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from ..models.config import AWSConfig
from ..utils.logger import LoggerManager
from .errors import FetchFailure, ListingFailure


class S3ClientManager:
    """S3クライアントの作成と管理"""

    def __init__(self, aws_config: AWSConfig):
        self.aws_config = aws_config
        self.logger = LoggerManager.get_logger()
        self._client = None

    def get_client(self):
        """S3クライアントを取得（必要に応じて作成）"""
        if self._client is None:
            self._client = self._create_client()
        return self._client

    def _create_client(self):
        """S3クライアントを作成"""
        client_kwargs: Dict[str, Any] = {'region_name': self.aws_config.region}
        if self.aws_config.endpoint_url:
            client_kwargs['endpoint_url'] = self.aws_config.endpoint_url

        try:
            if self.aws_config.profile:
                session = boto3.Session(profile_name=self.aws_config.profile)
                s3_client = session.client('s3', **client_kwargs)
                self.logger.info(f"S3 client created with profile '{self.aws_config.profile}'.")
            else:
                s3_client = boto3.client('s3', **client_kwargs)
                self.logger.info("S3 client created with default credentials.")
            return s3_client

        except NoCredentialsError:
            self.logger.error("AWS credentials not available.")
            raise
        except BotoCoreError as e:
            self.logger.error(f"Error creating S3 client: {e}")
            raise


@dataclass
class ObjectPage:
    """一覧の1ページ分"""
    keys: List[str]
    continuation_token: Optional[str] = None


class S3ObjectSource:
    """バケット内オブジェクトの一覧と取得"""

    def __init__(self, s3_client, bucket: str, page_size: int = 1000):
        self.s3_client = s3_client
        self.bucket = bucket
        self.page_size = page_size
        self.logger = LoggerManager.get_logger()

    def iter_pages(self, prefix: Optional[str] = None,
                   continuation_token: Optional[str] = None) -> Iterator[ObjectPage]:
        """list_objects_v2 をページ単位で辿る

        各ページの continuation_token は次ページの開始位置。最終ページでは None。
        """
        token = continuation_token or None
        while True:
            params: Dict[str, Any] = {'Bucket': self.bucket, 'MaxKeys': self.page_size}
            if prefix:
                params['Prefix'] = prefix
            if token:
                params['ContinuationToken'] = token

            try:
                response = self.s3_client.list_objects_v2(**params)
            except (ClientError, BotoCoreError) as e:
                raise ListingFailure(f"Unable to list s3://{self.bucket}/{prefix or ''}: {e}") from e

            keys = [item['Key'] for item in response.get('Contents', [])]
            token = response.get('NextContinuationToken') if response.get('IsTruncated') else None
            yield ObjectPage(keys, token)

            if not token:
                return

    def fetch(self, key: str) -> bytes:
        """オブジェクトの中身をバイト列で取得"""
        try:
            response = self.s3_client.get_object(Bucket=self.bucket, Key=key)
            body = response['Body']
            try:
                return body.read()
            finally:
                body.close()
        except (ClientError, BotoCoreError) as e:
            raise FetchFailure(key, str(e)) from e
