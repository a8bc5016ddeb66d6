"""DICOM Loader コアモジュール"""
from .s3_client import S3ClientManager, S3ObjectSource, ObjectPage
from .dicom_client import DicomWebClient
from .retry import RetryPolicy, build_delay_schedule
from .uploader import UploadWorker, BoundedWorkerPool, PoolResult
from .task_runner import TaskRunner, LoadSummary

__all__ = [
    'S3ClientManager',
    'S3ObjectSource',
    'ObjectPage',
    'DicomWebClient',
    'RetryPolicy',
    'build_delay_schedule',
    'UploadWorker',
    'BoundedWorkerPool',
    'PoolResult',
    'TaskRunner',
    'LoadSummary',
]
