"""コマンドラインインターフェース"""
import argparse
from typing import List, Optional

from . import DicomLoader
from .models.config import (
    AWSConfig,
    Config,
    DestinationConfig,
    LoggingConfig,
    PipelineOptions,
    SourceConfig,
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dicom-loader",
        description="Bulk-load DICOM files from an S3 bucket into a DICOMweb server.",
    )
    parser.add_argument("--config", help="JSON configuration file")
    parser.add_argument("--bucket", help="Source S3 bucket")
    parser.add_argument("--prefix", help="Only load objects whose key starts with this prefix")
    parser.add_argument("--region", help="AWS region of the source bucket")
    parser.add_argument("--profile", help="AWS profile name")
    parser.add_argument("--endpoint-url", help="Custom S3 endpoint URL")
    parser.add_argument("--dicom-server", dest="url", help="DICOMweb server base URL")
    parser.add_argument(
        "--max-degree-of-parallelism", type=int,
        help="Number of concurrent uploads (default: 8)",
    )
    parser.add_argument(
        "--refresh-interval", type=int,
        help="Seconds between throughput reports (default: 5)",
    )
    parser.add_argument(
        "--continuation-token",
        help="Resume listing from a continuation token logged by a previous run",
    )
    parser.add_argument(
        "--keep-going", action="store_true",
        help="Record failed objects and continue instead of aborting on the first failure",
    )
    parser.add_argument("--seed", type=int, help="Seed for retry and start-up jitter")
    parser.add_argument("--log-level", dest="level", help="Logging level (default: INFO)")
    parser.add_argument("--log-file", dest="file", help="Also write logs to this file")
    return parser


def load_config(args: argparse.Namespace) -> Config:
    """設定ファイルとコマンドライン引数から設定を作る"""
    overrides = {
        "bucket": args.bucket,
        "prefix": args.prefix,
        "region": args.region,
        "profile": args.profile,
        "endpoint_url": args.endpoint_url,
        "url": args.url,
        "max_degree_of_parallelism": args.max_degree_of_parallelism,
        "refresh_interval": args.refresh_interval,
        "continuation_token": args.continuation_token,
        "seed": args.seed,
        "level": args.level,
        "file": args.file,
        "fail_fast": False if args.keep_going else None,
    }

    if args.config:
        return Config.from_file(args.config).with_overrides(**overrides)

    missing = [
        option for option, value in
        (("--bucket", args.bucket), ("--region", args.region), ("--dicom-server", args.url))
        if not value
    ]
    if missing:
        raise ValueError(f"Missing required options without --config: {', '.join(missing)}")

    config = Config(
        logging=LoggingConfig(),
        aws=AWSConfig(region=args.region),
        source=SourceConfig(bucket=args.bucket),
        destination=DestinationConfig(url=args.url),
        options=PipelineOptions(),
    )
    return config.with_overrides(**overrides)


def main(argv: Optional[List[str]] = None) -> int:
    """メイン関数。終了コードを返す"""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args)
        loader = DicomLoader(config)
        summary = loader.run()
    except KeyboardInterrupt:
        print("Interrupted")
        return 130
    except Exception as e:
        print(f"Error: {e}")
        return 1

    # 終了コードを設定
    return 0 if summary.succeeded else 1
