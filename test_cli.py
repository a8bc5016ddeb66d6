#!/usr/bin/env python3
"""コマンドラインのテスト"""
import json

import pytest

from dicom_loader import cli
from dicom_loader.core.errors import TerminalUploadFailure
from dicom_loader.core.task_runner import LoadSummary
from dicom_loader.utils.logger import LoggerManager


@pytest.fixture(autouse=True)
def reset_logger():
    LoggerManager.reset()
    yield
    LoggerManager.reset()


def _args(*argv):
    return cli.build_parser().parse_args(list(argv))


def test_load_config_from_arguments():
    config = cli.load_config(_args(
        "--bucket", "dicom-archive", "--region", "us-east-1",
        "--dicom-server", "https://dicom.example.com", "--prefix", "2024/",
        "--max-degree-of-parallelism", "16", "--refresh-interval", "10", "--keep-going",
    ))

    assert config.source.bucket == "dicom-archive"
    assert config.source.prefix == "2024/"
    assert config.destination.url == "https://dicom.example.com"
    assert config.options.max_degree_of_parallelism == 16
    assert config.options.refresh_interval == 10
    assert config.options.fail_fast is False


def test_load_config_requires_options_without_file():
    with pytest.raises(ValueError, match="--bucket, --dicom-server"):
        cli.load_config(_args("--region", "us-east-1"))


def test_arguments_override_config_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "aws": {"region": "us-east-1"},
        "source": {"bucket": "dicom-archive", "prefix": "old/"},
        "destination": {"url": "https://dicom.example.com"},
        "options": {"max_degree_of_parallelism": 4},
    }), encoding="utf-8")

    config = cli.load_config(_args("--config", str(path), "--prefix", "new/",
                                   "--continuation-token", "abc"))

    assert config.source.prefix == "new/"
    assert config.source.continuation_token == "abc"
    assert config.options.max_degree_of_parallelism == 4
    assert config.options.fail_fast is True


class FakeLoader:
    result = None

    def __init__(self, config):
        self.config = config

    def run(self):
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


@pytest.mark.parametrize("result, exit_code", [
    (LoadSummary(posted=2, completed=2), 0),
    (LoadSummary(posted=2, completed=1, failed=1), 1),
    (TerminalUploadFailure("d.dcm", 400, "bad"), 1),
])
def test_main_exit_codes(monkeypatch, capsys, result, exit_code):
    FakeLoader.result = result
    monkeypatch.setattr(cli, "DicomLoader", FakeLoader)

    code = cli.main([
        "--bucket", "dicom-archive", "--region", "us-east-1",
        "--dicom-server", "https://dicom.example.com",
    ])

    assert code == exit_code
    if isinstance(result, Exception):
        assert "Error code 400" in capsys.readouterr().out


def test_main_reports_invalid_options(capsys):
    assert cli.main(["--region", "us-east-1"]) == 1
    assert "Missing required options" in capsys.readouterr().out
