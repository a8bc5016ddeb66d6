#!/usr/bin/env python3
"""リトライポリシーのテスト"""
import logging
import random
import threading

import pytest

from dicom_loader.core.errors import PipelineCancelled, TransientUploadFailure
from dicom_loader.core.retry import RetryPolicy, build_delay_schedule
from dicom_loader.models.outcome import OutcomeKind, UploadResponse

SCHEDULE = (2.0, 3.0, 5.0, 8.0, 12.0, 16.0)


class ScriptedUpload:
    """決められた順にステータスを返す送信関数"""

    def __init__(self, *statuses):
        self.statuses = list(statuses)
        self.calls = 0

    def __call__(self):
        status = self.statuses[min(self.calls, len(self.statuses) - 1)]
        self.calls += 1
        if isinstance(status, Exception):
            raise status
        return UploadResponse(status, f"body {status}")


def _policy(sleeps, **kwargs):
    kwargs.setdefault("fatal_statuses", (400, 415))
    return RetryPolicy(SCHEDULE, sleep=sleeps.append, **kwargs)


def test_schedule_adds_bounded_jitter_once():
    schedule = build_delay_schedule([2, 3, 5], 50, random.Random(7))

    assert len(schedule) == 3
    for base, delay in zip([2, 3, 5], schedule):
        assert base <= delay < base + 0.05
    assert list(schedule) == sorted(schedule)


def test_schedule_is_deterministic_for_seeded_rng():
    first = build_delay_schedule(SCHEDULE, 50, random.Random(42))
    second = build_delay_schedule(SCHEDULE, 50, random.Random(42))
    assert first == second


def test_schedule_without_jitter():
    assert build_delay_schedule([1, 2], 0) == (1, 2)


def test_first_attempt_success():
    sleeps = []
    upload = ScriptedUpload(201)

    result = _policy(sleeps).execute(upload)

    assert result.outcome.kind is OutcomeKind.SUCCESS
    assert result.outcome.duplicate is False
    assert result.retries == 0
    assert upload.calls == 1
    assert sleeps == []


def test_conflict_is_success_without_retry_or_warning(caplog):
    sleeps = []
    upload = ScriptedUpload(409)

    with caplog.at_level(logging.DEBUG, logger="dicom_loader"):
        result = _policy(sleeps, log_retries_after=0).execute(upload)

    assert result.outcome.kind is OutcomeKind.SUCCESS
    assert result.outcome.duplicate is True
    assert result.outcome.status_code == 409
    assert result.retries == 0
    assert upload.calls == 1
    assert sleeps == []
    assert not [r for r in caplog.records if r.levelno >= logging.WARNING]


@pytest.mark.parametrize("failures", [1, 2, 3, 6])
def test_retries_then_succeeds(failures):
    sleeps = []
    upload = ScriptedUpload(*([503] * failures + [200]))

    result = _policy(sleeps).execute(upload)

    assert result.outcome.succeeded
    assert result.retries == failures
    assert upload.calls == failures + 1
    assert sleeps == list(SCHEDULE[:failures])


def test_conflict_after_retries_is_success():
    sleeps = []
    result = _policy(sleeps).execute(ScriptedUpload(500, 409))

    assert result.outcome.succeeded
    assert result.outcome.duplicate is True
    assert result.retries == 1


def test_exhausted_schedule_returns_last_failure():
    sleeps = []
    upload = ScriptedUpload(*([503] * 6 + [502]))

    result = _policy(sleeps).execute(upload)

    assert result.outcome.kind is OutcomeKind.RETRYABLE
    assert result.outcome.status_code == 502
    assert result.outcome.body == "body 502"
    assert result.retries == len(SCHEDULE)
    assert upload.calls == len(SCHEDULE) + 1
    assert sleeps == list(SCHEDULE)


def test_fatal_status_is_not_retried():
    sleeps = []
    upload = ScriptedUpload(415, 200)

    result = _policy(sleeps).execute(upload)

    assert result.outcome.kind is OutcomeKind.FATAL
    assert result.outcome.status_code == 415
    assert result.retries == 0
    assert upload.calls == 1
    assert sleeps == []


def test_transient_exception_is_retried():
    sleeps = []
    upload = ScriptedUpload(TransientUploadFailure("connection reset"), 200)

    result = _policy(sleeps).execute(upload)

    assert result.outcome.succeeded
    assert result.retries == 1


def test_other_exceptions_propagate():
    sleeps = []
    with pytest.raises(KeyError):
        _policy(sleeps).execute(ScriptedUpload(KeyError("boom")))
    assert sleeps == []


def test_only_retries_beyond_grace_count_are_logged(caplog):
    sleeps = []
    upload = ScriptedUpload(*([503] * 5 + [200]))

    with caplog.at_level(logging.WARNING, logger="dicom_loader"):
        _policy(sleeps, log_retries_after=3).execute(upload)

    messages = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
    assert len(messages) == 2
    assert "Request failed with 503" in messages[0]
    assert "Retry attempt 4" in messages[0]
    assert "Waiting 8.000s" in messages[0]
    assert "Retry attempt 5" in messages[1]


def test_cancel_event_stops_retry_loop():
    cancel = threading.Event()
    sleeps = []

    def sleep(delay):
        sleeps.append(delay)
        cancel.set()

    policy = RetryPolicy(SCHEDULE, sleep=sleep, cancel_event=cancel)
    upload = ScriptedUpload(503, 200)

    with pytest.raises(PipelineCancelled):
        policy.execute(upload)
    assert upload.calls == 1
    assert sleeps == [SCHEDULE[0]]


def test_classify():
    policy = RetryPolicy(SCHEDULE, fatal_statuses=(400,))

    assert policy.classify(UploadResponse(200)).kind is OutcomeKind.SUCCESS
    assert policy.classify(UploadResponse(299)).kind is OutcomeKind.SUCCESS
    assert policy.classify(UploadResponse(409)).kind is OutcomeKind.ALREADY_EXISTS
    assert policy.classify(UploadResponse(400)).kind is OutcomeKind.FATAL
    assert policy.classify(UploadResponse(429)).kind is OutcomeKind.RETRYABLE
    assert policy.classify(UploadResponse(302)).kind is OutcomeKind.RETRYABLE
