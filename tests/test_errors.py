"""Tests for failure classification."""

import asyncio

import pytest

from mask_queue.queue import (
    NoMaskReturned,
    RateLimited,
    SegmentationErrorType,
    TransportError,
    classify_error,
    is_retryable,
)


@pytest.mark.parametrize(
    "exc,expected",
    [
        (RateLimited("429", status_code=429), SegmentationErrorType.RATE_LIMITED),
        (NoMaskReturned("empty"), SegmentationErrorType.NO_MASK),
        (TransportError("reset"), SegmentationErrorType.TRANSPORT),
        (asyncio.TimeoutError(), SegmentationErrorType.TIMEOUT),
        (ValueError("defect"), None),
    ],
)
def test_classify_error(exc, expected):
    assert classify_error(exc) is expected


def test_only_rate_limits_are_retryable():
    assert is_retryable(RateLimited("429"))
    assert not is_retryable(NoMaskReturned("empty"))
    assert not is_retryable(TransportError("reset", status_code=500))
    assert not is_retryable(asyncio.TimeoutError())


def test_status_code_kept():
    assert TransportError("bad gateway", status_code=502).status_code == 502
    assert NoMaskReturned("empty").status_code is None
