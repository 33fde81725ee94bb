"""Failure taxonomy for the segmentation queue.

Only rate limiting is retried. Every other classified failure drops the item,
and anything that is not a SegmentationError is treated as a defect that
aborts the whole job.
"""

import asyncio
from enum import Enum
from typing import Optional


class SegmentationErrorType(Enum):
    """Error classification for retry logic."""
    RATE_LIMITED = "rate_limited"   # HTTP 429, retried with backoff
    NO_MASK = "no_mask"             # Service answered without a mask
    TRANSPORT = "transport"         # Network, HTTP or prediction failure
    TIMEOUT = "timeout"             # Bounded wait around the call expired


class NoCredentialsAvailable(Exception):
    """The credential pool is empty."""


class SegmentationError(Exception):
    """Base class for classified failures of the external call."""

    error_type = SegmentationErrorType.TRANSPORT

    def __init__(self, message: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimited(SegmentationError):
    error_type = SegmentationErrorType.RATE_LIMITED


class NoMaskReturned(SegmentationError):
    error_type = SegmentationErrorType.NO_MASK


class TransportError(SegmentationError):
    error_type = SegmentationErrorType.TRANSPORT


def classify_error(exc: BaseException) -> Optional[SegmentationErrorType]:
    """Map an exception raised around the external call to its class.

    Returns None for exceptions that are not classified failures.
    """
    if isinstance(exc, SegmentationError):
        return exc.error_type
    if isinstance(exc, asyncio.TimeoutError):
        return SegmentationErrorType.TIMEOUT
    return None


def is_retryable(exc: BaseException) -> bool:
    return classify_error(exc) is SegmentationErrorType.RATE_LIMITED
