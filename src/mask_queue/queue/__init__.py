"""Priority job queue, result cache and credential rotation for segmentation."""

from .backends import JobStore, SegmentationClient
from .backoff import AdaptiveDelay
from .cache import ResultCache, fresh_entry, is_fresh
from .credentials import CredentialRotator, tokens_from_env
from .errors import (
    NoCredentialsAvailable,
    NoMaskReturned,
    RateLimited,
    SegmentationError,
    SegmentationErrorType,
    TransportError,
    classify_error,
    is_retryable,
)
from .hashing import compute_cache_key, compute_crop_rect, compute_image_fingerprint
from .memory_backend import InMemoryJobStore
from .models import (
    BoundingBox,
    CacheEntry,
    Credential,
    CropRect,
    DeadLetteredItem,
    ItemDescriptor,
    Job,
    JobSnapshot,
    JobStatus,
    ProcessedItem,
    SegmentationResult,
    Tier,
)
from .priority import PriorityQueue, calculate_priority
from .worker import ItemOutcome, LoopState, ProcessingLoop

__all__ = [
    "JobStore",
    "SegmentationClient",
    "AdaptiveDelay",
    "ResultCache",
    "fresh_entry",
    "is_fresh",
    "CredentialRotator",
    "tokens_from_env",
    "NoCredentialsAvailable",
    "NoMaskReturned",
    "RateLimited",
    "SegmentationError",
    "SegmentationErrorType",
    "TransportError",
    "classify_error",
    "is_retryable",
    "compute_cache_key",
    "compute_crop_rect",
    "compute_image_fingerprint",
    "InMemoryJobStore",
    "BoundingBox",
    "CacheEntry",
    "Credential",
    "CropRect",
    "DeadLetteredItem",
    "ItemDescriptor",
    "Job",
    "JobSnapshot",
    "JobStatus",
    "ProcessedItem",
    "SegmentationResult",
    "Tier",
    "PriorityQueue",
    "calculate_priority",
    "ItemOutcome",
    "LoopState",
    "ProcessingLoop",
]
