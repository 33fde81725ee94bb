"""Scheduling core for rate-limited, credential-gated object segmentation."""

from .config import resolve_config, setup_logging
from .models import MaskQueueConfig
from .pipeline import build_processing_loop, segment_items
from .queue import JobSnapshot, JobStatus, ProcessingLoop, Tier
from .replicate_client import ReplicateSegmentationClient

__version__ = "0.1.0"

__all__ = [
    "resolve_config",
    "setup_logging",
    "MaskQueueConfig",
    "build_processing_loop",
    "segment_items",
    "JobSnapshot",
    "JobStatus",
    "ProcessingLoop",
    "Tier",
    "ReplicateSegmentationClient",
]
