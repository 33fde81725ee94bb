"""Pydantic models for segmentation queue data structures.

This module defines the type-safe models used throughout the queue system.
All models use Pydantic for validation and serialization.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    """Job processing states with explicit semantics.

    State transitions:
        queued → processing     (loop dequeues the job)
        processing → completed  (item index reached end of sequence)
        processing → failed     (unhandled exception escaped item handling)
        queued → cancelled      (cancel() before dequeue)
        processing → cancelled  (cancel() while in flight, checked per item)
    """

    QUEUED = "queued"  # Waiting in the priority queue
    PROCESSING = "processing"  # Currently owned by the processing loop
    COMPLETED = "completed"  # All items attempted (some may have been dropped)
    FAILED = "failed"  # Aborted by an unhandled exception
    CANCELLED = "cancelled"  # Stopped on request, remaining items skipped

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


class Tier(str, Enum):
    """Owner tier used as the dominant priority weight."""

    FREE = "free"
    HOBBY = "hobby"
    PREMIUM = "premium"


class BoundingBox(BaseModel):
    """Center-based bounding box in percent of the image dimensions."""

    x: float = Field(..., ge=0.0, le=100.0, description="Center X (% of width)")
    y: float = Field(..., ge=0.0, le=100.0, description="Center Y (% of height)")
    width: float = Field(..., ge=0.0, le=100.0, description="Box width (% of width)")
    height: float = Field(..., ge=0.0, le=100.0, description="Box height (% of height)")


class ItemDescriptor(BaseModel):
    """One detected object within a job."""

    name: str = Field(..., min_length=1, description="Human readable item name")
    category: str = Field(default="unknown", description="Detected category")
    value: float = Field(default=0.0, ge=0.0, description="Estimated value")
    bounding_box: BoundingBox = Field(..., alias="boundingBox")
    id: Optional[str] = Field(default=None, description="Explicit item identifier")
    slot: Optional[int] = Field(
        default=None, ge=0, description="Position in the original submission (assigned on submit)"
    )

    class Config:
        """Pydantic configuration."""

        populate_by_name = True

    @property
    def item_id(self) -> str:
        """Explicit id when provided, otherwise the item name."""
        return self.id or self.name


class CropRect(BaseModel):
    """Absolute pixel rectangle sent to the segmentation service."""

    x1: int = Field(..., ge=0)
    y1: int = Field(..., ge=0)
    x2: int = Field(..., ge=0)
    y2: int = Field(..., ge=0)

    def as_box(self) -> str:
        """Space separated "x1 y1 x2 y2" form used by the service."""
        return f"{self.x1} {self.y1} {self.x2} {self.y2}"


class SegmentationResult(BaseModel):
    """Output of one successful external segmentation call."""

    mask: Any = Field(..., description="Opaque mask payload (URL or bytes)")
    crop: CropRect = Field(..., description="Crop rectangle used for the call")


class ProcessedItem(BaseModel):
    """Immutable record of one item attempt that produced a mask."""

    id: str = Field(..., description="Unique record identifier (UUID)")
    job_id: str = Field(..., description="Owning job")
    item_id: str = Field(..., description="Item identifier (name if no explicit id)")
    name: str = Field(..., description="Item name")
    mask: Any = Field(..., description="Opaque mask payload")
    crop: CropRect = Field(..., description="Absolute crop rectangle")
    from_cache: bool = Field(default=False, description="Served from the result cache")
    processed_at: datetime = Field(..., description="Record creation time")

    class Config:
        """Pydantic configuration."""

        frozen = True


class DeadLetteredItem(BaseModel):
    """Item abandoned after exhausting its rate-limit retries."""

    job_id: str
    item_id: str
    name: str
    attempts: int = Field(..., ge=1, description="Rate-limited attempts made")
    reason: str = Field(default="rate limit retries exhausted")
    dead_lettered_at: datetime

    class Config:
        """Pydantic configuration."""

        frozen = True


class Job(BaseModel):
    """Mutable job record, owned by the processing loop once queued.

    ``items`` is the live item sequence: rate-limited items are appended to
    its end for a later pass, so it can grow while the job is processing.
    ``total_item_count`` stays at the submitted length.
    """

    id: str = Field(..., description="Unique job identifier (UUID)")
    owner_id: str = Field(..., description="Submitting owner")
    tier: Tier = Field(default=Tier.FREE)
    items: List[ItemDescriptor] = Field(default_factory=list)
    image: str = Field(default="", repr=False, exclude=True, description="Encoded image")
    image_fingerprint: str = Field(default="", description="Prefix hash of the encoded image")
    image_width: int = Field(default=1024, gt=0)
    image_height: int = Field(default=1024, gt=0)
    status: JobStatus = Field(default=JobStatus.QUEUED)
    priority: float = Field(default=0.0, description="Score frozen at queue insertion")
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    completed_item_count: int = Field(default=0, ge=0)
    total_item_count: int = Field(default=0, ge=0)
    aggregate_value: float = Field(default=0.0, ge=0.0)
    error: Optional[str] = None
    cancel_requested: bool = False
    rate_limit_hits: Dict[int, int] = Field(
        default_factory=dict, description="Rate-limit hits per original item slot"
    )


class CacheEntry(BaseModel):
    """Stored segmentation result; freshness is judged by the caller."""

    key: str
    mask: Any
    crop: CropRect
    written_at: datetime


class Credential(BaseModel):
    """API token with its last issue time (owned by the rotator)."""

    token: str = Field(..., min_length=1, repr=False)
    last_used_at: Optional[datetime] = None


class JobSnapshot(BaseModel):
    """Read-only status view returned to pollers."""

    id: str
    status: JobStatus
    tier: Tier
    completed_item_count: int
    total_item_count: int
    processed_items: List[ProcessedItem] = Field(default_factory=list)
    dead_lettered_items: List[DeadLetteredItem] = Field(default_factory=list)
    created_at: datetime
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
