from __future__ import annotations

"""Abstract base classes for job storage and the external segmentation call.

This module defines the interfaces the processing loop depends on. The stores
are explicit objects constructed at startup and injected into the loop, so a
persistent implementation (Redis, SQL) can replace the in-memory one without
touching the scheduler.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from .models import CropRect, DeadLetteredItem, Job, ProcessedItem, SegmentationResult


class JobStore(ABC):
    """Abstract store for job and per-item result records.

    Implementations must provide:
    - Lookup of jobs by id for status queries
    - Append-only storage of ProcessedItem and DeadLetteredItem records
    - Per-job listing of those records in insertion order
    """

    @abstractmethod
    def put_job(self, job: "Job") -> None:
        """Insert or replace a job record.

        Args:
            job: Job to store (keyed by job.id)
        """
        pass

    @abstractmethod
    def get_job(self, job_id: str) -> Optional["Job"]:
        """Return the job record or None if unknown."""
        pass

    @abstractmethod
    def add_processed_item(self, item: "ProcessedItem") -> None:
        """Record one item attempt that produced a mask.

        Implementation notes:
        - Records are immutable and never updated
        - Cache hits produce a record just like fresh calls
        """
        pass

    @abstractmethod
    def processed_items(self, job_id: str) -> List["ProcessedItem"]:
        """List processed items of a job in the order they were recorded."""
        pass

    @abstractmethod
    def add_dead_lettered_item(self, item: "DeadLetteredItem") -> None:
        """Record an item abandoned after its rate-limit retries ran out."""
        pass

    @abstractmethod
    def dead_lettered_items(self, job_id: str) -> List["DeadLetteredItem"]:
        """List dead-lettered items of a job in the order they were recorded."""
        pass

    @abstractmethod
    def all_jobs(self, status_filter: Optional[str] = None) -> List["Job"]:
        """Query jobs, optionally by status.

        Implementation notes:
        - Can be O(n), only used for statistics
        """
        pass


class SegmentationClient(ABC):
    """Boundary contract of the slow external segmentation service.

    Implementations raise:
    - RateLimited for rate-limit responses (the only retried failure)
    - NoMaskReturned when the service answers without a mask
    - TransportError for network, HTTP or prediction failures
    """

    @abstractmethod
    async def segment(
        self, image: str, credential: str, crop: "CropRect"
    ) -> "SegmentationResult":
        """Run segmentation of one crop rectangle.

        Args:
            image: Base64-encoded image
            credential: API token selected by the rotator
            crop: Absolute padded crop rectangle

        Returns:
            SegmentationResult with the mask and the crop used
        """
        pass

    async def aclose(self) -> None:
        """Release network resources (no-op by default)."""
        return None
