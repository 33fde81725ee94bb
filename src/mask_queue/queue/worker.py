"""Single cooperative processing loop for segmentation jobs.

This module provides the scheduler that drains the priority queue:
- One job and one item in flight at any instant (no locks needed)
- Result cache consulted before any credential is spent
- Credential rotation with cooldown before each external call
- Error classification (rate-limited vs dropped vs defect)
- Adaptive inter-item delay shared across jobs
- Bounded wait around the external call and job cancellation

Suspension points are the external call and the explicit inter-item and
inter-job delays. The loop stops when the queue is empty and is restarted by
the next submission; it never polls.
"""

import asyncio
import logging
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Tuple, Union

from ..models import MaskQueueConfig
from .backends import JobStore, SegmentationClient
from .backoff import AdaptiveDelay
from .cache import ResultCache, fresh_entry
from .credentials import CredentialRotator
from .errors import (
    NoCredentialsAvailable,
    SegmentationError,
    classify_error,
    is_retryable,
)
from .hashing import compute_cache_key, compute_crop_rect, compute_image_fingerprint
from .models import (
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
from .priority import PriorityQueue

logger = logging.getLogger(__name__)


class LoopState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class ItemOutcome(Enum):
    """What happened to one item attempt."""
    CACHED = "cached"                 # Fresh cache hit, no call made
    SUCCEEDED = "succeeded"           # Fresh call produced a mask
    RATE_LIMITED = "rate_limited"     # Re-appended to the job's sequence
    DEAD_LETTERED = "dead_lettered"   # Rate-limit retries exhausted
    DROPPED = "dropped"               # Non-retryable failure
    NO_CREDENTIAL = "no_credential"   # Pool empty, item left unprocessed


class ProcessingLoop:
    """Priority-ordered scheduler around a slow, rate-limited service.

    Features:
    - submit() enqueues a job and starts the loop if it is idle
    - get_status() returns a polling snapshot
    - cancel() stops a queued or in-flight job without failing it
    - Clock and sleep are injectable for deterministic tests

    Example:
        >>> loop = ProcessingLoop(
        ...     store=InMemoryJobStore(),
        ...     cache=ResultCache(),
        ...     rotator=CredentialRotator(["r8_token"]),
        ...     client=ReplicateSegmentationClient(),
        ... )
        >>> job_id = loop.submit("owner-1", items, tier="premium", image=b64)
        >>> await loop.join()
        >>> loop.get_status(job_id).status
        <JobStatus.COMPLETED: 'completed'>
    """

    def __init__(
        self,
        store: JobStore,
        cache: ResultCache,
        rotator: CredentialRotator,
        client: SegmentationClient,
        config: Optional[MaskQueueConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize the loop.

        Args:
            store: Job and processed-item records
            cache: Result cache shared by all jobs
            rotator: Credential pool
            client: External segmentation call
            config: Tunables (defaults when None)
            clock: Source of "now" for timestamps, priority and TTL checks
            sleep: Coroutine used for inter-item and inter-job delays
        """
        self.config = config or MaskQueueConfig()
        self.store = store
        self.cache = cache
        self.rotator = rotator
        self.client = client
        self._clock = clock
        self._sleep = sleep

        self.queue = PriorityQueue(clock=clock)
        backoff = self.config.backoff
        self.backoff = AdaptiveDelay(
            initial_s=backoff.initial_delay_s,
            min_s=backoff.min_delay_s,
            max_s=backoff.max_delay_s,
            decrement_s=backoff.success_decrement_s,
        )
        self.state = LoopState.IDLE
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self.state is LoopState.RUNNING

    def submit(
        self,
        owner_id: str,
        items: Iterable[Union[ItemDescriptor, Dict[str, Any]]],
        tier: Union[Tier, str] = Tier.FREE,
        image: str = "",
        image_size: Optional[Tuple[int, int]] = None,
    ) -> str:
        """Create a job, queue it and start the loop if idle.

        Must be called from within a running event loop.

        Args:
            owner_id: Submitting owner
            items: Item descriptors (models or dicts)
            tier: free, hobby or premium
            image: Base64-encoded image
            image_size: (width, height) in pixels, configured default if None

        Returns:
            The new job id

        Raises:
            ValueError: Unknown tier
            pydantic.ValidationError: Malformed item descriptor
            RuntimeError: Called outside a running event loop (nothing is queued)
        """
        event_loop = asyncio.get_running_loop()

        scheduling = self.config.scheduling
        width, height = image_size or (
            scheduling.default_image_width,
            scheduling.default_image_height,
        )

        descriptors = []
        for slot, raw in enumerate(items):
            item = raw if isinstance(raw, ItemDescriptor) else ItemDescriptor.model_validate(raw)
            descriptors.append(item.model_copy(update={"slot": slot}))

        job = Job(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            tier=Tier(tier),
            items=descriptors,
            image=image,
            image_fingerprint=compute_image_fingerprint(
                image, self.config.cache.fingerprint_prefix_chars
            ),
            image_width=width,
            image_height=height,
            created_at=self._clock(),
            total_item_count=len(descriptors),
            aggregate_value=sum(item.value for item in descriptors),
        )

        self.store.put_job(job)
        score = self.queue.add(job)
        logger.info(
            "Queued job %s (%s tier, %d items, priority %.1f)",
            job.id, job.tier.value, job.total_item_count, score,
        )

        self._ensure_running(event_loop)
        return job.id

    def get_status(self, job_id: str) -> Optional[JobSnapshot]:
        """Read-only snapshot of a job, or None if unknown."""
        job = self.store.get_job(job_id)
        if job is None:
            return None

        return JobSnapshot(
            id=job.id,
            status=job.status,
            tier=job.tier,
            completed_item_count=job.completed_item_count,
            total_item_count=job.total_item_count,
            processed_items=self.store.processed_items(job_id),
            dead_lettered_items=self.store.dead_lettered_items(job_id),
            created_at=job.created_at,
            completed_at=job.completed_at,
            error=job.error,
        )

    def cancel(self, job_id: str) -> bool:
        """Cancel a queued or in-flight job.

        A queued job leaves the queue immediately. An in-flight job stops
        once the item currently awaiting the service finishes (its result is
        recorded), without waiting out the inter-item delay. This holds for
        the last item too: the job ends cancelled, not completed.

        Returns:
            False if the job is unknown or already terminal
        """
        job = self.store.get_job(job_id)
        if job is None or job.status.is_terminal:
            return False

        if job.status is JobStatus.QUEUED:
            self.queue.remove(job_id)
            self._finish(job, JobStatus.CANCELLED)
            logger.info("Cancelled queued job %s", job_id)
        else:
            job.cancel_requested = True
            logger.info("Cancellation requested for job %s", job_id)
        return True

    def get_stats(self) -> Dict[str, int]:
        """Job counts per status plus the current queue length."""
        jobs = self.store.all_jobs()
        stats = {status.value: 0 for status in JobStatus}
        for job in jobs:
            stats[job.status.value] += 1
        stats["total"] = len(jobs)
        stats["queue_length"] = self.queue.size()
        return stats

    async def join(self) -> None:
        """Wait until the loop has drained the queue."""
        while self._task is not None and not self._task.done():
            await self._task

    async def aclose(self) -> None:
        """Stop the loop and close the client.

        An in-flight job ends cancelled; queued jobs stay queued.
        """
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        # A task cancelled before its first step never reaches _run's finally
        self.state = LoopState.IDLE
        await self.client.aclose()

    def _ensure_running(self, event_loop: asyncio.AbstractEventLoop) -> None:
        if self.state is LoopState.RUNNING:
            return
        self._task = event_loop.create_task(self._run())
        self.state = LoopState.RUNNING

    async def _run(self) -> None:
        logger.info("Starting queue processing (%d jobs queued)", self.queue.size())
        try:
            while self.queue.size() > 0:
                job = self.queue.remove_highest()
                await self._process_job(job)

                if self.queue.size() > 0:
                    await self._sleep(self.config.scheduling.inter_job_delay_s)
        finally:
            self.state = LoopState.IDLE
            logger.info("Queue processing stopped - no more jobs")

    async def _process_job(self, job: Job) -> None:
        job.status = JobStatus.PROCESSING
        job.started_at = self._clock()
        logger.info("Processing job %s with %d items", job.id, len(job.items))

        try:
            # The bound is re-read every pass: rate-limited items are appended
            index = 0
            while index < len(job.items):
                if job.cancel_requested:
                    self._cancel_in_flight(job)
                    return

                outcome = await self._process_item(job, job.items[index])

                # Cancelled during the call: stop before the delay, even after the last item
                if job.cancel_requested:
                    self._cancel_in_flight(job)
                    return

                is_last = index >= len(job.items) - 1
                if outcome is not ItemOutcome.CACHED and not is_last:
                    logger.debug("Waiting %.1fs before next item", self.backoff.current_s)
                    await self._sleep(self.backoff.current_s)

                index += 1

            self._finish(job, JobStatus.COMPLETED)
            logger.info(
                "Job %s completed (%d/%d items)",
                job.id, job.completed_item_count, job.total_item_count,
            )

        except asyncio.CancelledError:
            # Loop shut down (aclose) while the job was in flight
            self._finish(job, JobStatus.CANCELLED)
            logger.info("Job %s cancelled by loop shutdown", job.id)
            raise

        except Exception as e:
            job.error = f"{type(e).__name__}: {e}"
            self._finish(job, JobStatus.FAILED)
            logger.exception("Job %s failed", job.id)

    def _cancel_in_flight(self, job: Job) -> None:
        self._finish(job, JobStatus.CANCELLED)
        logger.info(
            "Job %s cancelled after %d/%d items",
            job.id, job.completed_item_count, job.total_item_count,
        )

    async def _process_item(self, job: Job, item: ItemDescriptor) -> ItemOutcome:
        cache_key = compute_cache_key(item, job.image_fingerprint)
        cached = fresh_entry(self.cache, cache_key, self.config.cache.ttl_s, self._clock())

        if cached is not None:
            logger.debug("Using cached mask for %s", item.name)
            self._record(job, item, cached.mask, cached.crop, from_cache=True)
            return ItemOutcome.CACHED

        try:
            credential = self.rotator.next()
        except NoCredentialsAvailable as e:
            logger.warning("Skipping %s in job %s: %s", item.name, job.id, e)
            return ItemOutcome.NO_CREDENTIAL

        crop = compute_crop_rect(
            item.bounding_box,
            job.image_width,
            job.image_height,
            padding=self.config.scheduling.crop_padding,
        )

        try:
            result = await self._call_service(job.image, credential, crop)
        except (SegmentationError, asyncio.TimeoutError) as e:
            return self._handle_failure(job, item, e)

        self.cache.set(cache_key, result.mask, result.crop)
        self._record(job, item, result.mask, result.crop)
        self.backoff.on_success()
        return ItemOutcome.SUCCEEDED

    async def _call_service(
        self, image: str, credential: str, crop: CropRect
    ) -> SegmentationResult:
        call = self.client.segment(image, credential, crop)
        timeout = self.config.scheduling.call_timeout_s
        if timeout is None:
            return await call
        return await asyncio.wait_for(call, timeout=timeout)

    def _handle_failure(self, job: Job, item: ItemDescriptor, exc: BaseException) -> ItemOutcome:
        if not is_retryable(exc):
            logger.warning(
                "Dropping %s in job %s (%s): %s",
                item.name, job.id, classify_error(exc).value, exc,
            )
            return ItemOutcome.DROPPED

        delay = self.backoff.on_rate_limited()
        hits = job.rate_limit_hits.get(item.slot, 0) + 1
        job.rate_limit_hits[item.slot] = hits

        max_retries = self.config.backoff.max_rate_limit_retries
        if max_retries is not None and hits > max_retries:
            self.store.add_dead_lettered_item(
                DeadLetteredItem(
                    job_id=job.id,
                    item_id=item.item_id,
                    name=item.name,
                    attempts=hits,
                    dead_lettered_at=self._clock(),
                )
            )
            logger.warning(
                "Dead-lettered %s in job %s after %d rate-limited attempts",
                item.name, job.id, hits,
            )
            return ItemOutcome.DEAD_LETTERED

        job.items.append(item)
        logger.warning(
            "Rate limited on %s (attempt %d). Increasing delay to %.0fs",
            item.name, hits, delay,
        )
        return ItemOutcome.RATE_LIMITED

    def _record(
        self, job: Job, item: ItemDescriptor, mask: Any, crop: CropRect, from_cache: bool = False
    ) -> None:
        self.store.add_processed_item(
            ProcessedItem(
                id=str(uuid.uuid4()),
                job_id=job.id,
                item_id=item.item_id,
                name=item.name,
                mask=mask,
                crop=crop,
                from_cache=from_cache,
                processed_at=self._clock(),
            )
        )
        job.completed_item_count += 1

    def _finish(self, job: Job, status: JobStatus) -> None:
        job.status = status
        job.completed_at = self._clock()
