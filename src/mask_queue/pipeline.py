"""High-level wiring for the segmentation queue.

This module builds a ready-to-use ProcessingLoop from resolved configuration:
stores and cache are constructed here, once, and injected into the loop.

Usage:
    loop = pipeline.build_processing_loop()

    job_id = loop.submit("owner-1", items, tier="hobby", image=image_b64,
                         image_size=(1920, 1080))
    await loop.join()
    snapshot = loop.get_status(job_id)

    # Or, for scripts that want to block on one job:
    snapshot = await pipeline.segment_items(loop, "owner-1", items, image=image_b64)
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from . import config as config_lib
from .models import MaskQueueConfig
from .queue import (
    CredentialRotator,
    InMemoryJobStore,
    ItemDescriptor,
    JobSnapshot,
    ProcessingLoop,
    ResultCache,
    SegmentationClient,
    tokens_from_env,
)
from .replicate_client import ReplicateSegmentationClient

logger = logging.getLogger(__name__)


def collect_tokens(config: MaskQueueConfig) -> List[str]:
    """Explicit tokens first, then environment tokens, without duplicates."""
    tokens = []
    for token in list(config.credentials.tokens) + tokens_from_env(config.credentials.env_vars):
        if token and token not in tokens:
            tokens.append(token)
    return tokens


def build_processing_loop(
    config: Optional[MaskQueueConfig] = None,
    client: Optional[SegmentationClient] = None,
    tokens: Optional[List[str]] = None,
    clock: Callable[[], datetime] = datetime.now,
    **loop_kwargs: Any,
) -> ProcessingLoop:
    """Construct stores, cache, rotator and client, and return the loop.

    Applies config.logging.level through setup_logging(), which leaves an
    already configured root logger untouched.

    Args:
        config: Resolved configuration (resolve_config() when None)
        client: Segmentation client (Replicate client when None)
        tokens: Credential pool (collected from config/env when None)
        clock: Shared clock for all components
        **loop_kwargs: Passed through to ProcessingLoop (e.g. sleep)

    Returns:
        An idle ProcessingLoop
    """
    config = config or config_lib.resolve_config()
    config_lib.setup_logging(config.logging.level)

    if tokens is None:
        tokens = collect_tokens(config)

    if not tokens:
        logger.warning("No segmentation credentials found; uncached items will be skipped")

    return ProcessingLoop(
        store=InMemoryJobStore(),
        cache=ResultCache(capacity=config.cache.capacity, clock=clock),
        rotator=CredentialRotator(tokens, cooldown_s=config.credentials.cooldown_s, clock=clock),
        client=client or ReplicateSegmentationClient(config.replicate),
        config=config,
        clock=clock,
        **loop_kwargs,
    )


async def segment_items(
    loop: ProcessingLoop,
    owner_id: str,
    items: Iterable[Union[ItemDescriptor, Dict[str, Any]]],
    tier: str = "free",
    image: str = "",
    image_size: Optional[Tuple[int, int]] = None,
) -> JobSnapshot:
    """Submit one job and wait for the loop to drain.

    Other jobs queued on the same loop are processed too, in priority order,
    before this returns.
    """
    job_id = loop.submit(owner_id, items, tier=tier, image=image, image_size=image_size)
    await loop.join()
    return loop.get_status(job_id)
