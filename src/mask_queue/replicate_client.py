"""Replicate-hosted SAM 2 segmentation client.

This module implements the external segmentation call used by the
processing loop:

Key Features:
- One prediction per crop rectangle (box prompt, single mask output)
- Synchronous wait via the "Prefer: wait" header, with polling fallback
- Error classification for retry logic (429 → RateLimited)
- Credential passed per call, so the rotator decides which token is spent
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from .models import ReplicateConfig
from .queue.backends import SegmentationClient
from .queue.errors import NoMaskReturned, RateLimited, TransportError
from .queue.models import CropRect, SegmentationResult

logger = logging.getLogger(__name__)

TERMINAL_STATES = {"succeeded", "failed", "canceled"}


class ReplicateSegmentationClient(SegmentationClient):
    """SegmentationClient backed by Replicate's predictions API.

    Example:
        >>> client = ReplicateSegmentationClient(ReplicateConfig())
        >>> result = await client.segment(image_b64, "r8_...", CropRect(x1=0, y1=0, x2=64, y2=64))
        >>> result.mask
        'https://replicate.delivery/.../mask.png'
        >>> await client.aclose()
    """

    def __init__(
        self,
        config: Optional[ReplicateConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize client.

        Args:
            config: Endpoint settings (defaults when None)
            http_client: Preconfigured client (tests pass a MockTransport)
            sleep: Coroutine used between polls
        """
        self.config = config or ReplicateConfig()
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.config.request_timeout_s)
        )
        self._sleep = sleep

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def segment(self, image: str, credential: str, crop: CropRect) -> SegmentationResult:
        """Run SAM 2 on one crop rectangle.

        Raises:
            RateLimited: HTTP 429 on any request
            NoMaskReturned: Prediction succeeded with empty output
            TransportError: Network failure, other HTTP error, failed prediction
        """
        url = f"{self.config.base_url.rstrip('/')}/models/{self.config.model}/predictions"
        payload = {
            "input": {
                "image": f"data:{self.config.image_mime};base64,{image}",
                "box": crop.as_box(),
                "model_size": self.config.model_size,
                "multimask_output": False,
            }
        }
        headers = self._headers(credential)
        headers["Prefer"] = "wait"

        prediction = await self._request("POST", url, headers=headers, json=payload)

        while prediction.get("status") not in TERMINAL_STATES:
            poll_url = (prediction.get("urls") or {}).get("get")
            if not poll_url:
                raise TransportError("Prediction is still running but has no poll URL")
            await self._sleep(self.config.poll_interval_s)
            prediction = await self._request("GET", poll_url, headers=self._headers(credential))

        if prediction["status"] != "succeeded":
            raise TransportError(
                f"Prediction {prediction.get('id', '?')} {prediction['status']}: "
                f"{prediction.get('error') or 'no error detail'}"
            )

        mask = extract_mask(prediction.get("output"))
        if mask is None:
            raise NoMaskReturned("SAM returned no mask")

        return SegmentationResult(mask=mask, crop=crop)

    def _headers(self, credential: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {credential}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.RequestError as e:
            raise TransportError(f"{type(e).__name__}: {e}") from e

        if response.status_code == 429:
            raise RateLimited("Replicate rate limit (429)", status_code=429)

        if not response.is_success:
            raise TransportError(
                f"Replicate returned {response.status_code}: {response.text[:500]}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"Invalid response format: {e}") from e


def extract_mask(output: Any) -> Optional[Any]:
    """Pick the single mask out of a prediction output.

    Handles the list form (first element) and the dict form
    (combined_mask, else first of individual_masks).
    """
    if not output:
        return None
    if isinstance(output, list):
        return output[0] or None
    if isinstance(output, dict):
        if output.get("combined_mask"):
            return output["combined_mask"]
        masks = output.get("individual_masks") or []
        return masks[0] if masks else None
    return output
