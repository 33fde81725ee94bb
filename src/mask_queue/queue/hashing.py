"""Fingerprinting functions for result caching.

This module implements the cheap keys used by the result cache:
1. Image fingerprint: SHA-256 of a fixed-size prefix of the encoded image
2. Cache key: SHA-256 of item attributes combined with the image fingerprint

Prefix collisions between different images are tolerated because the item
category, name and rounded center disambiguate in practice.

It also holds the crop rectangle arithmetic, which needs the same half-up
rounding as the cache key.
"""

import hashlib
import math

from .models import BoundingBox, CropRect, ItemDescriptor

DEFAULT_FINGERPRINT_PREFIX = 1000


def round_half_up(value: float) -> int:
    """Round .5 away from zero on the positive side (0.5 → 1, 2.5 → 3)."""
    return int(math.floor(value + 0.5))


def compute_image_fingerprint(image: str, prefix_chars: int = DEFAULT_FINGERPRINT_PREFIX) -> str:
    """Compute a cheap fingerprint of an encoded image.

    Args:
        image: Base64-encoded image payload
        prefix_chars: Number of leading characters to hash

    Returns:
        SHA-256 hex digest of the prefix

    Notes:
        - Only the prefix is read, so cost is O(1) in image size
        - An empty image hashes to the digest of the empty string
    """
    if prefix_chars <= 0:
        raise ValueError(f"prefix_chars must be positive, got {prefix_chars}")

    return hashlib.sha256(image[:prefix_chars].encode()).hexdigest()


def compute_cache_key(item: ItemDescriptor, image_fingerprint: str) -> str:
    """Compute deterministic cache key for an item within an image.

    Args:
        item: Item descriptor (category, name and box center are used)
        image_fingerprint: Result of compute_image_fingerprint()

    Returns:
        SHA-256 hex digest (64 chars)

    The box size is not part of the key: two detections of the same object
    with a slightly different extent share a mask.
    """
    box = item.bounding_box
    item_string = (
        f"{item.category}_{item.name}_{round_half_up(box.x)}_{round_half_up(box.y)}"
    )
    return hashlib.sha256((item_string + image_fingerprint).encode()).hexdigest()


def compute_crop_rect(
    box: BoundingBox,
    image_width: int,
    image_height: int,
    padding: float = 1.2,
) -> CropRect:
    """Convert a percentage box into a padded absolute rectangle.

    Args:
        box: Center-based box in percent of the image dimensions
        image_width: Image width in pixels
        image_height: Image height in pixels
        padding: Multiplier applied to the box extent

    Returns:
        CropRect clamped to [0, width] x [0, height]
    """
    center_x = box.x / 100 * image_width
    center_y = box.y / 100 * image_height
    box_w = (box.width / 100 * image_width) * padding
    box_h = (box.height / 100 * image_height) * padding

    return CropRect(
        x1=max(0, round_half_up(center_x - box_w / 2)),
        y1=max(0, round_half_up(center_y - box_h / 2)),
        x2=min(image_width, round_half_up(center_x + box_w / 2)),
        y2=min(image_height, round_half_up(center_y + box_h / 2)),
    )
