"""Tests for fingerprints, cache keys and crop arithmetic."""

import hashlib

import pytest

from mask_queue.queue import (
    BoundingBox,
    ItemDescriptor,
    compute_cache_key,
    compute_crop_rect,
    compute_image_fingerprint,
)
from mask_queue.queue.hashing import round_half_up


def make_item(name="sofa", category="furniture", x=50.0, y=50.0, width=20.0, height=10.0):
    return ItemDescriptor(
        name=name,
        category=category,
        bounding_box=BoundingBox(x=x, y=y, width=width, height=height),
    )


class TestImageFingerprint:
    def test_deterministic(self):
        image = "abc" * 1000
        assert compute_image_fingerprint(image) == compute_image_fingerprint(image)
        assert len(compute_image_fingerprint(image)) == 64

    def test_only_prefix_is_hashed(self):
        prefix = "x" * 1000
        assert compute_image_fingerprint(prefix + "tail-1") == compute_image_fingerprint(
            prefix + "tail-2"
        )

    def test_prefix_difference_changes_fingerprint(self):
        assert compute_image_fingerprint("a" * 1000) != compute_image_fingerprint("b" + "a" * 999)

    def test_short_and_empty_images(self):
        assert compute_image_fingerprint("") == hashlib.sha256(b"").hexdigest()
        assert compute_image_fingerprint("abc") == hashlib.sha256(b"abc").hexdigest()

    def test_invalid_prefix(self):
        with pytest.raises(ValueError):
            compute_image_fingerprint("abc", prefix_chars=0)


class TestCacheKey:
    def test_matches_documented_format(self):
        fingerprint = compute_image_fingerprint("img")
        expected = hashlib.sha256(("furniture_sofa_50_50" + fingerprint).encode()).hexdigest()
        assert compute_cache_key(make_item(), fingerprint) == expected

    def test_centers_rounding_alike_share_key(self):
        fingerprint = compute_image_fingerprint("img")
        a = compute_cache_key(make_item(x=50.4, y=49.6), fingerprint)
        b = compute_cache_key(make_item(x=49.5, y=50.2), fingerprint)
        assert a == b

    def test_box_extent_not_part_of_key(self):
        fingerprint = compute_image_fingerprint("img")
        a = compute_cache_key(make_item(width=20, height=10), fingerprint)
        b = compute_cache_key(make_item(width=35, height=12), fingerprint)
        assert a == b

    @pytest.mark.parametrize(
        "changes",
        [{"name": "chair"}, {"category": "decor"}, {"x": 50.5}, {"y": 48.0}],
    )
    def test_attributes_that_change_key(self, changes):
        fingerprint = compute_image_fingerprint("img")
        assert compute_cache_key(make_item(), fingerprint) != compute_cache_key(
            make_item(**changes), fingerprint
        )

    def test_image_fingerprint_changes_key(self):
        item = make_item()
        assert compute_cache_key(item, compute_image_fingerprint("one")) != compute_cache_key(
            item, compute_image_fingerprint("two")
        )


class TestCropRect:
    def test_padded_center_box(self):
        crop = compute_crop_rect(BoundingBox(x=50, y=50, width=20, height=10), 1000, 800)
        assert crop.as_box() == "380 352 620 448"

    def test_clamped_to_top_left(self):
        crop = compute_crop_rect(BoundingBox(x=5, y=5, width=20, height=20), 1000, 800)
        assert (crop.x1, crop.y1) == (0, 0)
        assert crop.as_box() == "0 0 170 136"

    def test_clamped_to_bottom_right(self):
        crop = compute_crop_rect(BoundingBox(x=95, y=95, width=20, height=20), 1000, 800)
        assert (crop.x2, crop.y2) == (1000, 800)

    def test_custom_padding(self):
        crop = compute_crop_rect(
            BoundingBox(x=50, y=50, width=20, height=10), 1000, 800, padding=1.0
        )
        assert crop.as_box() == "400 360 600 440"


@pytest.mark.parametrize(
    "value,expected", [(0.5, 1), (1.5, 2), (2.5, 3), (2.49, 2), (0.0, 0), (-0.4, 0)]
)
def test_round_half_up(value, expected):
    assert round_half_up(value) == expected
