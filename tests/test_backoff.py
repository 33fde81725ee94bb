"""Tests for the adaptive inter-item delay."""

import pytest

from mask_queue.queue import AdaptiveDelay


def test_doubles_and_caps():
    delay = AdaptiveDelay(initial_s=15, min_s=10, max_s=60)
    assert [delay.on_rate_limited() for _ in range(3)] == [30, 60, 60]
    assert delay.consecutive_errors == 3


def test_success_relaxes_by_step():
    delay = AdaptiveDelay(initial_s=15, min_s=10, max_s=60)
    delay.on_rate_limited()
    delay.on_rate_limited()
    assert delay.on_success() == 59
    assert delay.consecutive_errors == 0


def test_floor_at_minimum():
    delay = AdaptiveDelay(initial_s=12, min_s=10, max_s=60, decrement_s=1.5)
    assert [delay.on_success() for _ in range(3)] == [10.5, 10, 10]


def test_success_at_floor_is_noop():
    delay = AdaptiveDelay(initial_s=10, min_s=10, max_s=60)
    assert delay.on_success() == 10


def test_reset():
    delay = AdaptiveDelay()
    delay.on_rate_limited()
    delay.reset()
    assert delay.current_s == 15
    assert delay.consecutive_errors == 0


@pytest.mark.parametrize("initial,low,high", [(5, 10, 60), (70, 10, 60), (15, 30, 20)])
def test_invalid_bounds(initial, low, high):
    with pytest.raises(ValueError):
        AdaptiveDelay(initial_s=initial, min_s=low, max_s=high)
