"""Adaptive inter-item delay.

Doubles on every rate-limit response (capped) and relaxes by a fixed step on
every success (floored). The state is shared by all jobs processed by one
loop, since the rate limit belongs to the service, not to a job.
"""


class AdaptiveDelay:
    """Inter-item delay in seconds plus a consecutive error counter."""

    def __init__(
        self,
        initial_s: float = 15.0,
        min_s: float = 10.0,
        max_s: float = 60.0,
        decrement_s: float = 1.0,
    ):
        if not min_s <= initial_s <= max_s:
            raise ValueError(
                f"initial delay {initial_s} must lie within [{min_s}, {max_s}]"
            )
        self.initial_s = initial_s
        self.min_s = min_s
        self.max_s = max_s
        self.decrement_s = decrement_s
        self.current_s = initial_s
        self.consecutive_errors = 0

    def on_rate_limited(self) -> float:
        self.consecutive_errors += 1
        self.current_s = min(self.max_s, self.current_s * 2)
        return self.current_s

    def on_success(self) -> float:
        self.consecutive_errors = 0
        if self.current_s > self.min_s:
            self.current_s = max(self.min_s, self.current_s - self.decrement_s)
        return self.current_s

    def reset(self) -> None:
        self.current_s = self.initial_s
        self.consecutive_errors = 0
