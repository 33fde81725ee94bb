"""Priority ordering for pending jobs.

Scores are computed once, when a job is added, and never re-evaluated while
the job waits. The wait-time term is therefore ~0 for a freshly submitted
job: this is a static snapshot, not aging-based starvation protection.
A starvation-free design would need periodic re-scoring.
"""

from datetime import datetime
from typing import Callable, List, Optional

from .models import Job, Tier

TIER_WEIGHTS = {
    Tier.PREMIUM: 10000,
    Tier.HOBBY: 5000,
    Tier.FREE: 0,
}

VALUE_CAP = 1000
ITEM_COUNT_PIVOT = 10  # Jobs with fewer items than this get a bonus
ITEM_COUNT_WEIGHT = 100


def calculate_priority(job: Job, now: datetime) -> float:
    """Score = tier weight + capped value + wait seconds + small-job bonus."""
    score = float(TIER_WEIGHTS.get(Tier(job.tier), 0))
    score += min(job.aggregate_value, VALUE_CAP)
    score += (now - job.created_at).total_seconds()
    score += (ITEM_COUNT_PIVOT - len(job.items)) * ITEM_COUNT_WEIGHT
    return score


class PriorityQueue:
    """List kept sorted by descending score, FIFO among equal scores."""

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self._clock = clock
        self._jobs: List[Job] = []

    def add(self, job: Job) -> float:
        """Score the job and insert it before the first strictly lower score.

        Returns:
            The computed score (also stored on job.priority)
        """
        score = calculate_priority(job, self._clock())
        job.priority = score

        index = next(
            (i for i, queued in enumerate(self._jobs) if queued.priority < score),
            None,
        )
        if index is None:
            self._jobs.append(job)
        else:
            self._jobs.insert(index, job)

        return score

    def remove_highest(self) -> Optional[Job]:
        """Pop the front entry, or None if empty."""
        if not self._jobs:
            return None
        return self._jobs.pop(0)

    def remove(self, job_id: str) -> Optional[Job]:
        """Take a queued job out by id (used for cancellation)."""
        for i, queued in enumerate(self._jobs):
            if queued.id == job_id:
                return self._jobs.pop(i)
        return None

    def size(self) -> int:
        return len(self._jobs)

    def __len__(self) -> int:
        return len(self._jobs)

    def job_ids(self) -> List[str]:
        return [job.id for job in self._jobs]
