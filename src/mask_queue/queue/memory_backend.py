"""In-memory implementation of JobStore.

Jobs are retained for status queries for the lifetime of the process; nothing
is durable across restarts. All access happens from the single processing
loop and the event loop thread that serves status queries, so no locking is
needed.
"""

from collections import defaultdict
from typing import Dict, List, Optional

from .backends import JobStore
from .models import DeadLetteredItem, Job, JobStatus, ProcessedItem


class InMemoryJobStore(JobStore):
    """Dict-backed job store.

    Features:
    - O(1) job lookup by id
    - Per-job result lists, so status queries do not scan every record
    """

    def __init__(self):
        self._jobs: Dict[str, Job] = {}
        self._processed: Dict[str, List[ProcessedItem]] = defaultdict(list)
        self._dead_lettered: Dict[str, List[DeadLetteredItem]] = defaultdict(list)

    def put_job(self, job: Job) -> None:
        self._jobs[job.id] = job

    def get_job(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def add_processed_item(self, item: ProcessedItem) -> None:
        self._processed[item.job_id].append(item)

    def processed_items(self, job_id: str) -> List[ProcessedItem]:
        return list(self._processed.get(job_id, []))

    def add_dead_lettered_item(self, item: DeadLetteredItem) -> None:
        self._dead_lettered[item.job_id].append(item)

    def dead_lettered_items(self, job_id: str) -> List[DeadLetteredItem]:
        return list(self._dead_lettered.get(job_id, []))

    def all_jobs(self, status_filter: Optional[str] = None) -> List[Job]:
        jobs = list(self._jobs.values())
        if status_filter is None:
            return jobs
        wanted = JobStatus(status_filter)
        return [job for job in jobs if job.status == wanted]

    def __len__(self) -> int:
        return len(self._jobs)
