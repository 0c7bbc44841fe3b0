"""Process-local store for optimization jobs.

Every read returns a deep copy and every write stores one, so callers never
hold a reference to shared state. Read-modify-write goes through ``modify``,
which runs under the store lock.
"""
import copy
import logging
import threading
from collections import Counter
from datetime import datetime, timezone

from listing_optimizer.errors import DuplicateIdError, NotFoundError
from listing_optimizer.models.job import LIVE_JOB_STATUSES, TERMINAL_JOB_STATUSES, JobStatus

logger = logging.getLogger(__name__)


class InMemoryJobRepository:
    def __init__(self):
        self._jobs = {}  # insertion-ordered
        self._lock = threading.RLock()

    def create(self, job):
        with self._lock:
            if job.id in self._jobs:
                raise DuplicateIdError(f"Job already exists: {job.id}")
            self._jobs[job.id] = copy.deepcopy(job)
            logger.debug("Job created %s (total=%d)", job.id, len(self._jobs))
            return copy.deepcopy(self._jobs[job.id])

    def find_by_id(self, job_id):
        with self._lock:
            job = self._jobs.get(job_id)
            return copy.deepcopy(job) if job is not None else None

    def get(self, job_id):
        """Like ``find_by_id`` but raises NotFoundError when absent."""
        job = self.find_by_id(job_id)
        if job is None:
            raise NotFoundError(f"Job not found: {job_id}")
        return job

    def update(self, job):
        with self._lock:
            if job.id not in self._jobs:
                raise NotFoundError(f"Job not found: {job.id}")
            self._jobs[job.id] = copy.deepcopy(job)
            logger.debug("Job updated %s [%s]", job.id, job.status.value)
            return copy.deepcopy(job)

    def update_status(self, job_id, status, error=None):
        status = JobStatus(status)

        def apply(job):
            job.status = status
            if error is not None:
                job.error = error
            if status in TERMINAL_JOB_STATUSES:
                job.completed_at = job.updated_at

        job = self.modify(job_id, apply)
        logger.info("Job %s status -> %s", job_id, status.value)
        return job

    def modify(self, job_id, mutator):
        """Apply ``mutator(job)`` atomically to the stored job.

        The mutator receives a private copy which replaces the stored record
        only if it returns without raising. ``updated_at`` is set before the
        mutator runs. Returns a copy of the job as stored.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise NotFoundError(f"Job not found: {job_id}")
            working = copy.deepcopy(job)
            working.updated_at = datetime.now(timezone.utc)
            mutator(working)
            self._jobs[job_id] = working
            return copy.deepcopy(working)

    def delete(self, job_id):
        with self._lock:
            deleted = self._jobs.pop(job_id, None) is not None
        logger.debug("Job delete %s (existed=%s)", job_id, deleted)

    def find_by_status(self, status):
        status = JobStatus(status)
        with self._lock:
            return [copy.deepcopy(j) for j in self._jobs.values() if j.status == status]

    def find_expired_jobs(self, older_than):
        """Live jobs created before ``older_than``. Terminal jobs never qualify."""
        with self._lock:
            jobs = [
                copy.deepcopy(j)
                for j in self._jobs.values()
                if j.created_at < older_than and j.status in LIVE_JOB_STATUSES
            ]
        logger.debug("Expired jobs found: %d (older than %s)", len(jobs), older_than)
        return jobs

    def find_finished_before(self, before):
        with self._lock:
            return [
                copy.deepcopy(j)
                for j in self._jobs.values()
                if j.status in TERMINAL_JOB_STATUSES
                and j.completed_at is not None
                and j.completed_at < before
            ]

    def stats(self):
        with self._lock:
            counts = Counter(j.status.value for j in self._jobs.values())
            return {"total_jobs": len(self._jobs), "by_status": dict(counts)}

    def __len__(self):
        with self._lock:
            return len(self._jobs)
