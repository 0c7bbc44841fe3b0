"""Job orchestration: accept listing URLs, run pipelines, report progress."""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

from listing_optimizer.errors import NotFoundError, ValidationError
from listing_optimizer.models.job import JobSnapshot, JobStatus, OptimizationJob
from listing_optimizer.workers.optimization import OptimizationPipeline

logger = logging.getLogger(__name__)

MAX_IMAGES_LIMIT = 20
EXPIRED_JOB_MESSAGE = "Job expired"


class JobOrchestrator:
    """Owns the job lifecycle.

    Submissions return immediately with a job id; the pipeline runs on a
    bounded pool of job workers. Cancellation is cooperative: the job is
    marked cancelled under the repository lock, then its cancel event is set
    so in-flight stages stop at their next checkpoint.
    """

    def __init__(
        self,
        repository,
        scraper,
        classifier,
        optimizer,
        batch_manager,
        fetch_image,
        job_workers=4,
        image_workers=4,
        retry_attempts=3,
        retry_base_delay=2.0,
        max_images=10,
        job_ttl=86400,
        job_retention=86400,
    ):
        self.repository = repository
        self.scraper = scraper
        self.batch_manager = batch_manager
        self.max_images = self._check_max_images(max_images)
        self.job_ttl = job_ttl
        self.job_retention = job_retention
        self.pipeline = OptimizationPipeline(
            repository,
            scraper,
            classifier,
            optimizer,
            batch_manager,
            fetch_image,
            image_workers=image_workers,
            retry_attempts=retry_attempts,
            retry_base_delay=retry_base_delay,
        )
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, job_workers), thread_name_prefix="optimizer-job"
        )
        self._lock = threading.Lock()
        self._cancel_events = {}
        self._futures = {}

    @staticmethod
    def _check_max_images(value):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError("max_images must be an integer")
        if not 1 <= value <= MAX_IMAGES_LIMIT:
            raise ValidationError(f"max_images must be between 1 and {MAX_IMAGES_LIMIT}")
        return value

    def submit_job(self, url, max_images=None):
        """Validate ``url``, create a pending job and start its pipeline.

        Raises ValidationError before anything is stored. Returns the job id.
        """
        listing_url = self.scraper.validate_listing_url(url)
        limit = self.max_images if max_images is None else self._check_max_images(max_images)

        job = self.repository.create(OptimizationJob(listing_url=listing_url))
        event = threading.Event()
        with self._lock:
            self._cancel_events[job.id] = event
            self._futures[job.id] = self._executor.submit(self._run, job.id, event, limit)
        logger.info("Job %s submitted for %s (max_images=%d)", job.id, listing_url, limit)
        return job.id

    def _run(self, job_id, event, max_images):
        try:
            self.pipeline.run(job_id, event, max_images)
        except NotFoundError:
            logger.info("Job %s was removed while running", job_id)
        except Exception:
            logger.exception("Pipeline for job %s crashed", job_id)
            raise
        finally:
            with self._lock:
                self._cancel_events.pop(job_id, None)

    def get_job_snapshot(self, job_id):
        return JobSnapshot.from_job(self.repository.get(job_id))

    def get_optimized_image(self, job_id, image_id):
        """Return the optimized image ``image_id`` (or the twin of that original)."""
        job = self.repository.get(job_id)
        image = job.get_optimized(image_id)
        if image is None or image.optimized_content is None:
            raise NotFoundError(f"Optimized image not found: {image_id}")
        return image

    def cancel_job(self, job_id, reason=None):
        """Cancel a live job. Returns False if it had already finished."""
        outcome = {"cancelled": False}

        def apply(job):
            if job.is_terminal:
                return
            job.status = JobStatus.CANCELLED
            job.error = reason
            job.completed_at = job.updated_at
            outcome["cancelled"] = True

        self.repository.modify(job_id, apply)
        if outcome["cancelled"]:
            with self._lock:
                event = self._cancel_events.get(job_id)
            if event is not None:
                event.set()
            logger.info("Job %s cancelled%s", job_id, f" ({reason})" if reason else "")
        return outcome["cancelled"]

    def wait(self, job_id, timeout=None):
        """Block until the job's pipeline returns, then snapshot it."""
        with self._lock:
            future = self._futures.get(job_id)
        if future is not None:
            future.result(timeout=timeout)
        return self.get_job_snapshot(job_id)

    def sweep_expired_jobs(self, now=None):
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(seconds=self.job_ttl)
        expired = 0
        for job in self.repository.find_expired_jobs(cutoff):
            try:
                if self.cancel_job(job.id, reason=EXPIRED_JOB_MESSAGE):
                    expired += 1
            except NotFoundError:
                continue
        if expired:
            logger.info("Expired %d stale jobs", expired)
        return expired

    def purge_finished_jobs(self, now=None):
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(seconds=self.job_retention)
        purged = 0
        for job in self.repository.find_finished_before(cutoff):
            self.repository.delete(job.id)
            with self._lock:
                self._futures.pop(job.id, None)
            purged += 1
        if purged:
            logger.info("Purged %d finished jobs", purged)
        return purged

    def stats(self):
        stats = self.repository.stats()
        with self._lock:
            stats["running_jobs"] = len(self._cancel_events)
        return stats

    def shutdown(self, wait=True):
        with self._lock:
            events = list(self._cancel_events.values())
        for event in events:
            event.set()
        self._executor.shutdown(wait=wait, cancel_futures=True)
        backend_shutdown = getattr(self.batch_manager.backend, "shutdown", None)
        if backend_shutdown is not None:
            backend_shutdown()
