"""Runs one classification or optimization stage as a single remote batch.

A BatchJob moves pending -> running -> completed | failed | cancelled |
expired. ``expired`` only happens when the poll budget runs out while the
remote side is still running.
"""
import copy
import logging
import threading
import time

from listing_optimizer.errors import (
    BatchError,
    BatchFailedError,
    BatchSubmissionError,
    BatchTimeoutError,
    JobCancelledError,
    NotFoundError,
)
from listing_optimizer.models.batch_job import (
    TERMINAL_BATCH_STATUSES,
    BatchItemResult,
    BatchJob,
    BatchKind,
    BatchStatus,
)

logger = logging.getLogger(__name__)

STRATEGY_BATCH = "batch"
STRATEGY_INDIVIDUAL = "individual"

DEFAULT_BATCH_SIZE_THRESHOLD = 5
DEFAULT_POLL_INTERVAL = 30  # seconds
DEFAULT_MAX_POLL_ATTEMPTS = 2880  # 24h at 30s


class BatchExecutionManager:
    def __init__(
        self,
        backend,
        threshold=DEFAULT_BATCH_SIZE_THRESHOLD,
        poll_interval=DEFAULT_POLL_INTERVAL,
        max_poll_attempts=DEFAULT_MAX_POLL_ATTEMPTS,
    ):
        self.backend = backend
        self.threshold = threshold
        self.poll_interval = poll_interval
        self.max_poll_attempts = max(1, max_poll_attempts)
        self._batches = {}
        self._lock = threading.Lock()

    def decide_strategy(self, item_count):
        return STRATEGY_BATCH if item_count >= self.threshold else STRATEGY_INDIVIDUAL

    def run_batch(self, kind, requests):
        """Submit ``requests`` as one remote batch and return the BatchJob id.

        Raises:
            BatchSubmissionError if the remote side refuses the batch.
        """
        kind = BatchKind(kind)
        batch = BatchJob(kind=kind, request_ids=[r.request_id for r in requests])
        with self._lock:
            self._batches[batch.id] = batch

        try:
            remote_name = self.backend.submit(kind, requests)
        except Exception as e:
            logger.warning("Batch %s submission failed: %s", batch.id, e)
            with self._lock:
                batch.finish(BatchStatus.FAILED, error=str(e))
            raise BatchSubmissionError(f"Failed to submit {kind.value} batch: {e}") from e

        with self._lock:
            batch.remote_name = remote_name
            if batch.status == BatchStatus.PENDING:
                batch.status = BatchStatus.RUNNING
        logger.info(
            "Batch %s submitted: %s x%d (remote=%s)",
            batch.id,
            kind.value,
            len(requests),
            remote_name,
        )
        return batch.id

    def get_batch_job(self, batch_id):
        with self._lock:
            return copy.deepcopy(self._get(batch_id))

    def poll_until_done(self, batch_id, cancel_event=None):
        """Poll the remote batch at a fixed interval until it leaves ``running``.

        Waiting happens on ``cancel_event`` when one is given, so a cancelled
        job stops polling at the next wait and the batch is cancelled.
        """
        for attempt in range(1, self.max_poll_attempts + 1):
            with self._lock:
                batch = self._get(batch_id)
                if batch.is_terminal:
                    return copy.deepcopy(batch)
                remote_name = batch.remote_name

            try:
                state = BatchStatus(self.backend.get_state(remote_name))
            except Exception as e:
                logger.warning("Batch %s status query failed: %s", batch_id, e)
                state = BatchStatus.RUNNING

            with self._lock:
                batch.poll_attempts = attempt
                if state in TERMINAL_BATCH_STATUSES:
                    if not batch.is_terminal:
                        error = None if state == BatchStatus.COMPLETED else f"Remote batch {state.value}"
                        batch.finish(state, error=error)
                    logger.info("Batch %s finished [%s] after %d polls", batch_id, batch.status.value, attempt)
                    return copy.deepcopy(batch)

            if attempt == self.max_poll_attempts:
                break
            if cancel_event is not None:
                if cancel_event.wait(self.poll_interval):
                    self.cancel(batch_id)
                    return self.get_batch_job(batch_id)
            else:
                time.sleep(self.poll_interval)

        with self._lock:
            if not batch.is_terminal:
                batch.finish(
                    BatchStatus.EXPIRED,
                    error=f"Batch still running after {self.max_poll_attempts} polls",
                )
        logger.warning("Batch %s expired", batch_id)
        self._cancel_remote(batch_id, remote_name)
        return self.get_batch_job(batch_id)

    def fetch_results(self, batch_id):
        """One result per submitted request, in submission order.

        Requests the remote side did not answer come back with an error.
        """
        with self._lock:
            batch = self._get(batch_id)
            if batch.status != BatchStatus.COMPLETED:
                raise BatchError(
                    f"Batch {batch_id} is {batch.status.value}; results unavailable"
                )
            remote_name = batch.remote_name
            request_ids = list(batch.request_ids)

        by_id = {r.request_id: r for r in self.backend.get_results(remote_name)}
        results = [
            by_id.get(request_id)
            or BatchItemResult(request_id, error="No result returned for request")
            for request_id in request_ids
        ]

        with self._lock:
            batch.succeeded_count = sum(1 for r in results if r.ok)
            batch.failed_count = len(results) - batch.succeeded_count
        return results

    def cancel(self, batch_id):
        """Best-effort cancel. Returns False if the batch is unknown or finished."""
        with self._lock:
            batch = self._batches.get(batch_id)
            if batch is None or batch.is_terminal:
                return False
            batch.finish(BatchStatus.CANCELLED)
            remote_name = batch.remote_name
        logger.info("Batch %s cancelled", batch_id)
        self._cancel_remote(batch_id, remote_name)
        return True

    def discard(self, batch_id):
        with self._lock:
            return self._batches.pop(batch_id, None) is not None

    def execute(self, kind, requests, cancel_event=None):
        """Submit, wait for and collect one batch.

        Raises:
            BatchSubmissionError, BatchFailedError, BatchTimeoutError: the
                caller should fall back to individual calls.
            JobCancelledError: ``cancel_event`` fired while waiting.
        """
        batch_id = self.run_batch(kind, requests)
        try:
            batch = self.poll_until_done(batch_id, cancel_event)
            if batch.status == BatchStatus.COMPLETED:
                return self.fetch_results(batch_id)
            if batch.status == BatchStatus.CANCELLED:
                raise JobCancelledError(f"Batch {batch_id} cancelled")
            if batch.status == BatchStatus.EXPIRED:
                raise BatchTimeoutError(batch.error or f"Batch {batch_id} timed out")
            raise BatchFailedError(batch.error or f"Batch {batch_id} failed")
        finally:
            self.discard(batch_id)

    def _get(self, batch_id):
        batch = self._batches.get(batch_id)
        if batch is None:
            raise NotFoundError(f"Batch job not found: {batch_id}")
        return batch

    def _cancel_remote(self, batch_id, remote_name):
        if not remote_name:
            return
        try:
            self.backend.cancel(remote_name)
        except Exception:
            logger.warning("Remote cancel failed for batch %s", batch_id, exc_info=True)
