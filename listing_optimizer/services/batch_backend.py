"""Remote side of a batch operation.

The Gemini SDK has no batch endpoint, so a batch is fanned out to the
single-image services on a worker pool and tracked under a remote name.
"""
import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor

from listing_optimizer.models.batch_job import BatchItemResult, BatchKind, BatchStatus

logger = logging.getLogger(__name__)


class LocalBatchBackend:
    def __init__(self, classifier, optimizer, max_workers=4):
        self.classifier = classifier
        self.optimizer = optimizer
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="batch-backend"
        )
        self._runs = {}
        self._lock = threading.Lock()

    def submit(self, kind, requests):
        kind = BatchKind(kind)
        name = f"batches/{kind.value}-{uuid.uuid4().hex[:12]}"
        cancelled = threading.Event()
        futures = [
            (request.request_id, self._executor.submit(self._run_one, kind, request, cancelled))
            for request in requests
        ]
        with self._lock:
            self._runs[name] = {"futures": futures, "cancelled": cancelled}
        logger.debug("Remote batch %s started with %d requests", name, len(requests))
        return name

    def get_state(self, name):
        run = self._run(name)
        if run["cancelled"].is_set():
            return BatchStatus.CANCELLED.value
        if all(future.done() for _, future in run["futures"]):
            return BatchStatus.COMPLETED.value
        return BatchStatus.RUNNING.value

    def get_results(self, name):
        run = self._run(name)
        results = []
        for request_id, future in run["futures"]:
            if not future.done():
                continue
            try:
                results.append(BatchItemResult(request_id, payload=future.result()))
            except Exception as e:
                results.append(BatchItemResult(request_id, error=str(e)))
        with self._lock:
            self._runs.pop(name, None)
        return results

    def cancel(self, name):
        with self._lock:
            run = self._runs.pop(name, None)
        if run is None:
            return
        run["cancelled"].set()
        for _, future in run["futures"]:
            future.cancel()

    def shutdown(self):
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _run(self, name):
        with self._lock:
            run = self._runs.get(name)
        if run is None:
            raise KeyError(f"Unknown remote batch: {name}")
        return run

    def _run_one(self, kind, request, cancelled):
        if cancelled.is_set():
            raise RuntimeError("Batch cancelled")
        if kind == BatchKind.CLASSIFICATION:
            return self.classifier.classify(request.content)
        return self.optimizer.optimize(request.content, request.room_type, request.analysis)
