"""Background thread that expires stale jobs and purges old finished ones."""
import logging
import threading

logger = logging.getLogger(__name__)


class ExpirySweeper:
    def __init__(self, orchestrator, interval=3600):
        self.orchestrator = orchestrator
        self.interval = interval
        self._stop = threading.Event()
        self._thread = None

    def run_once(self):
        expired = self.orchestrator.sweep_expired_jobs()
        purged = self.orchestrator.purge_finished_jobs()
        return expired, purged

    def _loop(self):
        logger.info("Expiry sweeper started (every %ss)", self.interval)
        while not self._stop.wait(self.interval):
            try:
                self.run_once()
            except Exception:
                logger.exception("Expiry sweep failed")
        logger.info("Expiry sweeper stopped")

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="expiry-sweeper", daemon=True)
        self._thread.start()

    def stop(self, timeout=5):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
