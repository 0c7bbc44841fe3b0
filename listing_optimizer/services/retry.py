"""Bounded retry with exponential backoff for individual remote calls."""
import logging
import time

from listing_optimizer.errors import JobCancelledError, RemoteCallError

logger = logging.getLogger(__name__)


def backoff_delays(attempts, base_delay):
    """Delays slept between ``attempts`` tries: base, 2*base, 4*base, ..."""
    return [base_delay * (2 ** i) for i in range(max(attempts - 1, 0))]


def call_with_retry(func, *args, attempts=3, base_delay=2.0, cancel_event=None, **kwargs):
    """Call ``func`` until it succeeds, retrying transient RemoteCallErrors.

    Non-transient errors are raised immediately. A set ``cancel_event`` cuts a
    backoff wait short with JobCancelledError.
    """
    delays = backoff_delays(attempts, base_delay)
    attempt = 0
    while True:
        attempt += 1
        try:
            return func(*args, **kwargs)
        except RemoteCallError as e:
            if not e.transient or attempt >= attempts:
                raise
            delay = delays[attempt - 1]
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                getattr(func, "__qualname__", repr(func)),
                attempt,
                attempts,
                delay,
                e,
            )
            if cancel_event is not None:
                if cancel_event.wait(delay):
                    raise JobCancelledError("Job cancelled during retry backoff")
            elif delay:
                time.sleep(delay)
