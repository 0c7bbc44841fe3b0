import threading

import pytest

from listing_optimizer.errors import JobCancelledError, RemoteCallError
from listing_optimizer.services.retry import backoff_delays, call_with_retry


class Flaky:
    def __init__(self, failures, transient=True):
        self.failures = failures
        self.transient = transient
        self.calls = 0

    def __call__(self, value):
        self.calls += 1
        if self.calls <= self.failures:
            raise RemoteCallError("boom", transient=self.transient)
        return value * 2


def test_backoff_doubles():
    assert backoff_delays(3, 2) == [2, 4]
    assert backoff_delays(1, 2) == []


def test_transient_error_is_retried():
    func = Flaky(failures=2)
    assert call_with_retry(func, 21, attempts=3, base_delay=0) == 42
    assert func.calls == 3


def test_retries_are_bounded():
    func = Flaky(failures=5)
    with pytest.raises(RemoteCallError):
        call_with_retry(func, 1, attempts=3, base_delay=0)
    assert func.calls == 3


def test_permanent_error_is_not_retried():
    func = Flaky(failures=1, transient=False)
    with pytest.raises(RemoteCallError):
        call_with_retry(func, 1, attempts=3, base_delay=0)
    assert func.calls == 1


def test_cancel_interrupts_backoff():
    event = threading.Event()
    event.set()
    func = Flaky(failures=1)

    with pytest.raises(JobCancelledError):
        call_with_retry(func, 1, attempts=3, base_delay=60, cancel_event=event)
    assert func.calls == 1
