"""Tests for the in-memory job store."""
import threading
from datetime import datetime, timedelta, timezone

import pytest

from fakes import LISTING_URL
from listing_optimizer.errors import DuplicateIdError, NotFoundError
from listing_optimizer.models import Image, JobStatus, OptimizationJob
from listing_optimizer.repositories import InMemoryJobRepository


@pytest.fixture
def repo():
    return InMemoryJobRepository()


def test_create_and_find_return_copies(repo):
    job = repo.create(OptimizationJob(listing_url=LISTING_URL))
    job.status = JobStatus.FAILED

    stored = repo.find_by_id(job.id)
    assert stored.status == JobStatus.PENDING
    stored.images.append(Image(source_url="u", file_name="image_1.jpg"))
    assert repo.find_by_id(job.id).images == []


def test_duplicate_id_is_rejected(repo):
    job = repo.create(OptimizationJob(listing_url=LISTING_URL))
    with pytest.raises(DuplicateIdError):
        repo.create(job)


def test_missing_job(repo):
    assert repo.find_by_id("nope") is None
    with pytest.raises(NotFoundError):
        repo.get("nope")
    with pytest.raises(NotFoundError):
        repo.update(OptimizationJob(listing_url=LISTING_URL))
    with pytest.raises(NotFoundError):
        repo.modify("nope", lambda job: None)


def test_update_status_stamps_completion(repo):
    job = repo.create(OptimizationJob(listing_url=LISTING_URL))

    updated = repo.update_status(job.id, JobStatus.FAILED, error="Scraping timed out")

    assert updated.status == JobStatus.FAILED
    assert updated.error == "Scraping timed out"
    assert updated.completed_at == updated.updated_at
    assert updated.updated_at >= job.updated_at


def test_failed_mutation_leaves_job_untouched(repo):
    job = repo.create(OptimizationJob(listing_url=LISTING_URL))

    def mutate(stored):
        stored.status = JobStatus.COMPLETED
        raise RuntimeError("halfway")

    with pytest.raises(RuntimeError):
        repo.modify(job.id, mutate)
    assert repo.get(job.id).status == JobStatus.PENDING


def test_concurrent_modifications_are_serialized(repo):
    job = repo.create(OptimizationJob(listing_url=LISTING_URL))

    def bump(stored):
        stored.progress.total += 1

    threads = [
        threading.Thread(target=lambda: [repo.modify(job.id, bump) for _ in range(25)])
        for _ in range(8)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert repo.get(job.id).progress.total == 200


def test_delete_is_idempotent(repo):
    job = repo.create(OptimizationJob(listing_url=LISTING_URL))
    repo.delete(job.id)
    repo.delete(job.id)
    assert repo.find_by_id(job.id) is None
    assert len(repo) == 0


def test_find_by_status(repo):
    repo.create(OptimizationJob(listing_url=LISTING_URL, status=JobStatus.PROCESSING))
    repo.create(OptimizationJob(listing_url=LISTING_URL))

    assert len(repo.find_by_status(JobStatus.PROCESSING)) == 1
    assert len(repo.find_by_status("pending")) == 1
    assert repo.find_by_status(JobStatus.FAILED) == []


def test_expired_jobs_exclude_terminal_states(repo):
    old = datetime.now(timezone.utc) - timedelta(days=2)
    for status in JobStatus:
        repo.create(OptimizationJob(listing_url=LISTING_URL, status=status, created_at=old))
    repo.create(OptimizationJob(listing_url=LISTING_URL, status=JobStatus.PROCESSING))

    expired = repo.find_expired_jobs(datetime.now(timezone.utc) - timedelta(days=1))

    assert {job.status for job in expired} == {
        JobStatus.PENDING,
        JobStatus.SCRAPING,
        JobStatus.PROCESSING,
    }
    assert len(expired) == 3


def test_stats(repo):
    repo.create(OptimizationJob(listing_url=LISTING_URL))
    repo.create(OptimizationJob(listing_url=LISTING_URL, status=JobStatus.COMPLETED))
    repo.create(OptimizationJob(listing_url=LISTING_URL, status=JobStatus.COMPLETED))

    assert repo.stats() == {"total_jobs": 3, "by_status": {"pending": 1, "completed": 2}}
