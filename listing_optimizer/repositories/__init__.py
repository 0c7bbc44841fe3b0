from listing_optimizer.repositories.job_repository import InMemoryJobRepository  # noqa: F401
