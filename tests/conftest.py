import pytest

from fakes import FakeClassifier, FakeOptimizer, FakeScraper, fake_fetch_image, testing_settings
from listing_optimizer import create_app
from listing_optimizer.extensions import build_orchestrator


@pytest.fixture
def make_orchestrator():
    """Factory for orchestrators wired with fakes; shut down after the test."""
    created = []

    def factory(settings=None, **collaborators):
        collaborators.setdefault("scraper", FakeScraper())
        collaborators.setdefault("classifier", FakeClassifier())
        collaborators.setdefault("optimizer", FakeOptimizer())
        collaborators.setdefault("fetch_image", fake_fetch_image)
        orchestrator = build_orchestrator(testing_settings(**(settings or {})), **collaborators)
        created.append(orchestrator)
        return orchestrator

    yield factory
    for orchestrator in created:
        orchestrator.shutdown()


@pytest.fixture
def app():
    """Create application for testing, wired with fake collaborators."""
    app = create_app(
        "testing",
        scraper=FakeScraper(),
        classifier=FakeClassifier(),
        optimizer=FakeOptimizer(),
        fetch_image=fake_fetch_image,
    )
    yield app
    app.extensions["listing_optimizer"].shutdown()


@pytest.fixture
def client(app):
    return app.test_client()
