"""Engine wiring: builds the orchestrator and its collaborators per app."""
import logging
from functools import partial

from flask import current_app

from listing_optimizer.repositories import InMemoryJobRepository
from listing_optimizer.services.ai_service import GeminiClassifier, GeminiOptimizer
from listing_optimizer.services.batch_backend import LocalBatchBackend
from listing_optimizer.services.batch_manager import BatchExecutionManager
from listing_optimizer.services.image_service import download_image
from listing_optimizer.services.job_service import JobOrchestrator
from listing_optimizer.services.scraper_service import ApifyScraper
from listing_optimizer.workers.sweeper import ExpirySweeper

logger = logging.getLogger(__name__)

EXTENSION_KEY = "listing_optimizer"


def build_orchestrator(config, scraper=None, classifier=None, optimizer=None, fetch_image=None,
                       batch_backend=None, repository=None):
    """Construct a JobOrchestrator from a config mapping.

    Any collaborator can be passed in to replace the default remote-backed one.
    """
    timeout = config["REMOTE_CALL_TIMEOUT"]
    if classifier is None:
        classifier = GeminiClassifier(
            config["GEMINI_API_KEY"], model=config["GEMINI_ANALYSIS_MODEL"], timeout=timeout
        )
    if optimizer is None:
        optimizer = GeminiOptimizer(
            config["GEMINI_API_KEY"], model=config["GEMINI_OPTIMIZATION_MODEL"], timeout=timeout
        )
    if scraper is None:
        scraper = ApifyScraper(
            config["APIFY_TOKEN"],
            actor=config["APIFY_ACTOR"],
            base_url=config["APIFY_BASE_URL"],
            timeout=config["SCRAPE_TIMEOUT"],
        )
    if fetch_image is None:
        fetch_image = partial(download_image, timeout=timeout)
    if batch_backend is None:
        batch_backend = LocalBatchBackend(
            classifier, optimizer, max_workers=config["BATCH_WORKERS"]
        )

    batch_manager = BatchExecutionManager(
        batch_backend,
        threshold=config["BATCH_SIZE_THRESHOLD"],
        poll_interval=config["BATCH_POLL_INTERVAL"],
        max_poll_attempts=config["BATCH_MAX_POLL_ATTEMPTS"],
    )
    return JobOrchestrator(
        repository if repository is not None else InMemoryJobRepository(),
        scraper,
        classifier,
        optimizer,
        batch_manager,
        fetch_image,
        job_workers=config["JOB_WORKERS"],
        image_workers=config["IMAGE_WORKERS"],
        retry_attempts=config["RETRY_ATTEMPTS"],
        retry_base_delay=config["RETRY_BASE_DELAY"],
        max_images=config["MAX_IMAGES_PER_JOB"],
        job_ttl=config["JOB_TTL_SECONDS"],
        job_retention=config["JOB_RETENTION_SECONDS"],
    )


def init_engine(app, **overrides):
    orchestrator = build_orchestrator(app.config, **overrides)
    app.extensions[EXTENSION_KEY] = orchestrator

    if app.config["EXPIRY_SWEEP_ENABLED"]:
        sweeper = ExpirySweeper(orchestrator, interval=app.config["SWEEP_INTERVAL_SECONDS"])
        sweeper.start()
        app.extensions["listing_optimizer.sweeper"] = sweeper
    else:
        logger.info("Expiry sweeper disabled")
    return orchestrator


def get_orchestrator():
    return current_app.extensions[EXTENSION_KEY]
