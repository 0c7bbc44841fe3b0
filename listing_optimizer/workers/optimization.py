"""Pipeline for one optimization job: scrape, classify, optimize.

Runs on a job worker thread. Every state change goes through the job
repository's atomic ``modify`` so progress counters never race, and every
write first checks that the job has not been cancelled in the meantime.
"""
import logging
from collections import namedtuple
from concurrent.futures import ThreadPoolExecutor

from listing_optimizer.errors import (
    BatchError,
    JobCancelledError,
    NotFoundError,
    RemoteCallError,
    ScrapeError,
)
from listing_optimizer.models.batch_job import (
    BatchItemResult,
    BatchKind,
    ClassificationRequest,
    OptimizationRequest,
)
from listing_optimizer.models.image import Image, ImageStatus
from listing_optimizer.models.job import (
    STAGE_CLASSIFICATION,
    STAGE_OPTIMIZATION,
    JobStatus,
    Progress,
)
from listing_optimizer.services.batch_manager import STRATEGY_BATCH
from listing_optimizer.services.retry import call_with_retry
from listing_optimizer.services.room_type_service import (
    apply_batch_consistency,
    build_file_name,
    generate_optimization_comment,
    resolve_room_type,
)

logger = logging.getLogger(__name__)

DownloadRequest = namedtuple("DownloadRequest", "request_id url")


class OptimizationPipeline:
    def __init__(
        self,
        repository,
        scraper,
        classifier,
        optimizer,
        batch_manager,
        fetch_image,
        image_workers=4,
        retry_attempts=3,
        retry_base_delay=2.0,
    ):
        self.repository = repository
        self.scraper = scraper
        self.classifier = classifier
        self.optimizer = optimizer
        self.batch_manager = batch_manager
        self.fetch_image = fetch_image
        self.image_workers = max(1, image_workers)
        self.retry_attempts = retry_attempts
        self.retry_base_delay = retry_base_delay

    def run(self, job_id, cancel_event, max_images):
        """Drive ``job_id`` to a terminal state.

        Scrape failures fail the job. Anything that goes wrong after images
        exist is recorded on the images and the job still completes.
        """
        try:
            self._scrape(job_id, max_images)
        except JobCancelledError:
            logger.info("Job %s cancelled before processing", job_id)
            return
        except ScrapeError as e:
            logger.warning("Scraping failed for job %s: %s", job_id, e.message)
            self._fail(job_id, e.message)
            return
        except Exception as e:
            logger.exception("Scraping crashed for job %s", job_id)
            self._fail(job_id, str(e) or e.__class__.__name__)
            return

        try:
            self._classify(job_id, cancel_event)
            self._optimize(job_id, cancel_event)
        except JobCancelledError:
            logger.info("Job %s cancelled during processing", job_id)
            return
        except Exception as e:
            logger.exception("Processing crashed for job %s", job_id)
            self._fail_remaining_images(job_id, str(e) or e.__class__.__name__)

        self._complete(job_id)

    # -- stages ---------------------------------------------------------------

    def _scrape(self, job_id, max_images):
        def start(job):
            if job.status != JobStatus.PENDING:
                raise JobCancelledError(f"Job {job_id} is {job.status.value}")
            job.status = JobStatus.SCRAPING

        job = self.repository.modify(job_id, start)
        logger.info("Scraping %s for job %s", job.listing_url, job_id)
        listing = self.scraper.scrape_listing(job.listing_url)

        urls = list(listing.images)[:max_images]
        if not urls:
            raise ScrapeError("No images found in the listing")

        def populate(job):
            if job.status != JobStatus.SCRAPING:
                raise JobCancelledError(f"Job {job_id} is {job.status.value}")
            job.images = [
                Image(source_url=url, file_name=f"image_{index + 1}.jpg")
                for index, url in enumerate(urls)
            ]
            job.room_type = listing.room_type
            job.progress = Progress(total=len(urls))
            job.status = JobStatus.PROCESSING

        self.repository.modify(job_id, populate)
        logger.info(
            "Job %s processing %d of %d scraped images (listing type %r)",
            job_id,
            len(urls),
            len(listing.images),
            listing.room_type,
        )

    def _classify(self, job_id, cancel_event):
        def start(job):
            self._ensure_live(job)
            job.stage = STAGE_CLASSIFICATION
            for image in job.images:
                if image.status == ImageStatus.PENDING:
                    image.advance(ImageStatus.ANALYZING)

        job = self.repository.modify(job_id, start)

        downloads = [
            DownloadRequest(image.id, image.source_url)
            for image in job.images
            if image.status == ImageStatus.ANALYZING
        ]
        self._run_individually(
            job_id,
            downloads,
            self._download_one,
            lambda result: self._record_download(job_id, result),
            cancel_event,
        )

        job = self.repository.get(job_id)
        requests = [
            ClassificationRequest(image.id, image.original_content)
            for image in job.images
            if image.status == ImageStatus.ANALYZING
        ]
        self._run_stage(
            job_id,
            BatchKind.CLASSIFICATION,
            requests,
            self._classify_one,
            lambda result: self._record_classification(job_id, result),
            cancel_event,
        )

    def _optimize(self, job_id, cancel_event):
        def start(job):
            self._ensure_live(job)
            job.stage = STAGE_OPTIMIZATION

        job = self.repository.modify(job_id, start)
        requests = [
            OptimizationRequest(image.id, image.original_content, image.room_type, image.analysis)
            for image in job.images
            if image.status == ImageStatus.OPTIMIZING
        ]
        self._run_stage(
            job_id,
            BatchKind.OPTIMIZATION,
            requests,
            self._optimize_one,
            lambda result: self._record_optimization(job_id, result),
            cancel_event,
        )

    # -- execution strategies --------------------------------------------------

    def _run_stage(self, job_id, kind, requests, call_one, record, cancel_event):
        """Run one stage, batched or per image, falling back at most once."""
        if not requests:
            logger.info("Job %s: nothing to do for %s", job_id, kind.value)
            return

        strategy = self.batch_manager.decide_strategy(len(requests))
        logger.info(
            "Job %s: %s of %d images using %s strategy",
            job_id,
            kind.value,
            len(requests),
            strategy,
        )

        remaining = requests
        if strategy == STRATEGY_BATCH:
            try:
                results = self.batch_manager.execute(kind, requests, cancel_event)
            except BatchError as e:
                logger.warning(
                    "Job %s: %s batch failed (%s); falling back to individual calls",
                    job_id,
                    kind.value,
                    e.message,
                )
            else:
                by_id = {request.request_id: request for request in requests}
                remaining = []
                for result in results:
                    if result.ok:
                        record(result)
                    else:
                        remaining.append(by_id[result.request_id])
                if remaining:
                    logger.info(
                        "Job %s: retrying %d failed %s items individually",
                        job_id,
                        len(remaining),
                        kind.value,
                    )

        self._run_individually(job_id, remaining, call_one, record, cancel_event)

    def _run_individually(self, job_id, requests, call_one, record, cancel_event):
        if not requests:
            return

        def work(request):
            if cancel_event.is_set():
                return
            try:
                payload = call_with_retry(
                    call_one,
                    request,
                    attempts=self.retry_attempts,
                    base_delay=self.retry_base_delay,
                    cancel_event=cancel_event,
                )
                result = BatchItemResult(request.request_id, payload=payload)
            except JobCancelledError:
                return
            except RemoteCallError as e:
                result = BatchItemResult(request.request_id, error=e.message)
            except Exception as e:
                logger.exception("Job %s: unexpected error on %s", job_id, request.request_id)
                result = BatchItemResult(request.request_id, error=str(e) or e.__class__.__name__)
            if not cancel_event.is_set():
                record(result)

        workers = min(self.image_workers, len(requests))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"job-{job_id[:8]}") as pool:
            # list() surfaces exceptions raised by record()
            list(pool.map(work, requests))

        if cancel_event.is_set():
            raise JobCancelledError(f"Job {job_id} cancelled")

    def _download_one(self, request):
        return self.fetch_image(request.url)

    def _classify_one(self, request):
        return self.classifier.classify(request.content)

    def _optimize_one(self, request):
        return self.optimizer.optimize(request.content, request.room_type, request.analysis)

    # -- recording results -----------------------------------------------------

    def _record(self, job_id, result, apply):
        """Fold one result into the job.

        If ``apply`` raises, the aborted write leaves the job unchanged and only
        this image is marked failed; the rest of the stage carries on.
        """

        def mutate_with(apply_fn):
            def mutate(job):
                if job.is_terminal:
                    return
                image = job.get_image(result.request_id)
                if image is None or image.is_terminal:
                    return
                apply_fn(job, image)
                job.refresh_progress()

            return mutate

        try:
            self.repository.modify(job_id, mutate_with(apply))
        except NotFoundError:
            raise
        except Exception as e:
            logger.exception("Job %s: could not record result for %s", job_id, result.request_id)
            message = str(e) or e.__class__.__name__

            def fail(job, image):
                if image.room_type is None:
                    image.room_type = resolve_room_type(job.room_type).value
                image.advance(ImageStatus.FAILED, error=message)

            self.repository.modify(job_id, mutate_with(fail))

    def _record_download(self, job_id, result):
        def apply(job, image):
            if result.ok:
                image.original_content = result.payload
            else:
                logger.warning("Job %s: download failed for %s: %s", job_id, image.id, result.error)
                image.room_type = resolve_room_type(job.room_type).value
                image.advance(ImageStatus.FAILED, error=result.error)

        self._record(job_id, result, apply)

    def _record_classification(self, job_id, result):
        def apply(job, image):
            if not result.ok:
                logger.warning("Job %s: classification failed for %s: %s", job_id, image.id, result.error)
                image.room_type = resolve_room_type(job.room_type).value
                image.advance(ImageStatus.FAILED, error=result.error)
                return
            is_reference = not any(
                (other.analysis or {}).get("batch_consistency", {}).get("style_reference")
                == "first_image"
                for other in job.images
            )
            image.analysis = apply_batch_consistency(result.payload, is_reference)
            image.room_type = resolve_room_type(
                job.room_type, image.analysis.get("room_type")
            ).value
            image.advance(ImageStatus.OPTIMIZING)

        self._record(job_id, result, apply)

    def _record_optimization(self, job_id, result):
        def apply(job, image):
            if not result.ok:
                logger.warning("Job %s: optimization failed for %s: %s", job_id, image.id, result.error)
                image.advance(ImageStatus.FAILED, error=result.error)
                return
            index = job.images.index(image)
            job.optimized_images.append(
                Image(
                    source_url=image.source_url,
                    file_name=build_file_name(image.room_type, index),
                    status=ImageStatus.COMPLETED,
                    optimized_content=result.payload,
                    analysis=image.analysis,
                    room_type=image.room_type,
                    original_id=image.id,
                    optimization_comment=generate_optimization_comment(
                        image.room_type, image.analysis
                    ),
                )
            )
            image.advance(ImageStatus.COMPLETED)

        self._record(job_id, result, apply)

    # -- terminal transitions --------------------------------------------------

    @staticmethod
    def _ensure_live(job):
        if job.is_terminal:
            raise JobCancelledError(f"Job {job.id} is {job.status.value}")

    def _fail(self, job_id, message):
        def apply(job):
            if job.is_terminal:
                return
            job.status = JobStatus.FAILED
            job.error = message
            job.completed_at = job.updated_at

        self.repository.modify(job_id, apply)

    def _fail_remaining_images(self, job_id, message):
        def apply(job):
            if job.is_terminal:
                return
            for image in job.images:
                if not image.is_terminal:
                    image.advance(ImageStatus.FAILED, error=message)
            job.refresh_progress()

        self.repository.modify(job_id, apply)

    def _complete(self, job_id):
        def apply(job):
            if job.is_terminal:
                return
            job.status = JobStatus.COMPLETED
            job.stage = None
            job.completed_at = job.updated_at

        job = self.repository.modify(job_id, apply)
        logger.info(
            "Job %s finished [%s]: %d completed, %d failed of %d",
            job_id,
            job.status.value,
            job.progress.completed,
            job.progress.failed,
            job.progress.total,
        )
