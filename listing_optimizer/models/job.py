import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from listing_optimizer.models.image import Image, ImagePair, ImageStatus
from listing_optimizer.models.room_type import RoomType


class JobStatus(str, Enum):
    PENDING = "pending"
    SCRAPING = "scraping"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


LIVE_JOB_STATUSES = {JobStatus.PENDING, JobStatus.SCRAPING, JobStatus.PROCESSING}
TERMINAL_JOB_STATUSES = {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}

STAGE_CLASSIFICATION = "classification"
STAGE_OPTIMIZATION = "optimization"

STEP_BY_STATUS = {
    JobStatus.PENDING: "Job queued",
    JobStatus.SCRAPING: "Scraping listing",
    JobStatus.PROCESSING: "Processing images",
    JobStatus.COMPLETED: "Job completed",
    JobStatus.FAILED: "Job failed",
    JobStatus.CANCELLED: "Job cancelled",
}

STEP_BY_STAGE = {
    STAGE_CLASSIFICATION: "Classifying images",
    STAGE_OPTIMIZATION: "Optimizing images",
}


@dataclass
class Progress:
    total: int = 0
    completed: int = 0
    failed: int = 0

    def to_dict(self):
        return {"total": self.total, "completed": self.completed, "failed": self.failed}


@dataclass
class OptimizationJob:
    listing_url: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: JobStatus = JobStatus.PENDING
    room_type: Optional[str] = None
    stage: Optional[str] = None
    images: List[Image] = field(default_factory=list)
    optimized_images: List[Image] = field(default_factory=list)
    progress: Progress = field(default_factory=Progress)
    error: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self):
        return self.status in TERMINAL_JOB_STATUSES

    @property
    def current_step(self):
        if self.status == JobStatus.PROCESSING and self.stage in STEP_BY_STAGE:
            return STEP_BY_STAGE[self.stage]
        return STEP_BY_STATUS[self.status]

    def get_image(self, image_id):
        for image in self.images:
            if image.id == image_id:
                return image
        return None

    def get_optimized(self, image_id):
        """Return the optimized twin whose id or original id is ``image_id``."""
        for image in self.optimized_images:
            if image.id == image_id or image.original_id == image_id:
                return image
        return None

    def refresh_progress(self):
        """Recount completed/failed originals. ``total`` is left untouched."""
        self.progress.completed = sum(
            1 for image in self.images if image.status == ImageStatus.COMPLETED
        )
        self.progress.failed = sum(
            1 for image in self.images if image.status == ImageStatus.FAILED
        )

    @property
    def image_pairs(self):
        twins = {image.original_id: image for image in self.optimized_images}
        pairs = []
        for index, original in enumerate(self.images):
            optimized = twins.get(original.id)
            if optimized is not None:
                file_name = optimized.file_name
            elif original.status == ImageStatus.FAILED:
                file_name = f"failed_{index + 1}.jpg"
            else:
                file_name = original.file_name
            pairs.append(
                ImagePair(
                    original=original,
                    optimized=optimized,
                    room_type=original.room_type or RoomType.OTHER.value,
                    file_name=file_name,
                    optimization_comment=(
                        optimized.optimization_comment if optimized else None
                    ),
                )
            )
        return pairs

    def __repr__(self):
        return f"<OptimizationJob {self.id} [{self.status.value}]>"


@dataclass
class JobSnapshot:
    """Read-only progress report for one job."""

    job_id: str
    listing_url: str
    status: JobStatus
    progress: Progress
    current_step: str
    error: Optional[str]
    images: List[Image]
    image_pairs: List[ImagePair]
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None

    @classmethod
    def from_job(cls, job):
        return cls(
            job_id=job.id,
            listing_url=job.listing_url,
            status=job.status,
            progress=Progress(**job.progress.to_dict()),
            current_step=job.current_step,
            error=job.error,
            images=list(job.images),
            image_pairs=job.image_pairs,
            created_at=job.created_at,
            updated_at=job.updated_at,
            completed_at=job.completed_at,
        )

    def to_dict(self):
        return {
            "job_id": self.job_id,
            "listing_url": self.listing_url,
            "status": self.status.value,
            "progress": self.progress.to_dict(),
            "current_step": self.current_step,
            "error": self.error,
            "images": [image.to_dict() for image in self.images],
            "image_pairs": [pair.to_dict() for pair in self.image_pairs],
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
