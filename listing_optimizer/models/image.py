import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


def _now():
    return datetime.now(timezone.utc)


class ImageStatus(str, Enum):
    PENDING = "pending"
    ANALYZING = "analyzing"
    OPTIMIZING = "optimizing"
    COMPLETED = "completed"
    FAILED = "failed"


# Forward-only transitions; retry is the only way back and is not supported.
ALLOWED_TRANSITIONS = {
    ImageStatus.PENDING: {ImageStatus.ANALYZING, ImageStatus.OPTIMIZING, ImageStatus.FAILED},
    ImageStatus.ANALYZING: {ImageStatus.OPTIMIZING, ImageStatus.FAILED},
    ImageStatus.OPTIMIZING: {ImageStatus.COMPLETED, ImageStatus.FAILED},
    ImageStatus.COMPLETED: set(),
    ImageStatus.FAILED: set(),
}

TERMINAL_IMAGE_STATUSES = {ImageStatus.COMPLETED, ImageStatus.FAILED}


@dataclass
class Image:
    """One listing photograph tracked through classification and optimization.

    Optimized twins share the source URL of their original and point back to
    it through ``original_id``.
    """

    source_url: str
    file_name: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: ImageStatus = ImageStatus.PENDING
    original_content: Optional[bytes] = None
    optimized_content: Optional[bytes] = None
    analysis: Optional[dict] = None
    room_type: Optional[str] = None
    original_id: Optional[str] = None
    optimization_comment: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    @property
    def is_terminal(self):
        return self.status in TERMINAL_IMAGE_STATUSES

    def advance(self, status, error=None):
        """Move to ``status``, refusing any regression."""
        status = ImageStatus(status)
        if status not in ALLOWED_TRANSITIONS[self.status]:
            raise ValueError(
                f"Illegal image transition {self.status.value} -> {status.value}"
            )
        self.status = status
        if error is not None:
            self.error = error
        self.updated_at = _now()

    def to_dict(self):
        return {
            "id": self.id,
            "source_url": self.source_url,
            "file_name": self.file_name,
            "room_type": self.room_type,
            "status": self.status.value,
            "error": self.error,
        }

    def __repr__(self):
        return f"<Image {self.file_name} [{self.status.value}]>"


@dataclass
class ImagePair:
    """Read model: an original image and its optimized twin, if any."""

    original: Image
    optimized: Optional[Image]
    room_type: str
    file_name: str
    optimization_comment: Optional[str] = None

    def to_dict(self):
        return {
            "original": self.original.to_dict(),
            "optimized": self.optimized.to_dict() if self.optimized else None,
            "room_type": self.room_type,
            "file_name": self.file_name,
            "optimization_comment": self.optimization_comment,
        }
