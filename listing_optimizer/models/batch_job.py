import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional


class BatchKind(str, Enum):
    CLASSIFICATION = "classification"
    OPTIMIZATION = "optimization"


class BatchStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


TERMINAL_BATCH_STATUSES = {
    BatchStatus.COMPLETED,
    BatchStatus.FAILED,
    BatchStatus.CANCELLED,
    BatchStatus.EXPIRED,
}


@dataclass
class ClassificationRequest:
    request_id: str
    content: bytes


@dataclass
class OptimizationRequest:
    request_id: str
    content: bytes
    room_type: str
    analysis: Optional[dict] = None


@dataclass
class BatchItemResult:
    """Outcome of one request: a payload on success, an error otherwise."""

    request_id: str
    payload: Any = None
    error: Optional[str] = None

    @property
    def ok(self):
        return self.error is None


@dataclass
class BatchJob:
    kind: BatchKind
    request_ids: List[str]
    id: str = field(default_factory=lambda: f"batch-{uuid.uuid4().hex[:12]}")
    status: BatchStatus = BatchStatus.PENDING
    remote_name: Optional[str] = None
    succeeded_count: int = 0
    failed_count: int = 0
    poll_attempts: int = 0
    error: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self):
        return self.status in TERMINAL_BATCH_STATUSES

    def finish(self, status, error=None):
        self.status = BatchStatus(status)
        if error is not None:
            self.error = error
        self.completed_at = datetime.now(timezone.utc)

    def __repr__(self):
        return f"<BatchJob {self.id} {self.kind.value} [{self.status.value}]>"
