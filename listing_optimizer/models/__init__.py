from listing_optimizer.models.room_type import RoomType  # noqa: F401
from listing_optimizer.models.image import Image, ImagePair, ImageStatus  # noqa: F401
from listing_optimizer.models.job import (  # noqa: F401
    JobSnapshot,
    JobStatus,
    OptimizationJob,
    Progress,
)
from listing_optimizer.models.batch_job import (  # noqa: F401
    BatchItemResult,
    BatchJob,
    BatchKind,
    BatchStatus,
    ClassificationRequest,
    OptimizationRequest,
)
