"""Exception taxonomy for the optimization engine."""


class OptimizerError(Exception):
    """Base exception for listing_optimizer."""

    code = "OPTIMIZER_ERROR"

    def __init__(self, message, code=None):
        self.message = message
        if code:
            self.code = code
        super().__init__(message)

    def to_dict(self):
        return {"error": True, "code": self.code, "message": self.message}


class ValidationError(OptimizerError):
    """Bad input; no job is created."""

    code = "VALIDATION_ERROR"


class NotFoundError(OptimizerError):
    code = "NOT_FOUND"


class DuplicateIdError(OptimizerError):
    code = "DUPLICATE_ID"


class ScrapeError(OptimizerError):
    """The listing could not be scraped. Fatal for the job."""

    code = "SCRAPING_FAILED"


class RemoteCallError(OptimizerError):
    """A call to a remote AI or HTTP service failed.

    ``transient`` marks errors worth retrying (timeouts, throttling, 5xx).
    """

    code = "REMOTE_CALL_FAILED"

    def __init__(self, message, transient=False, code=None):
        super().__init__(message, code=code)
        self.transient = transient


class ClassificationError(RemoteCallError):
    code = "CLASSIFICATION_FAILED"


class OptimizationError(RemoteCallError):
    code = "OPTIMIZATION_FAILED"


class BatchError(OptimizerError):
    """A batched remote operation did not produce results; triggers fallback."""

    code = "BATCH_FAILED"


class BatchSubmissionError(BatchError):
    code = "BATCH_SUBMISSION_FAILED"


class BatchFailedError(BatchError):
    code = "BATCH_FAILED"


class BatchTimeoutError(BatchError):
    code = "BATCH_TIMEOUT"


class JobCancelledError(OptimizerError):
    code = "JOB_CANCELLED"
