"""Exception hierarchy for clipflow.

Input problems raised synchronously to callers derive from ValidationError,
lookups of missing records from NotFoundError. Stage adapters signal
retryable failures with StageError subclasses; these never reach callers
directly, they end up in the job's failure reason.
"""


class ClipflowError(Exception):
    """Base exception for all clipflow errors."""


class ValidationError(ClipflowError):
    """Raised when caller input is rejected."""


class JobStateError(ValidationError):
    """Raised when a job operation is not allowed in the job's current state.

    Attributes:
        job_id: The ID of the job.
        state: The job's current state value.
    """

    def __init__(self, job_id: str, state: str, operation: str) -> None:
        self.job_id = job_id
        self.state = state
        self.operation = operation
        super().__init__(f"Cannot {operation} job {job_id} in state '{state}'")


class ScheduleStateError(ValidationError):
    """Raised when a schedule operation is not allowed in its current status."""

    def __init__(self, schedule_id: str, status: str, operation: str) -> None:
        self.schedule_id = schedule_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} schedule {schedule_id} in status '{status}'"
        )


class InvalidTimeError(ValidationError):
    """Raised when a scheduled time is unparseable or not in the future."""


class InvalidPatternError(ValidationError):
    """Raised when a bulk distribution pattern is unknown or malformed."""


class InsufficientTimesError(ValidationError):
    """Raised when a custom pattern has fewer times than uploads.

    Attributes:
        needed: Number of uploads in the batch.
        provided: Number of times in the pattern.
    """

    def __init__(self, needed: int, provided: int) -> None:
        self.needed = needed
        self.provided = provided
        super().__init__(
            f"Not enough custom times provided: {provided} time(s) "
            f"for {needed} upload(s)"
        )


class NotFoundError(ClipflowError):
    """Raised when a record does not exist."""


class JobNotFoundError(NotFoundError):
    """Raised when a job doesn't exist in the database.

    Attributes:
        job_id: The ID of the job that was not found.
        operation: The operation that was attempted (e.g., "cancel", "retry").
    """

    def __init__(self, job_id: str, operation: str) -> None:
        self.job_id = job_id
        self.operation = operation
        super().__init__(f"Cannot {operation} job {job_id}: not found")


class ScheduleNotFoundError(NotFoundError):
    """Raised when a schedule doesn't exist in the store."""

    def __init__(self, schedule_id: str, operation: str) -> None:
        self.schedule_id = schedule_id
        self.operation = operation
        super().__init__(f"Cannot {operation} schedule {schedule_id}: not found")


class StageError(ClipflowError):
    """Base class for retryable failures reported by a stage adapter."""


class DownloadError(StageError):
    """Raised by a downloader when the source cannot be fetched."""


class ProcessingError(StageError):
    """Raised by a clip processor when splitting or resizing fails."""


class UploadError(StageError):
    """Raised by an uploader when publishing fails."""


class TerminalFailure(ClipflowError):
    """A job exhausted its retry budget.

    Attributes:
        job_id: The failed job.
        attempts: Attempts consumed.
        reason: The last error message.
    """

    def __init__(self, job_id: str, attempts: int, reason: str) -> None:
        self.job_id = job_id
        self.attempts = attempts
        self.reason = reason
        super().__init__(f"Job {job_id} failed after {attempts} attempt(s): {reason}")


class JobCancelledError(ClipflowError):
    """Raised inside a run when the job record was removed mid-flight."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Job {job_id} was cancelled")


class AdapterLoadError(ClipflowError):
    """Raised when the configured stage adapters cannot be loaded."""
