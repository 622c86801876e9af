class JobError(Exception):
    """Base exception for job orchestration errors."""


class JobValidationError(JobError):
    """Raised when a submission is rejected before anything is persisted."""


class JobNotFoundError(JobError):
    """Raised when a job does not exist."""
