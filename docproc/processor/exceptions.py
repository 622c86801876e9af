class ProcessorError(Exception):
    """Base exception for failures inside the processing pipeline."""


class PreprocessingError(ProcessorError):
    """Raised when a template pre-processing rule is invalid or fails."""


class PostProcessingError(ProcessorError):
    """Raised when a post-processing rule fails or required structured output is unusable."""


class JobCancelledError(ProcessorError):
    """Raised when a job is found cancelled before its result is committed."""
