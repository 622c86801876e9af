class ResultError(Exception):
    """Base exception for result store errors."""


class ResultNotFoundError(ResultError):
    """Raised when a result does not exist."""


class ResultValidationError(ResultError):
    """Raised when a review action carries invalid values."""
