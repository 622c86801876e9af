class TemplateError(Exception):
    """Base exception for template store errors."""


class TemplateNotFoundError(TemplateError):
    """Raised when a template does not exist or is inactive."""


class TemplateValidationError(TemplateError):
    """Raised when a template definition breaks a template invariant."""


class TemplateInUseError(TemplateError):
    """Raised when deleting a template that active jobs still reference."""
