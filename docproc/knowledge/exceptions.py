class KnowledgeError(Exception):
    """Base exception for knowledge store errors."""


class KnowledgeEntryNotFoundError(KnowledgeError):
    """Raised when a knowledge entry does not exist."""


class KnowledgeValidationError(KnowledgeError):
    """Raised when a knowledge entry breaks an entry invariant."""
