class DocumentUnavailableError(Exception):
    """Raised when a document's content cannot be fetched or read as text."""
