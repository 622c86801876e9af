class ProviderError(Exception):
    """Raised when a model backend call fails."""

    def __init__(self, message: str, *, provider: str | None = None) -> None:
        super().__init__(message)
        self.provider = provider


class TransientProviderError(ProviderError):
    """Timeout, rate limit or server-side failure. Retrying may succeed."""


class PermanentProviderError(ProviderError):
    """Bad credentials, malformed request or invalid configuration."""


class ProviderCapabilityError(PermanentProviderError):
    """The backend does not offer the requested capability (e.g. embeddings)."""


class UnknownProviderError(Exception):
    """Raised when a provider name or type is not registered."""
