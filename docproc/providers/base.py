import math
import time
from abc import ABC, abstractmethod
from typing import ClassVar

from docproc.providers.exceptions import PermanentProviderError, ProviderCapabilityError
from docproc.providers.models import (
    Completion,
    EmbeddingResponse,
    ModelConfig,
    ModelInfo,
    ProviderResponse,
    ProviderType,
    TokenUsage,
)


class BaseProviderAdapter(ABC):
    """Contract for all model backend adapters.

    Subclasses describe their backend through class attributes (model table,
    parameter limits, capability flags) and implement ``_complete`` to perform
    the actual request. ``invoke`` wraps it with config validation, timing and
    token/cost accounting so every backend reports usage the same way.
    """

    provider_type: ClassVar[ProviderType]
    name: ClassVar[str]
    description: ClassVar[str] = ""
    MODELS: ClassVar[tuple[ModelInfo, ...]] = ()
    DEFAULT_MODEL: ClassVar[str]
    DEFAULT_TEMPERATURE: ClassVar[float] = 0.7
    DEFAULT_MAX_TOKENS: ClassVar[int] = 2048
    DEFAULT_TOP_P: ClassVar[float] = 1.0
    MAX_TEMPERATURE: ClassVar[float] = 2.0
    MAX_OUTPUT_TOKENS: ClassVar[int] = 4096
    MAX_TOP_K: ClassVar[int | None] = None
    SUPPORTS_PENALTIES: ClassVar[bool] = True
    SUPPORTS_STREAMING: ClassVar[bool] = False
    SUPPORTS_VISION: ClassVar[bool] = False
    SUPPORTS_FUNCTION_CALLING: ClassVar[bool] = False
    SUPPORTS_EMBEDDINGS: ClassVar[bool] = False

    def __init__(
        self,
        *,
        api_key: str = "",
        timeout_seconds: int = 60,
        base_url: str | None = None,
    ) -> None:
        self._api_key = api_key
        self._timeout_seconds = timeout_seconds
        self._base_url = base_url

    def is_available(self) -> bool:
        """True when credentials are configured."""
        return bool(self._api_key)

    def supported_models(self) -> list[ModelInfo]:
        return list(self.MODELS)

    def get_model(self, model_id: str) -> ModelInfo | None:
        return next((m for m in self.MODELS if m.id == model_id), None)

    def supports_model(self, model_id: str) -> bool:
        return self.get_model(model_id) is not None

    def default_config(self) -> ModelConfig:
        return ModelConfig(
            temperature=self.DEFAULT_TEMPERATURE,
            max_tokens=self.DEFAULT_MAX_TOKENS,
            top_p=self.DEFAULT_TOP_P,
        )

    def validate_config(self, config: ModelConfig) -> list[str]:
        """Return human-readable problems with ``config``; empty when valid."""
        errors: list[str] = []
        if config.temperature is not None and not 0 <= config.temperature <= self.MAX_TEMPERATURE:
            errors.append(f"Temperature must be between 0 and {self.MAX_TEMPERATURE:g}")
        if config.max_tokens is not None and not 1 <= config.max_tokens <= self.MAX_OUTPUT_TOKENS:
            errors.append(f"Max tokens must be between 1 and {self.MAX_OUTPUT_TOKENS}")
        if config.top_p is not None and not 0 <= config.top_p <= 1:
            errors.append("Top P must be between 0 and 1")
        if config.top_k is not None and self.MAX_TOP_K is not None:
            if not 0 <= config.top_k <= self.MAX_TOP_K:
                errors.append(f"Top K must be between 0 and {self.MAX_TOP_K}")
        if self.SUPPORTS_PENALTIES:
            for label, value in (
                ("Frequency penalty", config.frequency_penalty),
                ("Presence penalty", config.presence_penalty),
            ):
                if value is not None and not -2 <= value <= 2:
                    errors.append(f"{label} must be between -2 and 2")
        if config.response_format not in (None, "text", "json", "markdown"):
            errors.append(f"Unsupported response format: {config.response_format}")
        return errors

    def estimate_tokens(self, text: str) -> int:
        """Rough estimate: about one token per four characters."""
        return math.ceil(len(text) / 4)

    def calculate_cost(self, usage: TokenUsage, model: str) -> float:
        info = self.get_model(model)
        if info is None:
            return 0.0
        return (
            usage.prompt_tokens / 1000 * info.cost_per_1k_input
            + usage.completion_tokens / 1000 * info.cost_per_1k_output
        )

    def estimate_cost(self, prompt: str, model: str, config: ModelConfig | None = None) -> float:
        """Upper-bound cost estimate before the call: prompt tokens plus full max output."""
        effective = self.default_config().merged(config)
        usage = TokenUsage(
            prompt_tokens=self.estimate_tokens(prompt),
            completion_tokens=effective.max_tokens or 0,
        )
        return self.calculate_cost(usage, model)

    def invoke(self, prompt: str, model: str, config: ModelConfig | None = None) -> ProviderResponse:
        """Send ``prompt`` to the backend and return a normalized response.

        Raises:
            PermanentProviderError: invalid config or missing credentials.
            TransientProviderError: network, rate-limit or server failures.
        """
        effective = self.default_config().merged(config)
        errors = self.validate_config(effective)
        if errors:
            raise PermanentProviderError(
                f"Invalid {self.name} configuration: {'; '.join(errors)}",
                provider=self.provider_type.value,
            )
        self._require_credentials()

        started = time.perf_counter()
        completion = self._complete(prompt, model, effective)
        elapsed_ms = int((time.perf_counter() - started) * 1000)

        usage = TokenUsage(
            prompt_tokens=completion.prompt_tokens,
            completion_tokens=completion.completion_tokens,
        )
        return ProviderResponse(
            content=completion.content,
            model=completion.model or model,
            provider=self.provider_type.value,
            usage=usage,
            cost=self.calculate_cost(usage, model),
            finish_reason=completion.finish_reason,
            raw=completion.raw,
            processing_time_ms=elapsed_ms,
            metadata=completion.metadata,
        )

    def generate_embeddings(self, texts: list[str], model: str | None = None) -> EmbeddingResponse:
        """Embed ``texts``. Backends without embeddings raise ProviderCapabilityError."""
        raise ProviderCapabilityError(
            f"{self.name} does not support embedding generation",
            provider=self.provider_type.value,
        )

    def _require_credentials(self) -> None:
        if not self.is_available():
            raise PermanentProviderError(
                f"{self.name} credentials are not configured",
                provider=self.provider_type.value,
            )

    @abstractmethod
    def _complete(self, prompt: str, model: str, config: ModelConfig) -> Completion:
        """Perform the backend request and extract content and token counts."""
