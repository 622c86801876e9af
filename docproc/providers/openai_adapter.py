from typing import Any, ClassVar

import httpx
import openai

from docproc.providers.base import BaseProviderAdapter
from docproc.providers.exceptions import (
    PermanentProviderError,
    ProviderError,
    TransientProviderError,
)
from docproc.providers.models import (
    Completion,
    EmbeddingResponse,
    ModelConfig,
    ModelInfo,
    ProviderType,
    TokenUsage,
)

_PERMANENT_ERRORS = (
    openai.AuthenticationError,
    openai.PermissionDeniedError,
    openai.BadRequestError,
    openai.NotFoundError,
    openai.UnprocessableEntityError,
)


class OpenAICompatibleAdapter(BaseProviderAdapter):
    """Adapter for any backend speaking the OpenAI chat-completions API.

    Subclasses only set ``DEFAULT_BASE_URL`` and their model table. Extra
    request fields a backend understands go through ``_extra_body``.
    """

    DEFAULT_BASE_URL: ClassVar[str | None] = None
    SUPPORTS_JSON_MODE: ClassVar[bool] = True
    EMBEDDING_MODEL: ClassVar[str] = ""
    EMBEDDING_COST_PER_1K: ClassVar[float] = 0.0

    def __init__(
        self,
        *,
        api_key: str = "",
        timeout_seconds: int = 60,
        base_url: str | None = None,
        client: openai.OpenAI | None = None,
    ) -> None:
        super().__init__(
            api_key=api_key,
            timeout_seconds=timeout_seconds,
            base_url=base_url or self.DEFAULT_BASE_URL,
        )
        self._client = client

    def _get_client(self) -> openai.OpenAI:
        """Built on first call; the SDK refuses to construct without an API key."""
        self._require_credentials()
        if self._client is None:
            self._client = openai.OpenAI(
                api_key=self._api_key,
                timeout=self._timeout_seconds,
                base_url=self._base_url,
                max_retries=0,
            )
        return self._client

    def _complete(self, prompt: str, model: str, config: ModelConfig) -> Completion:
        messages: list[dict[str, str]] = []
        if config.system_prompt:
            messages.append({"role": "system", "content": config.system_prompt})
        messages.append({"role": "user", "content": prompt})

        params: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
            "top_p": config.top_p,
        }
        if self.SUPPORTS_PENALTIES:
            params["frequency_penalty"] = config.frequency_penalty
            params["presence_penalty"] = config.presence_penalty
        if config.stop_sequences:
            params["stop"] = config.stop_sequences
        if config.seed is not None:
            params["seed"] = config.seed
        if config.wants_json and self.SUPPORTS_JSON_MODE:
            params["response_format"] = {"type": "json_object"}
        extra_body = self._extra_body(config)
        if extra_body:
            params["extra_body"] = extra_body

        try:
            response = self._get_client().chat.completions.create(
                **{k: v for k, v in params.items() if v is not None}
            )
        except Exception as exc:
            raise self._translate_error(exc) from exc

        if not response.choices:
            raise TransientProviderError(
                f"{self.name} returned no choices", provider=self.provider_type.value
            )
        choice = response.choices[0]
        content = choice.message.content
        if content is None:
            raise TransientProviderError(
                f"{self.name} returned empty response", provider=self.provider_type.value
            )

        usage = response.usage
        prompt_tokens = usage.prompt_tokens if usage else self.estimate_tokens(prompt)
        completion_tokens = usage.completion_tokens if usage else self.estimate_tokens(content)
        return Completion(
            content=content,
            model=response.model or model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            finish_reason=choice.finish_reason,
            raw=self._raw(response),
            metadata=self._response_metadata(response),
        )

    def generate_embeddings(self, texts: list[str], model: str | None = None) -> EmbeddingResponse:
        if not self.SUPPORTS_EMBEDDINGS:
            return super().generate_embeddings(texts, model)
        embedding_model = model or self.EMBEDDING_MODEL
        try:
            response = self._get_client().embeddings.create(model=embedding_model, input=texts)
        except Exception as exc:
            raise self._translate_error(exc) from exc
        prompt_tokens = response.usage.prompt_tokens if response.usage else 0
        return EmbeddingResponse(
            embeddings=[item.embedding for item in response.data],
            model=embedding_model,
            usage=TokenUsage(prompt_tokens=prompt_tokens),
            cost=prompt_tokens / 1000 * self.EMBEDDING_COST_PER_1K,
        )

    def _extra_body(self, config: ModelConfig) -> dict[str, Any]:
        return {}

    def _response_metadata(self, response: Any) -> dict[str, Any]:
        return {}

    @staticmethod
    def _raw(response: Any) -> Any:
        dump = getattr(response, "model_dump", None)
        return dump() if callable(dump) else None

    def _translate_error(self, exc: Exception) -> ProviderError:
        provider = self.provider_type.value
        if isinstance(exc, ProviderError):
            return exc
        if isinstance(exc, (openai.APIConnectionError, httpx.ConnectError, httpx.TimeoutException)):
            return TransientProviderError(f"{self.name} network error: {exc}", provider=provider)
        if isinstance(exc, openai.RateLimitError):
            return TransientProviderError(f"{self.name} rate limit: {exc}", provider=provider)
        if isinstance(exc, _PERMANENT_ERRORS):
            return PermanentProviderError(f"{self.name} rejected request: {exc}", provider=provider)
        if isinstance(exc, openai.APIStatusError):
            if exc.status_code >= 500:
                return TransientProviderError(f"{self.name} server error: {exc}", provider=provider)
            return PermanentProviderError(f"{self.name} API error: {exc}", provider=provider)
        if isinstance(exc, openai.APIError):
            return TransientProviderError(f"{self.name} API error: {exc}", provider=provider)
        return TransientProviderError(f"{self.name} call failed: {exc}", provider=provider)


class OpenAIAdapter(OpenAICompatibleAdapter):
    provider_type = ProviderType.OPENAI
    name = "OpenAI"
    description = "GPT-4 and GPT-3.5 chat models"
    DEFAULT_MODEL = "gpt-4-turbo"
    DEFAULT_MAX_TOKENS = 2000
    SUPPORTS_STREAMING = True
    SUPPORTS_VISION = True
    SUPPORTS_FUNCTION_CALLING = True
    SUPPORTS_EMBEDDINGS = True
    EMBEDDING_MODEL = "text-embedding-3-small"
    EMBEDDING_COST_PER_1K = 0.00002
    MODELS = (
        ModelInfo("gpt-4-turbo", "GPT-4 Turbo", 128000, 4096, 0.01, 0.03,
                  ("chat", "function-calling", "vision")),
        ModelInfo("gpt-4", "GPT-4", 8192, 4096, 0.03, 0.06, ("chat", "function-calling")),
        ModelInfo("gpt-4-32k", "GPT-4 32K", 32768, 4096, 0.06, 0.12,
                  ("chat", "function-calling")),
        ModelInfo("gpt-3.5-turbo", "GPT-3.5 Turbo", 16385, 4096, 0.0005, 0.0015,
                  ("chat", "function-calling")),
        ModelInfo("gpt-3.5-turbo-16k", "GPT-3.5 Turbo 16K", 16385, 4096, 0.003, 0.004,
                  ("chat", "function-calling")),
    )
