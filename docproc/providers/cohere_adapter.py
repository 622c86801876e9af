from typing import Any

from docproc.providers.exceptions import TransientProviderError
from docproc.providers.http_adapter import HttpProviderAdapter
from docproc.providers.models import (
    Completion,
    EmbeddingResponse,
    ModelConfig,
    ModelInfo,
    ProviderType,
    TokenUsage,
)

_FINISH_REASONS = {"COMPLETE": "stop", "MAX_TOKENS": "length"}


class CohereAdapter(HttpProviderAdapter):
    """Command models through the Cohere chat API. Also provides embeddings."""

    provider_type = ProviderType.COHERE
    name = "Cohere"
    description = "Command models tuned for retrieval-augmented generation"
    DEFAULT_BASE_URL = "https://api.cohere.ai/v1"
    DEFAULT_MODEL = "command-r"
    MAX_TEMPERATURE = 5.0
    MAX_TOP_K = 500
    SUPPORTS_STREAMING = True
    SUPPORTS_FUNCTION_CALLING = True
    SUPPORTS_EMBEDDINGS = True
    EMBEDDING_MODEL = "embed-english-v3.0"
    EMBEDDING_COST_PER_1K = 0.0001
    MODELS = (
        ModelInfo("command-r-plus", "Command R+", 128000, 4096, 0.003, 0.015,
                  ("chat", "rag", "tools", "search")),
        ModelInfo("command-r", "Command R", 128000, 4096, 0.0005, 0.0015,
                  ("chat", "rag", "tools")),
        ModelInfo("command", "Command", 4096, 4096, 0.0015, 0.002, ("chat", "summarization")),
        ModelInfo("command-light", "Command Light", 4096, 4096, 0.00015, 0.0006, ("chat",)),
    )

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }

    def _complete(self, prompt: str, model: str, config: ModelConfig) -> Completion:
        payload: dict[str, Any] = {
            "model": model,
            "message": prompt,
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
            "p": config.top_p,
            "k": config.top_k or 0,
        }
        if config.system_prompt:
            payload["preamble"] = config.system_prompt
        if config.stop_sequences:
            payload["stop_sequences"] = config.stop_sequences
        if config.frequency_penalty is not None:
            payload["frequency_penalty"] = config.frequency_penalty
        if config.presence_penalty is not None:
            payload["presence_penalty"] = config.presence_penalty

        data = self._post("/chat", payload)
        text = data.get("text")
        if not text:
            raise TransientProviderError(
                f"{self.name} returned empty response", provider=self.provider_type.value
            )
        billed = (data.get("meta") or {}).get("billed_units") or {}
        reason = data.get("finish_reason", "")
        return Completion(
            content=text,
            model=model,
            prompt_tokens=billed.get("input_tokens", self.estimate_tokens(prompt)),
            completion_tokens=billed.get("output_tokens", self.estimate_tokens(text)),
            finish_reason=_FINISH_REASONS.get(reason, reason.lower() or None),
            raw=data,
            metadata={"citations": data.get("citations") or []},
        )

    def generate_embeddings(self, texts: list[str], model: str | None = None) -> EmbeddingResponse:
        self._require_credentials()
        embedding_model = model or self.EMBEDDING_MODEL
        data = self._post(
            "/embed",
            {"model": embedding_model, "texts": texts, "input_type": "search_document"},
        )
        billed = (data.get("meta") or {}).get("billed_units") or {}
        prompt_tokens = billed.get("input_tokens", sum(self.estimate_tokens(t) for t in texts))
        return EmbeddingResponse(
            embeddings=data.get("embeddings") or [],
            model=embedding_model,
            usage=TokenUsage(prompt_tokens=prompt_tokens),
            cost=prompt_tokens / 1000 * self.EMBEDDING_COST_PER_1K,
        )
