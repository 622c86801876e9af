from typing import Any

from docproc.providers.exceptions import TransientProviderError
from docproc.providers.http_adapter import HttpProviderAdapter
from docproc.providers.models import Completion, ModelConfig, ModelInfo, ProviderType

_STOP_REASONS = {"end_turn": "stop", "stop_sequence": "stop", "max_tokens": "length"}


class AnthropicAdapter(HttpProviderAdapter):
    """Claude models through the Messages API."""

    provider_type = ProviderType.ANTHROPIC
    name = "Anthropic"
    description = "Claude models with long context windows"
    DEFAULT_BASE_URL = "https://api.anthropic.com/v1"
    API_VERSION = "2023-06-01"
    DEFAULT_MODEL = "claude-3-sonnet-20240229"
    MAX_TEMPERATURE = 1.0
    MAX_TOP_K = 500
    SUPPORTS_PENALTIES = False
    SUPPORTS_STREAMING = True
    SUPPORTS_VISION = True
    MODELS = (
        ModelInfo("claude-3-opus-20240229", "Claude 3 Opus", 200000, 4096, 0.015, 0.075,
                  ("chat", "vision", "code", "analysis")),
        ModelInfo("claude-3-sonnet-20240229", "Claude 3 Sonnet", 200000, 4096, 0.003, 0.015,
                  ("chat", "vision", "code")),
        ModelInfo("claude-3-haiku-20240307", "Claude 3 Haiku", 200000, 4096, 0.00025, 0.00125,
                  ("chat", "code")),
        ModelInfo("claude-2.1", "Claude 2.1", 200000, 4096, 0.008, 0.024, ("chat", "code")),
        ModelInfo("claude-instant-1.2", "Claude Instant", 100000, 4096, 0.00163, 0.00551,
                  ("chat", "code")),
    )

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self._api_key,
            "anthropic-version": self.API_VERSION,
        }

    def _complete(self, prompt: str, model: str, config: ModelConfig) -> Completion:
        payload: dict[str, Any] = {
            "model": model,
            "max_tokens": config.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": config.temperature,
            "top_p": config.top_p,
        }
        if config.top_k is not None:
            payload["top_k"] = config.top_k
        if config.system_prompt:
            payload["system"] = config.system_prompt
        if config.stop_sequences:
            payload["stop_sequences"] = config.stop_sequences

        data = self._post("/messages", payload)
        text = "".join(
            block.get("text", "")
            for block in data.get("content") or []
            if block.get("type") == "text"
        )
        if not text:
            raise TransientProviderError(
                f"{self.name} returned empty response", provider=self.provider_type.value
            )
        usage = data.get("usage") or {}
        return Completion(
            content=text,
            model=data.get("model") or model,
            prompt_tokens=usage.get("input_tokens", self.estimate_tokens(prompt)),
            completion_tokens=usage.get("output_tokens", self.estimate_tokens(text)),
            finish_reason=_STOP_REASONS.get(data.get("stop_reason", ""), data.get("stop_reason")),
            raw=data,
        )
