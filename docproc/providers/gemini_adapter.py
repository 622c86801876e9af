from typing import Any

from docproc.providers.exceptions import PermanentProviderError, TransientProviderError
from docproc.providers.http_adapter import HttpProviderAdapter
from docproc.providers.models import Completion, ModelConfig, ModelInfo, ProviderType

_FINISH_REASONS = {"STOP": "stop", "MAX_TOKENS": "length", "SAFETY": "content_filter"}


class GeminiAdapter(HttpProviderAdapter):
    """Google Gemini models through the generateContent endpoint."""

    provider_type = ProviderType.GOOGLE
    name = "Google Gemini"
    description = "Gemini models with up to 1M token context"
    DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
    DEFAULT_MODEL = "gemini-1.5-pro"
    MAX_TEMPERATURE = 1.0
    MAX_OUTPUT_TOKENS = 8192
    MAX_TOP_K = 100
    SUPPORTS_PENALTIES = False
    SUPPORTS_STREAMING = True
    SUPPORTS_VISION = True
    SUPPORTS_FUNCTION_CALLING = True
    MODELS = (
        ModelInfo("gemini-1.5-pro", "Gemini 1.5 Pro", 1048576, 8192, 0.00125, 0.005,
                  ("chat", "vision", "code", "function-calling")),
        ModelInfo("gemini-1.5-flash", "Gemini 1.5 Flash", 1048576, 8192, 0.00025, 0.001,
                  ("chat", "vision", "code")),
        ModelInfo("gemini-pro", "Gemini Pro", 32768, 8192, 0.0005, 0.0015, ("chat", "code")),
        ModelInfo("gemini-pro-vision", "Gemini Pro Vision", 16384, 2048, 0.0025, 0.0025,
                  ("vision", "chat")),
    )

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json", "x-goog-api-key": self._api_key}

    def _complete(self, prompt: str, model: str, config: ModelConfig) -> Completion:
        generation: dict[str, Any] = {
            "temperature": config.temperature,
            "maxOutputTokens": config.max_tokens,
            "topP": config.top_p,
            "topK": config.top_k if config.top_k is not None else 40,
        }
        if config.stop_sequences:
            generation["stopSequences"] = config.stop_sequences
        if config.wants_json:
            generation["responseMimeType"] = "application/json"
        payload: dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": generation,
        }
        if config.system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": config.system_prompt}]}

        data = self._post(f"/models/{model}:generateContent", payload)
        candidates = data.get("candidates") or []
        if not candidates:
            block_reason = (data.get("promptFeedback") or {}).get("blockReason")
            if block_reason:
                raise PermanentProviderError(
                    f"{self.name} blocked prompt: {block_reason}",
                    provider=self.provider_type.value,
                )
            raise TransientProviderError(
                f"{self.name} returned no candidates", provider=self.provider_type.value
            )
        candidate = candidates[0]
        parts = (candidate.get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts)
        usage = data.get("usageMetadata") or {}
        reason = candidate.get("finishReason", "")
        return Completion(
            content=text,
            model=model,
            prompt_tokens=usage.get("promptTokenCount", self.estimate_tokens(prompt)),
            completion_tokens=usage.get("candidatesTokenCount", self.estimate_tokens(text)),
            finish_reason=_FINISH_REASONS.get(reason, reason.lower() or None),
            raw=data,
            metadata={"safety_ratings": candidate.get("safetyRatings", [])},
        )
