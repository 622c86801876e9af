from typing import Any

from docproc.providers.models import ModelConfig, ModelInfo, ProviderType
from docproc.providers.openai_adapter import OpenAICompatibleAdapter


class PerplexityAdapter(OpenAICompatibleAdapter):
    """Search-augmented models. Citations come back in the response metadata."""

    provider_type = ProviderType.PERPLEXITY
    name = "Perplexity"
    description = "Online models with web search and citations"
    DEFAULT_BASE_URL = "https://api.perplexity.ai"
    DEFAULT_MODEL = "pplx-70b-online"
    SUPPORTS_JSON_MODE = False
    SUPPORTS_STREAMING = True
    MODELS = (
        ModelInfo("pplx-7b-online", "Perplexity 7B Online", 4096, 4096, 0.0002, 0.0002,
                  ("chat", "search", "real-time")),
        ModelInfo("pplx-70b-online", "Perplexity 70B Online", 4096, 4096, 0.001, 0.001,
                  ("chat", "search", "real-time", "analysis")),
        ModelInfo("pplx-7b-chat", "Perplexity 7B Chat", 8192, 4096, 0.0002, 0.0002, ("chat",)),
        ModelInfo("pplx-70b-chat", "Perplexity 70B Chat", 4096, 4096, 0.001, 0.001,
                  ("chat", "analysis")),
        ModelInfo("mistral-7b-instruct", "Mistral 7B Instruct", 4096, 4096, 0.0002, 0.0002,
                  ("chat", "code")),
        ModelInfo("mixtral-8x7b-instruct", "Mixtral 8x7B Instruct", 4096, 4096, 0.0006, 0.0006,
                  ("chat", "code", "analysis")),
    )

    def _extra_body(self, config: ModelConfig) -> dict[str, Any]:
        return {"return_citations": True}

    def _response_metadata(self, response: Any) -> dict[str, Any]:
        citations = getattr(response, "citations", None)
        return {"citations": list(citations)} if citations else {}
