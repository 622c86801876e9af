from docproc.providers.models import ModelInfo, ProviderType
from docproc.providers.openai_adapter import OpenAICompatibleAdapter


class GrokAdapter(OpenAICompatibleAdapter):
    provider_type = ProviderType.GROK
    name = "Grok"
    description = "xAI Grok models with real-time knowledge"
    DEFAULT_BASE_URL = "https://api.x.ai/v1"
    DEFAULT_MODEL = "grok-2"
    MAX_OUTPUT_TOKENS = 8192
    SUPPORTS_STREAMING = True
    SUPPORTS_VISION = True
    SUPPORTS_FUNCTION_CALLING = True
    MODELS = (
        ModelInfo("grok-2", "Grok 2", 131072, 8192, 0.002, 0.01,
                  ("chat", "code", "reasoning", "math", "realtime")),
        ModelInfo("grok-2-mini", "Grok 2 Mini", 131072, 8192, 0.001, 0.002,
                  ("chat", "code", "reasoning")),
        ModelInfo("grok-vision-beta", "Grok Vision Beta", 8192, 4096, 0.003, 0.015,
                  ("chat", "vision", "image-analysis")),
    )
