from docproc.providers.models import ModelInfo, ProviderType
from docproc.providers.openai_adapter import OpenAICompatibleAdapter


class DeepSeekAdapter(OpenAICompatibleAdapter):
    provider_type = ProviderType.DEEPSEEK
    name = "DeepSeek"
    description = "Low-cost chat and code models"
    DEFAULT_BASE_URL = "https://api.deepseek.com/v1"
    DEFAULT_MODEL = "deepseek-chat"
    SUPPORTS_STREAMING = True
    MODELS = (
        ModelInfo("deepseek-chat", "DeepSeek Chat", 32768, 4096, 0.00014, 0.00028,
                  ("chat", "code", "analysis")),
        ModelInfo("deepseek-coder", "DeepSeek Coder", 16384, 4096, 0.00014, 0.00028,
                  ("code", "chat")),
        ModelInfo("deepseek-67b-chat", "DeepSeek 67B Chat", 4096, 4096, 0.001, 0.002,
                  ("chat", "code", "analysis", "math")),
        ModelInfo("deepseek-33b-coder", "DeepSeek 33B Coder", 16384, 4096, 0.0008, 0.0016,
                  ("code", "chat")),
    )
