import time
from dataclasses import dataclass
from typing import ClassVar

from docproc.config.settings import Settings
from docproc.logging.logger import Log
from docproc.providers.anthropic_adapter import AnthropicAdapter
from docproc.providers.base import BaseProviderAdapter
from docproc.providers.cohere_adapter import CohereAdapter
from docproc.providers.deepseek_adapter import DeepSeekAdapter
from docproc.providers.example_adapter import ExampleAdapter
from docproc.providers.exceptions import ProviderError, UnknownProviderError
from docproc.providers.gemini_adapter import GeminiAdapter
from docproc.providers.grok_adapter import GrokAdapter
from docproc.providers.models import (
    ModelConfig,
    ModelInfo,
    ProviderComparison,
    ProviderInfo,
    ProviderResponse,
    ProviderType,
    TaskRequirements,
)
from docproc.providers.openai_adapter import OpenAIAdapter
from docproc.providers.perplexity_adapter import PerplexityAdapter

ANALYSIS_TASKS = frozenset({"analysis", "research", "BID_ANALYSIS", "COMPLIANCE_CHECK"})
RETRIEVAL_TASKS = frozenset({"rag", "search"})
CODE_TASKS = frozenset({"code"})

TEST_PROMPT = 'Hello, please respond with "OK" if you are working.'


@dataclass(frozen=True)
class ResolvedProvider:
    """Adapter and model chosen for one call."""

    provider_type: ProviderType
    adapter: BaseProviderAdapter
    model: str


class ProviderRegistry:
    """Holds one adapter per provider type and routes calls between them."""

    ADAPTERS: ClassVar[dict[ProviderType, type[BaseProviderAdapter]]] = {
        ProviderType.OPENAI: OpenAIAdapter,
        ProviderType.ANTHROPIC: AnthropicAdapter,
        ProviderType.GOOGLE: GeminiAdapter,
        ProviderType.PERPLEXITY: PerplexityAdapter,
        ProviderType.DEEPSEEK: DeepSeekAdapter,
        ProviderType.COHERE: CohereAdapter,
        ProviderType.GROK: GrokAdapter,
        ProviderType.EXAMPLE: ExampleAdapter,
    }

    ALIASES: ClassVar[dict[str, ProviderType]] = {
        "gemini": ProviderType.GOOGLE,
        "claude": ProviderType.ANTHROPIC,
        "xai": ProviderType.GROK,
    }

    def __init__(
        self,
        adapters: dict[ProviderType, BaseProviderAdapter],
        *,
        default_provider: ProviderType,
        fallback_model: str,
    ) -> None:
        if default_provider not in adapters:
            raise ValueError(f"Default provider '{default_provider.value}' is not registered")
        self._adapters = dict(adapters)
        self._default_provider = default_provider
        self._fallback_model = fallback_model

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProviderRegistry":
        """Create every adapter from application settings."""
        default_provider = cls.parse_type(settings.default_provider)
        if default_provider is None:
            raise ValueError(
                f"Unknown default provider '{settings.default_provider}'. "
                f"Choose from: {sorted(t.value for t in ProviderType)}"
            )
        adapters: dict[ProviderType, BaseProviderAdapter] = {}
        for provider_type, adapter_cls in cls.ADAPTERS.items():
            if provider_type is ProviderType.EXAMPLE:
                adapters[provider_type] = adapter_cls()
                continue
            adapters[provider_type] = adapter_cls(
                api_key=cls._resolve_api_key(provider_type, settings),
                timeout_seconds=cls._resolve_timeout_seconds(provider_type, settings),
                base_url=cls._resolve_base_url(provider_type, settings),
            )
        return cls(
            adapters,
            default_provider=default_provider,
            fallback_model=settings.fallback_model,
        )

    @classmethod
    def parse_type(cls, name: str | None) -> ProviderType | None:
        """Map a provider name or alias to its type; ``None`` when unrecognized."""
        if not name:
            return None
        key = name.strip().lower()
        if key in cls.ALIASES:
            return cls.ALIASES[key]
        try:
            return ProviderType(key)
        except ValueError:
            return None

    @classmethod
    def _resolve_api_key(cls, provider_type: ProviderType, settings: Settings) -> str:
        key_map = {
            ProviderType.OPENAI: settings.openai_api_key,
            ProviderType.ANTHROPIC: settings.anthropic_api_key,
            ProviderType.GOOGLE: settings.google_api_key,
            ProviderType.PERPLEXITY: settings.perplexity_api_key,
            ProviderType.DEEPSEEK: settings.deepseek_api_key,
            ProviderType.COHERE: settings.cohere_api_key,
            ProviderType.GROK: settings.grok_api_key,
        }
        return key_map.get(provider_type, "") or ""

    @classmethod
    def _resolve_base_url(cls, provider_type: ProviderType, settings: Settings) -> str | None:
        key_map = {
            ProviderType.OPENAI: settings.openai_base_url,
            ProviderType.ANTHROPIC: settings.anthropic_base_url,
            ProviderType.GOOGLE: settings.google_base_url,
            ProviderType.PERPLEXITY: settings.perplexity_base_url,
            ProviderType.DEEPSEEK: settings.deepseek_base_url,
            ProviderType.COHERE: settings.cohere_base_url,
            ProviderType.GROK: settings.grok_base_url,
        }
        return (key_map.get(provider_type) or "").strip() or None

    @classmethod
    def _resolve_timeout_seconds(cls, provider_type: ProviderType, settings: Settings) -> int:
        key_map = {
            ProviderType.OPENAI: settings.openai_timeout_seconds,
            ProviderType.ANTHROPIC: settings.anthropic_timeout_seconds,
            ProviderType.GOOGLE: settings.google_timeout_seconds,
            ProviderType.PERPLEXITY: settings.perplexity_timeout_seconds,
            ProviderType.DEEPSEEK: settings.deepseek_timeout_seconds,
            ProviderType.COHERE: settings.cohere_timeout_seconds,
            ProviderType.GROK: settings.grok_timeout_seconds,
        }
        return key_map.get(provider_type, 60) or 60

    @property
    def default_provider(self) -> ProviderType:
        return self._default_provider

    @property
    def default_adapter(self) -> BaseProviderAdapter:
        return self._adapters[self._default_provider]

    def get(self, provider: ProviderType | str) -> BaseProviderAdapter:
        provider_type = provider if isinstance(provider, ProviderType) else self.parse_type(provider)
        if provider_type is None or provider_type not in self._adapters:
            raise UnknownProviderError(f"Provider '{provider}' is not registered")
        return self._adapters[provider_type]

    def is_registered(self, name: str | None) -> bool:
        provider_type = self.parse_type(name)
        return provider_type is not None and provider_type in self._adapters

    def resolve(
        self,
        requested_provider: str | None = None,
        requested_model: str | None = None,
        *,
        template_provider: str | None = None,
        template_model: str | None = None,
        task_type: str | None = None,
        requirements: TaskRequirements | None = None,
    ) -> ResolvedProvider:
        """Choose the adapter and model for a call.

        Provider precedence: explicit request, template default, task
        recommendation. An unrecognized name falls back to the system default.
        Model precedence: explicit request, template default, adapter default;
        a model the chosen adapter does not offer is replaced by its default.
        """
        name = requested_provider or template_provider
        if name:
            provider_type = self.parse_type(name)
            if provider_type is None or provider_type not in self._adapters:
                Log.warning(
                    f"Unknown provider '{name}' requested, "
                    f"using default {self._default_provider.value}"
                )
                provider_type = self._default_provider
        else:
            provider_type = self.recommend_for_task(task_type, requirements or TaskRequirements())

        adapter = self._adapters[provider_type]
        model = requested_model or template_model or adapter.DEFAULT_MODEL
        if not adapter.supports_model(model):
            Log.warning(
                f"Model '{model}' not offered by {provider_type.value}, "
                f"using {adapter.DEFAULT_MODEL}"
            )
            model = adapter.DEFAULT_MODEL
        return ResolvedProvider(provider_type=provider_type, adapter=adapter, model=model)

    def recommend_for_task(
        self,
        task_type: str | None,
        requirements: TaskRequirements,
    ) -> ProviderType:
        """Deterministic rule table mapping a task and its requirements to a provider.

        Providers without credentials are never recommended; when the
        preferred one is unavailable the system default is returned.
        """
        candidates = {
            provider_type: adapter
            for provider_type, adapter in self._adapters.items()
            if provider_type is not ProviderType.EXAMPLE and adapter.is_available()
        }

        def pick(provider_type: ProviderType) -> ProviderType:
            return provider_type if provider_type in candidates else self._default_provider

        if requirements.needs_citations or requirements.needs_real_time:
            return pick(ProviderType.PERPLEXITY)
        if requirements.context_length and requirements.context_length > 200000 and candidates:
            return max(candidates, key=lambda t: self._default_model_info(t).context_window)
        if requirements.budget == "low" and candidates:
            return min(candidates, key=self._default_model_price)
        if task_type in CODE_TASKS and requirements.budget != "high":
            return pick(ProviderType.DEEPSEEK)
        if task_type in ANALYSIS_TASKS:
            return pick(ProviderType.ANTHROPIC)
        if task_type in RETRIEVAL_TASKS:
            return pick(ProviderType.COHERE)
        return self._default_provider

    def invoke_with_fallback(
        self,
        prompt: str,
        resolved: ResolvedProvider,
        config: ModelConfig | None = None,
    ) -> ProviderResponse:
        """Call the resolved adapter, retrying once on the system default adapter.

        The fallback uses the cheaper ``fallback_model`` when the default
        adapter offers it. Errors from the default adapter propagate.
        """
        try:
            return resolved.adapter.invoke(prompt, resolved.model, config)
        except ProviderError as exc:
            if resolved.provider_type is self._default_provider:
                raise
            fallback = self.default_adapter
            model = (
                self._fallback_model
                if fallback.supports_model(self._fallback_model)
                else fallback.DEFAULT_MODEL
            )
            Log.warning(
                f"{resolved.provider_type.value} call failed ({exc}), "
                f"falling back to {self._default_provider.value}/{model}"
            )
            response = fallback.invoke(prompt, model, config)
            response.metadata["fallback_from"] = resolved.provider_type.value
            return response

    def list_providers(self) -> list[ProviderInfo]:
        return [
            ProviderInfo(
                type=provider_type,
                name=adapter.name,
                description=adapter.description,
                available=adapter.is_available(),
                models=tuple(adapter.supported_models()),
                supports_streaming=adapter.SUPPORTS_STREAMING,
                supports_vision=adapter.SUPPORTS_VISION,
                supports_function_calling=adapter.SUPPORTS_FUNCTION_CALLING,
                supports_embeddings=adapter.SUPPORTS_EMBEDDINGS,
            )
            for provider_type, adapter in self._adapters.items()
        ]

    def test_provider(self, provider: ProviderType | str) -> bool:
        """Send a tiny prompt; True when the backend answers with "OK"."""
        try:
            adapter = self.get(provider)
            response = adapter.invoke(
                TEST_PROMPT, adapter.DEFAULT_MODEL, ModelConfig(max_tokens=10)
            )
        except (ProviderError, UnknownProviderError) as exc:
            Log.error(f"Provider {provider} test failed: {exc}")
            return False
        return "ok" in response.content.lower()

    def compare_providers(
        self,
        prompt: str,
        providers: list[ProviderType],
        model: str | None = None,
    ) -> list[ProviderComparison]:
        """Run ``prompt`` on each provider in turn and report latency, tokens and cost."""
        results: list[ProviderComparison] = []
        for provider_type in providers:
            started = time.perf_counter()
            try:
                adapter = self.get(provider_type)
                response = adapter.invoke(prompt, model or adapter.DEFAULT_MODEL)
            except (ProviderError, UnknownProviderError) as exc:
                results.append(
                    ProviderComparison(
                        provider=provider_type,
                        response="",
                        time_ms=int((time.perf_counter() - started) * 1000),
                        tokens=0,
                        cost=0.0,
                        error=str(exc),
                    )
                )
                continue
            results.append(
                ProviderComparison(
                    provider=provider_type,
                    response=response.content,
                    time_ms=int((time.perf_counter() - started) * 1000),
                    tokens=response.usage.total_tokens,
                    cost=response.cost,
                )
            )
        return results

    def _default_model_info(self, provider_type: ProviderType) -> ModelInfo:
        adapter = self._adapters[provider_type]
        info = adapter.get_model(adapter.DEFAULT_MODEL)
        if info is None:
            raise ValueError(f"{adapter.name} default model missing from its table")
        return info

    def _default_model_price(self, provider_type: ProviderType) -> float:
        info = self._default_model_info(provider_type)
        return info.cost_per_1k_input + info.cost_per_1k_output
