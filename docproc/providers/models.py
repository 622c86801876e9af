from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any


class ProviderType(str, Enum):
    """Closed set of supported model backends."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    PERPLEXITY = "perplexity"
    DEEPSEEK = "deepseek"
    COHERE = "cohere"
    GROK = "grok"
    EXAMPLE = "example"


@dataclass(frozen=True)
class ModelInfo:
    """One model offered by a provider, with its limits and price per 1k tokens."""

    id: str
    name: str
    context_window: int
    max_output: int
    cost_per_1k_input: float
    cost_per_1k_output: float
    capabilities: tuple[str, ...] = ()


@dataclass
class ModelConfig:
    """Generation parameters. ``None`` means "use the provider default"."""

    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    top_k: int | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    stop_sequences: list[str] | None = None
    system_prompt: str | None = None
    response_format: str | None = None
    seed: int | None = None

    def merged(self, override: "ModelConfig | None") -> "ModelConfig":
        """Return a copy where every non-None field of ``override`` wins."""
        if override is None:
            return replace(self)
        changes = {
            f.name: getattr(override, f.name)
            for f in fields(override)
            if getattr(override, f.name) is not None
        }
        return replace(self, **changes)

    @property
    def wants_json(self) -> bool:
        return self.response_format == "json"


@dataclass(frozen=True)
class TokenUsage:
    """Token accounting for one call. ``total_tokens`` is always prompt + completion."""

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass
class ProviderResponse:
    """Normalized result of a completion call, whatever the backend."""

    content: str
    model: str
    provider: str
    usage: TokenUsage
    cost: float
    finish_reason: str | None = None
    raw: Any = None
    processing_time_ms: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class Completion:
    """What an adapter extracts from its backend before accounting is applied."""

    content: str
    model: str
    prompt_tokens: int
    completion_tokens: int
    finish_reason: str | None = None
    raw: Any = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class EmbeddingResponse:
    """Vectors for a batch of input texts."""

    embeddings: list[list[float]]
    model: str
    usage: TokenUsage
    cost: float = 0.0


@dataclass(frozen=True)
class TaskRequirements:
    """Hints used when recommending a provider for a task."""

    context_length: int | None = None
    needs_citations: bool = False
    needs_real_time: bool = False
    needs_vision: bool = False
    budget: str = "medium"


@dataclass(frozen=True)
class ProviderInfo:
    """Catalogue entry describing a registered provider."""

    type: ProviderType
    name: str
    description: str
    available: bool
    models: tuple[ModelInfo, ...]
    supports_streaming: bool
    supports_vision: bool
    supports_function_calling: bool
    supports_embeddings: bool


@dataclass(frozen=True)
class ProviderComparison:
    """Outcome of running the same prompt against one provider."""

    provider: ProviderType
    response: str
    time_ms: int
    tokens: int
    cost: float
    error: str | None = None
