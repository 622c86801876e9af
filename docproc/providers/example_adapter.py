"""Example provider adapter.

Use this module as a reference when implementing new provider adapters:
subclass BaseProviderAdapter, describe the models, implement ``_complete``
and register the provider in ProviderRegistry.ADAPTERS.
"""

import json
from typing import ClassVar

from docproc.providers.base import BaseProviderAdapter
from docproc.providers.models import Completion, ModelConfig, ModelInfo, ProviderType


class ExampleAdapter(BaseProviderAdapter):
    """Offline adapter that returns a canned response.

    No network calls. Useful for local development and tests.
    """

    provider_type = ProviderType.EXAMPLE
    name = "Example"
    description = "Offline backend returning a fixed response"
    DEFAULT_MODEL = "example"
    MODELS = (ModelInfo("example", "Example", 100000, 4096, 0.0, 0.0, ("chat",)),)

    DEFAULT_JSON_RESPONSE: ClassVar[dict[str, object]] = {"summary": "Example summary"}
    DEFAULT_TEXT_RESPONSE: ClassVar[str] = "Example response"

    def __init__(self, *, canned_response: str | None = None, **kwargs: object) -> None:
        super().__init__()
        self._canned_response = canned_response

    def is_available(self) -> bool:
        return True

    def _complete(self, prompt: str, model: str, config: ModelConfig) -> Completion:
        if self._canned_response is not None:
            content = self._canned_response
        elif config.wants_json:
            content = json.dumps(self.DEFAULT_JSON_RESPONSE)
        else:
            content = self.DEFAULT_TEXT_RESPONSE
        return Completion(
            content=content,
            model=model,
            prompt_tokens=self.estimate_tokens(prompt),
            completion_tokens=self.estimate_tokens(content),
            finish_reason="stop",
        )
