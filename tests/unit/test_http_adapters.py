import json

import httpx
import pytest

from docproc.providers.anthropic_adapter import AnthropicAdapter
from docproc.providers.cohere_adapter import CohereAdapter
from docproc.providers.exceptions import PermanentProviderError, TransientProviderError
from docproc.providers.gemini_adapter import GeminiAdapter
from docproc.providers.models import ModelConfig


def _client(handler, captured: list[httpx.Request] | None = None) -> httpx.Client:  # type: ignore[no-untyped-def]
    def record(request: httpx.Request) -> httpx.Response:
        if captured is not None:
            captured.append(request)
        return handler(request)

    return httpx.Client(transport=httpx.MockTransport(record))


class TestAnthropicAdapter:
    def test_parses_messages_response(self) -> None:
        captured: list[httpx.Request] = []
        body = {
            "model": "claude-3-sonnet-20240229",
            "content": [{"type": "text", "text": "Summary"}],
            "usage": {"input_tokens": 20, "output_tokens": 4},
            "stop_reason": "end_turn",
        }
        adapter = AnthropicAdapter(
            api_key="ant", http_client=_client(lambda r: httpx.Response(200, json=body), captured)
        )

        response = adapter.invoke(
            "prompt", "claude-3-sonnet-20240229", ModelConfig(system_prompt="sys")
        )

        assert response.content == "Summary"
        assert response.usage.prompt_tokens == 20
        assert response.finish_reason == "stop"
        request = captured[0]
        assert request.url.path == "/v1/messages"
        assert request.headers["x-api-key"] == "ant"
        assert json.loads(request.content)["system"] == "sys"

    def test_empty_content_is_transient(self) -> None:
        adapter = AnthropicAdapter(
            api_key="ant",
            http_client=_client(lambda r: httpx.Response(200, json={"content": []})),
        )

        with pytest.raises(TransientProviderError, match="empty response"):
            adapter.invoke("prompt", "claude-3-sonnet-20240229")

    def test_rejects_temperature_above_one(self) -> None:
        adapter = AnthropicAdapter(api_key="ant", http_client=_client(lambda r: httpx.Response(200)))

        with pytest.raises(PermanentProviderError, match="Temperature"):
            adapter.invoke("prompt", "claude-3-sonnet-20240229", ModelConfig(temperature=1.5))


class TestHttpErrorMapping:
    @pytest.mark.parametrize("status", [429, 500, 503])
    def test_retryable_statuses_are_transient(self, status: int) -> None:
        adapter = AnthropicAdapter(
            api_key="ant", http_client=_client(lambda r: httpx.Response(status, text="busy"))
        )

        with pytest.raises(TransientProviderError):
            adapter.invoke("prompt", "claude-3-sonnet-20240229")

    @pytest.mark.parametrize("status", [400, 401, 404])
    def test_client_errors_are_permanent(self, status: int) -> None:
        adapter = AnthropicAdapter(
            api_key="ant", http_client=_client(lambda r: httpx.Response(status, text="bad"))
        )

        with pytest.raises(PermanentProviderError):
            adapter.invoke("prompt", "claude-3-sonnet-20240229")

    def test_network_error_is_transient(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        adapter = AnthropicAdapter(api_key="ant", http_client=_client(handler))

        with pytest.raises(TransientProviderError, match="network error"):
            adapter.invoke("prompt", "claude-3-sonnet-20240229")


class TestGeminiAdapter:
    def test_parses_candidates(self) -> None:
        captured: list[httpx.Request] = []
        body = {
            "candidates": [
                {
                    "content": {"parts": [{"text": '{"a": '}, {"text": "1}"}]},
                    "finishReason": "STOP",
                }
            ],
            "usageMetadata": {"promptTokenCount": 8, "candidatesTokenCount": 3},
        }
        adapter = GeminiAdapter(
            api_key="g", http_client=_client(lambda r: httpx.Response(200, json=body), captured)
        )

        response = adapter.invoke("prompt", "gemini-1.5-pro", ModelConfig(response_format="json"))

        assert response.content == '{"a": 1}'
        assert response.finish_reason == "stop"
        assert response.usage.total_tokens == 11
        sent = json.loads(captured[0].content)
        assert sent["generationConfig"]["responseMimeType"] == "application/json"
        assert captured[0].url.path.endswith("/models/gemini-1.5-pro:generateContent")

    def test_blocked_prompt_is_permanent(self) -> None:
        body = {"candidates": [], "promptFeedback": {"blockReason": "SAFETY"}}
        adapter = GeminiAdapter(
            api_key="g", http_client=_client(lambda r: httpx.Response(200, json=body))
        )

        with pytest.raises(PermanentProviderError, match="SAFETY"):
            adapter.invoke("prompt", "gemini-1.5-pro")


class TestCohereAdapter:
    def test_chat_response_with_citations(self) -> None:
        body = {
            "text": "answer",
            "finish_reason": "COMPLETE",
            "meta": {"billed_units": {"input_tokens": 10, "output_tokens": 2}},
            "citations": [{"text": "source"}],
        }
        adapter = CohereAdapter(
            api_key="c", http_client=_client(lambda r: httpx.Response(200, json=body))
        )

        response = adapter.invoke("prompt", "command-r")

        assert response.content == "answer"
        assert response.finish_reason == "stop"
        assert response.metadata["citations"] == [{"text": "source"}]

    def test_embeddings(self) -> None:
        body = {"embeddings": [[0.5, 0.25]], "meta": {"billed_units": {"input_tokens": 1000}}}
        adapter = CohereAdapter(
            api_key="c", http_client=_client(lambda r: httpx.Response(200, json=body))
        )

        response = adapter.generate_embeddings(["text"])

        assert response.embeddings == [[0.5, 0.25]]
        assert response.cost == pytest.approx(0.0001)
