from unittest.mock import MagicMock, patch

import httpx
import openai
import pytest

from docproc.providers.deepseek_adapter import DeepSeekAdapter
from docproc.providers.exceptions import PermanentProviderError, TransientProviderError
from docproc.providers.grok_adapter import GrokAdapter
from docproc.providers.models import ModelConfig
from docproc.providers.openai_adapter import OpenAIAdapter
from docproc.providers.perplexity_adapter import PerplexityAdapter


def _make_mock_response(
    content: str | None,
    *,
    finish_reason: str = "stop",
    prompt_tokens: int = 12,
    completion_tokens: int = 5,
) -> MagicMock:
    choice = MagicMock()
    choice.message.content = content
    choice.finish_reason = finish_reason
    response = MagicMock()
    response.choices = [choice]
    response.model = "gpt-4"
    response.usage.prompt_tokens = prompt_tokens
    response.usage.completion_tokens = completion_tokens
    response.model_dump.return_value = {"id": "chatcmpl-1"}
    response.citations = None
    return response


def _make_adapter(mock_client: MagicMock, adapter_cls=OpenAIAdapter):  # type: ignore[no-untyped-def]
    return adapter_cls(api_key="k", timeout_seconds=30, client=mock_client)


class TestOpenAIAdapter:
    def test_returns_normalized_response(self) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create.return_value = _make_mock_response('{"ok": true}')
        adapter = _make_adapter(mock_client)

        response = adapter.invoke("prompt", "gpt-4", ModelConfig(response_format="json"))

        assert response.content == '{"ok": true}'
        assert response.provider == "openai"
        assert response.usage.prompt_tokens == 12
        assert response.usage.completion_tokens == 5
        assert response.cost == pytest.approx(12 / 1000 * 0.03 + 5 / 1000 * 0.06)
        assert response.finish_reason == "stop"
        assert response.raw == {"id": "chatcmpl-1"}

    def test_sends_json_mode_and_system_prompt(self) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create.return_value = _make_mock_response("{}")
        adapter = _make_adapter(mock_client)

        adapter.invoke(
            "prompt",
            "gpt-4",
            ModelConfig(response_format="json", system_prompt="Be precise", seed=7),
        )

        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["messages"][0] == {"role": "system", "content": "Be precise"}
        assert kwargs["messages"][1] == {"role": "user", "content": "prompt"}
        assert kwargs["seed"] == 7
        assert kwargs["max_tokens"] == 2000

    def test_raises_transient_for_empty_content(self) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create.return_value = _make_mock_response(None)
        adapter = _make_adapter(mock_client)

        with pytest.raises(TransientProviderError, match="empty response"):
            adapter.invoke("prompt", "gpt-4")

    def test_raises_transient_on_connection_failure(self) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create.side_effect = openai.APIConnectionError(
            request=MagicMock()
        )
        adapter = _make_adapter(mock_client)

        with pytest.raises(TransientProviderError, match="network error"):
            adapter.invoke("prompt", "gpt-4")

    def test_raises_transient_on_timeout(self) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create.side_effect = httpx.TimeoutException("timeout")
        adapter = _make_adapter(mock_client)

        with pytest.raises(TransientProviderError, match="network error"):
            adapter.invoke("prompt", "gpt-4")

    def test_raises_transient_on_api_error(self) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create.side_effect = openai.APIError(
            message="server error",
            request=MagicMock(),
            body=None,
        )
        adapter = _make_adapter(mock_client)

        with pytest.raises(TransientProviderError, match="API error"):
            adapter.invoke("prompt", "gpt-4")

    def test_raises_permanent_on_bad_request(self) -> None:
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        mock_client = MagicMock()
        mock_client.chat.completions.create.side_effect = openai.BadRequestError(
            "bad", response=httpx.Response(400, request=request), body=None
        )
        adapter = _make_adapter(mock_client)

        with pytest.raises(PermanentProviderError, match="rejected request"):
            adapter.invoke("prompt", "gpt-4")

    def test_rate_limit_is_transient(self) -> None:
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        mock_client = MagicMock()
        mock_client.chat.completions.create.side_effect = openai.RateLimitError(
            "slow down", response=httpx.Response(429, request=request), body=None
        )
        adapter = _make_adapter(mock_client)

        with pytest.raises(TransientProviderError, match="rate limit"):
            adapter.invoke("prompt", "gpt-4")

    def test_embeddings(self) -> None:
        mock_client = MagicMock()
        item = MagicMock(embedding=[0.1, 0.2])
        mock_client.embeddings.create.return_value = MagicMock(
            data=[item], usage=MagicMock(prompt_tokens=1000)
        )
        adapter = _make_adapter(mock_client)

        response = adapter.generate_embeddings(["text"])

        assert response.embeddings == [[0.1, 0.2]]
        assert response.model == "text-embedding-3-small"
        assert response.cost == pytest.approx(0.00002)


class TestCompatibleBackends:
    def test_deepseek_uses_own_base_url(self) -> None:
        with patch("docproc.providers.openai_adapter.openai.OpenAI") as mock_cls:
            mock_cls.return_value.chat.completions.create.return_value = _make_mock_response("ok")
            DeepSeekAdapter(api_key="k").invoke("hi", "deepseek-chat")

        assert mock_cls.call_args.kwargs["base_url"] == DeepSeekAdapter.DEFAULT_BASE_URL
        assert mock_cls.call_args.kwargs["max_retries"] == 0

    def test_perplexity_requests_citations_without_json_mode(self) -> None:
        mock_client = MagicMock()
        mock_response = _make_mock_response("answer")
        mock_response.citations = ["https://example.org"]
        mock_client.chat.completions.create.return_value = mock_response
        adapter = _make_adapter(mock_client, PerplexityAdapter)

        response = adapter.invoke(
            "prompt", "pplx-70b-online", ModelConfig(response_format="json")
        )

        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert "response_format" not in kwargs
        assert kwargs["extra_body"] == {"return_citations": True}
        assert response.metadata == {"citations": ["https://example.org"]}


class TestClientConstruction:
    def test_client_not_built_until_first_call(self) -> None:
        with patch("docproc.providers.openai_adapter.openai.OpenAI") as mock_cls:
            adapter = OpenAIAdapter(api_key="k")

        mock_cls.assert_not_called()
        assert adapter.is_available()

    def test_client_built_once(self) -> None:
        with patch("docproc.providers.openai_adapter.openai.OpenAI") as mock_cls:
            mock_cls.return_value.chat.completions.create.return_value = _make_mock_response("ok")
            adapter = OpenAIAdapter(api_key="k", timeout_seconds=15)
            adapter.invoke("one", "gpt-4")
            adapter.invoke("two", "gpt-4")

        mock_cls.assert_called_once()
        assert mock_cls.call_args.kwargs["api_key"] == "k"
        assert mock_cls.call_args.kwargs["timeout"] == 15

    def test_missing_key_never_builds_client(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        adapter = GrokAdapter(api_key="")

        with patch("docproc.providers.openai_adapter.openai.OpenAI") as mock_cls:
            with pytest.raises(PermanentProviderError, match="credentials"):
                adapter.invoke("hi", "grok-2")
            with pytest.raises(PermanentProviderError, match="credentials"):
                OpenAIAdapter(api_key="").generate_embeddings(["text"])

        mock_cls.assert_not_called()
        assert not adapter.is_available()
