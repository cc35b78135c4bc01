"""Tests for completion providers with mocked SDK clients (no API keys required)."""

from __future__ import annotations

from unittest.mock import MagicMock

import anthropic
import httpx
import openai
import pytest
from anthropic.types import TextBlock

from email_tasks.errors import ProviderError, ProviderUnavailable
from email_tasks.providers.anthropic_provider import AnthropicProvider
from email_tasks.providers.openai_provider import OpenAIProvider
from email_tasks.providers.rate_limit import TokenBucket, get_rate_limiter

OPENAI_URL = "https://api.openai.com/v1/chat/completions"
ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"


def status_response(status: int, url: str) -> httpx.Response:
    return httpx.Response(status, request=httpx.Request("POST", url))


def openai_chat_response(content: str, model: str = "gpt-4o-2024-08-06") -> MagicMock:
    response = MagicMock()
    response.choices = [MagicMock(message=MagicMock(content=content))]
    response.model = model
    response.usage.prompt_tokens = 120
    response.usage.completion_tokens = 30
    return response


class TestOpenAIProvider:
    def test_complete_sends_system_prompt_and_json_mode(self) -> None:
        client = MagicMock()
        client.chat.completions.create.return_value = openai_chat_response('{"tasks": []}')
        provider = OpenAIProvider(api_key="sk-test", client=client)

        completion = provider.complete(
            [{"role": "user", "content": "hello"}],
            system_prompt="be terse",
            max_tokens=256,
            temperature=0.1,
            json_output=True,
        )

        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["messages"] == [
            {"role": "system", "content": "be terse"},
            {"role": "user", "content": "hello"},
        ]
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["max_tokens"] == 256
        assert completion.content == '{"tasks": []}'
        assert completion.provider_name == "openai"
        assert completion.model_name == "gpt-4o-2024-08-06"
        assert completion.usage == {"input_tokens": 120, "output_tokens": 30}

    def test_prompt_is_sent_untruncated(self) -> None:
        client = MagicMock()
        client.chat.completions.create.return_value = openai_chat_response("ok")
        provider = OpenAIProvider(api_key="sk-test", client=client)
        long_prompt = "word " * 50_000

        provider.complete([{"role": "user", "content": long_prompt}])

        assert client.chat.completions.create.call_args.kwargs["messages"][0]["content"] == long_prompt

    def test_compatible_backends_report_their_name(self) -> None:
        client = MagicMock()
        client.chat.completions.create.return_value = openai_chat_response("ok", model="sonar")
        provider = OpenAIProvider(api_key="pplx", model="sonar", name="perplexity", embedding_model=None, client=client)

        assert provider.complete([{"role": "user", "content": "hi"}]).provider_name == "perplexity"
        assert not provider.supports_embeddings
        with pytest.raises(ProviderError):
            provider.embed("text")

    @pytest.mark.parametrize(
        "error",
        [
            openai.AuthenticationError("bad key", response=status_response(401, OPENAI_URL), body=None),
            openai.RateLimitError("quota", response=status_response(429, OPENAI_URL), body=None),
            openai.InternalServerError("oops", response=status_response(500, OPENAI_URL), body=None),
            openai.APIConnectionError(request=httpx.Request("POST", OPENAI_URL)),
            openai.APITimeoutError(request=httpx.Request("POST", OPENAI_URL)),
        ],
    )
    def test_unavailable_errors(self, error: Exception) -> None:
        client = MagicMock()
        client.chat.completions.create.side_effect = error
        provider = OpenAIProvider(api_key="sk-test", client=client)

        with pytest.raises(ProviderUnavailable) as exc_info:
            provider.complete([{"role": "user", "content": "hi"}])
        assert exc_info.value.provider == "openai"

    def test_bad_request_is_a_plain_provider_error(self) -> None:
        client = MagicMock()
        client.chat.completions.create.side_effect = openai.BadRequestError(
            "context too long", response=status_response(400, OPENAI_URL), body=None
        )
        provider = OpenAIProvider(api_key="sk-test", client=client)

        with pytest.raises(ProviderError) as exc_info:
            provider.complete([{"role": "user", "content": "hi"}])
        assert not isinstance(exc_info.value, ProviderUnavailable)

    def test_embed_requests_native_width(self) -> None:
        client = MagicMock()
        client.embeddings.create.return_value.data = [MagicMock(embedding=[0.1] * 768)]
        provider = OpenAIProvider(api_key="sk-test", embedding_dimensions=768, client=client)

        vector = provider.embed("hello")

        client.embeddings.create.assert_called_once_with(
            input=["hello"], model="text-embedding-3-small", dimensions=768
        )
        assert len(vector) == 768

    def test_embed_legacy_model_has_no_dimensions(self) -> None:
        client = MagicMock()
        client.embeddings.create.return_value.data = [MagicMock(embedding=[0.1] * 1536)]
        provider = OpenAIProvider(
            api_key="sk-test", embedding_model="text-embedding-ada-002", embedding_dimensions=768, client=client
        )

        assert len(provider.embed("hello")) == 1536
        assert "dimensions" not in client.embeddings.create.call_args.kwargs

    def test_embed_errors_are_mapped(self) -> None:
        client = MagicMock()
        client.embeddings.create.side_effect = openai.RateLimitError(
            "quota", response=status_response(429, OPENAI_URL), body=None
        )
        provider = OpenAIProvider(api_key="sk-test", client=client)

        with pytest.raises(ProviderUnavailable):
            provider.embed("hello")

    def test_rate_limiter_is_used(self) -> None:
        client = MagicMock()
        client.chat.completions.create.return_value = openai_chat_response("ok")
        limiter = MagicMock()
        provider = OpenAIProvider(api_key="sk-test", client=client, limiter=limiter)

        provider.complete([{"role": "user", "content": "hi"}])

        limiter.acquire.assert_called_once()


class TestAnthropicProvider:
    def anthropic_response(self, text: str) -> MagicMock:
        response = MagicMock()
        response.content = [TextBlock(type="text", text=text)]
        response.model = "claude-sonnet-4-20250514"
        response.usage.input_tokens = 50
        response.usage.output_tokens = 10
        return response

    def test_complete(self) -> None:
        client = MagicMock()
        client.messages.create.return_value = self.anthropic_response('{"tasks": []}')
        provider = AnthropicProvider(api_key="sk-ant", client=client)

        completion = provider.complete(
            [{"role": "user", "content": "hello"}], system_prompt="extract tasks", json_output=True
        )

        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["messages"] == [{"role": "user", "content": "hello"}]
        assert kwargs["system"].startswith("extract tasks")
        assert "JSON" in kwargs["system"]
        assert completion.content == '{"tasks": []}'
        assert completion.provider_name == "anthropic"
        assert completion.model_name == "claude-sonnet-4-20250514"
        assert completion.usage == {"input_tokens": 50, "output_tokens": 10}

    def test_embeddings_not_supported(self) -> None:
        provider = AnthropicProvider(api_key="sk-ant", client=MagicMock())

        assert not provider.supports_embeddings
        with pytest.raises(ProviderError):
            provider.embed("hello")

    @pytest.mark.parametrize(
        "error",
        [
            anthropic.AuthenticationError("bad key", response=status_response(401, ANTHROPIC_URL), body=None),
            anthropic.RateLimitError("slow down", response=status_response(429, ANTHROPIC_URL), body=None),
            anthropic.APIStatusError("overloaded", response=status_response(529, ANTHROPIC_URL), body=None),
            anthropic.APIConnectionError(request=httpx.Request("POST", ANTHROPIC_URL)),
        ],
    )
    def test_unavailable_errors(self, error: Exception) -> None:
        client = MagicMock()
        client.messages.create.side_effect = error
        provider = AnthropicProvider(api_key="sk-ant", client=client)

        with pytest.raises(ProviderUnavailable):
            provider.complete([{"role": "user", "content": "hi"}])

    def test_bad_request_is_a_plain_provider_error(self) -> None:
        client = MagicMock()
        client.messages.create.side_effect = anthropic.BadRequestError(
            "bad", response=status_response(400, ANTHROPIC_URL), body=None
        )
        provider = AnthropicProvider(api_key="sk-ant", client=client)

        with pytest.raises(ProviderError) as exc_info:
            provider.complete([{"role": "user", "content": "hi"}])
        assert not isinstance(exc_info.value, ProviderUnavailable)


class TestTokenBucket:
    def test_burst_up_to_capacity_does_not_wait(self) -> None:
        bucket = TokenBucket(rate=1000.0, capacity=3)
        for _ in range(3):
            bucket.acquire()
        assert bucket.tokens < 1

    def test_zero_rate_disables_limiting(self) -> None:
        bucket = TokenBucket(rate=0, capacity=1)
        for _ in range(100):
            bucket.acquire()

    def test_registry_shares_buckets_per_provider(self) -> None:
        assert get_rate_limiter("test-shared", 1.0, 1.0) is get_rate_limiter("test-shared", 5.0, 5.0)
        assert get_rate_limiter("test-a", 1.0, 1.0) is not get_rate_limiter("test-b", 1.0, 1.0)
