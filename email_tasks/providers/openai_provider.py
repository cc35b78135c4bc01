"""OpenAI chat/embedding provider (also serves OpenAI-compatible backends)."""

from __future__ import annotations

import logging
from typing import Any

import openai
from openai import OpenAI

from email_tasks.errors import ProviderError, ProviderUnavailable
from email_tasks.providers.base import Completion, CompletionProvider
from email_tasks.providers.rate_limit import TokenBucket

logger = logging.getLogger(__name__)

# Failures worth retrying on a later run rather than consuming the email.
_UNAVAILABLE_ERRORS: tuple[type[Exception], ...] = (
    openai.AuthenticationError,
    openai.PermissionDeniedError,
    openai.RateLimitError,
    openai.APIConnectionError,  # includes APITimeoutError
    openai.InternalServerError,
)


class OpenAIProvider(CompletionProvider):
    """Chat completions and embeddings through the ``openai`` SDK.

    Perplexity and Ollama expose the same API; pass their ``base_url`` and a
    distinct ``name`` so the audit trail reports the real backend.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        embedding_model: str | None = "text-embedding-3-small",
        embedding_dimensions: int | None = None,
        base_url: str | None = None,
        name: str = "openai",
        timeout: float = 60.0,
        limiter: TokenBucket | None = None,
        client: Any | None = None,
    ) -> None:
        super().__init__(limiter)
        self.name = name
        self.model = model
        self.embedding_model = embedding_model
        self.embedding_dimensions = embedding_dimensions
        self.client = client or OpenAI(api_key=api_key, base_url=base_url, timeout=timeout)

    def complete(
        self,
        messages: list[dict[str, str]],
        system_prompt: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.2,
        json_output: bool = False,
    ) -> Completion:
        final_messages = (
            [{"role": "system", "content": system_prompt}, *messages] if system_prompt else list(messages)
        )
        request: dict[str, Any] = {
            "model": self.model,
            "messages": final_messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if json_output:
            request["response_format"] = {"type": "json_object"}

        self._throttle()
        try:
            response = self.client.chat.completions.create(**request)
        except _UNAVAILABLE_ERRORS as exc:
            raise ProviderUnavailable(
                f"{self.name} unavailable: {exc}", provider=self.name, model=self.model
            ) from exc
        except openai.APIError as exc:
            raise ProviderError(f"{self.name} request failed: {exc}", provider=self.name, model=self.model) from exc

        usage = None
        if getattr(response, "usage", None) is not None:
            usage = {
                "input_tokens": response.usage.prompt_tokens,
                "output_tokens": response.usage.completion_tokens,
            }
        return Completion(
            content=response.choices[0].message.content or "",
            provider_name=self.name,
            model_name=getattr(response, "model", None) or self.model,
            usage=usage,
        )

    @property
    def supports_embeddings(self) -> bool:
        return bool(self.embedding_model)

    def embed(self, text: str) -> list[float]:
        if not self.embedding_model:
            return super().embed(text)

        request: dict[str, Any] = {"input": [text], "model": self.embedding_model}
        # text-embedding-3-* can be asked for the stored width directly.
        if self.embedding_dimensions and self.embedding_model.startswith("text-embedding-3"):
            request["dimensions"] = self.embedding_dimensions

        self._throttle()
        try:
            response = self.client.embeddings.create(**request)
        except _UNAVAILABLE_ERRORS as exc:
            raise ProviderUnavailable(
                f"{self.name} embeddings unavailable: {exc}", provider=self.name, model=self.embedding_model
            ) from exc
        except openai.APIError as exc:
            raise ProviderError(
                f"{self.name} embedding request failed: {exc}", provider=self.name, model=self.embedding_model
            ) from exc
        return list(response.data[0].embedding)
