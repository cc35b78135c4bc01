"""Anthropic (Claude) chat provider."""

from __future__ import annotations

from typing import Any

import anthropic
from anthropic import Anthropic
from anthropic.types import TextBlock

from email_tasks.errors import ProviderError, ProviderUnavailable
from email_tasks.providers.base import Completion, CompletionProvider
from email_tasks.providers.rate_limit import TokenBucket

_UNAVAILABLE_ERRORS: tuple[type[Exception], ...] = (
    anthropic.AuthenticationError,
    anthropic.PermissionDeniedError,
    anthropic.RateLimitError,
    anthropic.APIConnectionError,  # includes APITimeoutError
    anthropic.InternalServerError,
)


class AnthropicProvider(CompletionProvider):
    """Claude via the Messages API. Claude has no embedding endpoint."""

    name = "anthropic"

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-20250514",
        timeout: float = 60.0,
        limiter: TokenBucket | None = None,
        client: Any | None = None,
    ) -> None:
        super().__init__(limiter)
        self.model = model
        self.client = client or Anthropic(api_key=api_key, timeout=timeout)

    def complete(
        self,
        messages: list[dict[str, str]],
        system_prompt: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.2,
        json_output: bool = False,
    ) -> Completion:
        request: dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [m for m in messages if m.get("role") != "system"],
        }
        system_parts = [m["content"] for m in messages if m.get("role") == "system"]
        if system_prompt:
            system_parts.insert(0, system_prompt)
        if json_output:
            system_parts.append("Respond with a single JSON object and nothing else.")
        if system_parts:
            request["system"] = "\n\n".join(system_parts)

        self._throttle()
        try:
            response = self.client.messages.create(**request)
        except _UNAVAILABLE_ERRORS as exc:
            raise ProviderUnavailable(
                f"anthropic unavailable: {exc}", provider=self.name, model=self.model
            ) from exc
        except anthropic.APIStatusError as exc:
            # 529 overloaded is not an InternalServerError subclass in every SDK release.
            if exc.status_code >= 500:
                raise ProviderUnavailable(
                    f"anthropic unavailable: {exc.message}", provider=self.name, model=self.model
                ) from exc
            raise ProviderError(
                f"anthropic request failed: {exc.message}", provider=self.name, model=self.model
            ) from exc
        except anthropic.APIError as exc:
            raise ProviderError(f"anthropic request failed: {exc}", provider=self.name, model=self.model) from exc

        text = "".join(block.text for block in response.content if isinstance(block, TextBlock))
        return Completion(
            content=text,
            provider_name=self.name,
            model_name=response.model or self.model,
            usage={
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            },
        )
