"""Completion provider contract shared by extraction, search and Q&A."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from email_tasks.errors import ProviderError
from email_tasks.providers.rate_limit import TokenBucket


@dataclass(frozen=True)
class Completion:
    """A model reply plus the provider/model that actually served it."""

    content: str
    provider_name: str
    model_name: str
    usage: dict[str, Any] | None = None


class CompletionProvider(ABC):
    """Uniform chat + embedding interface over a model backend.

    Implementations must raise ``ProviderUnavailable`` for authentication,
    quota, rate-limit, timeout and connectivity failures, and must send the
    caller's prompt as given (no silent truncation).
    """

    name: str
    model: str

    def __init__(self, limiter: TokenBucket | None = None) -> None:
        self.limiter = limiter

    def _throttle(self) -> None:
        if self.limiter is not None:
            self.limiter.acquire()

    @abstractmethod
    def complete(
        self,
        messages: list[dict[str, str]],
        system_prompt: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.2,
        json_output: bool = False,
    ) -> Completion: ...

    @property
    def supports_embeddings(self) -> bool:
        return False

    def embed(self, text: str) -> list[float]:
        """Return the provider-native embedding for ``text`` (not normalized)."""
        raise ProviderError(
            f"{self.name} does not provide embeddings", provider=self.name, model=self.model
        )
