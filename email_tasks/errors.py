"""Error hierarchy for the extraction and retrieval pipeline.

Only ``ProviderUnavailable`` is allowed to escape the task extractor; every
other error is absorbed by the component that detects it and turned into a
degraded-but-successful result.
"""

from __future__ import annotations

from typing import Any

SENSITIVE_CONTEXT_KEYS = {"api_key", "raw_output", "prompt"}
REDACTED_VALUE = "[REDACTED]"


class PipelineError(Exception):
    """Base class for all pipeline errors.

    Attributes:
        message: Human-readable error description.
        context: Extra key/value details for logging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None, **kwargs: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = dict(context) if context is not None else {}
        if kwargs:
            self.context.update(kwargs)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for logs and API payloads."""
        safe_context = {
            key: REDACTED_VALUE if key.lower() in SENSITIVE_CONTEXT_KEYS else value
            for key, value in self.context.items()
        }
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": safe_context,
        }


class ConfigurationError(PipelineError):
    """Missing or invalid settings."""


class ProviderError(PipelineError):
    """A completion/embedding provider rejected or failed a request."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        model: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, provider=provider, model=model, **kwargs)
        self.provider = provider
        self.model = model


class ProviderUnavailable(ProviderError):
    """Authentication, quota, rate-limit, timeout or connectivity failure.

    Retryable: an email whose extraction hit this error is left unprocessed.
    """


class MalformedModelOutput(PipelineError):
    """The model answered, but not with the JSON shape we asked for."""


class VectorStoreDegraded(PipelineError):
    """The vector store is unreachable; semantic search is skipped."""


class SchemaConstraintViolation(PipelineError):
    """A row was rejected by a storage constraint (e.g. an enum value)."""

    def __init__(self, message: str, field: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, field=field, **kwargs)
        self.field = field
