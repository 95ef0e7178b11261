"""Completion provider protocol — the contract every provider must satisfy."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from completion_gateway.types import FinishReason, ProviderRequest, ProviderResult

# Upstream stop reasons mapped onto the gateway's finish reasons.
_FINISH_REASONS: dict[str, FinishReason] = {
    "stop": "stop",
    "end_turn": "stop",
    "stop_sequence": "stop",
    "tool_use": "stop",
    "tool_calls": "stop",
    "function_call": "stop",
    "length": "length",
    "max_tokens": "length",
    "content_filter": "content_filter",
    "refusal": "content_filter",
}


def normalize_finish_reason(raw: str | None) -> FinishReason:
    """Map a provider-specific stop reason to ``stop | length | content_filter | error``."""
    if raw is None:
        return "error"
    return _FINISH_REASONS.get(raw, "error")


@runtime_checkable
class CompletionProvider(Protocol):
    """Protocol that all completion providers must implement.

    Providers translate a ``ProviderRequest`` into their wire format and
    return a ``ProviderResult``. Every failure surfaces as a
    ``ProviderError`` subclass; providers never retry on their own.
    """

    name: str
    default_model: str
    fallback_model: str

    async def complete(self, request: ProviderRequest) -> ProviderResult:
        """Send the prompt upstream and return the normalized result.

        Raises:
            MissingCredentialError: No API key is configured.
            UpstreamError: Non-2xx response.
            NetworkError: Transport failure or timeout.
            MalformedResponseError: 2xx body missing required fields.
        """
        ...

    async def close(self) -> None:
        """Clean up provider resources (HTTP sessions etc.)."""
        ...
