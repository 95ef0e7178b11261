"""Exception hierarchy for completion-gateway."""

from __future__ import annotations

import asyncio
from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    """Machine-readable error codes surfaced to callers."""

    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    MISSING_CREDENTIAL = "MISSING_CREDENTIAL"
    INVALID_PROVIDER = "INVALID_PROVIDER"
    INVALID_REQUEST = "INVALID_REQUEST"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    MALFORMED_RESPONSE = "MALFORMED_RESPONSE"
    CANCELLED = "CANCELLED"


class GatewayError(Exception):
    """Base exception for all completion-gateway errors."""

    code: ErrorCode = ErrorCode.UPSTREAM_ERROR
    retryable: bool = False


class InvalidRequestError(GatewayError):
    """Raised when ``generate()`` arguments fail validation."""

    code = ErrorCode.INVALID_REQUEST

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Invalid completion request: {reason}")


class ProviderError(GatewayError):
    """Normalized failure of a provider call.

    ``retryable`` decides whether the gateway may fall over to another
    provider. The gateway never retries the same provider itself.
    """

    def __init__(
        self,
        provider: str,
        code: ErrorCode,
        message: str,
        retryable: bool = False,
        original: BaseException | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.provider = provider
        self.code = code
        self.message = message
        self.retryable = retryable
        self.original = original
        self.details = details or {}
        super().__init__(f"Provider '{provider}' error [{code}]: {message}")


class RateLimitExceededError(ProviderError):
    """Raised when admission control denies a request."""

    def __init__(self, provider: str, reason: str | None = None) -> None:
        self.reason = reason
        message = "Rate limit exceeded. Please try again later."
        if reason:
            message = f"Rate limit exceeded ({reason}). Please try again later."
        super().__init__(
            provider=provider,
            code=ErrorCode.RATE_LIMIT_EXCEEDED,
            message=message,
            retryable=False,
            details={"reason": reason},
        )


class MissingCredentialError(ProviderError):
    """Raised when a provider has no API key configured."""

    def __init__(self, provider: str) -> None:
        super().__init__(
            provider=provider,
            code=ErrorCode.MISSING_CREDENTIAL,
            message=(
                f"No API key configured for provider '{provider}'. "
                f"Set LLM_PROVIDERS__{provider.upper()}__API_KEY or the "
                f"provider-specific env var."
            ),
            retryable=False,
        )


class ProviderNotFoundError(ProviderError):
    """Raised when the requested provider is not registered."""

    def __init__(self, provider: str) -> None:
        super().__init__(
            provider=provider,
            code=ErrorCode.INVALID_PROVIDER,
            message=f"Unsupported provider: '{provider}'",
            retryable=False,
        )


class UpstreamError(ProviderError):
    """Raised when the provider answers with a non-2xx status."""

    def __init__(
        self,
        provider: str,
        status_code: int,
        message: str,
        upstream_code: str | None = None,
        original: BaseException | None = None,
    ) -> None:
        self.status_code = status_code
        self.upstream_code = upstream_code
        super().__init__(
            provider=provider,
            code=ErrorCode.UPSTREAM_ERROR,
            message=message,
            retryable=status_code == 429 or status_code >= 500,
            original=original,
            details={"status_code": status_code, "upstream_code": upstream_code},
        )


class NetworkError(ProviderError):
    """Raised on transport failures and timeouts."""

    def __init__(self, provider: str, original: BaseException) -> None:
        super().__init__(
            provider=provider,
            code=ErrorCode.NETWORK_ERROR,
            message=f"Failed to call {provider}: {original!r}",
            retryable=True,
            original=original,
        )


class MalformedResponseError(ProviderError):
    """Raised when a 2xx provider body is missing required fields."""

    def __init__(self, provider: str, reason: str) -> None:
        super().__init__(
            provider=provider,
            code=ErrorCode.MALFORMED_RESPONSE,
            message=f"Malformed response: {reason}",
            retryable=True,
        )


class RequestCancelledError(asyncio.CancelledError):
    """Raised when the caller cancels a request during a provider call.

    Subclasses ``asyncio.CancelledError`` so task cancellation keeps working.
    """

    code = ErrorCode.CANCELLED
    retryable = False

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"Request to provider '{provider}' was cancelled")
