"""completion-gateway — priced, cached, rate-limited text completions.

Usage:
    from completion_gateway import CompletionGateway, GatewayConfig, Tenant

    async with CompletionGateway.from_config() as gateway:  # reads LLM_* env vars
        resp = await gateway.generate(
            prompt, tenant=Tenant("ws-1", "user-1"), operation="caption"
        )
"""

from __future__ import annotations

from completion_gateway.cache import ResponseCache, make_cache_key
from completion_gateway.config import GatewayConfig, ProviderSettings, RateLimitConfig
from completion_gateway.cost import calculate_cost, register_pricing
from completion_gateway.exceptions import (
    ErrorCode,
    GatewayError,
    InvalidRequestError,
    MalformedResponseError,
    MissingCredentialError,
    NetworkError,
    ProviderError,
    ProviderNotFoundError,
    RateLimitExceededError,
    RequestCancelledError,
    UpstreamError,
)
from completion_gateway.gateway import CompletionGateway
from completion_gateway.ledger import UsageLedger
from completion_gateway.providers.base import CompletionProvider
from completion_gateway.registry import list_providers, register_provider
from completion_gateway.storage import InMemoryUsageStore, SQLiteUsageStore, UsageStore
from completion_gateway.types import (
    CacheStats,
    CompletionResponse,
    RateLimitStatus,
    Tenant,
    UsageRecord,
    UsageStats,
)

__all__ = [
    # Core
    "CompletionGateway",
    "GatewayConfig",
    "ProviderSettings",
    "RateLimitConfig",
    # Types
    "Tenant",
    "CompletionResponse",
    "UsageRecord",
    "UsageStats",
    "RateLimitStatus",
    "CacheStats",
    # Components
    "ResponseCache",
    "make_cache_key",
    "UsageLedger",
    "UsageStore",
    "InMemoryUsageStore",
    "SQLiteUsageStore",
    # Provider
    "CompletionProvider",
    "register_provider",
    "list_providers",
    # Cost
    "calculate_cost",
    "register_pricing",
    # Exceptions
    "ErrorCode",
    "GatewayError",
    "InvalidRequestError",
    "ProviderError",
    "ProviderNotFoundError",
    "RateLimitExceededError",
    "MissingCredentialError",
    "UpstreamError",
    "NetworkError",
    "MalformedResponseError",
    "RequestCancelledError",
]
