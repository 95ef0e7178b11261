"""Core data types for completion-gateway."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

FinishReason = Literal["stop", "length", "content_filter", "error"]


@dataclass(frozen=True)
class Tenant:
    """The (workspace, user) pair usage and rate limits are scoped to."""

    workspace_id: str
    user_id: str

    @property
    def key(self) -> str:
        return f"{self.workspace_id}:{self.user_id}"


class CompletionRequest(BaseModel):
    """Caller-supplied request, validated before admission."""

    model_config = ConfigDict(frozen=True)

    prompt: str
    tenant: Tenant
    operation: str
    provider: str | None = None
    model: str | None = None
    max_tokens: int = Field(default=1000, ge=1)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    system_prompt: str | None = None
    use_cache: bool = True

    @field_validator("prompt")
    @classmethod
    def _prompt_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("prompt must not be empty")
        return value


@dataclass(frozen=True)
class CompletionResponse:
    """Normalized response returned by ``CompletionGateway.generate()``."""

    text: str
    tokens_used: int
    cost: float
    provider: str
    model: str
    finish_reason: FinishReason = "stop"
    cached: bool = False


@dataclass(frozen=True)
class ProviderRequest:
    """Provider-neutral request handed to a ``CompletionProvider``."""

    model: str
    prompt: str
    system_prompt: str | None = None
    max_tokens: int = 1000
    temperature: float = 0.7


@dataclass(frozen=True)
class ProviderResult:
    """Provider-neutral result of a successful provider call."""

    text: str
    input_tokens: int
    output_tokens: int
    finish_reason: FinishReason
    provider: str
    model: str

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class UsageRecord:
    """One completion attempt, as written to the usage log."""

    tenant: Tenant
    provider: str
    model: str
    operation: str
    tokens_used: int = 0
    cost: float = 0.0
    latency_ms: int = 0
    success: bool = True
    error_message: str | None = None
    error_code: str | None = None
    cached: bool = False
    created_at: datetime | None = None


@dataclass(frozen=True)
class RateLimitStatus:
    """Result of an admission check."""

    requests_remaining: int
    tokens_remaining: int
    cost_remaining: float
    reset_at: float
    limited: bool
    reason: str | None = None


@dataclass(frozen=True)
class CacheStats:
    """Snapshot of response cache counters."""

    entries: int
    hits: int
    misses: int
    hit_rate: float
    total_savings: float


@dataclass
class UsageBreakdown:
    """Per-provider or per-operation usage totals."""

    requests: int = 0
    tokens: int = 0
    cost: float = 0.0


@dataclass(frozen=True)
class UsageStats:
    """Aggregate usage for a workspace over a time range."""

    total_requests: int = 0
    total_tokens: int = 0
    total_cost: float = 0.0
    by_provider: dict[str, UsageBreakdown] = field(default_factory=dict)
    by_operation: dict[str, UsageBreakdown] = field(default_factory=dict)
    avg_latency_ms: int = 0
    success_rate: float = 0.0
    cache_hit_rate: float = 0.0
