"""Gateway configuration via environment variables."""

from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, Field, SecretStr, model_validator
from pydantic_settings import BaseSettings


class ProviderSettings(BaseModel):
    """Credential and model list for one upstream provider."""

    api_key: SecretStr | None = None
    base_url: str | None = None
    models: list[str] = Field(default_factory=list)
    default_model: str | None = None
    fallback_model: str | None = None


class RateLimitConfig(BaseModel):
    """Process-wide admission ceilings, applied per tenant."""

    max_requests_per_minute: int = Field(default=60, ge=1)
    max_tokens_per_minute: int = Field(default=100_000, ge=1)
    max_cost_per_day: float = Field(default=100.0, ge=0.0)
    burst_limit: int = Field(default=10, ge=1)


class CacheSettings(BaseModel):
    enabled: bool = True
    ttl_minutes: float = Field(default=60, ge=0)
    max_entries: int = Field(default=1000, ge=1)
    sweep_interval_seconds: float = Field(default=60.0, gt=0)


class FallbackSettings(BaseModel):
    enabled: bool = True
    providers: list[str] = Field(default_factory=list)


class RetrySettings(BaseModel):
    """Backoff guidance for callers. The gateway itself never auto-retries."""

    max_attempts: int = Field(default=3, ge=1)
    backoff_ms: int = Field(default=1000, ge=0)


# Built-in provider model lists; merged under any configured values.
_BUILTIN_PROVIDERS: dict[str, dict[str, Any]] = {
    "openai": {
        "models": ["gpt-4", "gpt-4-turbo", "gpt-3.5-turbo"],
        "default_model": "gpt-3.5-turbo",
        "fallback_model": "gpt-3.5-turbo",
    },
    "anthropic": {
        "models": ["claude-3-opus", "claude-3-sonnet", "claude-3-haiku"],
        "default_model": "claude-3-haiku",
        "fallback_model": "claude-3-haiku",
    },
}


# Provider-specific env vars consulted when no LLM_ key is configured.
_CREDENTIAL_ENV: dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}


class GatewayConfig(BaseSettings):
    """Completion gateway configuration.

    All fields are read from environment variables with the ``LLM_`` prefix;
    nested fields use ``__``. Example:
    ``LLM_RATE_LIMIT__MAX_REQUESTS_PER_MINUTE=30``.
    """

    model_config = {
        "env_prefix": "LLM_",
        "env_file": ".env",
        "env_nested_delimiter": "__",
        "extra": "ignore",
    }

    # ── Provider ────────────────────────────────────────────────
    default_provider: str | None = Field(
        default=None,
        description="Provider used when a request names none. "
        "Resolved from available credentials when unset.",
    )
    default_model: str | None = Field(
        default=None,
        description="Model used when a request names none.",
    )
    providers: dict[str, ProviderSettings] = Field(default_factory=dict)
    timeout_seconds: float = Field(default=30.0, gt=0)

    # ── Admission, caching, fallback ────────────────────────────
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    fallback: FallbackSettings = Field(default_factory=FallbackSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)

    # ── Usage log ───────────────────────────────────────────────
    usage_db_path: str | None = Field(
        default=None,
        description="SQLite file for the usage log. In-memory when unset.",
    )
    usage_prune_interval_seconds: float = Field(default=30.0, gt=0)

    # ── Observability ───────────────────────────────────────────
    trace_enabled: bool = Field(default=False)
    trace_exporter: str = Field(
        default="none",
        description="Trace exporter: 'none', 'console', 'otlp'.",
    )
    trace_endpoint: str = Field(default="http://localhost:4317")
    trace_service_name: str = Field(default="completion-gateway")

    log_level: str = Field(default="INFO")
    log_format: str = Field(
        default="json",
        description="Log format: 'json' or 'console'.",
    )

    @model_validator(mode="after")
    def _resolve_defaults(self) -> GatewayConfig:
        """Merge built-in providers, fill credentials, then derive defaults."""
        for name, builtin in _BUILTIN_PROVIDERS.items():
            settings = self.providers.setdefault(name, ProviderSettings())
            if not settings.models:
                settings.models = list(builtin["models"])
            if settings.default_model is None:
                settings.default_model = builtin["default_model"]
            if settings.fallback_model is None:
                settings.fallback_model = builtin["fallback_model"]

        for name, settings in self.providers.items():
            if settings.fallback_model is None:
                settings.fallback_model = settings.default_model
            if settings.api_key is not None:
                continue
            env_var = _CREDENTIAL_ENV.get(name)
            value = os.environ.get(env_var) if env_var else None
            if value:
                settings.api_key = SecretStr(value)

        credentialed = [n for n, s in self.providers.items() if s.api_key is not None]

        if self.default_provider is None:
            self.default_provider = credentialed[0] if credentialed else "openai"

        if self.default_model is None:
            settings = self.providers.get(self.default_provider)
            if settings is not None:
                self.default_model = settings.default_model

        if not self.fallback.providers and len(credentialed) > 1:
            self.fallback.providers = credentialed

        return self

    def get_api_key(self, provider: str) -> str | None:
        """Return the provider's API key as a plain string, or None."""
        settings = self.providers.get(provider)
        if settings is None or settings.api_key is None:
            return None
        return settings.api_key.get_secret_value()

    def default_model_for(self, provider: str) -> str | None:
        """Model to use when a request names ``provider`` but no model."""
        if provider == self.default_provider:
            return self.default_model
        settings = self.providers.get(provider)
        return settings.default_model if settings is not None else None
