"""CompletionGateway — the single class consumers import and use."""

from __future__ import annotations

import dataclasses
import logging
import time
from collections.abc import Callable, Mapping
from datetime import datetime

from pydantic import ValidationError

from completion_gateway.cache import ResponseCache
from completion_gateway.config import GatewayConfig
from completion_gateway.cost import calculate_cost
from completion_gateway.exceptions import (
    GatewayError,
    InvalidRequestError,
    ProviderError,
    ProviderNotFoundError,
    RateLimitExceededError,
)
from completion_gateway.ledger import UsageLedger
from completion_gateway.observability.logging import configure_logging
from completion_gateway.observability.tracing import configure_tracing, traced_completion
from completion_gateway.providers.adapter import ProviderAdapter
from completion_gateway.providers.base import CompletionProvider
from completion_gateway.registry import build_providers
from completion_gateway.storage import InMemoryUsageStore, SQLiteUsageStore, UsageStore
from completion_gateway.types import (
    CacheStats,
    CompletionRequest,
    CompletionResponse,
    ProviderResult,
    Tenant,
    UsageRecord,
    UsageStats,
)

logger = logging.getLogger(__name__)


class CompletionGateway:
    """Priced, cached, rate-limited completions with one-shot provider fallback.

    The gateway holds no mutable state of its own: the response cache and
    usage ledger own theirs and are injected, so tests build isolated
    instances and production wires them once via ``from_config``.

    Usage:
        async with CompletionGateway.from_config(GatewayConfig()) as gateway:
            resp = await gateway.generate(
                "Generate 3 hashtags for cooking",
                tenant=Tenant(workspace_id="ws-1", user_id="u-1"),
                operation="hashtag_research",
            )
            print(resp.text, resp.cost, resp.cached)
    """

    def __init__(
        self,
        config: GatewayConfig,
        adapter: ProviderAdapter,
        cache: ResponseCache,
        ledger: UsageLedger,
    ) -> None:
        self._config = config
        self._adapter = adapter
        self._cache = cache
        self._ledger = ledger
        self._closed = False

        configure_logging(level=config.log_level, fmt=config.log_format)
        if config.trace_enabled:
            configure_tracing(
                exporter=config.trace_exporter,
                endpoint=config.trace_endpoint,
                service_name=config.trace_service_name,
            )

    @classmethod
    def from_config(
        cls,
        config: GatewayConfig | None = None,
        providers: Mapping[str, CompletionProvider] | None = None,
        store: UsageStore | None = None,
        clock: Callable[[], float] = time.time,
    ) -> CompletionGateway:
        """Composition root: build providers, cache, store and ledger from config.

        Args:
            config: Gateway configuration. Read from ``LLM_*`` env vars when None.
            providers: Provider instances by name. Built from the registry when None.
            store: Durable usage store. SQLite when ``usage_db_path`` is set,
                in-memory otherwise.
            clock: Wall clock shared by the cache and ledger.
        """
        config = config or GatewayConfig()
        if providers is None:
            providers = build_providers(config)
        if store is None:
            store = (
                SQLiteUsageStore(config.usage_db_path)
                if config.usage_db_path
                else InMemoryUsageStore()
            )
        adapter = ProviderAdapter(providers, timeout_seconds=config.timeout_seconds)
        cache = ResponseCache(
            max_entries=config.cache.max_entries,
            sweep_interval_seconds=config.cache.sweep_interval_seconds,
            clock=clock,
        )
        ledger = UsageLedger(
            store,
            prune_interval_seconds=config.usage_prune_interval_seconds,
            clock=clock,
        )
        return cls(config=config, adapter=adapter, cache=cache, ledger=ledger)

    @property
    def config(self) -> GatewayConfig:
        return self._config

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    @property
    def ledger(self) -> UsageLedger:
        return self._ledger

    async def generate(
        self,
        prompt: str,
        *,
        tenant: Tenant,
        operation: str,
        provider: str | None = None,
        model: str | None = None,
        max_tokens: int = 1000,
        temperature: float = 0.7,
        system_prompt: str | None = None,
        use_cache: bool = True,
    ) -> CompletionResponse:
        """Generate a completion for ``prompt``.

        Args:
            prompt: Non-empty prompt text.
            tenant: Workspace/user pair the call is accounted to.
            operation: Free-form label used only in usage reporting.
            provider: Provider name. Defaults to the configured default.
            model: Model name. Defaults to the provider's default model.
            max_tokens: Maximum output tokens.
            temperature: Sampling temperature, 0 to 2.
            system_prompt: Optional system prompt.
            use_cache: Consult and populate the response cache.

        Returns:
            CompletionResponse with the served provider/model, tokens and cost.

        Raises:
            InvalidRequestError: Arguments failed validation.
            ProviderNotFoundError: The provider is not configured.
            RateLimitExceededError: Admission was denied.
            ProviderError: The primary provider failed and fallback did not
                recover; this is the primary provider's error.
            RequestCancelledError: The caller was cancelled mid-call.
        """
        request = self._build_request(
            prompt=prompt,
            tenant=tenant,
            operation=operation,
            provider=provider,
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            system_prompt=system_prompt,
            use_cache=use_cache,
        )
        # Filled in by _build_request
        assert request.provider is not None and request.model is not None

        start = time.monotonic()
        async with traced_completion(request.provider, request.model, operation) as span_data:
            reservation = await self._admit(request, start)
            try:
                response = await self._generate(request, start, reservation)
            except GatewayError as exc:
                await self._record_failure(request, exc, start, reservation=reservation)
                raise
            except BaseException:
                # Cancellation or a bug: no usage record, free the slot.
                self._ledger.release(reservation)
                raise
            span_data["response"] = response

        logger.info(
            "Completion served",
            extra={
                "workspace_id": tenant.workspace_id,
                "operation": operation,
                "provider": response.provider,
                "model": response.model,
                "tokens_used": response.tokens_used,
                "cost_usd": response.cost,
                "cached": response.cached,
                "latency_ms": self._elapsed_ms(start),
            },
        )
        return response

    async def _admit(self, request: CompletionRequest, start: float) -> UsageRecord:
        """Admission, before any network call. Returns the window reservation."""
        assert request.provider is not None
        status, reservation = await self._ledger.admit(request.tenant, self._config.rate_limit)
        if reservation is not None:
            return reservation

        logger.warning(
            "Admission denied",
            extra={
                "workspace_id": request.tenant.workspace_id,
                "user_id": request.tenant.user_id,
                "reason": status.reason,
            },
        )
        error = RateLimitExceededError(request.provider, status.reason)
        await self._record_failure(request, error, start, count_toward_window=False)
        raise error

    async def _generate(
        self, request: CompletionRequest, start: float, reservation: UsageRecord
    ) -> CompletionResponse:
        provider, model = request.provider, request.model
        assert provider is not None and model is not None

        caching = request.use_cache and self._config.cache.enabled

        # 2. Cache lookup
        if caching:
            cached = self._cache.get(request.prompt, provider, model, request.temperature)
            if cached is not None:
                await self._ledger.record(
                    UsageRecord(
                        tenant=request.tenant,
                        provider=provider,
                        model=model,
                        operation=request.operation,
                        latency_ms=self._elapsed_ms(start),
                        success=True,
                        cached=True,
                    ),
                    reservation=reservation,
                )
                return dataclasses.replace(cached, tokens_used=0, cost=0.0, cached=True)

        # 3-4. Primary call, one fallback
        result = await self._call_with_fallback(request)

        # 5. Price, cache, record
        cost = calculate_cost(result.model, result.input_tokens, result.output_tokens)
        response = CompletionResponse(
            text=result.text,
            tokens_used=result.total_tokens,
            cost=cost,
            provider=result.provider,
            model=result.model,
            finish_reason=result.finish_reason,
            cached=False,
        )
        if caching:
            self._cache.set(
                request.prompt,
                response,
                provider=provider,
                model=model,
                tokens=response.tokens_used,
                cost=cost,
                ttl_minutes=self._config.cache.ttl_minutes,
                temperature=request.temperature,
            )
        await self._ledger.record(
            UsageRecord(
                tenant=request.tenant,
                provider=response.provider,
                model=response.model,
                operation=request.operation,
                tokens_used=response.tokens_used,
                cost=cost,
                latency_ms=self._elapsed_ms(start),
                success=True,
                cached=False,
            ),
            reservation=reservation,
        )
        return response

    async def _call_with_fallback(self, request: CompletionRequest) -> ProviderResult:
        provider, model = request.provider, request.model
        assert provider is not None and model is not None
        try:
            return await self._adapter.call(
                provider,
                model,
                request.prompt,
                system_prompt=request.system_prompt,
                max_tokens=request.max_tokens,
                temperature=request.temperature,
            )
        except ProviderError as primary_error:
            fallback = self._fallback_provider(provider, primary_error)
            if fallback is None:
                raise

            fallback_model = self._adapter.get(fallback).fallback_model
            logger.warning(
                "Primary provider %s failed, trying fallback: %s",
                provider,
                fallback,
                extra={"error_code": str(primary_error.code), "fallback_model": fallback_model},
            )
            try:
                return await self._adapter.call(
                    fallback,
                    fallback_model,
                    request.prompt,
                    system_prompt=request.system_prompt,
                    max_tokens=request.max_tokens,
                    temperature=request.temperature,
                )
            except ProviderError as fallback_error:
                logger.error(
                    "Fallback provider %s failed: %s",
                    fallback,
                    fallback_error,
                    extra={"error_code": str(fallback_error.code)},
                )
                raise primary_error from fallback_error

    def _fallback_provider(self, primary: str, error: ProviderError) -> str | None:
        """Pick the fallback provider for a failed primary call, if any."""
        settings = self._config.fallback
        if not settings.enabled or not error.retryable:
            return None
        for name in settings.providers:
            if name != primary and name in self._adapter:
                return name
        return None

    def _build_request(self, **fields: object) -> CompletionRequest:
        try:
            request = CompletionRequest.model_validate(fields)
        except ValidationError as exc:
            raise InvalidRequestError(str(exc)) from exc

        provider = request.provider or self._config.default_provider
        if provider is None:
            raise InvalidRequestError("no provider requested and no default configured")
        if provider not in self._adapter:
            raise ProviderNotFoundError(provider)
        model = request.model or self._config.default_model_for(provider)
        if model is None:
            raise InvalidRequestError(f"no model requested and no default for '{provider}'")

        settings = self._config.providers.get(provider)
        if settings is not None and settings.models and model not in settings.models:
            raise InvalidRequestError(f"model '{model}' is not allowed for provider '{provider}'")

        return request.model_copy(update={"provider": provider, "model": model})

    async def _record_failure(
        self,
        request: CompletionRequest,
        exc: GatewayError,
        start: float,
        count_toward_window: bool = True,
        reservation: UsageRecord | None = None,
    ) -> None:
        assert request.provider is not None and request.model is not None
        await self._ledger.record(
            UsageRecord(
                tenant=request.tenant,
                provider=request.provider,
                model=request.model,
                operation=request.operation,
                latency_ms=self._elapsed_ms(start),
                success=False,
                error_message=str(exc),
                error_code=str(exc.code),
                cached=False,
            ),
            count_toward_window=count_toward_window,
            reservation=reservation,
        )

    @staticmethod
    def _elapsed_ms(start: float) -> int:
        return round((time.monotonic() - start) * 1000)

    # ── Reporting ───────────────────────────────────────────────

    def cache_stats(self) -> CacheStats:
        return self._cache.stats()

    def clear_cache(self) -> None:
        self._cache.clear()

    async def usage_stats(self, tenant: Tenant, start: datetime, end: datetime) -> UsageStats:
        """Aggregate persisted usage for the tenant's workspace."""
        return await self._ledger.usage_stats(tenant, start, end)

    async def recent_errors(self, tenant: Tenant, limit: int = 10) -> list[UsageRecord]:
        return await self._ledger.recent_errors(tenant, limit)

    def available_providers(self) -> list[str]:
        """Names of providers that have a credential configured."""
        return [
            name
            for name in self._adapter.names
            if self._config.get_api_key(name) is not None
        ]

    # ── Lifecycle ───────────────────────────────────────────────

    async def start(self) -> None:
        """Initialize the usage store and start background maintenance."""
        await self._ledger.store.initialize()
        self._cache.start()
        self._ledger.start()

    async def close(self) -> None:
        """Stop maintenance, drain usage writes, release providers and store."""
        if self._closed:
            return
        self._closed = True
        await self._cache.close()
        await self._ledger.close()
        await self._adapter.close()
        await self._ledger.store.close()

    async def __aenter__(self) -> CompletionGateway:
        """Async context manager entry — starts background maintenance."""
        await self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        """Async context manager exit — closes everything."""
        await self.close()
