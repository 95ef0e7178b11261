"""OpenTelemetry tracing for completion requests."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor

from completion_gateway.types import CompletionResponse

logger = logging.getLogger(__name__)

# ── Optional OTLP exporter ──────────────────────────────────────
try:
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
        OTLPSpanExporter,
    )

    HAS_OTLP = True
except ImportError:
    HAS_OTLP = False


# Module-level tracer (None when tracing is not configured)
_tracer: Any = None


def configure_tracing(
    exporter: str = "none",
    endpoint: str = "http://localhost:4317",
    service_name: str = "completion-gateway",
) -> None:
    """Configure OpenTelemetry tracing.

    Args:
        exporter: One of "none", "console", "otlp".
        endpoint: OTLP collector endpoint (only used when exporter="otlp").
        service_name: Service name for spans.
    """
    global _tracer

    if exporter == "none":
        _tracer = None
        return

    resource = Resource.create({"service.name": service_name})
    provider = TracerProvider(resource=resource)

    if exporter == "console":
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    elif exporter == "otlp":
        if not HAS_OTLP:
            logger.warning(
                "OTLP exporter requested but opentelemetry-exporter-otlp not installed"
            )
            _tracer = None
            return
        provider.add_span_processor(
            SimpleSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True))
        )
    else:
        logger.warning("Unknown trace exporter %r; tracing disabled", exporter)
        _tracer = None
        return

    _tracer = provider.get_tracer("completion_gateway")
    logger.info("OTEL tracing configured: exporter=%s, service=%s", exporter, service_name)


def get_tracer() -> Any:
    """Return the configured tracer, or None if tracing is disabled."""
    return _tracer


def disable_tracing() -> None:
    """Disable tracing (useful for tests)."""
    global _tracer
    _tracer = None


@asynccontextmanager
async def traced_completion(
    provider: str,
    model: str | None,
    operation: str,
) -> AsyncGenerator[dict[str, Any], None]:
    """Context manager that creates an OTEL span for one ``generate`` call.

    Usage:
        async with traced_completion("openai", "gpt-4", "caption") as span_data:
            response = ...
            span_data["response"] = response

    Records provider, requested model and operation up front, and the
    served provider/model, tokens, cost and cache flag on success.
    """
    span_data: dict[str, Any] = {}

    if _tracer is None:
        yield span_data
        return

    with _tracer.start_as_current_span("completion.generate") as span:
        span.set_attribute("completion.provider", provider)
        span.set_attribute("completion.model", model or "provider-default")
        span.set_attribute("completion.operation", operation)

        try:
            yield span_data
        except (Exception, asyncio.CancelledError) as exc:
            span.set_status(trace.StatusCode.ERROR, str(exc) or type(exc).__name__)
            span.record_exception(exc)
            raise
        else:
            response = span_data.get("response")
            if isinstance(response, CompletionResponse):
                span.set_attribute("completion.served_provider", response.provider)
                span.set_attribute("completion.served_model", response.model)
                span.set_attribute("completion.tokens_used", response.tokens_used)
                span.set_attribute("completion.cost_usd", response.cost)
                span.set_attribute("completion.cached", response.cached)
