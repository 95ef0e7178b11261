"""Observability sub-package — tracing and logging."""

from completion_gateway.observability.logging import configure_logging, get_logger
from completion_gateway.observability.tracing import (
    configure_tracing,
    disable_tracing,
    get_tracer,
    traced_completion,
)

__all__ = [
    "configure_logging",
    "configure_tracing",
    "disable_tracing",
    "get_logger",
    "get_tracer",
    "traced_completion",
]
