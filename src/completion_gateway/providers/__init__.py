"""Upstream completion providers."""

from completion_gateway.providers.adapter import ProviderAdapter
from completion_gateway.providers.base import CompletionProvider, normalize_finish_reason

__all__ = ["CompletionProvider", "ProviderAdapter", "normalize_finish_reason"]
