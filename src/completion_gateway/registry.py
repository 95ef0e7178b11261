"""Provider registry — maps provider names to factory functions."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from completion_gateway.config import GatewayConfig
    from completion_gateway.providers.base import CompletionProvider

logger = logging.getLogger(__name__)

ProviderFactory = Callable[["GatewayConfig"], "CompletionProvider"]

# Factories only; provider instances are owned by each gateway.
_FACTORIES: dict[str, ProviderFactory] = {}


def register_provider(name: str, factory: ProviderFactory) -> None:
    """Register a provider factory.

    Args:
        name: Provider name (e.g. "openai", "anthropic").
        factory: Callable that takes GatewayConfig and returns a CompletionProvider.
    """
    _FACTORIES[name] = factory
    logger.debug("Registered completion provider: %s", name)


def unregister_provider(name: str) -> None:
    _FACTORIES.pop(name, None)


def list_providers() -> list[str]:
    """Return names of all registered providers."""
    _ensure_builtins_registered()
    return list(_FACTORIES.keys())


def build_providers(config: GatewayConfig) -> dict[str, CompletionProvider]:
    """Instantiate every configured provider that has a registered factory.

    Providers without credentials are still built; they fail with
    ``MISSING_CREDENTIAL`` when called. Configured names with no factory
    are skipped with a warning.
    """
    _ensure_builtins_registered()

    providers: dict[str, CompletionProvider] = {}
    for name in config.providers:
        factory = _FACTORIES.get(name)
        if factory is None:
            logger.warning("No factory registered for configured provider %s", name)
            continue
        providers[name] = factory(config)
    return providers


# ── Lazy Registration ───────────────────────────────────────────

_builtins_registered = False


def _ensure_builtins_registered() -> None:
    """Register the built-in providers on first use."""
    global _builtins_registered  # noqa: PLW0603
    if _builtins_registered:
        return
    _builtins_registered = True

    from completion_gateway.providers.anthropic import AnthropicProvider
    from completion_gateway.providers.openai import OpenAIProvider

    _FACTORIES.setdefault("openai", OpenAIProvider.from_config)
    _FACTORIES.setdefault("anthropic", AnthropicProvider.from_config)
