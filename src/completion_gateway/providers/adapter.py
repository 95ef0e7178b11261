"""Provider adapter — dispatches normalized calls to named providers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping

from completion_gateway.exceptions import (
    ErrorCode,
    NetworkError,
    ProviderError,
    ProviderNotFoundError,
    RequestCancelledError,
)
from completion_gateway.providers.base import CompletionProvider
from completion_gateway.types import ProviderRequest, ProviderResult

logger = logging.getLogger(__name__)


class ProviderAdapter:
    """Calls one named provider with a timeout and normalized errors.

    Exactly one upstream attempt per ``call``; retries and failover are
    decided by the caller.
    """

    def __init__(
        self,
        providers: Mapping[str, CompletionProvider],
        timeout_seconds: float = 30.0,
    ) -> None:
        self._providers = dict(providers)
        self._timeout = timeout_seconds

    @property
    def names(self) -> list[str]:
        return list(self._providers)

    def get(self, provider: str) -> CompletionProvider:
        """Return the provider registered under ``provider``.

        Raises:
            ProviderNotFoundError: If no such provider is configured.
        """
        instance = self._providers.get(provider)
        if instance is None:
            raise ProviderNotFoundError(provider)
        return instance

    def __contains__(self, provider: object) -> bool:
        return provider in self._providers

    async def call(
        self,
        provider: str,
        model: str,
        prompt: str,
        system_prompt: str | None = None,
        max_tokens: int = 1000,
        temperature: float = 0.7,
    ) -> ProviderResult:
        """Make a single call to ``provider``.

        Raises:
            ProviderError: Any normalized provider failure.
            RequestCancelledError: The caller was cancelled mid-call.
        """
        instance = self.get(provider)
        request = ProviderRequest(
            model=model,
            prompt=prompt,
            system_prompt=system_prompt,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        try:
            return await asyncio.wait_for(instance.complete(request), timeout=self._timeout)
        except ProviderError:
            raise
        except asyncio.CancelledError as exc:
            logger.info("Provider call cancelled", extra={"provider": provider, "model": model})
            raise RequestCancelledError(provider) from exc
        except OSError as exc:
            # TimeoutError and ConnectionError included
            raise NetworkError(provider, exc) from exc
        except Exception as exc:
            # Not a transport failure: surface it, never fall over on it.
            logger.exception("Unexpected provider failure", extra={"provider": provider})
            raise ProviderError(
                provider,
                ErrorCode.UPSTREAM_ERROR,
                f"Unexpected error from {provider}: {exc!r}",
                retryable=False,
                original=exc,
            ) from exc

    async def close(self) -> None:
        """Close every provider, logging rather than raising on failure."""
        for name, instance in self._providers.items():
            try:
                await instance.close()
            except Exception:
                logger.exception("Failed to close provider %s", name)
