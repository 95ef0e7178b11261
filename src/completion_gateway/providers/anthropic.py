"""Anthropic provider — wraps AsyncAnthropic's Messages API."""

from __future__ import annotations

from typing import Any

import httpx
from anthropic import APIConnectionError, APIStatusError, AsyncAnthropic

from completion_gateway.config import GatewayConfig
from completion_gateway.exceptions import (
    MalformedResponseError,
    MissingCredentialError,
    NetworkError,
    UpstreamError,
)
from completion_gateway.providers.base import normalize_finish_reason
from completion_gateway.types import ProviderRequest, ProviderResult


class AnthropicProvider:
    """Completion provider backed by the Anthropic API.

    The SDK's own retry loop is disabled; failover is the gateway's job.
    """

    name = "anthropic"

    def __init__(
        self,
        api_key: str | None,
        base_url: str | None = None,
        timeout_seconds: float = 30.0,
        default_model: str = "claude-3-haiku",
        fallback_model: str = "claude-3-haiku",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url
        self._timeout = timeout_seconds
        self.default_model = default_model
        self.fallback_model = fallback_model
        self._transport = transport
        self._client: AsyncAnthropic | None = None

    @classmethod
    def from_config(cls, config: GatewayConfig) -> AnthropicProvider:
        """Factory method for the provider registry."""
        settings = config.providers["anthropic"]
        return cls(
            api_key=config.get_api_key("anthropic"),
            base_url=settings.base_url,
            timeout_seconds=config.timeout_seconds,
            default_model=settings.default_model or "claude-3-haiku",
            fallback_model=settings.fallback_model or "claude-3-haiku",
        )

    def _get_client(self) -> AsyncAnthropic:
        if not self._api_key:
            raise MissingCredentialError(self.name)
        if self._client is None:
            self._client = AsyncAnthropic(
                api_key=self._api_key,
                base_url=self._base_url,
                timeout=self._timeout,
                max_retries=0,
                http_client=(
                    httpx.AsyncClient(transport=self._transport, timeout=self._timeout)
                    if self._transport is not None
                    else None
                ),
            )
        return self._client

    async def complete(self, request: ProviderRequest) -> ProviderResult:
        """Call the Messages API and normalize the response."""
        client = self._get_client()

        kwargs: dict[str, Any] = {
            "model": request.model,
            "max_tokens": request.max_tokens,
            "messages": [{"role": "user", "content": request.prompt}],
            # Recent SDK releases reject a typed temperature keyword
            "extra_body": {"temperature": request.temperature},
        }
        if request.system_prompt:
            kwargs["system"] = request.system_prompt

        try:
            message = await client.messages.create(**kwargs)
        except APIStatusError as exc:
            raise UpstreamError(
                self.name,
                status_code=exc.status_code,
                message=exc.message or f"Anthropic API error: {exc.status_code}",
                upstream_code=self._error_type(exc.body),
                original=exc,
            ) from exc
        except APIConnectionError as exc:
            raise NetworkError(self.name, exc) from exc

        return self._parse(message, request.model)

    def _parse(self, message: object, model: str) -> ProviderResult:
        blocks = getattr(message, "content", None)
        if not isinstance(blocks, list):
            raise MalformedResponseError(self.name, "missing content blocks")
        texts = [
            block.text
            for block in blocks
            if getattr(block, "type", None) == "text"
            and isinstance(getattr(block, "text", None), str)
        ]
        if not texts:
            raise MalformedResponseError(self.name, "no text content block")

        usage = getattr(message, "usage", None)
        input_tokens = getattr(usage, "input_tokens", None)
        output_tokens = getattr(usage, "output_tokens", None)
        if not isinstance(input_tokens, int) or not isinstance(output_tokens, int):
            raise MalformedResponseError(self.name, "missing token usage")

        return ProviderResult(
            text="".join(texts),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            finish_reason=normalize_finish_reason(getattr(message, "stop_reason", None)),
            provider=self.name,
            model=model,
        )

    @staticmethod
    def _error_type(body: object) -> str | None:
        # The SDK passes either the full envelope or its "error" member.
        if isinstance(body, dict):
            error = body.get("error", body)
            if isinstance(error, dict) and isinstance(error.get("type"), str):
                return error["type"]
        return None

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.close()
            self._client = None
