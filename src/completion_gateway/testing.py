"""Testing utilities shipped with completion-gateway.

Provides ``FakeProvider`` for consumers to use in their test suites
without reimplementing the CompletionProvider Protocol.

Usage::

    from completion_gateway import CompletionGateway, GatewayConfig, Tenant
    from completion_gateway.testing import FakeProvider

    fake = FakeProvider("openai", default_model="gpt-4")
    fake.set_response("#cooking #food #recipes", input_tokens=20, output_tokens=10)

    gateway = CompletionGateway.from_config(GatewayConfig(), providers={"openai": fake})
    resp = await gateway.generate("hashtags", tenant=Tenant("ws", "u"), operation="tags")
    assert resp.text == "#cooking #food #recipes"
    assert fake.call_count == 1
"""

from __future__ import annotations

import asyncio
import dataclasses
from collections import deque
from collections.abc import Callable

from completion_gateway.types import FinishReason, ProviderRequest, ProviderResult


class FakeProvider:
    """Fake completion provider for testing. Implements ``CompletionProvider``.

    Resolution order in ``complete()``:

    1. Scripted outcomes queued via ``set_response()`` / ``set_error()``,
       consumed one per call.
    2. ``response_factory`` callable (if provided).
    3. A default echo response.

    When ``gate`` is set, every call waits on it before answering, which
    lets tests hold a call in flight and cancel it.
    """

    def __init__(
        self,
        name: str = "fake",
        default_model: str = "fake-model",
        fallback_model: str | None = None,
        response_factory: Callable[[ProviderRequest], str] | None = None,
        default_input_tokens: int = 100,
        default_output_tokens: int = 50,
    ) -> None:
        self.name = name
        self.default_model = default_model
        self.fallback_model = fallback_model or default_model
        self._response_factory = response_factory
        self._default_input_tokens = default_input_tokens
        self._default_output_tokens = default_output_tokens
        self._script: deque[ProviderResult | BaseException] = deque()
        self.calls: list[ProviderRequest] = []
        self.gate: asyncio.Event | None = None
        self.closed = False

    def set_response(
        self,
        text: str,
        input_tokens: int | None = None,
        output_tokens: int | None = None,
        finish_reason: FinishReason = "stop",
        model: str | None = None,
    ) -> None:
        """Queue a successful result for the next call."""
        self._script.append(
            ProviderResult(
                text=text,
                input_tokens=self._default_input_tokens if input_tokens is None else input_tokens,
                output_tokens=(
                    self._default_output_tokens if output_tokens is None else output_tokens
                ),
                finish_reason=finish_reason,
                provider=self.name,
                # Empty means "whatever model was requested"
                model=model or "",
            )
        )

    def set_error(self, error: BaseException) -> None:
        """Queue an exception to raise on the next call."""
        self._script.append(error)

    async def complete(self, request: ProviderRequest) -> ProviderResult:
        self.calls.append(request)
        if self.gate is not None:
            await self.gate.wait()

        if self._script:
            outcome = self._script.popleft()
            if isinstance(outcome, BaseException):
                raise outcome
            if not outcome.model:
                outcome = dataclasses.replace(outcome, model=request.model)
            return outcome

        text = (
            self._response_factory(request)
            if self._response_factory is not None
            else f"echo: {request.prompt}"
        )
        return ProviderResult(
            text=text,
            input_tokens=self._default_input_tokens,
            output_tokens=self._default_output_tokens,
            finish_reason="stop",
            provider=self.name,
            model=request.model,
        )

    @property
    def call_count(self) -> int:
        """Number of ``complete()`` calls recorded."""
        return len(self.calls)

    async def close(self) -> None:
        self.closed = True
