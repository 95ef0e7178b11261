"""Tests for ProviderAdapter."""

from __future__ import annotations

import asyncio

import pytest

from completion_gateway.exceptions import (
    ErrorCode,
    MissingCredentialError,
    NetworkError,
    ProviderError,
    ProviderNotFoundError,
    RequestCancelledError,
)
from completion_gateway.providers.adapter import ProviderAdapter
from completion_gateway.providers.base import normalize_finish_reason
from completion_gateway.testing import FakeProvider


@pytest.mark.unit
class TestProviderAdapter:
    @pytest.mark.asyncio
    async def test_dispatches_by_name(self, openai_fake, anthropic_fake) -> None:  # type: ignore[no-untyped-def]
        adapter = ProviderAdapter({"openai": openai_fake, "anthropic": anthropic_fake})

        result = await adapter.call(
            "anthropic", "claude-3-haiku", "hi", system_prompt="sys", max_tokens=10, temperature=0.1
        )

        assert result.provider == "anthropic"
        assert openai_fake.call_count == 0
        sent = anthropic_fake.calls[0]
        assert (sent.model, sent.prompt, sent.system_prompt) == ("claude-3-haiku", "hi", "sys")
        assert (sent.max_tokens, sent.temperature) == (10, 0.1)

    @pytest.mark.asyncio
    async def test_unknown_provider(self, openai_fake) -> None:  # type: ignore[no-untyped-def]
        adapter = ProviderAdapter({"openai": openai_fake})

        with pytest.raises(ProviderNotFoundError) as exc_info:
            await adapter.call("mistral", "m", "hi")
        assert exc_info.value.code == ErrorCode.INVALID_PROVIDER

    def test_names_and_membership(self, openai_fake) -> None:  # type: ignore[no-untyped-def]
        adapter = ProviderAdapter({"openai": openai_fake})
        assert adapter.names == ["openai"]
        assert "openai" in adapter
        assert "anthropic" not in adapter
        assert adapter.get("openai") is openai_fake

    @pytest.mark.asyncio
    async def test_provider_errors_pass_through(self, openai_fake) -> None:  # type: ignore[no-untyped-def]
        error = MissingCredentialError("openai")
        openai_fake.set_error(error)
        adapter = ProviderAdapter({"openai": openai_fake})

        with pytest.raises(MissingCredentialError) as exc_info:
            await adapter.call("openai", "gpt-4", "hi")
        assert exc_info.value is error

    @pytest.mark.asyncio
    async def test_timeout_becomes_network_error(self, openai_fake) -> None:  # type: ignore[no-untyped-def]
        openai_fake.gate = asyncio.Event()
        adapter = ProviderAdapter({"openai": openai_fake}, timeout_seconds=0.01)

        with pytest.raises(NetworkError) as exc_info:
            await adapter.call("openai", "gpt-4", "hi")

        assert exc_info.value.retryable is True
        assert isinstance(exc_info.value.original, TimeoutError)

    @pytest.mark.asyncio
    async def test_connection_error_becomes_network_error(self, openai_fake) -> None:  # type: ignore[no-untyped-def]
        openai_fake.set_error(ConnectionResetError("peer reset"))
        adapter = ProviderAdapter({"openai": openai_fake})

        with pytest.raises(NetworkError) as exc_info:
            await adapter.call("openai", "gpt-4", "hi")
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_not_retryable(self, openai_fake) -> None:  # type: ignore[no-untyped-def]
        openai_fake.set_error(TypeError("create() got an unexpected keyword argument"))
        adapter = ProviderAdapter({"openai": openai_fake})

        with pytest.raises(ProviderError) as exc_info:
            await adapter.call("openai", "gpt-4", "hi")

        assert not isinstance(exc_info.value, NetworkError)
        assert exc_info.value.code == ErrorCode.UPSTREAM_ERROR
        assert exc_info.value.retryable is False
        assert isinstance(exc_info.value.original, TypeError)

    @pytest.mark.asyncio
    async def test_cancellation_is_tagged(self, openai_fake) -> None:  # type: ignore[no-untyped-def]
        openai_fake.set_error(asyncio.CancelledError())
        adapter = ProviderAdapter({"openai": openai_fake})

        with pytest.raises(RequestCancelledError) as exc_info:
            await adapter.call("openai", "gpt-4", "hi")
        assert exc_info.value.provider == "openai"
        assert exc_info.value.code == ErrorCode.CANCELLED

    @pytest.mark.asyncio
    async def test_caller_cancellation_propagates(self, openai_fake) -> None:  # type: ignore[no-untyped-def]
        openai_fake.gate = asyncio.Event()
        adapter = ProviderAdapter({"openai": openai_fake})

        task = asyncio.create_task(adapter.call("openai", "gpt-4", "hi"))
        while openai_fake.call_count == 0:
            await asyncio.sleep(0)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_close_closes_all_providers(self, openai_fake) -> None:  # type: ignore[no-untyped-def]
        class _Broken(FakeProvider):
            async def close(self) -> None:
                raise RuntimeError("already closed")

        adapter = ProviderAdapter({"broken": _Broken("broken"), "openai": openai_fake})
        await adapter.close()

        assert openai_fake.closed is True


@pytest.mark.unit
class TestNormalizeFinishReason:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("stop", "stop"),
            ("end_turn", "stop"),
            ("tool_calls", "stop"),
            ("length", "length"),
            ("max_tokens", "length"),
            ("content_filter", "content_filter"),
            ("refusal", "content_filter"),
            ("something_new", "error"),
            (None, "error"),
        ],
    )
    def test_mapping(self, raw: str | None, expected: str) -> None:
        assert normalize_finish_reason(raw) == expected
