"""Shared test fixtures for completion-gateway."""

from __future__ import annotations

import pytest

from completion_gateway.config import GatewayConfig
from completion_gateway.gateway import CompletionGateway
from completion_gateway.storage import InMemoryUsageStore
from completion_gateway.testing import FakeProvider
from completion_gateway.types import Tenant

_ENV_VARS = (
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "LLM_DEFAULT_PROVIDER",
    "LLM_DEFAULT_MODEL",
    "LLM_USAGE_DB_PATH",
    "LLM_TRACE_ENABLED",
)


class FakeClock:
    """Manually advanced wall clock (epoch seconds)."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep real credentials and LLM_ overrides out of unit tests."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tenant() -> Tenant:
    return Tenant(workspace_id="ws-1", user_id="user-1")


@pytest.fixture
def store() -> InMemoryUsageStore:
    return InMemoryUsageStore()


@pytest.fixture
def openai_fake() -> FakeProvider:
    return FakeProvider("openai", default_model="gpt-3.5-turbo", fallback_model="gpt-3.5-turbo")


@pytest.fixture
def anthropic_fake() -> FakeProvider:
    return FakeProvider(
        "anthropic", default_model="claude-3-haiku", fallback_model="claude-3-haiku"
    )


@pytest.fixture
def test_config() -> GatewayConfig:
    """Both built-in providers credentialed, openai first, fallback to anthropic."""
    return GatewayConfig(
        providers={
            "openai": {"api_key": "sk-test"},
            "anthropic": {"api_key": "sk-ant-test"},
        },
        fallback={"enabled": True, "providers": ["openai", "anthropic"]},
    )


@pytest.fixture
async def make_gateway(
    openai_fake: FakeProvider,
    anthropic_fake: FakeProvider,
    store: InMemoryUsageStore,
    clock: FakeClock,
):  # type: ignore[no-untyped-def]
    """Build a gateway over the fake providers; overrides are GatewayConfig fields."""
    built: list[CompletionGateway] = []

    def _make(**overrides: object) -> CompletionGateway:
        fields: dict[str, object] = {
            "providers": {
                "openai": {"api_key": "sk-test"},
                "anthropic": {"api_key": "sk-ant-test"},
            },
            "fallback": {"enabled": True, "providers": ["openai", "anthropic"]},
        }
        fields.update(overrides)
        gateway = CompletionGateway.from_config(
            GatewayConfig(**fields),  # type: ignore[arg-type]
            providers={"openai": openai_fake, "anthropic": anthropic_fake},
            store=store,
            clock=clock,
        )
        built.append(gateway)
        return gateway

    yield _make
    for gw in built:
        await gw.close()


@pytest.fixture
def gateway(make_gateway) -> CompletionGateway:  # type: ignore[no-untyped-def]
    return make_gateway()
