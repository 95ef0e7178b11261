"""Demonstrates registering a custom provider."""

import asyncio

from completion_gateway import (
    CompletionGateway,
    GatewayConfig,
    Tenant,
    register_pricing,
    register_provider,
)
from completion_gateway.types import ProviderRequest, ProviderResult


class EchoProvider:
    """A demo provider that echoes the prompt back."""

    name = "echo"

    def __init__(self, default_model: str) -> None:
        self.default_model = default_model
        self.fallback_model = default_model

    @classmethod
    def from_config(cls, config: GatewayConfig) -> "EchoProvider":
        settings = config.providers["echo"]
        return cls(default_model=settings.default_model or "echo-1")

    async def complete(self, request: ProviderRequest) -> ProviderResult:
        return ProviderResult(
            text=f"Echo: {request.prompt}",
            input_tokens=len(request.prompt.split()),
            output_tokens=len(request.prompt.split()) + 1,
            finish_reason="stop",
            provider=self.name,
            model=request.model,
        )

    async def close(self) -> None:
        pass


async def main() -> None:
    register_provider("echo", EchoProvider.from_config)
    register_pricing("echo-1", input_per_1k=0.001, output_per_1k=0.002)

    config = GatewayConfig(
        default_provider="echo",
        providers={"echo": {"default_model": "echo-1"}},
    )
    async with CompletionGateway.from_config(config) as gateway:
        resp = await gateway.generate(
            "Hello from a custom provider!",
            tenant=Tenant(workspace_id="ws-demo", user_id="user-1"),
            operation="demo",
        )
        print(f"Response: {resp.text}")
        print(f"Provider: {resp.provider}, cost ${resp.cost:.4f}")


if __name__ == "__main__":
    asyncio.run(main())
