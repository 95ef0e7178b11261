"""Demonstrates provider selection and one-shot fallback via env vars.

Run with both credentials set:

  OPENAI_API_KEY=sk-...
  ANTHROPIC_API_KEY=sk-ant-...
  LLM_DEFAULT_PROVIDER=openai

With two credentials the fallback list defaults to both providers, so a
retryable OpenAI failure (429, 5xx, network) is answered by Anthropic.
The code below is IDENTICAL regardless of provider.
"""

import asyncio

from completion_gateway import CompletionGateway, ProviderError, Tenant


async def main() -> None:
    tenant = Tenant(workspace_id="ws-demo", user_id="user-1")
    async with CompletionGateway.from_config() as gateway:
        print(f"Providers with credentials: {gateway.available_providers()}")
        try:
            resp = await gateway.generate(
                "Write a one-line caption for a sunset photo",
                tenant=tenant,
                operation="caption",
                use_cache=False,
            )
        except ProviderError as exc:
            print(f"Failed [{exc.code}] retryable={exc.retryable}: {exc.message}")
            return
        print(f"Provider: {resp.provider}")
        print(f"Model: {resp.model}")
        print(f"Response: {resp.text}")


if __name__ == "__main__":
    asyncio.run(main())
