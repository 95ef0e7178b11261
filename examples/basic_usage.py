"""Basic usage of completion-gateway."""

import asyncio

from completion_gateway import CompletionGateway, Tenant


async def main() -> None:
    """Demonstrate a priced completion and a cached repeat."""
    tenant = Tenant(workspace_id="ws-demo", user_id="user-1")

    # from_config() reads LLM_* env vars (and OPENAI_API_KEY / ANTHROPIC_API_KEY)
    async with CompletionGateway.from_config() as gateway:
        for _ in range(2):
            resp = await gateway.generate(
                "Generate 3 hashtags for cooking",
                tenant=tenant,
                operation="hashtag_research",
            )
            print(f"Text: {resp.text}")
            print(f"Served by: {resp.provider}/{resp.model}")
            print(f"Tokens: {resp.tokens_used}  Cost: ${resp.cost:.4f}  Cached: {resp.cached}")

        stats = gateway.cache_stats()
        print(f"Cache hit rate: {stats.hit_rate:.0%}, saved ${stats.total_savings:.4f}")


if __name__ == "__main__":
    asyncio.run(main())
