"""Demonstrates per-tenant rate limits and usage reporting."""

import asyncio
from datetime import datetime, timedelta, timezone

from completion_gateway import (
    CompletionGateway,
    GatewayConfig,
    RateLimitExceededError,
    Tenant,
)


async def main() -> None:
    """Run calls until admission control refuses, then report usage."""
    config = GatewayConfig(
        rate_limit={"max_requests_per_minute": 5, "max_cost_per_day": 0.10},
        usage_db_path="usage.db",
    )
    tenant = Tenant(workspace_id="ws-demo", user_id="user-1")

    async with CompletionGateway.from_config(config) as gateway:
        for i in range(10):
            try:
                resp = await gateway.generate(
                    f"Summarize point {i} of good API design in one sentence.",
                    tenant=tenant,
                    operation="summary",
                )
                print(f"Call {i + 1}: {resp.tokens_used} tokens, ${resp.cost:.4f}")
            except RateLimitExceededError as exc:
                print(f"Call {i + 1} refused ({exc.reason}); try again after the window")
                break

        await gateway.ledger.flush()
        now = datetime.now(timezone.utc)
        stats = await gateway.usage_stats(tenant, now - timedelta(days=1), now)
        print(f"Requests: {stats.total_requests}")
        print(f"Total cost: ${stats.total_cost:.2f}")
        print(f"Success rate: {stats.success_rate:.0%}")
        for name, bucket in stats.by_provider.items():
            print(f"  {name}: {bucket.requests} requests, {bucket.tokens} tokens")


if __name__ == "__main__":
    asyncio.run(main())
