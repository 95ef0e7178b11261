"""Usage ledger: sliding-window admission control plus durable usage log."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import threading
import time
from collections import defaultdict, deque
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from tenacity import AsyncRetrying, RetryError, stop_after_attempt, wait_exponential

from completion_gateway.config import RateLimitConfig
from completion_gateway.maintenance import PeriodicTask
from completion_gateway.storage import UsageStore
from completion_gateway.types import (
    RateLimitStatus,
    Tenant,
    UsageBreakdown,
    UsageRecord,
    UsageStats,
)

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0
COST_WINDOW = timedelta(hours=24)


class UsageLedger:
    """Tracks completion attempts per tenant and decides admission.

    Request and token ceilings are evaluated over an in-memory trailing
    60s window per tenant; the daily cost ceiling is read from the durable
    store plus the cost of records whose durable write is still pending.
    Durable writes run as background tasks and never fail a caller.
    """

    def __init__(
        self,
        store: UsageStore,
        prune_interval_seconds: float = 30.0,
        write_attempts: int = 3,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._clock = clock
        self._write_attempts = write_attempts
        self._windows: dict[str, deque[UsageRecord]] = defaultdict(deque)
        self._unpersisted_cost: dict[str, float] = {}
        self._lock = threading.Lock()
        self._pending: set[asyncio.Task[None]] = set()
        self._pruner = PeriodicTask("usage-window-prune", self.prune, prune_interval_seconds)

    @property
    def store(self) -> UsageStore:
        return self._store

    async def check_admission(self, tenant: Tenant, config: RateLimitConfig) -> RateLimitStatus:
        """Compute the tenant's rate-limit status.

        ``limited`` is True when any usage has reached its ceiling.
        """
        status, _ = await self._evaluate(tenant, config, reserve=False)
        return status

    async def admit(
        self, tenant: Tenant, config: RateLimitConfig
    ) -> tuple[RateLimitStatus, UsageRecord | None]:
        """Check admission and, when admitted, reserve a slot in the window.

        The reservation is a zero-token placeholder that counts as a request
        until ``record(..., reservation=...)`` replaces it or ``release``
        drops it. The check and the reservation happen under one lock hold,
        so a concurrent burst from one tenant cannot all pass on the same
        window.

        Returns:
            The status, and the reservation (None when denied).
        """
        return await self._evaluate(tenant, config, reserve=True)

    def release(self, reservation: UsageRecord) -> None:
        """Drop a reservation that will never be settled by ``record``."""
        with self._lock:
            self._discard(reservation)

    async def record(
        self,
        usage: UsageRecord,
        *,
        count_toward_window: bool = True,
        reservation: UsageRecord | None = None,
    ) -> UsageRecord:
        """Write a usage record.

        The in-memory window is updated before returning, replacing
        ``reservation`` if one is given; the durable write is scheduled in
        the background and retried a bounded number of times.
        Returns the record as stamped with its creation time.
        """
        if usage.created_at is None:
            usage = dataclasses.replace(usage, created_at=self._now_dt(self._clock()))

        with self._lock:
            if reservation is not None:
                self._discard(reservation)
            if count_toward_window:
                self._windows[usage.tenant.key].append(usage)
            if usage.cost > 0:
                workspace = usage.tenant.workspace_id
                self._unpersisted_cost[workspace] = (
                    self._unpersisted_cost.get(workspace, 0.0) + usage.cost
                )

        task = asyncio.get_running_loop().create_task(self._persist(usage))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return usage

    def prune(self) -> int:
        """Drop window records older than 60s; forget tenants left empty."""
        cutoff = self._clock() - WINDOW_SECONDS
        removed = 0
        with self._lock:
            for key in list(self._windows):
                window = self._windows[key]
                while window and self._epoch(window[0]) <= cutoff:
                    window.popleft()
                    removed += 1
                if not window:
                    del self._windows[key]
        return removed

    def active_tenants(self) -> int:
        with self._lock:
            return len(self._windows)

    def clear_memory(self) -> None:
        with self._lock:
            self._windows.clear()

    async def usage_stats(self, tenant: Tenant, start: datetime, end: datetime) -> UsageStats:
        """Aggregate durable usage for the tenant's workspace."""
        records = await self._store.query(tenant.workspace_id, start, end)
        if not records:
            return UsageStats()

        total = len(records)
        by_provider: dict[str, UsageBreakdown] = {}
        by_operation: dict[str, UsageBreakdown] = {}
        for r in records:
            for group, name in ((by_provider, r.provider), (by_operation, r.operation)):
                bucket = group.setdefault(name, UsageBreakdown())
                bucket.requests += 1
                bucket.tokens += r.tokens_used
                bucket.cost += r.cost

        return UsageStats(
            total_requests=total,
            total_tokens=sum(r.tokens_used for r in records),
            total_cost=round(sum(r.cost for r in records), 2),
            by_provider=by_provider,
            by_operation=by_operation,
            avg_latency_ms=round(sum(r.latency_ms for r in records) / total),
            success_rate=round(sum(1 for r in records if r.success) / total, 2),
            cache_hit_rate=round(sum(1 for r in records if r.cached) / total, 2),
        )

    async def recent_errors(self, tenant: Tenant, limit: int = 10) -> list[UsageRecord]:
        return await self._store.recent_errors(tenant.workspace_id, limit)

    async def flush(self) -> None:
        """Wait for outstanding durable writes."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    def start(self) -> None:
        """Start the periodic window pruning."""
        self._pruner.start()

    async def close(self) -> None:
        """Stop pruning and drain outstanding durable writes."""
        await self._pruner.stop()
        await self.flush()

    async def _evaluate(
        self, tenant: Tenant, config: RateLimitConfig, reserve: bool
    ) -> tuple[RateLimitStatus, UsageRecord | None]:
        # Pending cost is read before the store so a write landing in
        # between is counted twice rather than missed.
        with self._lock:
            pending_cost = self._unpersisted_cost.get(tenant.workspace_id, 0.0)

        since = self._now_dt(self._clock()) - COST_WINDOW
        try:
            stored_cost = await self._store.sum_cost(tenant.workspace_id, since)
        except Exception:
            logger.exception(
                "Failed to read daily cost; admitting on request/token limits only",
                extra={"workspace_id": tenant.workspace_id},
            )
            stored_cost = 0.0
        cost_today = stored_cost + pending_cost

        reservation: UsageRecord | None = None
        with self._lock:
            now = self._clock()
            cutoff = now - WINDOW_SECONDS
            recent = [
                r for r in self._windows.get(tenant.key, ()) if self._epoch(r) > cutoff
            ]
            requests = len(recent)
            tokens = sum(r.tokens_used for r in recent)

            reason: str | None = None
            if requests >= config.max_requests_per_minute:
                reason = "requests"
            elif tokens >= config.max_tokens_per_minute:
                reason = "tokens"
            elif cost_today >= config.max_cost_per_day:
                reason = "cost"

            if reason is None and reserve:
                reservation = UsageRecord(
                    tenant=tenant,
                    provider="",
                    model="",
                    operation="",
                    created_at=self._now_dt(now),
                )
                self._windows[tenant.key].append(reservation)

        status = RateLimitStatus(
            requests_remaining=max(0, config.max_requests_per_minute - requests),
            tokens_remaining=max(0, config.max_tokens_per_minute - tokens),
            cost_remaining=max(0.0, round(config.max_cost_per_day - cost_today, 4)),
            reset_at=now + WINDOW_SECONDS,
            limited=reason is not None,
            reason=reason,
        )
        return status, reservation

    def _discard(self, reservation: UsageRecord) -> None:
        # Caller holds the lock. Matched by identity: placeholders compare equal.
        window = self._windows.get(reservation.tenant.key)
        if not window:
            return
        for index, entry in enumerate(window):
            if entry is reservation:
                del window[index]
                return

    async def _persist(self, usage: UsageRecord) -> None:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._write_attempts),
                wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
            ):
                with attempt:
                    await self._store.insert(usage)
        except RetryError as exc:
            logger.error(
                "Dropping usage record after %d failed writes: %s",
                self._write_attempts,
                exc.last_attempt.exception(),
                extra={
                    "workspace_id": usage.tenant.workspace_id,
                    "provider": usage.provider,
                    "operation": usage.operation,
                },
            )
        finally:
            if usage.cost > 0:
                self._settle_cost(usage)

    def _settle_cost(self, usage: UsageRecord) -> None:
        workspace = usage.tenant.workspace_id
        with self._lock:
            remaining = self._unpersisted_cost.get(workspace, 0.0) - usage.cost
            if remaining > 1e-9:
                self._unpersisted_cost[workspace] = remaining
            else:
                self._unpersisted_cost.pop(workspace, None)

    @staticmethod
    def _epoch(record: UsageRecord) -> float:
        assert record.created_at is not None
        return record.created_at.timestamp()

    @staticmethod
    def _now_dt(now: float) -> datetime:
        return datetime.fromtimestamp(now, tz=timezone.utc)
