"""Tests for the durable usage stores."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from completion_gateway.storage import InMemoryUsageStore, SQLiteUsageStore, UsageStore
from completion_gateway.types import Tenant, UsageRecord

_T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _record(
    workspace_id: str = "ws-1",
    cost: float = 0.0,
    at: datetime = _T0,
    success: bool = True,
    **kw: object,
) -> UsageRecord:
    return UsageRecord(
        tenant=Tenant(workspace_id=workspace_id, user_id="user-1"),
        provider="openai",
        model="gpt-4",
        operation="caption",
        cost=cost,
        success=success,
        created_at=at,
        **kw,  # type: ignore[arg-type]
    )


@pytest.fixture(params=["memory", "sqlite"])
async def usage_store(request, tmp_path):  # type: ignore[no-untyped-def]
    if request.param == "memory":
        backend: UsageStore = InMemoryUsageStore()
    else:
        backend = SQLiteUsageStore(str(tmp_path / "usage.db"))
    await backend.initialize()
    yield backend
    await backend.close()


@pytest.mark.unit
class TestUsageStore:
    def test_implements_protocol(self, tmp_path) -> None:  # type: ignore[no-untyped-def]
        assert isinstance(InMemoryUsageStore(), UsageStore)
        assert isinstance(SQLiteUsageStore(str(tmp_path / "x.db")), UsageStore)

    @pytest.mark.asyncio
    async def test_sum_cost_since(self, usage_store) -> None:  # type: ignore[no-untyped-def]
        await usage_store.insert(_record(cost=1.5, at=_T0 - timedelta(hours=25)))
        await usage_store.insert(_record(cost=0.25, at=_T0 - timedelta(hours=1)))
        await usage_store.insert(_record(cost=0.5, at=_T0))
        await usage_store.insert(_record(workspace_id="ws-2", cost=9.0, at=_T0))

        total = await usage_store.sum_cost("ws-1", _T0 - timedelta(hours=24))
        assert total == pytest.approx(0.75)

    @pytest.mark.asyncio
    async def test_sum_cost_empty(self, usage_store) -> None:  # type: ignore[no-untyped-def]
        assert await usage_store.sum_cost("ws-1", _T0) == 0.0

    @pytest.mark.asyncio
    async def test_query_round_trips_fields(self, usage_store) -> None:  # type: ignore[no-untyped-def]
        original = _record(
            cost=0.0012,
            tokens_used=30,
            latency_ms=420,
            success=False,
            error_message="Provider 'openai' error [UPSTREAM_ERROR]: boom",
            error_code="UPSTREAM_ERROR",
            cached=False,
        )
        await usage_store.insert(original)

        (loaded,) = await usage_store.query("ws-1", _T0 - timedelta(minutes=1), _T0)
        assert loaded == original

    @pytest.mark.asyncio
    async def test_query_range_is_inclusive_and_scoped(self, usage_store) -> None:  # type: ignore[no-untyped-def]
        await usage_store.insert(_record(at=_T0 - timedelta(days=2)))
        await usage_store.insert(_record(at=_T0 - timedelta(days=1)))
        await usage_store.insert(_record(at=_T0))
        await usage_store.insert(_record(workspace_id="ws-2", at=_T0))

        found = await usage_store.query("ws-1", _T0 - timedelta(days=1), _T0)
        assert [r.created_at for r in found] == [_T0 - timedelta(days=1), _T0]

    @pytest.mark.asyncio
    async def test_recent_errors_newest_first(self, usage_store) -> None:  # type: ignore[no-untyped-def]
        for minutes in range(4):
            await usage_store.insert(
                _record(
                    at=_T0 + timedelta(minutes=minutes),
                    success=False,
                    error_code=f"E{minutes}",
                )
            )
        await usage_store.insert(_record(at=_T0 + timedelta(minutes=10)))

        errors = await usage_store.recent_errors("ws-1", limit=2)
        assert [e.error_code for e in errors] == ["E3", "E2"]


@pytest.mark.unit
class TestSQLiteUsageStore:
    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path) -> None:  # type: ignore[no-untyped-def]
        path = str(tmp_path / "usage.db")
        first = SQLiteUsageStore(path)
        await first.insert(_record(cost=2.0))

        second = SQLiteUsageStore(path)
        assert await second.sum_cost("ws-1", _T0 - timedelta(hours=1)) == pytest.approx(2.0)

    @pytest.mark.asyncio
    async def test_non_utc_timestamps_compare_correctly(self, tmp_path) -> None:  # type: ignore[no-untyped-def]
        store = SQLiteUsageStore(str(tmp_path / "usage.db"))
        plus_two = timezone(timedelta(hours=2))
        # Same instant as _T0, written in another offset
        await store.insert(_record(cost=1.0, at=_T0.astimezone(plus_two)))

        assert await store.sum_cost("ws-1", _T0) == pytest.approx(1.0)
        assert await store.sum_cost("ws-1", _T0 + timedelta(seconds=1)) == 0.0
