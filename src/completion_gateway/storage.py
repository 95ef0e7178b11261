"""Durable usage log back ends."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Protocol, runtime_checkable

import aiosqlite

from completion_gateway.types import Tenant, UsageRecord

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@runtime_checkable
class UsageStore(Protocol):
    """Append-only store of usage records.

    Records are never modified once written; the store is the source of
    truth for the trailing 24h cost ceiling and for usage reporting.
    """

    async def initialize(self) -> None: ...

    async def insert(self, record: UsageRecord) -> None: ...

    async def sum_cost(self, workspace_id: str, since: datetime) -> float: ...

    async def query(
        self, workspace_id: str, start: datetime, end: datetime
    ) -> list[UsageRecord]: ...

    async def recent_errors(self, workspace_id: str, limit: int = 10) -> list[UsageRecord]: ...

    async def close(self) -> None: ...


class InMemoryUsageStore:
    """List-backed store for tests and single-process deployments."""

    def __init__(self) -> None:
        self._records: list[UsageRecord] = []
        self._lock = asyncio.Lock()

    @property
    def records(self) -> Sequence[UsageRecord]:
        return tuple(self._records)

    async def initialize(self) -> None:
        """Nothing to set up."""

    async def insert(self, record: UsageRecord) -> None:
        async with self._lock:
            self._records.append(record)

    async def sum_cost(self, workspace_id: str, since: datetime) -> float:
        async with self._lock:
            return sum(
                r.cost
                for r in self._records
                if r.tenant.workspace_id == workspace_id
                and r.created_at is not None
                and r.created_at >= since
            )

    async def query(
        self, workspace_id: str, start: datetime, end: datetime
    ) -> list[UsageRecord]:
        async with self._lock:
            return [
                r
                for r in self._records
                if r.tenant.workspace_id == workspace_id
                and r.created_at is not None
                and start <= r.created_at <= end
            ]

    async def recent_errors(self, workspace_id: str, limit: int = 10) -> list[UsageRecord]:
        async with self._lock:
            failed = [
                r
                for r in self._records
                if r.tenant.workspace_id == workspace_id and not r.success
            ]
        failed.sort(key=lambda r: r.created_at or _EPOCH, reverse=True)
        return failed[:limit]

    async def close(self) -> None:
        """Nothing to release."""


_SCHEMA = """
CREATE TABLE IF NOT EXISTS ai_usage_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    workspace_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    provider TEXT NOT NULL,
    model TEXT NOT NULL,
    operation TEXT NOT NULL,
    tokens_used INTEGER NOT NULL DEFAULT 0,
    cost REAL NOT NULL DEFAULT 0,
    response_time_ms INTEGER NOT NULL DEFAULT 0,
    success INTEGER NOT NULL DEFAULT 1,
    error_message TEXT,
    error_code TEXT,
    cached INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
)
"""

_INDEX = (
    "CREATE INDEX IF NOT EXISTS idx_ai_usage_workspace "
    "ON ai_usage_logs(workspace_id, created_at)"
)

_COLUMNS = (
    "workspace_id, user_id, provider, model, operation, tokens_used, cost, "
    "response_time_ms, success, error_message, error_code, cached, created_at"
)


class SQLiteUsageStore:
    """SQLite-backed usage log (``ai_usage_logs`` table) via aiosqlite.

    ``created_at`` is stored as an ISO-8601 string; all records are written
    in UTC so lexical comparison matches chronological order.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._initialized = False

    async def initialize(self) -> None:
        if self._initialized:
            return
        async with aiosqlite.connect(self._db_path) as db:
            await db.execute(_SCHEMA)
            await db.execute(_INDEX)
            await db.commit()
        self._initialized = True

    async def insert(self, record: UsageRecord) -> None:
        await self.initialize()
        created_at = _ts(record.created_at or datetime.now(timezone.utc))
        async with aiosqlite.connect(self._db_path) as db:
            await db.execute(
                f"INSERT INTO ai_usage_logs ({_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    record.tenant.workspace_id,
                    record.tenant.user_id,
                    record.provider,
                    record.model,
                    record.operation,
                    record.tokens_used,
                    record.cost,
                    record.latency_ms,
                    int(record.success),
                    record.error_message,
                    record.error_code,
                    int(record.cached),
                    created_at,
                ),
            )
            await db.commit()

    async def sum_cost(self, workspace_id: str, since: datetime) -> float:
        await self.initialize()
        async with aiosqlite.connect(self._db_path) as db:
            async with db.execute(
                "SELECT COALESCE(SUM(cost), 0) FROM ai_usage_logs "
                "WHERE workspace_id = ? AND created_at >= ?",
                (workspace_id, _ts(since)),
            ) as cursor:
                row = await cursor.fetchone()
        return float(row[0]) if row else 0.0

    async def query(
        self, workspace_id: str, start: datetime, end: datetime
    ) -> list[UsageRecord]:
        await self.initialize()
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                f"SELECT {_COLUMNS} FROM ai_usage_logs "
                "WHERE workspace_id = ? AND created_at >= ? AND created_at <= ? "
                "ORDER BY created_at",
                (workspace_id, _ts(start), _ts(end)),
            ) as cursor:
                rows = await cursor.fetchall()
        return [self._to_record(row) for row in rows]

    async def recent_errors(self, workspace_id: str, limit: int = 10) -> list[UsageRecord]:
        await self.initialize()
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                f"SELECT {_COLUMNS} FROM ai_usage_logs "
                "WHERE workspace_id = ? AND success = 0 "
                "ORDER BY created_at DESC LIMIT ?",
                (workspace_id, limit),
            ) as cursor:
                rows = await cursor.fetchall()
        return [self._to_record(row) for row in rows]

    async def close(self) -> None:
        """Connections are opened per operation; nothing to release."""

    @staticmethod
    def _to_record(row: aiosqlite.Row) -> UsageRecord:
        return UsageRecord(
            tenant=Tenant(workspace_id=row["workspace_id"], user_id=row["user_id"]),
            provider=row["provider"],
            model=row["model"],
            operation=row["operation"],
            tokens_used=row["tokens_used"],
            cost=row["cost"],
            latency_ms=row["response_time_ms"],
            success=bool(row["success"]),
            error_message=row["error_message"],
            error_code=row["error_code"],
            cached=bool(row["cached"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )


def _ts(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")
