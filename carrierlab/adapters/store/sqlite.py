"""SQLite result store adapter.

Implements ResultStorePort using SQLite with aiosqlite for async access.
Two tables: ``test_configs`` (one row per test, JSON params and status)
and ``test_results`` (append-only samples, ordered by rowid).
"""

import asyncio
import json
import logging
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import aiosqlite

from carrierlab.core.models import ResultsSummary, Sample, TestConfig, TestKind, TestStatus
from carrierlab.core.ports import ResultStorePort

logger = logging.getLogger(__name__)

_TERMINAL_STATUSES = tuple(s.value for s in TestStatus if s.is_terminal)


def _ts(value: datetime) -> str:
    """Fixed-width UTC timestamp so string comparison orders correctly."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


class SQLiteResultStore(ResultStorePort):
    """SQLite-backed result store with connection pooling and async access."""

    def __init__(self, db_path: str, pool_size: int = 5):
        """Initialize SQLite store with connection pooling.

        Args:
            db_path: Path to SQLite database file.
            pool_size: Number of connections to maintain in the pool.
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._pool: list[aiosqlite.Connection] = []
        self._pool_lock = asyncio.Lock()
        self._schema_lock = asyncio.Lock()
        self._pool_size = pool_size
        self._schema_initialized = False

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get a connection from the pool or create a new one."""
        async with self._pool_lock:
            if self._pool:
                return self._pool.pop()
        conn = await aiosqlite.connect(str(self.db_path))
        await conn.execute("PRAGMA foreign_keys = ON")
        return conn

    async def _return_connection(self, conn: aiosqlite.Connection) -> None:
        """Return a connection to the pool."""
        async with self._pool_lock:
            if len(self._pool) < self._pool_size:
                self._pool.append(conn)
                return
        await conn.close()

    async def close(self) -> None:
        """Close all pooled connections."""
        async with self._pool_lock:
            pool, self._pool = self._pool, []
        for conn in pool:
            await conn.close()

    async def _init_schema(self) -> None:
        """Initialize database schema on first use.

        Only runs once per instance. Subsequent calls are no-ops.
        """
        if self._schema_initialized:
            return
        async with self._schema_lock:
            if self._schema_initialized:
                return

            conn = await self._get_connection()
            try:
                await conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS test_configs (
                        id TEXT PRIMARY KEY,
                        type TEXT NOT NULL,
                        config TEXT NOT NULL,
                        status TEXT NOT NULL DEFAULT 'pending',
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                    """
                )
                await conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS test_results (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        test_id TEXT NOT NULL,
                        sequence INTEGER NOT NULL,
                        result_data TEXT NOT NULL,
                        error TEXT,
                        final INTEGER NOT NULL DEFAULT 0,
                        timestamp TEXT NOT NULL,
                        FOREIGN KEY (test_id) REFERENCES test_configs(id) ON DELETE CASCADE
                    )
                    """
                )
                await conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_results_test ON test_results(test_id, id)"
                )
                await conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_results_timestamp ON test_results(timestamp)"
                )
                await conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_configs_status ON test_configs(status)"
                )
                await conn.commit()
                self._schema_initialized = True
            finally:
                await self._return_connection(conn)

    async def save_config(self, config: TestConfig) -> None:
        """Insert a new config. Raises sqlite3.IntegrityError on a duplicate ID."""
        await self._init_schema()

        conn = await self._get_connection()
        try:
            created = _ts(config.created_at)
            await conn.execute(
                """
                INSERT INTO test_configs (id, type, config, status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    config.test_id,
                    config.kind.value,
                    json.dumps(dict(config.params), default=str),
                    config.status.value,
                    created,
                    _ts(config.updated_at) if config.updated_at else created,
                ),
            )
            await conn.commit()
        finally:
            await self._return_connection(conn)

    async def get_config(self, test_id: str) -> TestConfig | None:
        await self._init_schema()

        conn = await self._get_connection()
        try:
            cursor = await conn.execute(
                "SELECT id, type, config, status, created_at, updated_at "
                "FROM test_configs WHERE id = ?",
                (test_id,),
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            return self._row_to_config(row)
        finally:
            await self._return_connection(conn)

    async def update_status(self, test_id: str, status: TestStatus) -> None:
        await self._init_schema()

        conn = await self._get_connection()
        try:
            cursor = await conn.execute(
                "UPDATE test_configs SET status = ?, updated_at = ? WHERE id = ?",
                (status.value, _ts(datetime.now(UTC)), test_id),
            )
            await conn.commit()
            if cursor.rowcount == 0:
                logger.debug(f"Status update for unknown test {test_id} ignored")
        finally:
            await self._return_connection(conn)

    async def save_result(self, test_id: str, sample: Sample) -> None:
        await self._init_schema()

        conn = await self._get_connection()
        try:
            await conn.execute(
                """
                INSERT INTO test_results
                (test_id, sequence, result_data, error, final, timestamp)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    test_id,
                    sample.sequence,
                    json.dumps(dict(sample.data), default=str),
                    sample.error,
                    int(sample.final),
                    _ts(sample.timestamp),
                ),
            )
            await conn.commit()
        finally:
            await self._return_connection(conn)

    async def get_results(self, test_id: str, limit: int | None = None) -> list[Sample]:
        """Samples in production order; ``limit`` keeps the most recent ones."""
        await self._init_schema()

        conn = await self._get_connection()
        try:
            query = (
                "SELECT test_id, sequence, result_data, error, final, timestamp "
                "FROM test_results WHERE test_id = ? ORDER BY id DESC"
            )
            params: tuple[Any, ...] = (test_id,)
            if limit is not None:
                query += " LIMIT ?"
                params = (test_id, max(0, limit))
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            return [self._row_to_sample(row) for row in reversed(rows)]
        finally:
            await self._return_connection(conn)

    async def list_configs(
        self, status: TestStatus | None = None, limit: int = 100
    ) -> list[TestConfig]:
        await self._init_schema()

        conn = await self._get_connection()
        try:
            columns = "id, type, config, status, created_at, updated_at"
            if status is None:
                cursor = await conn.execute(
                    f"SELECT {columns} FROM test_configs ORDER BY created_at DESC LIMIT ?",
                    (limit,),
                )
            else:
                cursor = await conn.execute(
                    f"SELECT {columns} FROM test_configs WHERE status = ? "
                    "ORDER BY created_at DESC LIMIT ?",
                    (status.value, limit),
                )
            rows = await cursor.fetchall()
            return [self._row_to_config(row) for row in rows]
        finally:
            await self._return_connection(conn)

    async def delete_test(self, test_id: str) -> bool:
        await self._init_schema()

        conn = await self._get_connection()
        try:
            await conn.execute("DELETE FROM test_results WHERE test_id = ?", (test_id,))
            cursor = await conn.execute("DELETE FROM test_configs WHERE id = ?", (test_id,))
            await conn.commit()
            return cursor.rowcount > 0
        finally:
            await self._return_connection(conn)

    async def summarize(self) -> ResultsSummary:
        await self._init_schema()

        conn = await self._get_connection()
        try:
            cursor = await conn.execute(
                "SELECT type, COUNT(*) FROM test_configs GROUP BY type ORDER BY COUNT(*) DESC"
            )
            by_kind = {row[0]: row[1] for row in await cursor.fetchall()}
            cursor = await conn.execute(
                "SELECT status, COUNT(*) FROM test_configs GROUP BY status"
            )
            by_status = {row[0]: row[1] for row in await cursor.fetchall()}
            cursor = await conn.execute("SELECT COUNT(*) FROM test_results")
            row = await cursor.fetchone()
            total_samples = row[0] if row else 0
        finally:
            await self._return_connection(conn)

        return ResultsSummary(
            total_tests=sum(by_kind.values()),
            total_samples=total_samples,
            by_kind=by_kind,
            by_status=by_status,
        )

    async def cleanup_old_data(self, days_to_keep: int = 30) -> int:
        """Drop samples older than the window and finished tests last touched before it.

        Running and pending tests are never removed.
        """
        await self._init_schema()

        cutoff = _ts(datetime.now(UTC) - timedelta(days=days_to_keep))
        placeholders = ", ".join("?" for _ in _TERMINAL_STATUSES)

        conn = await self._get_connection()
        try:
            cursor = await conn.execute(
                "DELETE FROM test_results WHERE timestamp < ?", (cutoff,)
            )
            results_removed = cursor.rowcount
            cursor = await conn.execute(
                f"SELECT id FROM test_configs WHERE updated_at < ? "
                f"AND status IN ({placeholders})",
                (cutoff, *_TERMINAL_STATUSES),
            )
            stale_ids = [row[0] for row in await cursor.fetchall()]
            for test_id in stale_ids:
                await conn.execute("DELETE FROM test_results WHERE test_id = ?", (test_id,))
                await conn.execute("DELETE FROM test_configs WHERE id = ?", (test_id,))
            await conn.commit()
        finally:
            await self._return_connection(conn)

        logger.info(
            f"Cleaned up {len(stale_ids)} tests and {results_removed} results "
            f"older than {days_to_keep} days"
        )
        return len(stale_ids)

    def _row_to_config(self, row: tuple[Any, ...]) -> TestConfig:
        """Convert a database row to a TestConfig.

        Raises:
            ValueError: If the row contains an unknown kind/status or bad JSON.
        """
        test_id, kind, config_json, status, created_at, updated_at = row
        try:
            params = json.loads(config_json)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid config JSON for test {test_id}: {e}") from e
        return TestConfig(
            test_id=test_id,
            kind=TestKind(kind),
            params=params,
            created_at=datetime.fromisoformat(created_at),
            status=TestStatus(status),
            updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
        )

    def _row_to_sample(self, row: tuple[Any, ...]) -> Sample:
        test_id, sequence, result_json, error, final, timestamp = row
        try:
            data = json.loads(result_json)
        except json.JSONDecodeError as e:
            logger.warning(f"Discarding corrupt result data for test {test_id}: {e}")
            data = {}
        return Sample(
            test_id=test_id,
            sequence=sequence,
            timestamp=datetime.fromisoformat(timestamp),
            data=data,
            error=error,
            final=bool(final),
        )
