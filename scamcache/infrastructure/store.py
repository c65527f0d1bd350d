"""
Persistent cache store for entries, nameserver associations, reports and prices.

`CacheStore` and `CacheTransaction` are the interfaces the reconciler, the
upstream sync, the price lookup and the HTTP front depend on;
`PostgresCacheStore` implements them on an async psycopg pool.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import (
    AsyncContextManager,
    AsyncIterator,
    List,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)

from psycopg import AsyncConnection
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from scamcache.domain.models import Entry, PriceQuote, ProbeTarget, Report, SnapshotRecord
from scamcache.utils.logging import get_logger

log = get_logger(__name__)

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS entries (
        id TEXT PRIMARY KEY,
        name TEXT,
        url TEXT,
        category TEXT,
        subcategory TEXT,
        description TEXT,
        ip TEXT,
        status TEXT,
        status_code INTEGER,
        updated TIMESTAMPTZ
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS nameservers (
        nameserver TEXT NOT NULL,
        entry TEXT NOT NULL REFERENCES entries (id) ON DELETE CASCADE,
        PRIMARY KEY (nameserver, entry)
    )
    """,
    "CREATE INDEX IF NOT EXISTS nameservers_entry_idx ON nameservers (entry)",
    """
    CREATE TABLE IF NOT EXISTS reports (
        id BIGSERIAL PRIMARY KEY,
        url TEXT NOT NULL,
        name TEXT,
        category TEXT,
        subcategory TEXT,
        description TEXT,
        reporter TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        submitted_at TIMESTAMPTZ,
        pull_request_url TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS prices (
        ticker TEXT PRIMARY KEY,
        usd NUMERIC NOT NULL,
        updated TIMESTAMPTZ NOT NULL
    )
    """,
)

_ENTRY_COLUMNS = "id, name, url, category, subcategory, description, ip, status, status_code, updated"


@runtime_checkable
class CacheTransaction(Protocol):
    """
    Statements the reconciler issues inside one all-or-nothing transaction.
    """

    async def upsert_entry_status(self, record: SnapshotRecord) -> None:
        """Overwrite the entry's mutable fields, inserting the entry if unknown."""
        ...

    async def list_nameservers(self, entry_id: str) -> List[str]:
        ...

    async def delete_nameserver(self, nameserver: str, entry_id: str) -> None:
        ...

    async def insert_nameserver(self, nameserver: str, entry_id: str) -> None:
        """Insert the association; a duplicate is ignored."""
        ...


@runtime_checkable
class CacheStore(Protocol):
    """
    Common interface of the cache store.
    """

    def transaction(self) -> AsyncContextManager[CacheTransaction]:
        """
        Open a transaction that commits on clean exit and rolls back on error.
        """
        ...

    async def load_entries(self, entries: Sequence[Entry]) -> int:
        """Upsert static listing fields; mutable fields are left untouched."""
        ...

    async def list_targets(self) -> List[ProbeTarget]:
        ...

    async def list_entries(self) -> List[Entry]:
        ...

    async def get_entry(self, entry_id: str) -> Optional[Entry]:
        ...

    async def add_report(self, report: Report) -> int:
        ...

    async def pending_reports(self) -> List[Report]:
        ...

    async def mark_reports_submitted(
        self, report_ids: Sequence[int], pull_request_url: Optional[str]
    ) -> None:
        ...

    async def upsert_prices(self, quotes: Sequence[PriceQuote]) -> None:
        ...

    async def list_prices(self) -> List[PriceQuote]:
        ...

    async def close(self) -> None:
        ...


class PostgresCacheTransaction:
    """
    `CacheTransaction` bound to one pooled connection inside `conn.transaction()`.

    psycopg serializes statements issued concurrently on one async connection,
    so callers may fan out with asyncio tasks.
    """

    def __init__(self, conn: AsyncConnection) -> None:
        self._conn = conn

    async def upsert_entry_status(self, record: SnapshotRecord) -> None:
        await self._conn.execute(
            """
            INSERT INTO entries (id, ip, status, status_code, updated)
            VALUES (%s, %s, %s, %s, %s)
            ON CONFLICT (id) DO UPDATE SET
                ip = EXCLUDED.ip,
                status = EXCLUDED.status,
                status_code = EXCLUDED.status_code,
                updated = EXCLUDED.updated
            """,
            (record.id, record.ip, record.status, record.status_code, record.updated),
        )

    async def list_nameservers(self, entry_id: str) -> List[str]:
        cur = await self._conn.execute(
            "SELECT nameserver FROM nameservers WHERE entry = %s", (entry_id,)
        )
        return [row[0] for row in await cur.fetchall()]

    async def delete_nameserver(self, nameserver: str, entry_id: str) -> None:
        await self._conn.execute(
            "DELETE FROM nameservers WHERE nameserver = %s AND entry = %s",
            (nameserver, entry_id),
        )

    async def insert_nameserver(self, nameserver: str, entry_id: str) -> None:
        await self._conn.execute(
            "INSERT INTO nameservers (nameserver, entry) VALUES (%s, %s) ON CONFLICT DO NOTHING",
            (nameserver, entry_id),
        )


class PostgresCacheStore:
    """
    PostgreSQL-backed cache store.

    The pool is owned by the store and closed with it.
    """

    def __init__(self, pool: AsyncConnectionPool) -> None:
        self._pool = pool

    async def init_schema(self) -> None:
        async with self._pool.connection() as conn:
            async with conn.transaction():
                for statement in SCHEMA_STATEMENTS:
                    await conn.execute(statement)
        log.info("Cache schema ready")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[PostgresCacheTransaction]:
        async with self._pool.connection() as conn:
            async with conn.transaction():
                yield PostgresCacheTransaction(conn)

    async def load_entries(self, entries: Sequence[Entry]) -> int:
        if not entries:
            return 0
        async with self._pool.connection() as conn:
            async with conn.transaction():
                async with conn.cursor() as cur:
                    await cur.executemany(
                        """
                        INSERT INTO entries (id, name, url, category, subcategory, description)
                        VALUES (%s, %s, %s, %s, %s, %s)
                        ON CONFLICT (id) DO UPDATE SET
                            name = EXCLUDED.name,
                            url = EXCLUDED.url,
                            category = EXCLUDED.category,
                            subcategory = EXCLUDED.subcategory,
                            description = EXCLUDED.description
                        """,
                        [
                            (e.id, e.name, e.url, e.category, e.subcategory, e.description)
                            for e in entries
                        ],
                    )
        log.info("Entries loaded", extra={"entries": len(entries)})
        return len(entries)

    async def list_targets(self) -> List[ProbeTarget]:
        async with self._pool.connection() as conn:
            cur = await conn.execute(
                "SELECT id, url FROM entries WHERE url IS NOT NULL AND url <> '' ORDER BY id"
            )
            rows = await cur.fetchall()
        return [ProbeTarget(entry_id=row[0], url=row[1]) for row in rows]

    async def list_entries(self) -> List[Entry]:
        async with self._pool.connection() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(f"SELECT {_ENTRY_COLUMNS} FROM entries ORDER BY id")
                rows = await cur.fetchall()
        return [Entry(**row) for row in rows]

    async def get_entry(self, entry_id: str) -> Optional[Entry]:
        async with self._pool.connection() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(f"SELECT {_ENTRY_COLUMNS} FROM entries WHERE id = %s", (entry_id,))
                row = await cur.fetchone()
                if row is None:
                    return None
                await cur.execute(
                    "SELECT nameserver FROM nameservers WHERE entry = %s ORDER BY nameserver",
                    (entry_id,),
                )
                nameservers = [r["nameserver"] for r in await cur.fetchall()]
        return Entry(**row, nameservers=nameservers)

    async def add_report(self, report: Report) -> int:
        async with self._pool.connection() as conn:
            cur = await conn.execute(
                """
                INSERT INTO reports (url, name, category, subcategory, description, reporter)
                VALUES (%s, %s, %s, %s, %s, %s)
                RETURNING id
                """,
                (
                    report.url,
                    report.name,
                    report.category,
                    report.subcategory,
                    report.description,
                    report.reporter,
                ),
            )
            row = await cur.fetchone()
        return int(row[0])

    async def pending_reports(self) -> List[Report]:
        async with self._pool.connection() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(
                    "SELECT * FROM reports WHERE submitted_at IS NULL ORDER BY id"
                )
                rows = await cur.fetchall()
        return [Report(**row) for row in rows]

    async def mark_reports_submitted(
        self, report_ids: Sequence[int], pull_request_url: Optional[str]
    ) -> None:
        if not report_ids:
            return
        async with self._pool.connection() as conn:
            await conn.execute(
                """
                UPDATE reports SET submitted_at = %s, pull_request_url = %s
                WHERE id = ANY(%s)
                """,
                (datetime.now(timezone.utc), pull_request_url, list(report_ids)),
            )

    async def upsert_prices(self, quotes: Sequence[PriceQuote]) -> None:
        if not quotes:
            return
        async with self._pool.connection() as conn:
            async with conn.cursor() as cur:
                await cur.executemany(
                    """
                    INSERT INTO prices (ticker, usd, updated) VALUES (%s, %s, %s)
                    ON CONFLICT (ticker) DO UPDATE SET usd = EXCLUDED.usd, updated = EXCLUDED.updated
                    """,
                    [(q.ticker, q.usd, q.updated) for q in quotes],
                )

    async def list_prices(self) -> List[PriceQuote]:
        async with self._pool.connection() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute("SELECT ticker, usd, updated FROM prices ORDER BY ticker")
                rows = await cur.fetchall()
        return [PriceQuote(**row) for row in rows]

    async def close(self) -> None:
        await self._pool.close()


__all__ = [
    "CacheStore",
    "CacheTransaction",
    "PostgresCacheStore",
    "PostgresCacheTransaction",
    "SCHEMA_STATEMENTS",
]
