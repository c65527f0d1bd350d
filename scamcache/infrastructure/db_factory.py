"""
Database connection factory utilities for the scam listing cache.

Provides the async PostgreSQL connection pool used by the store. Pools are
created closed and opened explicitly from the running event loop; every pooled
connection gets the configured statement timeout.

Includes retry logic for transient connection failures using tenacity.
"""

from __future__ import annotations

from typing import Optional

import psycopg
from psycopg import AsyncConnection
from psycopg_pool import AsyncConnectionPool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from scamcache.config import Settings, get_settings
from scamcache.utils.logging import get_logger

log = get_logger(__name__)


def build_dsn(settings: Optional[Settings] = None) -> str:
    """Compose a DSN string from settings."""
    return (settings or get_settings()).dsn


async def apply_statement_timeout(conn: AsyncConnection, timeout_ms: int) -> None:
    """
    Set a per-session statement timeout. A value <= 0 leaves the server default.
    """
    if timeout_ms <= 0:
        return
    await conn.execute(f"SET statement_timeout = {int(timeout_ms)}")
    await conn.commit()


def create_async_pool(
    settings: Optional[Settings] = None,
    dsn_override: Optional[str] = None,
) -> AsyncConnectionPool:
    """
    Create (but do not open) the asynchronous connection pool.

    Parameters
    ----------
    settings : Settings | None
        Settings to read sizes, DSN and statement timeout from.
    dsn_override : str | None
        Connect to this DSN instead of the one composed from settings.

    Returns
    -------
    AsyncConnectionPool
        A closed pool; open it with `open_pool`.
    """
    settings = settings or get_settings()
    timeout_ms = settings.db_statement_timeout_ms

    async def _configure(conn: AsyncConnection) -> None:
        await apply_statement_timeout(conn, timeout_ms)

    return AsyncConnectionPool(
        conninfo=dsn_override or build_dsn(settings),
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
        configure=_configure,
        open=False,
    )


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((psycopg.OperationalError, psycopg.InterfaceError)),
    reraise=True,
)
async def open_pool(
    settings: Optional[Settings] = None,
    dsn_override: Optional[str] = None,
    timeout: float = 10.0,
) -> AsyncConnectionPool:
    """
    Create a pool and wait for its minimum connections, retrying transient failures.

    Retries up to 3 times with exponential backoff. A closed pool cannot be
    reopened, so every attempt builds a fresh one.

    Raises
    ------
    psycopg.OperationalError
        If the database stays unreachable after all retry attempts.
    """
    pool = create_async_pool(settings, dsn_override=dsn_override)
    try:
        await pool.open(wait=True, timeout=timeout)
    except Exception:
        log.warning("Database pool failed to open", extra={"pool": pool.name})
        await pool.close()
        raise
    log.info("Database pool opened", extra={"pool": pool.name, "max_size": pool.max_size})
    return pool


__all__ = [
    "apply_statement_timeout",
    "build_dsn",
    "create_async_pool",
    "open_pool",
]
