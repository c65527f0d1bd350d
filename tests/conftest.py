"""
Pytest configuration for the scam listing cache.

Provides fixtures for:
- Settings override for integration tests
- Database reachability checks
- Schema creation and table cleanup
"""

from __future__ import annotations

import os
from typing import Generator

import psycopg
import pytest

from scamcache.config import Settings
from scamcache.infrastructure.store import SCHEMA_STATEMENTS


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "scamcache"),
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return test_settings.dsn


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def db_connection(
    test_dsn: str, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a session-scoped database connection for integration tests.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_dsn)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture(scope="session")
def db_schema_initialized(db_connection: psycopg.Connection) -> bool:
    """
    Ensure the cache schema exists.
    """
    with db_connection.cursor() as cur:
        for statement in SCHEMA_STATEMENTS:
            cur.execute(statement)
    db_connection.commit()
    return True


@pytest.fixture(scope="function")
def clean_tables(db_connection: psycopg.Connection, db_schema_initialized: bool):
    """
    Empty all cache tables before and after each test function.
    """

    def _truncate() -> None:
        with db_connection.cursor() as cur:
            cur.execute("TRUNCATE TABLE nameservers, entries, reports, prices RESTART IDENTITY CASCADE;")
        db_connection.commit()

    _truncate()
    yield
    _truncate()
