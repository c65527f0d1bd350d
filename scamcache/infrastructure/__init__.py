"""
Infrastructure package for the scam listing cache.

Centralizes I/O concerns: the PostgreSQL pool and cache store, and the GitHub
client for the upstream listing repository. Keep this layer focused on I/O and
resource management, decoupled from scheduling and reconciliation logic.
"""

from scamcache.infrastructure.db_factory import build_dsn, create_async_pool, open_pool
from scamcache.infrastructure.github import GitHubClient, UpstreamError
from scamcache.infrastructure.store import CacheStore, CacheTransaction, PostgresCacheStore

__all__ = [
    "CacheStore",
    "CacheTransaction",
    "GitHubClient",
    "PostgresCacheStore",
    "UpstreamError",
    "build_dsn",
    "create_async_pool",
    "open_pool",
]
