"""
scamcache - cache service for a public scam listing.

Keeps a PostgreSQL cache of listed URLs fresh:

- a snapshot producer probes every URL (IP, nameservers, HTTP status) in a
  separate process and sends back one snapshot per cycle;
- the reconciler merges each snapshot in a single transaction, replacing the
  nameserver associations by set difference;
- a scheduler drives the refresh loop and independent, error-contained loops
  for upstream pull requests, data pulls and price lookups;
- a FastAPI front serves the cache.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from scamcache.config import Settings, get_settings
from scamcache.reconciler import ReconcileError, ReconcileResult, Reconciler
from scamcache.scheduler import (
    CycleReport,
    CycleState,
    PeriodicTask,
    RefreshLoop,
    ServiceScheduler,
    SystemClock,
)
from scamcache.utils.logging import configure_logging, get_logger
from scamcache.utils.profiler import ProfileStats, profile_block

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Reconciliation
    "ReconcileError",
    "ReconcileResult",
    "Reconciler",
    # Scheduling
    "CycleReport",
    "CycleState",
    "PeriodicTask",
    "RefreshLoop",
    "ServiceScheduler",
    "SystemClock",
    # Logging
    "configure_logging",
    "get_logger",
    # Profiling
    "ProfileStats",
    "profile_block",
]
