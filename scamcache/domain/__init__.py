"""
Domain package for the scam listing cache.

Exports the core domain models shared by the producer, the reconciler, the
store and the HTTP front. Keep this package focused on data definitions and
validation concerns.
"""

from scamcache.domain.models import (
    Entry,
    PriceQuote,
    ProbeTarget,
    Report,
    SnapshotRecord,
    entry_id_for_url,
)

__all__ = [
    "Entry",
    "PriceQuote",
    "ProbeTarget",
    "Report",
    "SnapshotRecord",
    "entry_id_for_url",
]
