"""
Snapshot producer package.

The producer probes every listed URL in a separate process and hands the
resulting snapshot back to the service as a single message.
"""

from scamcache.producer.channel import ProducerHandle, SnapshotProducer, parse_snapshot
from scamcache.producer.probe import compute_snapshot

__all__ = [
    "ProducerHandle",
    "SnapshotProducer",
    "compute_snapshot",
    "parse_snapshot",
]
