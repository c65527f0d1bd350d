"""
Entry point of the snapshot producer process.

Runs in a freshly spawned interpreter: configures its own logging, probes the
targets it was handed, sends the whole snapshot as ONE message over the pipe and
returns, which ends the process. Any exception ends the process before a message
is sent; the parent observes that as end-of-stream.
"""

from __future__ import annotations

import asyncio
from multiprocessing.connection import Connection
from typing import List, Sequence

from scamcache.domain.models import ProbeTarget, SnapshotRecord
from scamcache.producer.probe import compute_snapshot
from scamcache.utils.logging import configure_logging, get_logger

log = get_logger(__name__)


def run_producer(
    sender: Connection,
    targets: Sequence[ProbeTarget],
    timeout: float,
    concurrency: int,
    log_level: str = "INFO",
    json_logs: bool = False,
) -> None:
    configure_logging(level=log_level, json_logs=json_logs)
    log.info("Snapshot producer started", extra={"targets": len(targets)})
    try:
        records: List[SnapshotRecord] = asyncio.run(
            compute_snapshot(targets, timeout=timeout, concurrency=concurrency)
        )
        sender.send([record.to_message() for record in records])
    finally:
        sender.close()
    log.info("Snapshot sent", extra={"entries": len(records)})


__all__ = ["run_producer"]
