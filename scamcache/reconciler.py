"""
Merge a producer snapshot into the cache store.

Every snapshot is applied inside one transaction. Per entry the mutable fields
are overwritten unconditionally (last write wins, no conflict detection) and the
stored nameserver associations are brought to exactly the snapshot's set:

    removed = stored - desired
    added   = desired - stored

Entries are reconciled as concurrent tasks with no ordering between them. If
any statement fails the remaining tasks are cancelled, the transaction rolls
back and `ReconcileError` is raised, so readers never observe a partially
applied snapshot.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Dict, List, Sequence

from scamcache.domain.models import SnapshotRecord
from scamcache.infrastructure.store import CacheStore, CacheTransaction
from scamcache.utils.logging import get_logger

log = get_logger(__name__)


class ReconcileError(RuntimeError):
    """Raised when a snapshot could not be applied; nothing was committed."""


@dataclass(frozen=True)
class EntryChange:
    entry_id: str
    added: int
    removed: int


@dataclass(frozen=True)
class ReconcileResult:
    entries: int = 0
    nameservers_added: int = 0
    nameservers_removed: int = 0


async def reconcile_entry(tx: CacheTransaction, record: SnapshotRecord) -> EntryChange:
    """
    Apply one snapshot record within an open transaction.
    """
    await tx.upsert_entry_status(record)

    stored = set(await tx.list_nameservers(record.id))
    desired = set(record.nameservers)
    stale = stored - desired
    missing = desired - stored

    for nameserver in sorted(stale):
        await tx.delete_nameserver(nameserver, record.id)
    for nameserver in sorted(missing):
        await tx.insert_nameserver(nameserver, record.id)

    return EntryChange(entry_id=record.id, added=len(missing), removed=len(stale))


class Reconciler:
    """
    Applies snapshots to a `CacheStore`.
    """

    def __init__(self, store: CacheStore) -> None:
        self._store = store

    async def apply(self, snapshot: Sequence[SnapshotRecord]) -> ReconcileResult:
        """
        Reconcile the whole snapshot in a single all-or-nothing transaction.

        Raises
        ------
        ReconcileError
            If any statement failed; the transaction was rolled back.
        """
        records = _last_record_per_entry(snapshot)
        try:
            async with self._store.transaction() as tx:
                async with asyncio.TaskGroup() as group:
                    tasks = [group.create_task(reconcile_entry(tx, record)) for record in records]
        except ExceptionGroup as exc:
            first = exc.exceptions[0]
            raise ReconcileError(f"snapshot rolled back: {first}") from first
        except Exception as exc:
            raise ReconcileError(f"snapshot rolled back: {exc}") from exc

        changes = [task.result() for task in tasks]
        result = ReconcileResult(
            entries=len(changes),
            nameservers_added=sum(c.added for c in changes),
            nameservers_removed=sum(c.removed for c in changes),
        )
        log.info(
            "Snapshot reconciled",
            extra={
                "entries": result.entries,
                "nameservers_added": result.nameservers_added,
                "nameservers_removed": result.nameservers_removed,
            },
        )
        return result


def _last_record_per_entry(snapshot: Sequence[SnapshotRecord]) -> List[SnapshotRecord]:
    # Two records for one id would race inside the transaction; the later one wins.
    by_id: Dict[str, SnapshotRecord] = {}
    for record in snapshot:
        by_id.pop(record.id, None)
        by_id[record.id] = record
    return list(by_id.values())


__all__ = [
    "EntryChange",
    "ReconcileError",
    "ReconcileResult",
    "Reconciler",
    "reconcile_entry",
]
