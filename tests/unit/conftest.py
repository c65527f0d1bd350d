"""
Shared fakes for unit tests.

- `InMemoryCacheStore`: dict-backed `CacheStore` with real rollback semantics
  and an injectable statement failure.
- `FakeClock`: records requested sleeps and advances virtual time instead of
  waiting.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any, Callable, Optional

import pytest

from scamcache.domain.models import Entry, PriceQuote, ProbeTarget, Report, SnapshotRecord


class _InjectedFailure(RuntimeError):
    pass


class InMemoryTransaction:
    def __init__(self, store: InMemoryCacheStore) -> None:
        self._store = store

    async def _step(self, op: str, entry_id: str) -> None:
        # Yield so concurrent entry tasks interleave like real statements.
        await asyncio.sleep(0)
        self._store.statements.append((op, entry_id))
        if self._store.fail_on == (op, entry_id):
            raise _InjectedFailure(f"{op} failed for {entry_id}")

    async def upsert_entry_status(self, record: SnapshotRecord) -> None:
        await self._step("upsert_entry_status", record.id)
        current = self._store.entries.get(record.id) or Entry(id=record.id)
        self._store.entries[record.id] = current.model_copy(
            update={
                "ip": record.ip,
                "status": record.status,
                "status_code": record.status_code,
                "updated": record.updated,
            }
        )

    async def list_nameservers(self, entry_id: str) -> list[str]:
        await self._step("list_nameservers", entry_id)
        return [ns for ns, entry in self._store.nameservers if entry == entry_id]

    async def delete_nameserver(self, nameserver: str, entry_id: str) -> None:
        await self._step("delete_nameserver", entry_id)
        self._store.nameservers.discard((nameserver, entry_id))

    async def insert_nameserver(self, nameserver: str, entry_id: str) -> None:
        await self._step("insert_nameserver", entry_id)
        self._store.inserted.append((nameserver, entry_id))
        self._store.nameservers.add((nameserver, entry_id))


class InMemoryCacheStore:
    def __init__(self) -> None:
        self.entries: dict[str, Entry] = {}
        self.nameservers: set[tuple[str, str]] = set()
        self.reports: dict[int, Report] = {}
        self.prices: dict[str, PriceQuote] = {}
        self.statements: list[tuple[str, str]] = []
        self.inserted: list[tuple[str, str]] = []
        self.fail_on: Optional[tuple[str, str]] = None
        self.commits = 0
        self.rollbacks = 0
        self.closed = False
        self._report_ids = itertools.count(1)

    @asynccontextmanager
    async def transaction(self):
        saved = (copy.deepcopy(self.entries), set(self.nameservers))
        try:
            yield InMemoryTransaction(self)
        except BaseException:
            self.entries, self.nameservers = saved
            self.rollbacks += 1
            raise
        self.commits += 1

    def nameservers_of(self, entry_id: str) -> set[str]:
        return {ns for ns, entry in self.nameservers if entry == entry_id}

    async def load_entries(self, entries) -> int:
        for entry in entries:
            static = entry.model_dump(
                include={"name", "url", "category", "subcategory", "description"}
            )
            current = self.entries.get(entry.id) or Entry(id=entry.id)
            self.entries[entry.id] = current.model_copy(update=static)
        return len(entries)

    async def list_targets(self) -> list[ProbeTarget]:
        return [
            ProbeTarget(entry_id=entry.id, url=entry.url)
            for entry in sorted(self.entries.values(), key=lambda e: e.id)
            if entry.url
        ]

    async def list_entries(self) -> list[Entry]:
        return [self.entries[key] for key in sorted(self.entries)]

    async def get_entry(self, entry_id: str) -> Optional[Entry]:
        entry = self.entries.get(entry_id)
        if entry is None:
            return None
        return entry.model_copy(update={"nameservers": sorted(self.nameservers_of(entry_id))})

    async def add_report(self, report: Report) -> int:
        report_id = next(self._report_ids)
        self.reports[report_id] = report.model_copy(
            update={"id": report_id, "created_at": datetime.now(UTC)}
        )
        return report_id

    async def pending_reports(self) -> list[Report]:
        return [r for _, r in sorted(self.reports.items()) if r.submitted_at is None]

    async def mark_reports_submitted(self, report_ids, pull_request_url) -> None:
        for report_id in report_ids:
            self.reports[report_id] = self.reports[report_id].model_copy(
                update={"submitted_at": datetime.now(UTC), "pull_request_url": pull_request_url}
            )

    async def upsert_prices(self, quotes) -> None:
        for quote in quotes:
            self.prices[quote.ticker] = quote

    async def list_prices(self) -> list[PriceQuote]:
        return [self.prices[key] for key in sorted(self.prices)]

    async def close(self) -> None:
        self.closed = True


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def store() -> InMemoryCacheStore:
    return InMemoryCacheStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_record() -> Callable[..., SnapshotRecord]:
    def _make(entry_id: str, nameservers=(), **overrides: Any) -> SnapshotRecord:
        fields: dict[str, Any] = {
            "id": entry_id,
            "ip": "203.0.113.7",
            "status": "Active",
            "statusCode": 200,
            "updated": datetime(2026, 1, 1, tzinfo=UTC),
            "nameservers": list(nameservers),
        }
        fields.update(overrides)
        return SnapshotRecord.model_validate(fields)

    return _make
