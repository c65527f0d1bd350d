"""
Integration tests for the PostgreSQL cache store and reconciler.

These tests run against a real PostgreSQL instance and verify that:
1. Snapshots reconcile into the entries and nameservers tables
2. A failing statement rolls the whole snapshot back
3. Reports and prices round-trip through the store

Run with: RUN_INTEGRATION_TESTS=1 pytest tests/integration/
"""

from __future__ import annotations

import os
from datetime import UTC, datetime
from decimal import Decimal

import pytest

from scamcache.domain.models import Entry, PriceQuote, Report, SnapshotRecord
from scamcache.infrastructure.db_factory import open_pool
from scamcache.infrastructure.store import PostgresCacheStore
from scamcache.reconciler import ReconcileError, Reconciler

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(
        os.getenv("RUN_INTEGRATION_TESTS", "0") != "1",
        reason="Integration tests require RUN_INTEGRATION_TESTS=1 and reachable Postgres",
    ),
    pytest.mark.usefixtures("clean_tables"),
]

UPDATED = datetime(2026, 1, 1, tzinfo=UTC)


def _record(entry_id: str, nameservers, **overrides) -> SnapshotRecord:
    fields = {
        "id": entry_id,
        "ip": "203.0.113.7",
        "status": "Active",
        "statusCode": 200,
        "updated": UPDATED,
        "nameservers": list(nameservers),
    }
    fields.update(overrides)
    return SnapshotRecord.model_validate(fields)


async def _store(settings) -> PostgresCacheStore:
    store = PostgresCacheStore(await open_pool(settings))
    await store.init_schema()
    return store


@pytest.mark.asyncio
async def test_snapshot_reconciles_into_tables(test_settings) -> None:
    store = await _store(test_settings)
    try:
        await store.load_entries([Entry(id="e1", name="Fake Wallet", url="http://fake.example")])
        reconciler = Reconciler(store)

        await reconciler.apply([_record("e1", ["ns1.example.net"])])
        await reconciler.apply([_record("e1", ["ns2.example.net", "ns3.example.net"])])

        entry = await store.get_entry("e1")
        assert entry.name == "Fake Wallet"
        assert entry.status == "Active"
        assert entry.status_code == 200
        assert entry.nameservers == ["ns2.example.net", "ns3.example.net"]
        assert [t.entry_id for t in await store.list_targets()] == ["e1"]
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_multi_entry_snapshot_reconciles_every_nameserver_set(test_settings) -> None:
    store = await _store(test_settings)
    try:
        reconciler = Reconciler(store)
        first = {
            f"e{i}": {f"ns{j}.e{i}.example.net" for j in range(4)} for i in range(6)
        }
        await reconciler.apply([_record(entry_id, ns) for entry_id, ns in first.items()])

        second = {
            entry_id: {n for n in ns if not n.startswith("ns0")} | {f"new.{entry_id}.example.net"}
            for entry_id, ns in first.items()
        }
        result = await reconciler.apply([_record(entry_id, ns) for entry_id, ns in second.items()])

        assert result.entries == len(second)
        assert result.nameservers_added == len(second)
        assert result.nameservers_removed == len(second)
        for entry_id, expected in second.items():
            entry = await store.get_entry(entry_id)
            assert set(entry.nameservers) == expected
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_unknown_entry_is_inserted_by_reconcile(test_settings) -> None:
    store = await _store(test_settings)
    try:
        await Reconciler(store).apply([_record("new", ["ns1.example.net"])])

        entry = await store.get_entry("new")
        assert entry is not None
        assert entry.url is None
        assert entry.nameservers == ["ns1.example.net"]
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_failed_statement_rolls_back_snapshot(test_settings) -> None:
    store = await _store(test_settings)
    try:
        reconciler = Reconciler(store)
        await reconciler.apply([_record("e1", ["ns1.example.net"])])

        # Violates the INTEGER column, failing the transaction mid-snapshot.
        bad = _record("e2", ["ns9.example.net"]).model_copy(update={"status_code": 2**40})
        with pytest.raises(ReconcileError):
            await reconciler.apply([_record("e1", ["ns2.example.net"], status="Inactive"), bad])

        entry = await store.get_entry("e1")
        assert entry.status == "Active"
        assert entry.nameservers == ["ns1.example.net"]
        assert await store.get_entry("e2") is None
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_reports_and_prices_round_trip(test_settings) -> None:
    store = await _store(test_settings)
    try:
        report_id = await store.add_report(Report(url="http://new-scam.example", name="New"))
        pending = await store.pending_reports()
        assert [r.id for r in pending] == [report_id]

        await store.mark_reports_submitted([report_id], "https://github.com/o/r/pull/1")
        assert await store.pending_reports() == []

        await store.upsert_prices([PriceQuote(ticker="BTC", usd=Decimal("64000.5"), updated=UPDATED)])
        await store.upsert_prices([PriceQuote(ticker="BTC", usd=Decimal("65000"), updated=UPDATED)])
        prices = await store.list_prices()
        assert [(p.ticker, p.usd) for p in prices] == [("BTC", Decimal("65000"))]
    finally:
        await store.close()
