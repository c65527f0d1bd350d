"""
Service bootstrap.

Brings the cache into a runnable state and wires the background work:

1. ensure the local data file exists (pull it from upstream if absent);
2. open the connection pool (with retry) and create the schema if missing;
3. load the static entry fields from the data file into the store;
4. build the GitHub client, producer, reconciler and scheduler.

The scheduler is returned stopped; the HTTP front starts it once it is serving.
"""
from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from typing import List, Optional

from scamcache.config import Settings, get_settings
from scamcache.infrastructure.db_factory import open_pool
from scamcache.infrastructure.github import GitHubClient
from scamcache.infrastructure.store import CacheStore, PostgresCacheStore
from scamcache.prices import refresh_prices
from scamcache.producer.channel import SnapshotProducer
from scamcache.reconciler import Reconciler
from scamcache.scheduler import Clock, PeriodicTask, RefreshLoop, ServiceScheduler
from scamcache.upstream import create_pull_request, ensure_data_files, pull_data, read_local_entries
from scamcache.utils.logging import get_logger

log = get_logger(__name__)


@dataclass
class ServiceContext:
    settings: Settings
    store: CacheStore
    github: GitHubClient
    producer: SnapshotProducer
    reconciler: Reconciler
    scheduler: ServiceScheduler

    async def close(self) -> None:
        await self.scheduler.stop()
        await self.github.aclose()
        await self.store.close()


def build_scheduler(
    settings: Settings,
    store: CacheStore,
    github: GitHubClient,
    producer: SnapshotProducer,
    reconciler: Reconciler,
    clock: Optional[Clock] = None,
) -> ServiceScheduler:
    refresh = RefreshLoop(producer, reconciler, settings.cache_renew_check_seconds, clock=clock)
    periodic: List[PeriodicTask] = [
        PeriodicTask(
            "pull-request",
            partial(create_pull_request, settings, github, store),
            settings.auto_pr_interval_seconds,
            clock=clock,
            run_immediately=True,
        )
    ]
    if settings.auto_pull_enabled:
        periodic.append(
            PeriodicTask(
                "auto-pull",
                partial(pull_data, settings, github, store),
                settings.auto_pull_interval_seconds,
                clock=clock,
            )
        )
    if settings.price_lookup_interval_ms > 0:
        periodic.append(
            PeriodicTask(
                "price-lookup",
                partial(refresh_prices, settings, store),
                settings.price_lookup_interval_seconds,
                clock=clock,
                run_immediately=True,
            )
        )
    return ServiceScheduler(
        refresh, periodic, startup_delay_seconds=settings.startup_delay_seconds, clock=clock
    )


async def bootstrap(
    settings: Optional[Settings] = None,
    store: Optional[CacheStore] = None,
    github: Optional[GitHubClient] = None,
    clock: Optional[Clock] = None,
) -> ServiceContext:
    """
    Prepare data, store and background work for a service instance.

    `store` and `github` may be injected; otherwise a PostgreSQL store and a
    GitHub client are built from `settings`.
    """
    settings = settings or get_settings()
    github = github or GitHubClient.from_settings(settings)
    try:
        await ensure_data_files(settings, github)
        if store is None:
            pg_store = PostgresCacheStore(await open_pool(settings))
            await pg_store.init_schema()
            store = pg_store
        try:
            entries = read_local_entries(settings.data_path)
            await store.load_entries(entries)
        except Exception:
            await store.close()
            raise
    except Exception:
        await github.aclose()
        raise

    producer = SnapshotProducer.from_settings(store, settings)
    reconciler = Reconciler(store)
    scheduler = build_scheduler(settings, store, github, producer, reconciler, clock=clock)
    log.info(
        "Service bootstrapped",
        extra={"entries": len(entries), "tasks": [t.name for t in scheduler.periodic]},
    )
    return ServiceContext(
        settings=settings,
        store=store,
        github=github,
        producer=producer,
        reconciler=reconciler,
        scheduler=scheduler,
    )


__all__ = ["ServiceContext", "bootstrap", "build_scheduler"]
