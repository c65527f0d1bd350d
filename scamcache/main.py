from __future__ import annotations

import asyncio
import json
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import typer
import uvicorn

from scamcache.api import create_app
from scamcache.bootstrap import bootstrap
from scamcache.config import Settings, get_settings
from scamcache.infrastructure.db_factory import open_pool
from scamcache.infrastructure.github import GitHubClient
from scamcache.infrastructure.store import PostgresCacheStore
from scamcache.reporter import print_cycle_report, print_entries
from scamcache.upstream import create_pull_request, pull_data
from scamcache.utils.logging import configure_logging

app = typer.Typer(help="Scam listing cache service CLI.")


def _settings() -> Settings:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    return settings


@asynccontextmanager
async def _open_store(settings: Settings) -> AsyncIterator[PostgresCacheStore]:
    store = PostgresCacheStore(await open_pool(settings))
    try:
        await store.init_schema()
        yield store
    finally:
        await store.close()


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"http={settings.host}:{settings.port} | data={settings.data_path} | "
        f"upstream={settings.github_owner}/{settings.github_repo}@{settings.github_branch}"
    )
    pull = f"{settings.auto_pull_interval_seconds:g}s" if settings.auto_pull_enabled else "off"
    prices = (
        f"{settings.price_lookup_interval_seconds:g}s"
        if settings.price_lookup_interval_ms > 0
        else "off"
    )
    typer.echo(
        f"refresh={settings.cache_renew_check_seconds:g}s "
        f"pr={settings.auto_pr_interval_seconds:g}s pull={pull} prices={prices}"
    )


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default from settings)."),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port (default from settings)."),
) -> None:
    """
    Run the HTTP front together with the background loops.
    """
    settings = _settings()
    config = uvicorn.Config(
        create_app(settings),
        host=host or settings.host,
        port=port or settings.port,
        log_config=None,
        log_level=settings.log_level.lower(),
    )
    asyncio.run(uvicorn.Server(config).serve())


@app.command()
def refresh() -> None:
    """
    Run exactly one refresh cycle (producer + reconcile) and print its report.
    """
    settings = _settings()

    async def _run():
        context = await bootstrap(settings)
        try:
            return await context.scheduler.refresh.run_cycle()
        finally:
            await context.close()

    report = asyncio.run(_run())
    print_cycle_report(report)
    if report.error:
        raise typer.Exit(code=1)


@app.command()
def entries(
    as_json: bool = typer.Option(False, "--json", help="Print entries as JSON instead of a table."),
) -> None:
    """
    Show the cached listings.
    """
    settings = _settings()

    async def _run():
        async with _open_store(settings) as store:
            return await store.list_entries()

    rows = asyncio.run(_run())
    if as_json:
        typer.echo(json.dumps([row.model_dump(mode="json") for row in rows], indent=2))
    else:
        print_entries(rows)


@app.command()
def pull() -> None:
    """
    Download the upstream data file and reload entries.
    """
    settings = _settings()

    async def _run() -> int:
        github = GitHubClient.from_settings(settings)
        try:
            async with _open_store(settings) as store:
                return await pull_data(settings, github, store)
        finally:
            await github.aclose()

    typer.echo(f"Loaded {asyncio.run(_run())} entries from upstream.")


@app.command("create-pr")
def create_pr() -> None:
    """
    Propose pending reports upstream as a pull request.
    """
    settings = _settings()

    async def _run():
        github = GitHubClient.from_settings(settings)
        try:
            async with _open_store(settings) as store:
                return await create_pull_request(settings, github, store)
        finally:
            await github.aclose()

    url = asyncio.run(_run())
    typer.echo(f"Opened {url}" if url else "No pull request opened.")


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
