"""
Sample data file generator for local development.

Writes a deterministic pseudo-random listing data file in the upstream format
(a JSON list of listing objects) so the service can bootstrap without reaching
GitHub, and optionally loads the static fields into Postgres.
"""

from __future__ import annotations

import asyncio
import json
import random
import sys
import time
from pathlib import Path

import typer

from scamcache.config import get_settings
from scamcache.infrastructure.db_factory import open_pool
from scamcache.infrastructure.store import PostgresCacheStore
from scamcache.upstream import parse_entries

app = typer.Typer(help="Generate a sample listing data file and optionally load it into Postgres.")

CATEGORIES = {
    "Phishing": ["MyEtherWallet", "Binance", "MetaMask", "Ledger"],
    "Scamming": ["Trust-Trading", "Doubler", "Fake ICO"],
    "Malware": ["Wallet drainer", "Clipboard hijacker"],
}
TLDS = ["com", "net", "io", "org", "xyz"]


def _generate_listings(count: int, seed: int) -> list[dict]:
    rng = random.Random(seed)
    listings: list[dict] = []
    for i in range(count):
        category = rng.choice(sorted(CATEGORIES))
        subcategory = rng.choice(CATEGORIES[category])
        label = "".join(rng.choice("abcdefghijklmnopqrstuvwxyz") for _ in range(rng.randint(6, 12)))
        host = f"{label}.{rng.choice(TLDS)}"
        if rng.random() < 0.3:
            host = f"www.{host}"
        listings.append(
            {
                "id": str(i + 1),
                "name": host,
                "url": f"http://{host}",
                "category": category,
                "subcategory": subcategory,
                "description": f"Reported {category.lower()} site impersonating {subcategory}.",
            }
        )
    return listings


def _write_listings(path: Path, listings: list[dict]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(listings, indent=2) + "\n", encoding="utf-8")


async def _load_into_db(path: Path) -> int:
    settings = get_settings()
    store = PostgresCacheStore(await open_pool(settings))
    try:
        await store.init_schema()
        return await store.load_entries(parse_entries(path.read_text(encoding="utf-8")))
    finally:
        await store.close()


@app.command()
def main(
    count: int = typer.Option(
        50,
        "--count",
        "-n",
        help="Number of listings to generate.",
    ),
    seed: int = typer.Option(
        42,
        "--seed",
        help="Deterministic RNG seed.",
    ),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Data file path (default: DATA_DIR/DATA_FILE from settings).",
    ),
    no_load: bool = typer.Option(
        False,
        "--no-load",
        help="Only write the data file; skip loading into Postgres.",
    ),
) -> None:
    """
    Generate sample listings and optionally load them into Postgres.
    """
    start = time.perf_counter()
    path = output or get_settings().data_path

    typer.echo(f"Generating {count:,} listings -> {path} (seed={seed})")
    _write_listings(path, _generate_listings(count, seed))

    if no_load:
        typer.echo("Skipping load (no-load flag set).")
        return

    loaded = asyncio.run(_load_into_db(path))
    typer.echo(f"Loaded {loaded:,} entries in {time.perf_counter() - start:.2f}s.")


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
