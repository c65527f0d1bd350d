"""
Crypto price lookup.

Queries a CryptoCompare-style `pricemulti` endpoint, which answers
`{"BTC": {"USD": 64000.1}, "ETH": {"USD": 3100.5}}`, and stores one quote per
ticker.
"""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Sequence

import httpx

from scamcache.config import Settings
from scamcache.domain.models import PriceQuote
from scamcache.infrastructure.store import CacheStore
from scamcache.utils.logging import get_logger

log = get_logger(__name__)


async def fetch_prices(
    client: httpx.AsyncClient, url: str, symbols: Sequence[str]
) -> List[PriceQuote]:
    if not symbols:
        return []
    response = await client.get(url, params={"fsyms": ",".join(symbols), "tsyms": "USD"})
    response.raise_for_status()
    payload = response.json()
    now = datetime.now(timezone.utc)
    quotes: List[PriceQuote] = []
    for symbol in symbols:
        usd = (payload.get(symbol) or {}).get("USD") if isinstance(payload, dict) else None
        if usd is None:
            log.warning("No USD price returned", extra={"ticker": symbol})
            continue
        quotes.append(PriceQuote(ticker=symbol, usd=Decimal(str(usd)), updated=now))
    return quotes


async def refresh_prices(
    settings: Settings, store: CacheStore, client: Optional[httpx.AsyncClient] = None
) -> int:
    """Fetch the configured tickers and store them. Returns the number stored."""
    if client is None:
        async with httpx.AsyncClient(timeout=settings.probe_timeout_seconds) as owned:
            quotes = await fetch_prices(owned, settings.price_api_url, settings.symbols)
    else:
        quotes = await fetch_prices(client, settings.price_api_url, settings.symbols)
    await store.upsert_prices(quotes)
    log.info("Prices updated", extra={"tickers": [q.ticker for q in quotes]})
    return len(quotes)


__all__ = ["fetch_prices", "refresh_prices"]
