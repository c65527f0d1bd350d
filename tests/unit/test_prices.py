from __future__ import annotations

from decimal import Decimal

import httpx
import pytest

from scamcache.config import Settings
from scamcache.prices import fetch_prices, refresh_prices

PRICE_URL = "https://prices.example/data/pricemulti"


def _handler(request: httpx.Request) -> httpx.Response:
    assert request.url.params["tsyms"] == "USD"
    assert request.url.params["fsyms"] == "BTC,ETH,XMR"
    return httpx.Response(200, json={"BTC": {"USD": 64000.5}, "ETH": {"USD": 3100}})


@pytest.mark.asyncio
async def test_fetch_prices_skips_missing_tickers() -> None:
    async with httpx.AsyncClient(transport=httpx.MockTransport(_handler)) as client:
        quotes = await fetch_prices(client, PRICE_URL, ["BTC", "ETH", "XMR"])

    assert [(q.ticker, q.usd) for q in quotes] == [("BTC", Decimal("64000.5")), ("ETH", Decimal("3100"))]


@pytest.mark.asyncio
async def test_fetch_prices_raises_on_http_error() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(500))
    async with httpx.AsyncClient(transport=transport) as client:
        with pytest.raises(httpx.HTTPStatusError):
            await fetch_prices(client, PRICE_URL, ["BTC"])


@pytest.mark.asyncio
async def test_refresh_prices_stores_quotes(store) -> None:
    settings = Settings(price_api_url=PRICE_URL, price_symbols="btc, eth ,XMR")

    async with httpx.AsyncClient(transport=httpx.MockTransport(_handler)) as client:
        stored = await refresh_prices(settings, store, client)

    assert stored == 2
    assert [q.ticker for q in await store.list_prices()] == ["BTC", "ETH"]
