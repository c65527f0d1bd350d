"""
HTTP front of the cache service.

A read-mostly JSON API over the cache. The lifespan bootstraps the service
(data file, store, scheduler) and starts the background loops once the app is
serving; they are stopped and resources released on shutdown.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from scamcache.bootstrap import ServiceContext, bootstrap
from scamcache.config import Settings, get_settings
from scamcache.domain.models import Entry, PriceQuote, Report
from scamcache.infrastructure.github import GitHubClient
from scamcache.infrastructure.store import CacheStore
from scamcache.utils.logging import get_logger

log = get_logger(__name__)


class ReportRequest(BaseModel):
    url: str = Field(..., min_length=1)
    name: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    description: Optional[str] = None
    reporter: Optional[str] = None


class ReportQueued(BaseModel):
    queued: int


def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[CacheStore] = None,
    github: Optional[GitHubClient] = None,
    start_background: bool = True,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        context = await bootstrap(settings, store=store, github=github)
        app.state.context = context
        if start_background:
            await context.scheduler.start()
        try:
            yield
        finally:
            await context.close()

    app = FastAPI(title="scamcache", version="0.1.0", lifespan=lifespan)

    def _context(request: Request) -> ServiceContext:
        return request.app.state.context

    @app.get("/health")
    async def health() -> Dict[str, str]:
        return {"status": "ok", "service": "scamcache"}

    @app.get("/v1/entries", response_model=List[Entry])
    async def list_entries(request: Request) -> List[Entry]:
        return await _context(request).store.list_entries()

    @app.get("/v1/entries/{entry_id}", response_model=Entry)
    async def get_entry(entry_id: str, request: Request) -> Entry:
        entry = await _context(request).store.get_entry(entry_id)
        if entry is None:
            raise HTTPException(status_code=404, detail="Unknown entry")
        return entry

    @app.get("/v1/prices", response_model=List[PriceQuote])
    async def list_prices(request: Request) -> List[PriceQuote]:
        return await _context(request).store.list_prices()

    @app.post("/v1/report", response_model=ReportQueued)
    async def report(payload: ReportRequest, request: Request) -> ReportQueued:
        report_id = await _context(request).store.add_report(Report(**payload.model_dump()))
        log.info("Report queued", extra={"report_id": report_id, "url": payload.url})
        return ReportQueued(queued=report_id)

    @app.get("/v1/status")
    async def status(request: Request) -> Dict[str, Any]:
        return _context(request).scheduler.status()

    return app


__all__ = ["create_app"]
