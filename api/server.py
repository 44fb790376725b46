"""
Content Data Access: API Server
===============================

Read-mostly HTTP surface over the Cached Fetch Service and the
Link Health Cache.

Endpoints:
- GET    /api/v1/collections/{source}          -> settled FetchState
- GET    /api/v1/collections/{source}/stream   -> FetchState updates (SSE)
- DELETE /api/v1/cache/{cache_key}             -> drop a persisted snapshot
- GET    /api/v1/links/validate?url=           -> LinkVerdict
- POST   /api/v1/links/validate-batch          -> {url: LinkVerdict}
- GET    /api/v1/links/feed-health?url=        -> FeedHealth
- GET    /api/v1/links/stats                   -> cache statistics
- GET    /api/v1/sources?category=             -> trusted sources
- GET    /api/v1/fallback/{category}           -> editorial fallback articles

Usage:
    uvicorn api.server:app --reload
"""
import asyncio
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from datalayer.contracts import FetchPhase, Filter, Ordering, QueryDescriptor
from datalayer.remote import PostgrestStore, RemoteStore, UnavailableStore
from datalayer.service import CachedFetchService
from datalayer.storage import InMemoryResponseCache, PersistentCache, SQLiteResponseCache
from linkhealth.cache import LinkHealthCache
from linkhealth.prober import HttpProber, LinkProber
from linkhealth.registry import TrustedSourceRegistry, parse_category

from .mapper import (
    map_article, map_feed_health, map_fetch_state, map_source, map_verdict
)
from .settings import ServiceSettings


logger = logging.getLogger(__name__)


# =============================================================================
# INFRASTRUCTURE SETUP
# =============================================================================

@dataclass
class Services:
    """Explicitly constructed service instances shared by all requests."""
    settings: ServiceSettings
    fetch: CachedFetchService
    links: LinkHealthCache


class BatchValidateRequest(BaseModel):
    urls: List[str]


def build_services(
    settings: ServiceSettings,
    store: Optional[RemoteStore] = None,
    cache: Optional[PersistentCache] = None,
    prober: Optional[LinkProber] = None,
    registry: Optional[TrustedSourceRegistry] = None
) -> Services:
    if store is None:
        if settings.store_url:
            store = PostgrestStore(
                settings.store_url,
                api_key=settings.store_api_key,
                timeout=settings.store_timeout_seconds
            )
        else:
            logger.warning("STORE_URL not set; collection reads will use cache or fallback only")
            store = UnavailableStore()

    if cache is None:
        if settings.cache_db_path:
            cache = SQLiteResponseCache(Path(settings.cache_db_path))
        else:
            cache = InMemoryResponseCache()

    if prober is None:
        prober = HttpProber(
            timeout=settings.links.probe_timeout_seconds,
            user_agent=settings.links.user_agent
        )

    if registry is None:
        if settings.trusted_sources_path:
            registry = TrustedSourceRegistry.load(Path(settings.trusted_sources_path))
        else:
            registry = TrustedSourceRegistry.default()

    return Services(
        settings=settings,
        fetch=CachedFetchService(store, cache, config=settings.fetch),
        links=LinkHealthCache(prober, registry=registry, config=settings.links),
    )


def create_app(
    settings: Optional[ServiceSettings] = None,
    store: Optional[RemoteStore] = None,
    cache: Optional[PersistentCache] = None,
    prober: Optional[LinkProber] = None,
    registry: Optional[TrustedSourceRegistry] = None
) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Build services on startup."""
        resolved = settings or ServiceSettings.from_env()
        logger.info("Initializing data access services")
        app.state.services = build_services(resolved, store, cache, prober, registry)
        yield
        logger.info("Shutting down data access services")
        app.state.services = None

    app = FastAPI(
        title="Content Data Access API",
        version="0.1.0",
        description="Cached record reads and link health for the content site",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    _register_routes(app)
    return app


def _services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Services not initialized")
    return services


def _descriptor(
    source: str,
    select: str,
    order: Optional[str],
    ascending: bool,
    filter_field: Optional[str],
    filter_op: str,
    filter_value: Optional[str],
    cache_key: Optional[str]
) -> QueryDescriptor:
    try:
        return QueryDescriptor(
            source=source,
            cache_key=cache_key or source,
            projection=select,
            ordering=Ordering(field=order, ascending=ascending) if order else None,
            filter=Filter(field=filter_field, value=filter_value, operator=filter_op)
            if filter_field else None
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# =============================================================================
# ENDPOINTS
# =============================================================================

def _register_routes(app: FastAPI):

    @app.get("/health")
    async def health_check(request: Request):
        """System status."""
        services = _services(request)
        return {
            "status": "online",
            "store_configured": services.settings.store_url is not None,
        }

    @app.get("/api/v1/collections/{source}")
    async def read_collection(
        request: Request,
        source: str,
        select: str = "*",
        order: Optional[str] = None,
        ascending: bool = False,
        filter_field: Optional[str] = None,
        filter_op: str = "eq",
        filter_value: Optional[str] = None,
        cache_key: Optional[str] = None
    ):
        """
        Read a collection through the cache.

        Always answers 200 with the best available records; degraded
        results carry an error next to cached or empty data.
        """
        services = _services(request)
        descriptor = _descriptor(
            source, select, order, ascending, filter_field, filter_op, filter_value, cache_key
        )

        handle = services.fetch.query(descriptor)
        try:
            state = await handle.wait_settled()
        finally:
            handle.close()
        return map_fetch_state(state)

    @app.get("/api/v1/collections/{source}/stream")
    async def stream_collection(
        request: Request,
        source: str,
        select: str = "*",
        order: Optional[str] = None,
        ascending: bool = False,
        filter_field: Optional[str] = None,
        filter_op: str = "eq",
        filter_value: Optional[str] = None,
        cache_key: Optional[str] = None
    ):
        """
        Server-Sent Events stream of FetchState snapshots.

        Emits the initial state, every transition, and closes once the
        query settles or degrades.
        """
        services = _services(request)
        descriptor = _descriptor(
            source, select, order, ascending, filter_field, filter_op, filter_value, cache_key
        )

        async def event_generator():
            queue: asyncio.Queue = asyncio.Queue()
            handle = services.fetch.query(descriptor)
            handle.subscribe(queue.put_nowait)
            try:
                state = handle.state
                yield f"data: {json.dumps(map_fetch_state(state))}\n\n"
                while state.phase not in (FetchPhase.SETTLED, FetchPhase.DEGRADED):
                    state = await queue.get()
                    yield f"data: {json.dumps(map_fetch_state(state))}\n\n"
            finally:
                handle.close()

        return StreamingResponse(
            event_generator(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
            }
        )

    @app.delete("/api/v1/cache/{cache_key}")
    async def clear_cache(request: Request, cache_key: str):
        _services(request).fetch.clear_cache(cache_key)
        return {"cleared": cache_key}

    @app.get("/api/v1/links/validate")
    async def validate_link(request: Request, url: str, refresh: bool = False):
        if not url.strip():
            raise HTTPException(status_code=400, detail="url must not be empty")
        verdict = await _services(request).links.validate(url, use_cache=not refresh)
        return map_verdict(verdict)

    @app.post("/api/v1/links/validate-batch")
    async def validate_batch(request: Request, body: BatchValidateRequest):
        results = await _services(request).links.validate_batch(body.urls)
        return {url: map_verdict(verdict) for url, verdict in results.items()}

    @app.get("/api/v1/links/feed-health")
    async def feed_health(request: Request, url: str):
        health = await _services(request).links.validate_feed(url)
        return map_feed_health(health)

    @app.get("/api/v1/links/stats")
    async def link_stats(request: Request):
        services = _services(request)
        return {
            "cache": services.links.stats(),
            "registry": services.links.registry.stats(),
        }

    @app.get("/api/v1/sources")
    async def trusted_sources(request: Request, category: Optional[str] = None):
        try:
            parse_category(category)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        sources = _services(request).links.get_trusted_sources(category)
        return {"sources": [map_source(s) for s in sources]}

    @app.get("/api/v1/fallback/{category}")
    async def fallback_content(request: Request, category: str):
        articles = _services(request).links.generate_fallback_content(category)
        return {"articles": [map_article(a) for a in articles]}


app = create_app()
