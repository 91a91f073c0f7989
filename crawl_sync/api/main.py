"""Main FastAPI application exposing the sync engine to a presentation layer."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from crawl_sync.client import (
    AuthenticationError,
    ConflictError,
    CrawlApiError,
    CrawlServiceClient,
    JobAlreadyRunningError,
    NotFoundError,
    PermissionDeniedError,
    TransportError,
    ValidationError,
)
from crawl_sync.config import Settings
from crawl_sync.models import UrlPreview
from crawl_sync.sync import SyncEngine
from crawl_sync.telemetry import configure_logging, get_logger

from .schemas import (
    CrawlStartResponse,
    ErrorResponse,
    HealthResponse,
    PreviewRequest,
    SiteListResponse,
    SiteRequest,
    SiteResponse,
    StatsResponse,
    TrackerStatus,
)


logger = get_logger(__name__)

# Checked in order: subclasses before their bases
_ERROR_STATUS = [
    (AuthenticationError, 401),
    (PermissionDeniedError, 403),
    (NotFoundError, 404),
    (ConflictError, 409),
    (JobAlreadyRunningError, 409),
    (ValidationError, 422),
    (TransportError, 502),
]


def status_for_error(exc: CrawlApiError) -> int:
    for cls, code in _ERROR_STATUS:
        if isinstance(exc, cls):
            return code
    return 502


async def crawl_error_handler(request: Request, exc: CrawlApiError) -> JSONResponse:
    code = status_for_error(exc)
    logger.info("request_failed", path=request.url.path, status=code, error=type(exc).__name__)
    body = ErrorResponse(error=type(exc).__name__, message=exc.message, detail=exc.detail)
    return JSONResponse(status_code=code, content=body.model_dump(mode="json"))


def get_engine(request: Request) -> SyncEngine:
    """Dependency returning the engine owned by the app lifespan."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Sync engine not initialized")
    return engine


def create_app(
    engine: Optional[SyncEngine] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        engine: Pre-built engine (tests inject one backed by a fake service).
            When omitted, the lifespan builds a client and engine from settings
            and closes the client on shutdown.
        settings: Settings to build from; loaded from the environment if omitted

    Returns:
        Configured FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned_client = None
        active = engine
        if active is None:
            cfg = settings or Settings()
            configure_logging(cfg.log.level, cfg.log.json_logs)
            owned_client = CrawlServiceClient.from_settings(cfg.api)
            active = SyncEngine(owned_client, cfg)

        app.state.engine = active
        await active.start()
        logger.info("app_started", sites=len(active.sites))
        try:
            yield
        finally:
            await active.stop()
            if owned_client is not None:
                await owned_client.aclose()
            app.state.engine = None
            logger.info("app_stopped")

    app = FastAPI(
        title="Crawl Sync API",
        description="Client-side view of website crawl jobs kept in sync with the crawl service",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_exception_handler(CrawlApiError, crawl_error_handler)

    @app.get("/health", response_model=HealthResponse)
    async def health(engine: SyncEngine = Depends(get_engine)):
        """Health check endpoint."""
        tracker = engine.tracker
        return HealthResponse(
            status="ok",
            sites=len(engine.sites),
            tracker=TrackerStatus(
                running=tracker.running,
                tracked_jobs=[track.to_dict() for track in tracker.tracks.values()],
                in_flight=len(tracker.in_flight),
            ),
        )

    @app.get("/sites", response_model=SiteListResponse)
    async def list_sites(
        query: str = Query(default="", description="Search name, url and description"),
        status: str = Query(default="all", description="Status filter"),
        cadence: str = Query(default="all", description="Cadence filter"),
        engine: SyncEngine = Depends(get_engine),
    ):
        """List sites from the in-memory view, optionally filtered."""
        sites = engine.filter(query=query, status=status, cadence=cadence)
        return SiteListResponse(sites=sites, total=len(sites))

    @app.post("/sites", response_model=SiteResponse, status_code=201)
    async def add_site(request: SiteRequest, engine: SyncEngine = Depends(get_engine)):
        """Create a site; it appears in /sites before the service answers."""
        site = await engine.add(request)
        return SiteResponse(site=site)

    @app.post("/sites/refresh", response_model=SiteListResponse)
    async def refresh_sites(engine: SyncEngine = Depends(get_engine)):
        """Force an authoritative refresh from the crawl service."""
        sites = await engine.invalidate()
        return SiteListResponse(sites=sites, total=len(sites))

    @app.put("/sites/{site_id}", response_model=SiteResponse)
    async def update_site(
        site_id: str,
        request: SiteRequest,
        engine: SyncEngine = Depends(get_engine),
    ):
        """Update a site's configuration."""
        site = await engine.update(site_id, request)
        return SiteResponse(site=site or engine.store.get(site_id))

    @app.delete("/sites/{site_id}", status_code=204)
    async def delete_site(site_id: str, engine: SyncEngine = Depends(get_engine)):
        """Delete a site."""
        await engine.remove(site_id)

    @app.post("/sites/{site_id}/crawl", response_model=CrawlStartResponse, status_code=202)
    async def start_crawl(site_id: str, engine: SyncEngine = Depends(get_engine)):
        """Start a crawl job; progress shows up on /sites as the tracker polls."""
        job_id = await engine.start_crawl(site_id)
        return CrawlStartResponse(site_id=site_id, job_id=job_id)

    @app.post("/preview", response_model=UrlPreview)
    async def preview(request: PreviewRequest, engine: SyncEngine = Depends(get_engine)):
        """Fetch title and metadata for a URL before adding it."""
        return await engine.client.preview_url(request.url)

    @app.get("/stats", response_model=StatsResponse)
    async def stats(engine: SyncEngine = Depends(get_engine)):
        """Aggregate numbers over the current site list."""
        return StatsResponse(**engine.stats().to_dict())

    return app


app = create_app()
