"""FastAPI application for the LCL event scraper.

Run with:
    uvicorn lcl_scraper.api.main:app --port 8000
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from lcl_scraper import __version__
from lcl_scraper.api.routes import discovery, runs
from lcl_scraper.config import get_settings
from lcl_scraper.core.job_queue import JobQueue
from lcl_scraper.core.storage import EventStore, create_store
from lcl_scraper.logging import get_logger, setup_logging

logger = get_logger(__name__)


def create_app(store: EventStore | None = None) -> FastAPI:
    """Build the app; without an explicit store, Supabase credentials are required."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings = get_settings()
        setup_logging(settings.log_level, settings.log_format, settings.log_file)
        if app.state.store is None:
            # Missing credentials abort startup here
            app.state.store = create_store(settings)

        interrupted = await JobQueue(app.state.store, settings).mark_interrupted()
        if interrupted:
            logger.info("startup_cleanup", jobs_marked_interrupted=interrupted)
        yield

    app = FastAPI(
        title="LCL Event Scraper API",
        description="Trigger scraper runs and source discovery",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(runs.router, prefix="/runs", tags=["Runs"])
    app.include_router(discovery.router, prefix="/discovery", tags=["Discovery"])

    @app.get("/health", tags=["Health"])
    async def health():
        """Liveness plus a cheap storage probe."""
        try:
            sources = await app.state.store.list_enabled_sources(limit=1)
            storage = "connected"
        except Exception as e:
            storage = f"error: {e}"
            sources = []
        return {
            "status": "ok",
            "version": __version__,
            "environment": get_settings().environment,
            "storage": storage,
            "has_enabled_sources": bool(sources),
        }

    return app


app = create_app()
