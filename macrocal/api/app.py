"""macrocal HTTP application factory.

Run locally with:

    uvicorn macrocal.api.app:create_app --factory --reload
"""

from collections.abc import Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI

import macrocal
from macrocal.api.admin_routes import router as admin_router
from macrocal.api.rate_limit import RateLimiter
from macrocal.api.usage_routes import router as usage_router
from macrocal.ingestion.collectors import COLLECTORS
from macrocal.ingestion.collectors.base_collector import BaseCollector
from macrocal.reconciliation.engine import ReconciliationEngine
from macrocal.shared.config import Config, Settings
from macrocal.shared.db import Base, SessionLocal, SQLAlchemyStore, build_engine
from macrocal.shared.utils import setup_logger

logger = setup_logger(__name__)

CollectorFactory = Callable[[str, Settings], BaseCollector]


def default_collector_factory(source: str, settings: Settings) -> BaseCollector:
    return COLLECTORS[source](settings=settings)


def create_app(
    settings: Settings | None = None,
    store: SQLAlchemyStore | None = None,
    collector_factory: CollectorFactory = default_collector_factory,
    create_tables: bool = False,
) -> FastAPI:
    """Build the app.

    Args:
        settings: Configuration snapshot (default: ``Config.settings()``).
        store: Store shared by the import routes and the rate limiter
            (default: one bound to the configured database).
        collector_factory: ``(source, settings) -> collector``; tests inject
            collectors with mocked HTTP sessions here.
        create_tables: Run ``Base.metadata.create_all`` on startup.
    """
    settings = settings or Config.settings()
    if store is None:
        store = SQLAlchemyStore(SessionLocal)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("macrocal API starting up")
        if create_tables:
            Base.metadata.create_all(build_engine(settings.database_url))
            logger.info("Database tables ensured")
        yield
        logger.info("macrocal API shut down")

    app = FastAPI(
        title="macrocal",
        description="Economic release calendar: agency imports, CSV uploads and rate-limited API access.",
        version=macrocal.__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.store = store
    app.state.rate_limiter = RateLimiter(store)
    app.state.collector_factory = collector_factory
    app.state.reconciler = ReconciliationEngine(
        store,
        lookup_chunk_size=settings.reconcile_chunk_size,
        max_update_workers=settings.reconcile_max_workers,
    )

    app.include_router(admin_router)
    app.include_router(usage_router)

    @app.get("/health", tags=["System"])
    def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": "macrocal", "version": macrocal.__version__}

    return app
