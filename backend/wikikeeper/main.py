"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from wikikeeper.api.routes import admin, wikis
from wikikeeper.config import Settings, get_settings
from wikikeeper.database import async_session, engine
from wikikeeper.logging_config import configure_logging
from wikikeeper.repositories import build_postgres_repository
from wikikeeper.services import (
    ArchiveScheduler,
    ArchiveService,
    CollectionScheduler,
    CollectorService,
    MediaWikiService,
    Reconciler,
)

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application.

    A repository already placed on app.state before startup is used
    instead of PostgreSQL.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        # Startup
        configure_logging(settings.log_level, settings.log_format)

        http_client = httpx.AsyncClient(
            timeout=settings.http_timeout,
            headers={"User-Agent": settings.http_user_agent},
        )
        repository = getattr(app.state, "repository", None)
        if repository is None:
            repository = build_postgres_repository(async_session)

        mediawiki = MediaWikiService(http_client, settings.http_timeout, settings.http_user_agent)
        collector = CollectorService(repository, mediawiki, Reconciler(repository.wikis))
        archive = ArchiveService(
            http_client,
            repository,
            timeout=settings.http_timeout,
            user_agent=settings.http_user_agent,
            base_url=settings.archive_base_url,
        )

        app.state.repository = repository
        app.state.collector = collector
        app.state.archive = archive
        app.state.collection_scheduler = CollectionScheduler(
            repository,
            collector,
            interval_minutes=settings.collect_interval,
            batch_size=settings.collect_batch_size,
            delay=settings.collect_delay,
        )
        app.state.archive_scheduler = ArchiveScheduler(
            repository,
            archive,
            interval_minutes=settings.archive_check_interval,
            batch_size=settings.archive_check_batch_size,
            delay=settings.archive_check_delay,
        )

        if settings.scheduler_enabled:
            app.state.collection_scheduler.start()
            app.state.archive_scheduler.start()
        else:
            logger.info("Schedulers disabled")

        logger.info(f"{settings.app_name} {settings.app_version} started ({settings.environment})")
        yield

        # Shutdown
        await app.state.collection_scheduler.stop()
        await app.state.archive_scheduler.stop()
        await http_client.aclose()
        await engine.dispose()

    app = FastAPI(
        title=settings.app_name,
        description="Track MediaWiki sites and their archive.org dumps",
        version=settings.app_version,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(wikis.router, prefix="/api/wikis", tags=["wikis"])
    app.include_router(admin.router, prefix="/api", tags=["admin"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "docs": "/docs",
        }

    return app


app = create_app()
