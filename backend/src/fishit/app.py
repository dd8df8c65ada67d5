"""FastAPI application factory."""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Response, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from fishit.api.routes import mints
from fishit.bootstrap import build_services, run_startup_checks
from fishit.core import timezone  # noqa: F401
from fishit.core.config import configure_logging, load_settings
from fishit.core.database import create_tables, get_engine, setup_db_session
from fishit.uow import create_uow_factory
from fishit.workers.periodic import PeriodicTask

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Handles startup and shutdown tasks:
    - Startup: Load settings, configure logging, build services, run startup checks,
      start the event watcher and retry sweep
    - Shutdown: Stop both periodic tasks, dispose the database engine
    """
    settings = load_settings()
    configure_logging(settings)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    engine = get_engine(session_factory)
    if settings.db_auto_create:
        await create_tables(engine)

    uow_factory = create_uow_factory(session_factory)

    app.state.session_factory = session_factory
    app.state.uow_factory = uow_factory

    services = build_services(settings, uow_factory)
    await run_startup_checks(services)

    watcher_task = PeriodicTask(
        "event_watcher",
        services.watcher.poll,
        interval_seconds=settings.event_poll_interval_seconds,
    )
    retry_task = PeriodicTask(
        "retry_sweep",
        services.scheduler.sweep,
        interval_seconds=settings.retry_interval_minutes * 60,
    )
    app.state.watcher_task = watcher_task
    app.state.retry_task = retry_task

    watcher_task.start()
    retry_task.start()

    logger.info(
        "application.startup",
        db_url=settings.database_url.split("@")[-1],
        image_provider=settings.image_provider,
        fishing_game=settings.fishing_game_address,
        fish_nft=settings.fish_nft_address,
    )

    try:
        yield
    finally:
        logger.info("application.shutdown")
        await watcher_task.stop()
        await retry_task.stop()
        await engine.dispose()


def create_app() -> FastAPI:
    """Create and configure FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    settings = load_settings()

    app = FastAPI(
        title="FishIt Mint Pipeline",
        description="Turns FishCaught events into fish NFTs with IPFS metadata",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(mints.router)  # prefix="/api/mints" in definition

    # Health check endpoint with database validation
    @app.get("/health")
    async def health_check(response: Response):
        """Health check endpoint with database connectivity test.

        Returns:
            200: {"status": "healthy"} if database connection succeeds
            503: {"status": "unhealthy", "error": {...}} if database connection fails
        """
        try:
            async with app.state.session_factory() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()

            logger.debug("health_check.success")
            return {"status": "healthy"}

        except Exception as e:
            logger.error(
                "health_check.failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            return {
                "status": "unhealthy",
                "error": {
                    "type": type(e).__name__,
                    "message": str(e),
                },
            }

    return app


# Create app instance for uvicorn
app = create_app()
