"""Main FastAPI application hosting the monitoring scheduler."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from .config import settings
from .routers import alerts_router, cycles_router, targets_router
from .services.lifecycle import LifecycleService
from .services.scheduler import SchedulerService, build_scheduler_service
from .services.store import MonitoringStore

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(
    store: Optional[MonitoringStore] = None,
    scheduler: Optional[SchedulerService] = None,
    start_scheduler: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application.

    ``store`` and ``scheduler`` default to the database-backed instances
    built from settings.
    """
    use_default_db = store is None
    store = store or MonitoringStore()
    scheduler = scheduler or build_scheduler_service(store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting Uptimer")
        if use_default_db:
            from .database import init_db
            await init_db()
            logger.info("Database initialized")

        if start_scheduler:
            scheduler.start()

        yield

        scheduler.stop()
        if use_default_db:
            from .database import close_db
            await close_db()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="Uptimer",
        description="Endpoint monitoring with alert rules and notifications",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.scheduler = scheduler
    app.state.lifecycle = LifecycleService(store)
    app.state.checker = scheduler.checker

    app.include_router(alerts_router)
    app.include_router(cycles_router)
    app.include_router(targets_router)

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "scheduler_running": scheduler.running,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.web_port)
