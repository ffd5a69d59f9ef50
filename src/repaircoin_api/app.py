from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from loguru import logger

from repaircoin_api.core.settings import settings
from repaircoin_api.db.session import async_session
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .scheduling import JobScheduler
from .services.cleanup import get_cleanup_service


APP_VERSION = "0.1.0"


def _session_factory():
    return async_session()


def _schedule_path() -> Path:
    schedule_path = Path(settings.job_schedule_path)
    if not schedule_path.is_absolute():
        schedule_path = Path(__file__).resolve().parent.parent.parent / schedule_path
    return schedule_path


@asynccontextmanager
async def lifespan(app: FastAPI):
    cleanup_service = app.state.cleanup_service
    schedule_path = _schedule_path()
    job_scheduler = JobScheduler(
        session_factory=_session_factory,
        config_path=schedule_path,
        dependencies={"cleanup_service": cleanup_service},
    )
    app.state.job_scheduler = job_scheduler

    cleanup_enabled = settings.cleanup_schedule_enabled
    if cleanup_enabled:
        config = await cleanup_service.get_cleanup_config_from_settings()
        cleanup_service.schedule_cleanup(settings.cleanup_interval_hours, config)
        logger.info(
            "Scheduled cleanup enabled",
            interval_hours=settings.cleanup_interval_hours,
            webhook_retention_days=config.webhook_retention_days,
            transaction_archive_days=config.transaction_archive_days,
        )
    else:
        logger.info(
            "Scheduled cleanup disabled",
            reason="cleanup_schedule_enabled is false",
        )

    scheduler_enabled = settings.job_scheduler_enabled
    if scheduler_enabled:
        try:
            job_scheduler.start()
        except FileNotFoundError as exc:
            logger.exception("Job scheduler failed to start", error=str(exc))
        else:
            logger.info("Job scheduler enabled", schedule_path=str(schedule_path))
    else:
        logger.info(
            "Job scheduler disabled",
            reason="job_scheduler_enabled is false",
        )

    try:
        yield
    finally:
        if cleanup_enabled:
            await cleanup_service.stop_scheduled_cleanup()
        if scheduler_enabled and job_scheduler.is_running:
            await job_scheduler.stop()


def create_app() -> FastAPI:
    """Application factory for the RepairCoin API service."""
    configure_logging(
        service_name="repaircoin-api",
        environment=settings.environment,
        version=APP_VERSION,
        level=settings.log_level,
    )

    app = FastAPI(
        title="RepairCoin API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.cleanup_service = get_cleanup_service(_session_factory)

    configure_tracing(
        app,
        service_name="repaircoin-api",
        service_version=APP_VERSION,
        environment=settings.environment,
    )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
