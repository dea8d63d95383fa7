from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from takoyadon_ledger.core.settings import settings
from takoyadon_ledger.db.session import async_session
from .api.routes import api_router
from .core.logging import RequestContextMiddleware, configure_logging
from .observability.tracing import configure_tracing
from .services.notifications import build_default_backend
from .workers import NotificationOutboxWorker


APP_VERSION = "0.1.0"


def _session_factory():
    return async_session()


@asynccontextmanager
async def lifespan(app: FastAPI):
    outbox_worker = NotificationOutboxWorker(
        session_factory=_session_factory,
        backend=build_default_backend(),
        interval_seconds=settings.notification_outbox_interval_seconds,
        batch_size=settings.notification_outbox_batch_size,
    )
    app.state.notification_outbox_worker = outbox_worker

    outbox_enabled = settings.notification_outbox_worker_enabled
    if outbox_enabled:
        outbox_worker.start()
        logger.info(
            "Notification outbox worker enabled",
            interval_seconds=outbox_worker.interval_seconds,
            batch_size=outbox_worker.batch_size,
        )
    else:
        logger.info(
            "Notification outbox worker disabled",
            reason="notification_outbox_worker_enabled is false",
        )

    try:
        yield
    finally:
        if outbox_enabled and outbox_worker.is_running:
            await outbox_worker.stop()


def create_app() -> FastAPI:
    """Application factory for the Takoyadon points ledger service."""
    configure_logging(
        service_name="takoyadon-ledger",
        environment=settings.environment,
        version=APP_VERSION,
        level=settings.log_level,
        echo_sql=settings.database_echo,
    )

    app = FastAPI(
        title="Takoyadon Points Ledger",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name="takoyadon-ledger",
        service_version=APP_VERSION,
        environment=settings.environment,
    )

    app.add_middleware(RequestContextMiddleware)
    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
