import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes import admin, escalation, health
from app.core.config import get_settings
from app.core.logging import configure_logging
from app.core.middleware import RequestContextMiddleware
from app.db.init_db import init_db
from app.db.session import get_session_factory
from app.jobs.escalation_worker import EscalationWorker, log_runtime_overrides, resolve_worker_interval
from app.services.condition_evaluator import build_threshold_resolver
from app.services.notification_service import EscalationNotifier

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    session = get_session_factory()()
    try:
        init_db(session)
    finally:
        session.close()

    interval_seconds, interval_reason = resolve_worker_interval(settings)
    log_runtime_overrides(settings, interval_seconds, interval_reason)
    app.state.threshold_resolver = build_threshold_resolver(settings)
    app.state.notifier = EscalationNotifier()
    app.state.escalation_worker = None
    if settings.escalation_worker_enabled:
        worker = EscalationWorker(
            interval_seconds,
            threshold_resolver=app.state.threshold_resolver,
            notifier=app.state.notifier,
        )
        worker.start()
        app.state.escalation_worker = worker
    else:
        logger.info("Escalation worker disabled; use POST /v1/escalations/process to run cycles")

    try:
        yield
    finally:
        if app.state.escalation_worker is not None:
            app.state.escalation_worker.stop()
        app.state.notifier.shutdown(wait=True)


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)
    settings.validate_production_safety()

    app = FastAPI(title="Grievance Escalation API", version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestContextMiddleware)

    app.include_router(health.router)
    app.include_router(escalation.router)
    app.include_router(admin.router)

    @app.get("/", tags=["root"])
    def root() -> dict:
        return {
            "name": "Grievance Escalation API",
            "status": "ok",
            "health": "/v1/health",
            "docs": "/docs",
        }

    return app


app = create_app()
