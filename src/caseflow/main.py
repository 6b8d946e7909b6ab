"""
Caseflow - Main Application
===========================

Grafana alert-to-case correlation service.

Modules:
- Alerts: Webhook ingestion, fingerprinting, alert history
- Cases: Correlation, assignment, lifecycle state machine
- SLA: Deadlines, breach sweep and listing

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities and value objects
- Infrastructure: Database, Slack, Grafana, scheduler
"""

from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from caseflow.alerts.interfaces import history_router, webhook_router
from caseflow.cases.infrastructure import CaseEventPublisher, SlackCaseNotifier
from caseflow.cases.ingestion import AlertIngestionService
from caseflow.cases.interfaces import cases_router
from caseflow.config import ResolvePolicy, Settings, get_settings
from caseflow.config.policy import PolicyConfigManager
from caseflow.infrastructure.database import (
    close_database,
    create_tables,
    get_engine,
    get_session_maker,
    init_database,
)
from caseflow.shared.api import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    register_exception_handlers,
)
from caseflow.shared.infrastructure.grafana import GrafanaOTLPExporter
from caseflow.shared.infrastructure.logging import get_logger, setup_logging
from caseflow.shared.infrastructure.slack import SlackClient
from caseflow.sla.infrastructure import SLAScheduler, build_sweep_job
from caseflow.sla.interfaces import sla_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Load policy configuration and watch it
    4. Wire event publisher (Slack subscriber)
    5. Build the ingestion pipeline
    6. Start SLA breach sweep
    7. Initialize Grafana exporter

    SHUTDOWN:
    1. Stop SLA scheduler
    2. Stop policy watcher
    3. Close Slack client
    4. Close database connections
    """
    settings: Settings = app.state.settings

    # === STARTUP ===
    setup_logging(level=settings.log_level, environment=settings.environment)
    logger.info("Starting Caseflow", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    init_database(settings.database_url)
    # Production should use migrations
    await create_tables()

    policy_manager = PolicyConfigManager()
    policy_manager.load(settings.policy_config_path)
    if settings.environment != "test":
        policy_manager.start_watching()

    slack_client = SlackClient(
        webhook_url=settings.slack_webhook_url,
        channel=settings.slack_channel,
        timeout=settings.slack_timeout_seconds,
    )
    publisher = CaseEventPublisher()
    if slack_client.enabled:
        publisher.subscribe(SlackCaseNotifier(slack_client))

    app.state.policy_manager = policy_manager
    app.state.case_event_publisher = publisher
    app.state.ingestion_service = AlertIngestionService(
        session_factory=get_session_maker(),
        policy_provider=lambda: policy_manager.config,
        publisher=publisher,
        duplicate_window=timedelta(minutes=settings.duplicate_window_minutes),
        resolve_policy=ResolvePolicy(settings.resolve_policy),
        timeout_seconds=settings.ingest_timeout_seconds,
    )

    sla_scheduler: Optional[SLAScheduler] = None
    if settings.sla_sweep_interval > 0:
        sla_scheduler = SLAScheduler(interval_seconds=settings.sla_sweep_interval)
        await sla_scheduler.start(build_sweep_job(get_session_maker(), publisher))
    app.state.sla_scheduler = sla_scheduler

    app.state.grafana_exporter = GrafanaOTLPExporter(
        host=settings.grafana_host,
        api_key=settings.grafana_api_key,
        instance_id=settings.grafana_instance_id,
    )

    logger.info("Caseflow started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Caseflow")

    if sla_scheduler:
        await sla_scheduler.stop()
    policy_manager.stop_watching()
    await slack_client.close()
    await close_database()

    logger.info("Caseflow shutdown complete")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title="Caseflow API",
        description="""
    ## Grafana Alert-to-Case Correlation

    Receives Grafana alert webhooks, deduplicates and correlates them into
    cases, computes SLA deadlines, auto-assigns and drives the case
    lifecycle.

    ---

    ### Webhooks
    - `POST /webhooks/grafana/alert` - Batched or legacy Grafana payload
    - `POST /webhooks/grafana/resolved` - Alias
    - `GET /webhooks/health`

    ### Cases
    - `GET /cases`, `GET /cases/{id}`, `GET /cases/{id}/activities`
    - `POST /cases/{id}/transitions`, `POST /cases/{id}/assign`, `POST /cases/{id}/merge`

    ### Alerts & SLA
    - `GET /alerts/history/{fingerprint}`
    - `GET /sla/breaches`

    ---

    ### SLA Minutes (defaults)

    | Severity | Minutes |
    |----------|---------|
    | CRITICAL | 15 |
    | HIGH | 60 |
    | MEDIUM | 240 |
    | LOW | 480 |
    """,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.settings = settings

    # === Middleware (last added runs first) ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(CorrelationIDMiddleware)
    register_exception_handlers(app)

    # === Include Module Routers ===
    app.include_router(webhook_router)
    app.include_router(history_router)
    app.include_router(cases_router)
    app.include_router(sla_router)

    app.add_api_route("/health", health_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/", root, methods=["GET"], tags=["Root"])
    return app


async def health_check(request: Request):
    """
    Health check endpoint for load balancers and orchestrators.

    Reports database connectivity, policy and scheduler state.
    """
    settings: Settings = request.app.state.settings
    checks = {}

    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "connected"
    except Exception as e:
        logger.warning("Health check database probe failed", extra={"error": str(e)})
        checks["database"] = "unavailable"

    policy_manager = getattr(request.app.state, "policy_manager", None)
    if policy_manager is not None:
        policy = policy_manager.config
        checks["policy"] = f"loaded ({len(policy.assignment_rules)} rules, {len(policy.assignee_pool)} assignees)"
    else:
        checks["policy"] = "not_loaded"

    scheduler = getattr(request.app.state, "sla_scheduler", None)
    checks["sla_scheduler"] = "running" if scheduler and scheduler.is_running else "stopped"

    return {
        "status": "healthy" if checks["database"] == "connected" else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks
    }


async def root(request: Request):
    """Root endpoint with API information."""
    return {
        "service": "Caseflow",
        "version": request.app.state.settings.app_version,
        "architecture": "Clean Architecture / Modular Monolith",
        "docs": "/docs",
        "health": "/health",
    }


app = create_app()


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(
        "caseflow.main:app",
        host=_settings.host,
        port=_settings.port,
        reload=_settings.environment == "development",
        log_level="info"
    )
