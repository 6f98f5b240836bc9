# lcs/transport/http_app.py
"""
HTTP surface of the dispatch service.

Routes:
1. Public: /health, /ready
2. Metrics token: /metrics, /health/detailed
3. Admin token: POST /signals
4. Signature-verified: POST /webhooks/mailgun

Run with ``python -m lcs.transport.http_app``.  RUN_MODE=worker starts the
signal worker without taking signal traffic; RUN_MODE=web never starts it.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from lcs.config import Settings, settings
from lcs.core.engine.domain import Channel
from lcs.core.engine.errors import LcsError
from lcs.core.engine.orbt import OrbtHandler
from lcs.core.engine.ports import (
    AsyncContextStore,
    AsyncErrorLog,
    AsyncEventLog,
    AsyncFrameRepository,
    AsyncIntelligenceRepository,
    AsyncSignalQueue,
)
from lcs.core.engine.use_cases import DispatchService
from lcs.core.pipeline.orchestrator import PipelineOrchestrator
from lcs.infra.context_assembler import ContextAssembler
from lcs.infra.db_async import close_pool, init_pool
from lcs.infra.health_checks_async import get_async_health_checker
from lcs.infra.http_client import close_all_sessions
from lcs.infra.logging_config import get_logger, setup_logging
from lcs.infra.metrics import AppMetrics, get_metrics_collector
from lcs.infra.schema_validator import validate_schema_version
from lcs.infra.signal_worker import SignalWorker
from lcs.transport.adapter_registry import AdapterRegistry, build_default_registry
from lcs.transport.mailgun_webhook import PROVIDER, handle_mailgun_events, verify_signature
from lcs.transport.middleware import (
    ErrorHandlingMiddleware,
    RequestIDMiddleware,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
)
from lcs.transport.schemas import MailgunWebhookIn, SignalIn, SignalQueuedOut
from lcs.transport.security import (
    require_admin_token,
    require_metrics_auth,
    sanitize_error_message,
)

setup_logging(level=settings.log_level, use_json=settings.is_production)

logger = get_logger(__name__)


# ============================================================================
# WIRING
# ============================================================================

@dataclass
class Services:
    event_log: AsyncEventLog
    dispatch: DispatchService
    queue: AsyncSignalQueue
    worker: Optional[SignalWorker] = None


def build_services(
    *,
    event_log: AsyncEventLog,
    error_log: AsyncErrorLog,
    intelligence: AsyncIntelligenceRepository,
    frames: AsyncFrameRepository,
    store: AsyncContextStore,
    queue: AsyncSignalQueue,
    adapters: AdapterRegistry,
    config: Settings = settings,
) -> Services:
    """Assemble the pipeline from its ports. Storage-agnostic."""
    sender_domain = config.mailgun_sender_domain or "localhost"
    orchestrator = PipelineOrchestrator(
        event_log=event_log,
        intelligence=intelligence,
        frames=frames,
        adapters=adapters,
        orbt=OrbtHandler(error_log),
        default_channel=Channel(config.default_channel),
        default_agent=config.default_agent_number,
        sender_email=config.mailgun_sender_email or f"noreply@{sender_domain}",
        sender_domain=sender_domain,
    )
    dispatch = DispatchService(
        orchestrator=orchestrator,
        assembler=ContextAssembler(store, intelligence, config),
        default_channel=Channel(config.default_channel),
    )
    worker = SignalWorker(
        queue,
        dispatch,
        poll_interval=config.signal_worker_poll_interval,
        batch_size=config.signal_worker_batch_size,
        stale_timeout=config.signal_worker_stale_timeout,
        requeue_enabled=config.orbt_requeue_enabled,
        retry_delay_seconds=config.orbt_retry_delay_seconds,
    )
    return Services(event_log=event_log, dispatch=dispatch, queue=queue, worker=worker)


def build_postgres_services() -> Services:
    from lcs.infra.pg_context_store_async import AsyncPostgresContextStore
    from lcs.infra.pg_error_log_async import AsyncPostgresErrorLog
    from lcs.infra.pg_event_log_async import AsyncPostgresEventLog
    from lcs.infra.pg_frame_repo_async import AsyncPostgresFrameRepository
    from lcs.infra.pg_intelligence_repo_async import AsyncPostgresIntelligenceRepository
    from lcs.infra.pg_signal_queue_async import AsyncPostgresSignalQueue

    return build_services(
        event_log=AsyncPostgresEventLog(),
        error_log=AsyncPostgresErrorLog(),
        intelligence=AsyncPostgresIntelligenceRepository(),
        frames=AsyncPostgresFrameRepository(),
        store=AsyncPostgresContextStore(),
        queue=AsyncPostgresSignalQueue(),
        adapters=build_default_registry(),
    )


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    return services


# ============================================================================
# LIFESPAN
# ============================================================================

@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    """Application lifecycle: startup and shutdown"""
    logger.info(f"Starting LCS dispatch: env={settings.app_env}, run_mode={settings.run_mode}")

    await init_pool()

    # Migrations run separately: python -m lcs.infra.migrate
    await validate_schema_version()

    services = build_postgres_services()
    fastapi_app.state.services = services

    worker_started = False
    if settings.run_mode in ("all", "worker") and settings.signal_worker_enabled:
        await services.worker.start()
        worker_started = True
    elif not settings.signal_worker_enabled:
        logger.info("Signal worker skipped (signal_worker_enabled=false)")
    else:
        logger.info(f"Signal worker skipped (run_mode={settings.run_mode})")

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down application")
    if worker_started:
        await services.worker.stop()
    await close_all_sessions()
    await close_pool()
    logger.info("Application shutdown complete")


# ============================================================================
# CREATE APP
# ============================================================================

app = FastAPI(
    title="LCS Dispatch",
    description="Outbound communication pipeline: signal in, gated delivery out",
    version="1.0.0",
    lifespan=lifespan,
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
    openapi_url=None if settings.is_production else "/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(ErrorHandlingMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(RequestIDMiddleware)


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    if exc.status_code >= 500:
        logger.error(f"Server error: {exc.detail}", extra={"status_code": exc.status_code})

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=exc.headers,
    )


@app.exception_handler(LcsError)
async def lcs_error_handler(request: Request, exc: LcsError):
    logger.warning(f"{exc.__class__.__name__}: {exc.detail}")
    return JSONResponse(status_code=422, content={"error": exc.detail, "type": exc.__class__.__name__})


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc.__class__.__name__}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": sanitize_error_message(exc, settings.is_production)},
    )


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@app.get("/health")
def health():
    """Liveness: the process is up."""
    return {"status": "healthy"}


@app.get("/ready")
async def readiness():
    """Readiness: database reachable and schema in place."""
    result = await get_async_health_checker().run_checks(include_non_critical=False)
    if result["status"] == "unhealthy":
        return JSONResponse(status_code=503, content={"status": "unhealthy"})
    return {"status": "healthy"}


# ============================================================================
# MONITORING ENDPOINTS
# ============================================================================

@app.get("/health/detailed", dependencies=[Depends(require_metrics_auth)])
async def detailed_health():
    return await get_async_health_checker().run_checks(include_non_critical=True)


@app.get("/metrics", dependencies=[Depends(require_metrics_auth)])
def metrics():
    if not settings.enable_metrics:
        raise HTTPException(status_code=404, detail="Not found")
    return get_metrics_collector().get_metrics()


# ============================================================================
# SIGNAL INGRESS
# ============================================================================

@app.post("/signals", dependencies=[Depends(require_admin_token)])
async def post_signal(body: SignalIn, services: Services = Depends(get_services)):
    """
    Run one signal through the pipeline.

    With ``enqueue=true`` the signal is queued for the worker and the
    response is 202; otherwise the run happens inline and the response
    carries the pipeline result whatever its outcome.
    """
    signal = body.to_signal()
    if body.enqueue:
        queue_id = await services.queue.enqueue(signal)
        return JSONResponse(status_code=202, content=SignalQueuedOut(queue_id=queue_id).model_dump())

    result = await services.dispatch.dispatch(signal)
    return result.to_dict()


# ============================================================================
# PROVIDER WEBHOOKS
# ============================================================================

@app.post("/webhooks/mailgun")
async def mailgun_webhook(request: Request, services: Services = Depends(get_services)):
    try:
        body = MailgunWebhookIn.model_validate(await request.json())
    except (ValueError, ValidationError):
        raise HTTPException(status_code=400, detail="Invalid webhook payload")

    if settings.require_webhook_validation:
        sig = body.signature
        valid, error = verify_signature(
            settings.mailgun_webhook_signing_key, sig.timestamp, sig.token, sig.signature,
        )
        if not valid:
            AppMetrics.webhook_validation_failed(PROVIDER)
            logger.warning(f"Mailgun webhook rejected: {error}")
            raise HTTPException(status_code=401, detail="Invalid signature")

    result = await handle_mailgun_events(services.event_log, [body.event_data])
    if result.errors:
        logger.warning(f"Mailgun webhook errors: {result.errors}")
    # 2xx either way: Mailgun would otherwise retry an event we cannot correlate
    return result.to_dict()


@app.api_route("/{path:path}", methods=["GET", "POST", "PUT", "DELETE", "PATCH"], include_in_schema=False)
async def catch_all(path: str):
    """Generic 404 without revealing anything."""
    logger.warning(f"404 - Unknown route accessed: {path}")
    raise HTTPException(status_code=404, detail="Not found")


def main() -> None:
    import uvicorn

    uvicorn.run(
        "lcs.transport.http_app:app",
        host="0.0.0.0",
        port=8099,
        log_level=settings.log_level.lower(),
        access_log=not settings.is_production,
        server_header=False,
        date_header=False,
    )


if __name__ == "__main__":
    main()
