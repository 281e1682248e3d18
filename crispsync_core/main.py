"""CrispSync Core API - Main Application."""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from crispsync_core.api.routes import crisp as crisp_routes
from crispsync_core.api.routes import crisp_db as crisp_db_routes
from crispsync_core.api.schemas.envelope import envelope
from crispsync_core.config import get_settings, require_crisp_credentials
from crispsync_core.domain.services.backfill import BackfillError
from crispsync_core.domain.services.events import EventIngestor
from crispsync_core.domain.services.resolver import ConversationResolver
from crispsync_core.domain.services.writer import IdempotentWriter
from crispsync_core.infra.db import get_sync_session_factory
from crispsync_core.observability.logging import configure_logging, get_logger
from crispsync_core.observability.metrics import get_metrics
from crispsync_core.providers.crisp import CrispAdapter

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    settings = get_settings()
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_json,
        service_name=settings.service_name,
    )
    require_crisp_credentials(settings)

    gateway = CrispAdapter(
        identifier=settings.crisp_identifier,
        key=settings.crisp_key,
        tier=settings.crisp_tier,
        base_url=settings.crisp_api_url,
        timeout=settings.crisp_timeout_seconds,
    )
    writer = IdempotentWriter(get_sync_session_factory())
    ingestor = EventIngestor(
        gateway=gateway,
        resolver=ConversationResolver(gateway=gateway, writer=writer),
        writer=writer,
        queue_size=settings.event_queue_size,
        workers=settings.event_workers,
    )
    ingestor.start()

    app.state.settings = settings
    app.state.gateway = gateway
    app.state.ingestor = ingestor
    logger.info("CrispSync started", service=settings.service_name)
    yield
    # Shutdown
    await ingestor.stop()


app = FastAPI(
    title="CrispSync Core API",
    description="Mirror of Crisp conversations and messages in a local store",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=envelope(
            data={"errors": [_describe(error) for error in exc.errors()]},
            message="Invalid request parameters",
            status_code=status.HTTP_400_BAD_REQUEST,
        ),
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=envelope(data=None, message=str(exc.detail), status_code=exc.status_code),
    )


@app.exception_handler(BackfillError)
async def backfill_error_handler(request: Request, exc: BackfillError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=envelope(
            data=None,
            message=str(exc),
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        ),
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error", exc_info=True, path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=envelope(
            data=None,
            message="Internal server error",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        ),
    )


def _describe(error: dict[str, Any]) -> dict[str, Any]:
    return {
        "loc": [str(part) for part in error.get("loc", ())],
        "msg": error.get("msg"),
    }


# Include API routers
app.include_router(crisp_routes.router)
app.include_router(crisp_db_routes.router)


@app.get("/healthz")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"ok": True, "service": "crispsync-core"}


@app.get("/metrics")
async def metrics(request: Request) -> dict[str, Any]:
    """In-process ingestion metrics."""
    ingestor = getattr(request.app.state, "ingestor", None)
    data = get_metrics().get_all()
    data["event_ingestor"] = {
        "running": bool(ingestor and ingestor.running),
        "queue_depth": ingestor.queue_depth if ingestor else 0,
    }
    return envelope(data=data, message="Metrics collected")
