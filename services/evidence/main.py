"""
Evidence Service - Main Application
====================================

FastAPI application exposing the custody engine.

Version: 0.1.0
"""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from custody.config import StorageBackend, settings
from custody.errors import CustodyError
from custody.logging import get_logger, setup_logging
from custody.models import ErrorResponse, HealthResponse
from services.evidence.deps import get_container
from services.evidence.routes import evidence, identities, ledger


# Setup logging
setup_logging(
    log_level=settings.log_level.value,
    json_logs=settings.is_production,
    service_name="evidence",
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> Any:
    """Application lifespan manager."""
    logger.info(
        "evidence_service_starting",
        environment=settings.environment.value,
        port=settings.port,
        ledger_mode=settings.ledger.mode.value,
    )

    # Startup
    try:
        container = get_container()

        if settings.storage.metadata_backend == StorageBackend.POSTGRES and not settings.is_production:
            from custody.storage.sql import DatabaseClient

            await DatabaseClient.create_schema()

        await container.ledger.connect()
        logger.info("ledger_connected", mode=container.ledger.mode.value)

    except Exception as e:
        logger.error("startup_failed", error=str(e))
        raise

    yield

    # Shutdown
    logger.info("evidence_service_shutting_down")
    await container.engine.audit.flush()
    await container.ledger.disconnect()
    if settings.storage.metadata_backend == StorageBackend.POSTGRES:
        from custody.storage.sql import DatabaseClient

        await DatabaseClient.close()


# Create FastAPI application
app = FastAPI(
    title="Evidence Custody Service",
    description="Evidence intake, chain of custody and integrity verification",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors.origins_list,
    allow_credentials=settings.cors.allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Health Check Endpoints
# ============================================================================


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """
    Service health check.

    Returns health status of the service and its dependencies.
    """
    container = get_container()
    components: dict[str, dict[str, Any]] = {
        "repository": await container.repository.health_check(),
        "payloads": await container.payloads.health_check(),
        "ledger": await container.ledger.health_check(),
        "audit": {
            "status": "healthy" if container.channel.pending == 0 else "degraded",
            "pending_failures": container.channel.pending,
        },
    }

    # Determine overall status
    all_healthy = all(c.get("status") == "healthy" for c in components.values())

    return HealthResponse(
        status="healthy" if all_healthy else "degraded",
        service="evidence",
        version="0.1.0",
        components=components,
    )


@app.get("/", tags=["Health"])
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": "Evidence Custody Service",
        "version": "0.1.0",
        "docs": "/docs",
    }


# ============================================================================
# Include Routers
# ============================================================================

app.include_router(
    evidence.router,
    prefix="/api/v1/evidence",
    tags=["Evidence"],
)

app.include_router(
    identities.router,
    prefix="/api/v1/identities",
    tags=["Identities"],
)

app.include_router(
    ledger.router,
    prefix="/api/v1/ledger",
    tags=["Ledger"],
)


# ============================================================================
# Error Handlers
# ============================================================================


@app.exception_handler(CustodyError)
async def custody_exception_handler(request: Request, exc: CustodyError) -> JSONResponse:
    """Translate engine errors into error bodies with their status code."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "custody_error",
        error_code=exc.code,
        error=exc.message,
        details=exc.details or None,
        path=request.url.path,
    )
    body = ErrorResponse(error=exc.message, error_code=exc.code, details=exc.details or None)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json"))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTP exceptions."""
    logger.warning(
        "http_exception",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.detail,
            "status_code": exc.status_code,
        },
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": "Internal server error",
            "status_code": 500,
        },
    )


# ============================================================================
# Run with Uvicorn
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "services.evidence.main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.value.lower(),
    )
