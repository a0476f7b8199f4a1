"""
CallInsight - FastAPI Backend Application
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
import structlog

from callinsight.config import settings
from callinsight.errors import AccessDenied, InvalidPayload, InvalidResourceId, PersistenceError, ProviderError
from callinsight.logging_config import configure_logging
from callinsight.api import agents, calls, metrics
from callinsight.webhooks import elevenlabs

configure_logging()

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info("Starting CallInsight API", version="1.0.0")
    yield
    logger.info("Shutting down CallInsight API")


# Create FastAPI application
app = FastAPI(
    title="CallInsight",
    description="Call analytics ingestion and tenant dashboards for conversational AI agents",
    version="1.0.0",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Domain errors
@app.exception_handler(AccessDenied)
async def access_denied_handler(request: Request, exc: AccessDenied):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(InvalidResourceId)
async def invalid_resource_id_handler(request: Request, exc: InvalidResourceId):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(InvalidPayload)
async def invalid_payload_handler(request: Request, exc: InvalidPayload):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Temporarily unable to store event", "stage": exc.stage},
    )


@app.exception_handler(ProviderError)
async def provider_error_handler(request: Request, exc: ProviderError):
    return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={"detail": str(exc)})


# Health check endpoints
@app.get("/health")
async def health():
    """Basic health check"""
    return {"status": "healthy", "service": "api", "version": "1.0.0"}


@app.get("/health/ready")
async def ready():
    """Readiness check with dependency verification"""
    from callinsight.database import SessionLocal
    from callinsight.cache import cache

    checks = {}

    # Check database
    try:
        async with SessionLocal() as db:
            await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"failed: {str(e)}"

    # Check Redis
    try:
        from callinsight.jobs.celery_app import celery_app
        celery_app.control.ping(timeout=1)
        checks["redis"] = "ok"
    except Exception as e:
        checks["redis"] = f"failed: {str(e)}"

    all_ok = all(v == "ok" for v in checks.values())

    return {
        "status": "ready" if all_ok else "not_ready",
        "checks": checks,
        "cache": cache.stats(),
    }


# Include API routers
app.include_router(calls.router, prefix="/tenants/{tenant_id}/calls", tags=["Calls"])
app.include_router(agents.router, prefix="/tenants/{tenant_id}/agents", tags=["Agents"])
app.include_router(metrics.router, prefix="/tenants/{tenant_id}/metrics", tags=["Metrics"])

# Include webhook routers
app.include_router(elevenlabs.router, prefix="/webhooks/elevenlabs", tags=["Webhooks"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "callinsight.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_debug,
    )
