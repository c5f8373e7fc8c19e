from contextlib import asynccontextmanager
import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from qc_engine.config import settings
from qc_engine.api.v1.router import api_router
from qc_engine.core.exceptions import (
    QCError, NotFoundError, ValidationFailedError, PreconditionFailedError,
    ConflictError, CollaboratorError,
)
from qc_engine.database import init_db, async_session_factory


logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# Engine error category -> HTTP status
ERROR_STATUS_CODES = (
    (NotFoundError, 404),
    (ValidationFailedError, 400),
    (PreconditionFailedError, 422),
    (ConflictError, 409),
    (CollaboratorError, 502),
)


def status_code_for(exc: QCError) -> int:
    for error_class, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_class):
            return status_code
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Create QC tables if they do not exist
    """
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    await init_db()

    yield

    logger.info("Shutting down...")


API_DESCRIPTION = """
## QC Inspection Engine

Stage-wise quality control for production orders:

- **Inspections**: stage checklist templates, result recording, scoring (PASSED / REWORK_REQUIRED / FAILED)
- **Rework**: job cards with instructions and hour estimates for failing inspections
- **Certificates**: quality/compliance/test certificates with customer approval
- **Analytics**: stage and inspector metrics, daily trends, dashboard and alerts
- **Production hooks**: stage completion and production status push

### Errors
Engine errors return `{"success": false, "error": {"code", "message", "details"}}`.

### Health Check
- **Health Check**: /health
"""

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=API_DESCRIPTION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router)


@app.exception_handler(QCError)
async def qc_error_handler(request: Request, exc: QCError):
    """Typed engine errors keep their stable code."""
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code} {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": exc.to_dict()}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Unexpected errors; the traceback is only returned in DEBUG."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    error_detail = {
        "code": "INTERNAL_ERROR",
        "message": str(exc),
        "details": {
            "type": type(exc).__name__,
            "path": str(request.url.path),
            "method": request.method,
        },
    }
    if settings.DEBUG:
        error_detail["details"]["traceback"] = traceback.format_exc()
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": error_detail}
    )


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint with database validation."""
    from sqlalchemy import text
    from datetime import datetime, timezone

    health_status = {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": "unknown"
        }
    }

    # Check database connectivity
    try:
        async with async_session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
            health_status["checks"]["database"] = "connected"
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {str(e)}"

    # Return 503 if unhealthy
    if health_status["status"] == "unhealthy":
        return JSONResponse(status_code=503, content=health_status)

    return health_status


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint."""
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "redoc": "/redoc",
    }
