"""
Swipe Select - Main Application

FastAPI entry point: catalog import, swipe selections, Excel re-export and
the localize/enrich pipeline.

Run with:
    uvicorn main:app --reload
"""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from config import settings, check_connection
from exceptions import AppError

# stdlib logging carries structlog output; level comes from settings
logging.basicConfig(format="%(message)s", level=settings.log_level)

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer() if settings.is_production
            else structlog.dev.ConsoleRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log configuration and probe the libraries table on startup."""
    logger.info(
        "application_starting",
        environment=settings.environment,
        storage_bucket=settings.storage_bucket,
        enrichment_model=settings.enrichment_model,
        creators=settings.selection_creators
    )

    db_status = check_connection()
    if db_status["status"] == "healthy":
        logger.info("database_connected", libraries=db_status["libraries_count"])
    else:
        # Start anyway; /health reports degraded until Supabase is reachable
        logger.error("database_connection_failed", error=db_status.get("error"))

    yield

    logger.info("application_shutting_down")


app = FastAPI(
    title="Swipe Select",
    description="Product catalog import, swipe selection and Excel export",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    logger.debug(
        "request_completed",
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        duration_ms=round((time.perf_counter() - started) * 1000, 1)
    )
    return response


# ===================
# ROUTES
# ===================

@app.get("/health")
async def health_check():
    """Database reachability plus the storage bucket in use."""
    db_status = check_connection()

    return {
        "status": "healthy" if db_status["status"] == "healthy" else "degraded",
        "timestamp": datetime.utcnow().isoformat(),
        "environment": settings.environment,
        "database": db_status,
        "storage": {"bucket": settings.storage_bucket, "public_url": settings.public_storage_url},
    }


@app.get("/")
async def root():
    return {
        "name": "Swipe Select API",
        "version": "0.1.0",
        "docs": "/docs" if settings.debug else None,
        "endpoints": {
            "library": "/api/library",
            "combined": "/api/library/combined",
            "export": "/api/export",
            "localize": "/api/localize",
            "enrichment_check": "/api/enrichment/check",
        }
    }


# ===================
# ERROR HANDLERS
# ===================

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """AppErrors that escape a route's own handler keep their status and body."""
    logger.warning("app_error", path=request.url.path, code=exc.code, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "details": str(exc) if settings.debug else None,
                "timestamp": datetime.utcnow().isoformat()
            }
        }
    )


# ===================
# INCLUDE ROUTERS
# ===================
from routes import library_router, export_router, localize_router, enrichment_router

app.include_router(library_router, prefix="/api/library", tags=["Library"])
app.include_router(export_router)
app.include_router(localize_router)
app.include_router(enrichment_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug
    )
