# docanalysis/main.py
import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from docanalysis.api.routes import router
from docanalysis.config import get_settings
from docanalysis.errors import (
    DocAnalysisError,
    DocumentNotFoundError,
    InvalidInputError,
    ProjectNotFoundError,
    ReportNotFoundError,
)
from docanalysis.observability.logger import request_id_var, setup_logging
from docanalysis.observability.metrics import metrics_tracker
from docanalysis.services import get_posthog, shutdown_services

logger = logging.getLogger(__name__)


_NOT_FOUND_ERRORS = (DocumentNotFoundError, ProjectNotFoundError, ReportNotFoundError)


@asynccontextmanager
async def lifespan(app: FastAPI):

    settings = get_settings()

    setup_logging(log_level=settings.log_level, log_file=settings.log_file)

    logger.info(
        "application_startup",
        extra={"version": app.version, "vector_backend": settings.vector_backend},
    )

    if not settings.openai_api_key:

        logger.warning(
            "missing_api_key",
            extra={"warning_detail": "OPENAI_API_KEY not set. Indexing and search will fail."},
        )

    yield

    await shutdown_services()

    get_posthog().shutdown()

    logger.info("application_shutdown")


# Initialize FastAPI app
app = FastAPI(
    title="Document Analysis API",
    description="Project-scoped document indexing, semantic search and report generation",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Log every HTTP request with latency and record request metrics.
    """

    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    token = request_id_var.set(request_id)

    logger.info(
        "request_started",
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else None,
        },
    )

    start_time = time.time()

    try:

        response = await call_next(request)

    except Exception as e:

        metrics_tracker.record_failure()

        logger.error(
            "request_failed",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "latency_seconds": round(time.time() - start_time, 3),
                "error": str(e),
                "error_type": type(e).__name__,
            },
            exc_info=True,
        )

        raise

    finally:
        request_id_var.reset(token)

    latency = time.time() - start_time

    if response.status_code >= 500:
        metrics_tracker.record_failure()
    else:
        metrics_tracker.record_success(latency)

    logger.info(
        "request_completed",
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "latency_seconds": round(latency, 3),
        },
    )

    response.headers["X-Request-ID"] = request_id

    return response


# Include API routes
app.include_router(router)


# ============================================================
# ERROR MAPPING
# ============================================================

def _error_response(request: Request, status_code: int, exc: Exception, detail: str):

    return JSONResponse(
        status_code=status_code,
        content={
            "detail": detail,
            "request_id": getattr(request.state, "request_id", "unknown"),
            "error_type": type(exc).__name__,
        },
    )


@app.exception_handler(DocAnalysisError)
async def service_exception_handler(request: Request, exc: DocAnalysisError):

    if isinstance(exc, _NOT_FOUND_ERRORS):
        return _error_response(request, status.HTTP_404_NOT_FOUND, exc, str(exc))

    if isinstance(exc, InvalidInputError):
        return _error_response(request, status.HTTP_422_UNPROCESSABLE_ENTITY, exc, str(exc))

    request_id = getattr(request.state, "request_id", "unknown")

    logger.error(
        "service_error",
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "error": str(exc),
            "error_type": type(exc).__name__,
        },
        exc_info=exc,
    )

    get_posthog().track_error(
        distinct_id=request_id,
        error_type=type(exc).__name__,
        error_message=str(exc),
        endpoint=request.url.path,
    )

    return _error_response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, exc, str(exc))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):

    request_id = getattr(request.state, "request_id", "unknown")

    logger.error(
        "unhandled_exception",
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "error": str(exc),
            "error_type": type(exc).__name__,
        },
        exc_info=exc,
    )

    get_posthog().track_error(
        distinct_id=request_id,
        error_type=type(exc).__name__,
        error_message=str(exc),
        endpoint=request.url.path,
    )

    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        exc,
        "An internal error occurred. Please try again.",
    )


@app.get("/")
async def root():

    return {
        "message": "Document Analysis API",
        "version": app.version,
        "docs": "/docs",
        "health": "/health",
        "metrics": "/metrics",
    }
