"""FastAPI application entry point for the intake service.

This module initializes the FastAPI application, sets up logging, starts the
reminder scheduler, registers routers, and maps domain errors to JSON.
"""

import asyncio
import time
import uuid
from contextlib import asynccontextmanager, suppress
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.exceptions import ConflictError, IntakeError
from app.logging_config import setup_logging, get_logger
from app.middleware.cors import DynamicCORSMiddleware
from app.models.database import init_db
from app.routes import admin, forms, health, webhook
from app.services.cors_allowlist import get_cors_allowlist
from app.services.question_loader import get_question_set
from app.services.reminders import build_scheduler

# Initialize logger (will be configured during startup)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Startup:
    - Configure logging
    - Create tables (outside production)
    - Load and validate the question set
    - Start the reminder scheduler task

    Shutdown:
    - Cancel the scheduler task
    """
    settings = get_settings()
    setup_logging()

    if not settings.is_production:
        init_db()

    question_set = get_question_set()

    logger.info(
        f"Intake service starting - "
        f"Environment: {settings.environment}, "
        f"Log Level: {settings.log_level}, "
        f"Database: {settings.database_url.split('@')[-1] if '@' in settings.database_url else 'configured'}, "
        f"Question set: {question_set.metadata.id} v{question_set.metadata.version}"
    )

    scheduler_task = None
    if settings.reminder_enabled:
        scheduler = build_scheduler(settings)
        scheduler_task = asyncio.create_task(
            scheduler.run_forever(settings.reminder_interval_seconds)
        )

    yield

    # Shutdown
    if scheduler_task is not None:
        scheduler_task.cancel()
        with suppress(asyncio.CancelledError):
            await scheduler_task
    logger.info("Intake service shutting down")


# Initialize FastAPI application
app = FastAPI(
    title="Intake Service",
    description="Patient intake over SMS and web forms, with Step-B follow-up and reminders",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    DynamicCORSMiddleware,
    allowlist=get_cors_allowlist(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Length", "X-Requested-With", "X-Request-ID"],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    """Tag every request with an ID and log its outcome."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
    start_time = time.time()
    response = await call_next(request)
    elapsed_ms = (time.time() - start_time) * 1000
    response.headers["X-Request-ID"] = request_id
    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.0f}ms)",
        extra={"request_id": request_id},
    )
    return response


# Root endpoint
@app.get("/")
async def root() -> dict:
    """Root endpoint with basic API information."""
    settings = get_settings()
    return {
        "service": "Intake Service",
        "version": "1.0.0",
        "environment": settings.environment,
        "status": "operational"
    }


# Register routers
app.include_router(health.router, tags=["Health"])
app.include_router(webhook.router, tags=["Webhook"])
app.include_router(forms.router, tags=["Forms"])
app.include_router(admin.router, tags=["Admin"])


@app.exception_handler(IntakeError)
async def intake_error_handler(request: Request, exc: IntakeError) -> JSONResponse:
    """Map domain errors to their HTTP status and a stable JSON body.

    Example (conflict):
        {
            "success": false,
            "status": "conflict",
            "error": "phone and email belong to different records",
            "code": "CONFLICT",
            "details": {"matches": [3, 7]},
            "matches": [3, 7]
        }
    """
    level = logger.error if exc.status_code >= 500 else logger.info
    level(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")

    content = {
        "success": False,
        "status": "conflict" if isinstance(exc, ConflictError) else "error",
        "error": exc.message,
        "message": exc.message,
        "code": exc.code,
        "details": exc.details,
    }
    if isinstance(exc, ConflictError):
        content["matches"] = exc.matches
    return JSONResponse(status_code=exc.status_code, content=content)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler for unhandled exceptions.

    Logs all unhandled exceptions and returns a generic error response
    to prevent leaking sensitive information.
    """
    logger.error(
        f"Unhandled exception for {request.method} {request.url}: {exc}",
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "status": "error",
            "error": "Internal server error",
            "message": "An unexpected error occurred. Please try again later."
        }
    )
