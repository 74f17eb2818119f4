"""
Portal Calendar API
FastAPI Application Entry Point

Run with:

    uvicorn api.main:app --host 0.0.0.0 --port 8000
"""
# Load environment variables from .env file first, before any imports
from dotenv import load_dotenv
load_dotenv()

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes import calendar
from api.services.calendar_clock import CurrentTimeTracker
from api.services.calendar_layout import GridConfig
from api.services.company_events import close_company_source
from api.services.google_calendar import close_google_source
from api.services.service_health import get_service_health
from api.utils.datetime_utils import local_now
from config.settings import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan - startup and shutdown."""
    # Startup: current-time tracker feeding /api/calendar/now
    app.state.now_tracker = None
    try:
        tracker = CurrentTimeTracker(
            GridConfig.from_settings(settings),
            clock=lambda: local_now(settings.local_tz),
            interval_seconds=settings.now_tick_seconds,
        )
        tracker.start()
        app.state.now_tracker = tracker
        logger.info(f"Current-time tracker started ({settings.now_tick_seconds}s interval)")
    except Exception as e:
        logger.error(f"Failed to start current-time tracker: {e}")

    yield  # Application runs here

    # Shutdown: Stop tracker
    if app.state.now_tracker:
        app.state.now_tracker.stop()
        logger.info("Current-time tracker stopped")

    # Shutdown: Release source HTTP clients
    close_company_source()
    close_google_source()


app = FastAPI(
    title="Portal Calendar",
    description="Calendar layout and multi-source merge engine for the CRM portal",
    version="0.1.0",
    lifespan=lifespan
)

# CORS middleware for the portal front end
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(calendar.router)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Convert validation errors to 400 with clear messages."""
    errors = exc.errors()

    # Sanitize errors for JSON serialization (convert bytes to string)
    sanitized_errors = []
    for error in errors:
        sanitized = dict(error)
        if "input" in sanitized and isinstance(sanitized["input"], bytes):
            sanitized["input"] = sanitized["input"].decode("utf-8", errors="replace")
        sanitized.pop("ctx", None)
        sanitized_errors.append(sanitized)

    return JSONResponse(
        status_code=400,
        content={"error": "Validation error", "detail": sanitized_errors}
    )


@app.get("/health")
async def health_check():
    """
    Get status of the event sources.

    Returns:
    - overall_status: healthy/degraded
    - services: per-source status with last check time and last error
    """
    summary = get_service_health().get_summary()
    return {
        "status": summary["overall_status"],
        "service": "portal-calendar",
        **summary,
    }


@app.get("/")
async def root():
    return {"message": "Portal Calendar API", "version": "0.1.0"}
