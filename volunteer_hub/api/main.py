"""
Volunteer Hub API Server

FastAPI server for the event's volunteer signup workflow: roles, domains,
signups, waivers and the people behind them.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import os
import uvicorn
from slowapi import _rate_limit_exceeded_handler  # type: ignore
from slowapi.errors import RateLimitExceeded  # type: ignore
from sqlalchemy.exc import OperationalError

from volunteer_hub.api.routes import router, limiter as routes_limiter
from volunteer_hub.database import db
from volunteer_hub.services import settings_service
from volunteer_hub.services.affiliation_cache import AffiliationCache
from volunteer_hub.services.errors import VolunteerHubError, DependencyUnavailable
from volunteer_hub.services.notification_dispatcher import get_notification_dispatcher

# Set up logging
# Allow log level to be configured via environment variable (default: INFO)
# Note: Database setting will be checked after database initialization
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
numeric_level = getattr(logging, log_level, logging.INFO)
logging.basicConfig(
    level=numeric_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup and shutdown events."""
    logger.info("Starting up Volunteer Hub API...")

    # Fallback for tables that are not in migrations yet
    try:
        await db.init_database()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)

    # Check for log level setting in database and apply it
    try:
        async with db.AsyncSessionLocal() as session:
            log_level_setting = await settings_service.get_setting(session, "log_level")
        if log_level_setting:
            log_level_name = log_level_setting.upper()
            logging.getLogger().setLevel(getattr(logging, log_level_name, logging.INFO))
            logger.info(f"Log level set from database: {log_level_name}")
        else:
            logger.info(f"Log level set from environment: {log_level}")
    except Exception as e:
        logger.warning(f"Could not load log level from database, using environment: {e}")

    app.state.affiliation_cache = AffiliationCache()

    try:
        get_notification_dispatcher().start()
        logger.info("Notification dispatcher started")
    except Exception as e:
        logger.error(f"Failed to start notification dispatcher: {e}", exc_info=True)

    yield  # App is running

    logger.info("Shutting down Volunteer Hub API...")

    try:
        await get_notification_dispatcher().stop()
        logger.info("Notification dispatcher stopped")
    except Exception as e:
        logger.error(f"Error stopping notification dispatcher: {e}", exc_info=True)


app = FastAPI(
    title="Volunteer Hub API",
    description="API for volunteer role signups, waivers and leader management",
    version="1.0.0",
    lifespan=lifespan,
)

# Replaced on startup; set here so the app also serves without a lifespan
app.state.affiliation_cache = AffiliationCache()

# Setup rate limiter
app.state.limiter = routes_limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add CORS middleware, origins configured via ALLOWED_ORIGINS env var
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(VolunteerHubError)
async def volunteer_hub_error_handler(request: Request, exc: VolunteerHubError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message} {exc.details or ''}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(OperationalError)
async def database_unavailable_handler(request: Request, exc: OperationalError):
    logger.error(f"Database unavailable during {request.method} {request.url.path}: {exc}")
    error = DependencyUnavailable()
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


# Include API routes
app.include_router(router)


@app.get("/api/health")
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Service status
    """
    return {"status": "healthy", "message": "API is running"}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
