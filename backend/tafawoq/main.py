"""
Tafawoq - FastAPI Application

Main entry point for the backend API.
Provides endpoints for subscriptions, Stripe webhooks, exam and practice
sessions, and analytics.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tafawoq.config.settings import settings
from tafawoq.infrastructure.db.database import DatabaseManager
from tafawoq.infrastructure.exceptions import (
    GenerationError,
    RateLimitError,
    TafawoqError,
)
from tafawoq.services.bundle import build_service_bundle

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    logger.info(f"Tafawoq Backend starting in {settings.environment} mode...")

    database = DatabaseManager.from_settings(settings)
    try:
        await database.verify()
        logger.info("Database connection pool initialized")
    except Exception as e:
        logger.warning(f"Database not reachable at startup: {e}")

    if not settings.stripe_configured:
        logger.warning("Stripe is not fully configured; checkout and webhooks will fail")

    app.state.database = database
    app.state.services = build_service_bundle(settings, database)

    yield

    # Shutdown
    await database.close()
    logger.info("Tafawoq Backend shutting down...")


app = FastAPI(
    title="Tafawoq",
    description="Qudurat exam preparation with AI-generated exams and practice",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
    docs_url=None if settings.is_production else "/docs",
)

# CORS configuration from Settings
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Exception Handlers
# ============================================================================

@app.exception_handler(TafawoqError)
async def tafawoq_error_handler(request: Request, exc: TafawoqError):
    """Every application error carries its own status and category."""
    if exc.status_code >= 500:
        logger.error(f"{exc.__class__.__name__} on {request.url.path}: {exc.message}")

    headers = {}
    retry_after = None
    if isinstance(exc, GenerationError):
        retry_after = exc.retry_after_seconds
    elif isinstance(exc, RateLimitError):
        retry_after = exc.details.get("retry_after_seconds")
    if retry_after:
        headers["Retry-After"] = str(retry_after)

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers=headers or None,
    )


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "tafawoq"}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Tafawoq API",
        "version": "1.0.0",
        "docs": "/docs",
    }


# ============================================================================
# Import and register routers
# ============================================================================

from tafawoq.api.routes import analytics, sessions, subscriptions, webhooks  # noqa: E402

app.include_router(subscriptions.router, prefix="/api", tags=["Subscriptions"])
app.include_router(webhooks.router, prefix="/api", tags=["Webhooks"])
app.include_router(sessions.router, prefix="/api", tags=["Sessions"])
app.include_router(analytics.router, prefix="/api", tags=["Analytics"])
