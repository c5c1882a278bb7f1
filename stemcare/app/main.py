"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stemcare.app.api import reports, settings as settings_api
from stemcare.app.core.config import settings
from stemcare.app.core.exception_handlers import register_exception_handlers
from stemcare.app.core.logging import setup_logging
from stemcare.app.db.base import dispose_engine, get_session_factory, init_models
from stemcare.app.services.system_settings import system_settings
from stemcare.app.services.task_runner import StaleReportReconciler, task_runner

logger = logging.getLogger(__name__)

# Seconds that running generations get to finish on shutdown before they are cancelled
SHUTDOWN_DRAIN_SECONDS = 30.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    setup_logging(settings.log_level)

    # Startup: Create database tables
    await init_models()
    logger.info("[STARTUP] Database tables ready")

    session_factory = get_session_factory()
    await system_settings.init(session_factory)

    if not settings.deepseek_configured:
        logger.warning("[STARTUP] DEEPSEEK_API_KEY is not set; report generation requests will be rejected")

    # Reports left in processing by a previous process can never finish
    swept = await StaleReportReconciler(session_factory, task_runner).sweep()
    logger.info(f"[STARTUP] Reconciled {len(swept)} stale report(s)")

    yield

    # Shutdown: let running generations record their outcome, then close connections
    await task_runner.drain(timeout=SHUTDOWN_DRAIN_SECONDS)
    await dispose_engine()
    logger.info("[SHUTDOWN] Cleaned up resources")


app = FastAPI(
    title="StemCare Report API",
    description="AI-assisted health assessment and comparison reports",
    version="1.2.1",
    lifespan=lifespan,
)

# Register custom exception handlers
register_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(reports.router, prefix="/api")
app.include_router(settings_api.router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "StemCare Report API",
        "version": "1.2.1",
        "description": "AI-assisted health assessment and comparison reports",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
