"""Main FastAPI application."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from bevisible import __version__
from bevisible.config import settings
from bevisible.database import Base, engine
from bevisible import models  # noqa: F401  (registers every table on Base.metadata)
from bevisible.routers import account_routes, report_routes, schedule_routes
from bevisible.scheduler import start_scheduler, stop_scheduler

# Configure logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="BeVisible Engine API",
    description="AI-visibility scheduling engine and daily report pipeline",
    version=__version__,
    redirect_slashes=False
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================
# ROUTER REGISTRATION
# ============================================

app.include_router(schedule_routes.router)  # /api/v1/schedule
app.include_router(report_routes.router)    # /api/v1/report, /api/v1/reports
app.include_router(account_routes.router)   # /api/v1/accounts


# ============================================
# HEALTH & ROOT ENDPOINTS
# ============================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": __version__,
        "environment": settings.ENVIRONMENT,
        "registered_tables": len(Base.metadata.tables),
        "tables": sorted(Base.metadata.tables.keys()),
        "scheduler_enabled": settings.ENABLE_SCHEDULER,
    }


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "BeVisible Engine API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


# ============================================
# STARTUP & SHUTDOWN
# ============================================

@app.on_event("startup")
async def startup_event():
    """Run on application startup."""
    logger.info("Starting BeVisible Engine API...")
    logger.info("=" * 50)
    logger.info(f"Registered {len(Base.metadata.tables)} SQLAlchemy tables:")
    for table_name in sorted(Base.metadata.tables.keys()):
        logger.info(f"  ✓ {table_name}")
    logger.info("=" * 50)

    if settings.ENABLE_SCHEDULER:
        start_scheduler()
    else:
        logger.info("Scheduler disabled (ENABLE_SCHEDULER=false)")

    logger.info("Application started successfully!")


@app.on_event("shutdown")
async def shutdown_event():
    """Run on application shutdown."""
    logger.info("Shutting down BeVisible Engine API...")
    stop_scheduler()
    await engine.dispose()
