"""
FastAPI application initialization
"""

from fastapi import FastAPI
from api.routes import health, queue, collection, refresh
from core.config import settings
from core.logging import setup_logging
import logging
from api.middleware import RequestContextMiddleware
from collection.progress import ProgressChannel
from collection.scheduler import CollectionScheduler

# Configure logging
setup_logging()

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Response Collector API",
    description="Job queue, resumable sessions and on-demand refresh for AI-model response collection",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

# In-process progress fan-out for observers of sessions and refreshes
app.state.progress_channel = ProgressChannel()

# Initialize Scheduler
scheduler = CollectionScheduler()


# Include routers
app.include_router(health.router)
app.include_router(queue.router)
app.include_router(collection.router)
app.include_router(refresh.router)


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting Response Collector API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

    if settings.SCHEDULER_ENABLED:
        scheduler.start()
    else:
        logger.info("Scheduler disabled; queue ticks must be triggered externally")


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Response Collector API")
    if scheduler.scheduler.running:
        scheduler.stop()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Response Collector API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "queue": "/queue",
            "entities": "/entities/{entity_id}/collection",
            "refresh": "/refresh"
        }
    }
