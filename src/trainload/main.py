import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.gzip import GZipMiddleware

from trainload import __version__
from trainload.api.routes import router
from trainload.config import settings
from trainload.database.analytics_repository import MongoAnalyticsRepository
from trainload.database.mongodb import db_manager

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

# Configure uvicorn loggers to use the same format
for logger_name in ["uvicorn", "uvicorn.access", "uvicorn.error"]:
    logger = logging.getLogger(logger_name)
    logger.handlers.clear()
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    logger.addHandler(handler)
    logger.propagate = False

# Suppress MongoDB debug logging (always set to INFO or higher)
logging.getLogger("pymongo").setLevel(logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan - startup and shutdown events."""
    # Startup
    await db_manager.connect()
    await MongoAnalyticsRepository(db_manager.db).ensure_indexes()
    yield
    # Shutdown
    await db_manager.disconnect()


app = FastAPI(
    title="Trainload API",
    description="Endurance training analytics: mean-maximal curves, effort scores and fitness trends",
    version=__version__,
    lifespan=lifespan
)

# Add GZip middleware for response compression
app.add_middleware(GZipMiddleware, minimum_size=2048)

# Include API routes
app.include_router(router)


@app.get("/")
async def root():
    """Root endpoint returning API status."""
    return {
        "name": "Trainload API",
        "version": __version__,
        "environment": settings.environment,
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    db_healthy = await db_manager.ping()
    return {
        "status": "healthy" if db_healthy else "degraded",
        "database": "connected" if db_healthy else "disconnected"
    }
