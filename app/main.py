from datetime import datetime, timezone
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.routers import config, extraction, jds, matching, resumes

# Import logging and middleware
from app.utils.logging_config import configure_for_environment, get_logger
from app.middleware.error_handlers import (
    ExceptionHandlerMiddleware,
    RequestLoggingMiddleware,
    PerformanceMiddleware,
)

# Configure logging first
configure_for_environment()
logger = get_logger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager"""
    logger.info("Resume Match API starting up...")

    try:
        from app.services.db import init_indexes
        from app.services.library import get_library
        await init_indexes()
        await get_library().load()
    except Exception as e:
        logger.warning(f"Startup storage initialization had issues: {e}")
        logger.info("Application will continue with an empty document library")

    logger.info("Resume Match API startup completed")

    yield

    logger.info("Resume Match API shutting down...")


app = FastAPI(title="Resume Match API", version=VERSION, lifespan=lifespan)

# Add middleware in order (LIFO - Last In, First Out)
# The exception handler sits closest to the routers
app.add_middleware(ExceptionHandlerMiddleware)
app.add_middleware(PerformanceMiddleware, slow_request_threshold=2.0)
app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
@app.head("/")
async def root():
    """Root endpoint - handles both GET and HEAD requests for health checks"""
    return {"message": "Welcome to the Resume Match API", "version": VERSION, "status": "ok"}


@app.get("/health")
@app.head("/health")
async def health_check():
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


# Include routers
app.include_router(config.router)
app.include_router(extraction.router)
app.include_router(resumes.router)
app.include_router(jds.router)
app.include_router(matching.router)

logger.info("Resume Match API initialized successfully")
