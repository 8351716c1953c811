"""
Main FastAPI application for LetsMeet core service
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from contextlib import asynccontextmanager
import logging
import time

from letsmeet.config import settings
from letsmeet.db.database import init_db
from letsmeet.errors import LetsMeetError
from letsmeet.api import (
    system,
    users,
    meetings,
    applications
)

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.APP_DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info("Starting LetsMeet core service...")
    try:
        init_db()
        logger.info("Database initialized")
    except SQLAlchemyError as e:
        logger.error(f"Database initialization failed: {e}")

    yield

    # Shutdown
    logger.info("Shutting down LetsMeet core service...")


app = FastAPI(
    title="LetsMeet Core",
    description="Meetup hosting, capacity-bounded applications and trust scores",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request timing middleware
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Add request processing time to response headers."""
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    return response


@app.exception_handler(LetsMeetError)
async def domain_exception_handler(request: Request, exc: LetsMeetError):
    """Render domain errors with their kind and detail."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.kind}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal",
            "detail": str(exc) if settings.APP_DEBUG else "An unexpected error occurred"
        }
    )


# Include routers
app.include_router(system.router, tags=["System"])
app.include_router(users.router, prefix="/users", tags=["Users"])
app.include_router(meetings.router, prefix="/meetings", tags=["Meetings"])
app.include_router(applications.router, prefix="/applications", tags=["Applications"])


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "LetsMeet Core",
        "version": "1.0.0",
        "status": "running"
    }
