"""
Provider Scheduling API

A FastAPI application exposing the scheduling engine: provider availability
configuration, slot lookup, conflict-checked booking, leave management,
recurring series and the provider calendar.

Features:
- Working hours, date exceptions, breaks and leave per provider
- Slot generation and atomic per-provider booking
- Recurring series with holiday skipping and auto-reschedule
- PostgreSQL database with SQLAlchemy ORM
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import availability, bookings, calendar, leaves, recurring
from api.errors import to_http_exception
from core.config import AUTO_CREATE_TABLES
from core.constants import CORS_ORIGINS
from core.database import create_tables
from core.exceptions import SchedulingError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)

logger = logging.getLogger(__name__)
logger.info("Provider Scheduling API starting...")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("Starting Provider Scheduling API")

    if AUTO_CREATE_TABLES:
        try:
            create_tables()
            logger.info("Database tables created")
        except Exception as e:
            logger.exception(f"Failed to create database tables: {e}")

    yield

    logger.info("Shutting down Provider Scheduling API")


# Create FastAPI application
app = FastAPI(
    title="Provider Scheduling",
    description="Availability, booking and recurring appointments for clinic providers",
    version="1.0.0",
    docs_url="/docs",  # Swagger UI
    redoc_url="/redoc",  # ReDoc
    lifespan=lifespan,
)

# CORS middleware for frontend integration
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(
    availability.router,
    prefix="/api",
    tags=["availability"],
    responses={
        400: {"description": "Bad request"},
        404: {"description": "Resource not found"},
        500: {"description": "Internal server error"},
    },
)
app.include_router(
    leaves.router,
    prefix="/api",
    tags=["leaves"],
    responses={
        400: {"description": "Bad request"},
        404: {"description": "Resource not found"},
        500: {"description": "Internal server error"},
    },
)
app.include_router(
    bookings.router,
    prefix="/api",
    tags=["bookings"],
    responses={
        400: {"description": "Bad request"},
        404: {"description": "Resource not found"},
        409: {"description": "Conflict"},
        503: {"description": "Provider busy, retry later"},
        500: {"description": "Internal server error"},
    },
)
app.include_router(
    recurring.router,
    prefix="/api",
    tags=["recurring-series"],
    responses={
        400: {"description": "Bad request"},
        404: {"description": "Resource not found"},
        500: {"description": "Internal server error"},
    },
)
app.include_router(
    calendar.router,
    prefix="/api",
    tags=["calendar"],
    responses={
        400: {"description": "Bad request"},
        404: {"description": "Resource not found"},
        500: {"description": "Internal server error"},
    },
)


@app.get(
    "/",
    summary="Root endpoint",
    description="Returns basic API information",
)
async def root() -> dict[str, str]:
    """Get API information."""
    return {
        "message": "Provider Scheduling API",
        "version": "1.0.0",
        "status": "running"
    }


@app.get(
    "/health",
    summary="Health check",
    description="Returns the health status of the API",
)
async def health_check() -> dict[str, str]:
    """Check if the API is healthy and responding."""
    return {"status": "healthy"}


# Global exception handlers
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions globally."""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": "internal_error"},
    )


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    """Handle scheduling errors raised outside a router's own handling."""
    logger.warning(f"{type(exc).__name__}: {exc}")
    http_error = to_http_exception(exc)
    return JSONResponse(
        status_code=http_error.status_code,
        content={"detail": http_error.detail, "type": "scheduling_error"},
        headers=http_error.headers,
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Handle ValueError exceptions."""
    logger.warning(f"ValueError: {exc}")
    return JSONResponse(
        status_code=400,
        content={"detail": str(exc), "type": "validation_error"},
    )
