# backend/main.py
"""
FastAPI Main Application
========================

Entry point for the dashboard backend: AI market analysis plus live
quotes from the vendor gateway.

Run with:
    uvicorn backend.main:app --reload --port 8000

Or use run_backend.py.
"""

from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from marketdesk import __version__
from marketdesk.logging import setup_logger
from marketdesk.websocket import FeedManager

logger = logging.getLogger(__name__)

# Import routers
from backend.routers import (
    market_data_router,
    analyze_router
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    feed = FeedManager.get_instance()
    setup_logger("marketdesk", diagnostics=feed.diagnostics)
    setup_logger("backend")

    logger.info("Starting dashboard backend...")
    if settings.FEED_AUTOSTART:
        feed.start()
    else:
        logger.info("Feed autostart disabled; POST /api/market/start to connect")

    yield  # Application runs here

    logger.info("Shutting down dashboard backend...")
    feed.stop()
    logger.info("Dashboard backend shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="AI Market Desk API",
    description="""
    Gemini-picked stocks with live quotes from the vendor gateway.

    ## Features
    - AI summary of market news with a stock pick-list
    - Live quote, trend and push subscription over the gateway WebSocket
    - Connection status and diagnostics log for the dashboard
    """,
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

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
    """Add X-Process-Time header to all responses"""
    start_time = time.time()
    response = await call_next(request)
    response.headers["X-Process-Time"] = str(time.time() - start_time)
    return response


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": str(exc),
            "detail": "An internal server error occurred"
        }
    )


# Include routers
app.include_router(
    market_data_router,
    prefix="/api/market",
    tags=["Market Data"]
)

app.include_router(
    analyze_router,
    prefix="/api/analyze",
    tags=["Analysis"]
)


@app.get("/health", tags=["System"])
async def health_check():
    """
    Health check endpoint.
    Returns service status and feed health.
    """
    feed = FeedManager.get_instance()
    status = feed.get_status()

    feed_health = {
        "status": "running" if status.running else "stopped",
        "state": status.state,
        "connected": status.connected,
        "instruments_with_data": status.instruments_with_data
    }

    return {
        "status": "healthy" if status.connected or not status.running else "degraded",
        "components": {"feed": feed_health}
    }


@app.get("/", tags=["System"])
async def root():
    """Root endpoint with API information"""
    return {
        "name": "AI Market Desk API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "analyze": "POST /api/analyze",
            "status": "GET /api/market/status",
            "quotes": "GET /api/market/quotes",
            "quote": "GET /api/market/quote/{code}",
            "logs": "GET /api/market/logs",
            "subscribe": "POST /api/market/subscribe",
            "watch": "POST /api/market/watch",
            "start": "POST /api/market/start",
            "stop": "POST /api/market/stop"
        }
    }
