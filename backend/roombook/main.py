"""
Room Booking API - Main Application Entry Point

A room-booking assistant backend demonstrating:
- A deterministic validator that gates every write, whoever proposed it
- A final availability re-check right before each insert
- Server-sent events that push every booking change to connected clients
- Structured logging with request correlation
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from roombook.core.config import get_settings
from roombook.core.logging import setup_logging, get_logger
from roombook.core.metrics import metrics_endpoint
from roombook.api.router import api_router
from roombook.api.middleware import RequestLoggingMiddleware
from roombook.services.broadcaster import EventBroadcaster
from roombook.services.cache_service import get_redis, close_redis, get_cache_stats
from roombook.services.change_source import ChangeSource
from roombook.services.strategy_factory import get_change_feed

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        change_feed=settings.CHANGE_FEED,
        proposal_source=settings.PROPOSAL_SOURCE,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without schedule cache")

    broadcaster = EventBroadcaster(
        heartbeat_interval=settings.SSE_HEARTBEAT_SECONDS,
        queue_size=settings.SSE_QUEUE_SIZE,
    )
    broadcaster.start()
    change_source = ChangeSource(broadcaster, get_change_feed(settings))
    await change_source.start()

    app.state.broadcaster = broadcaster
    app.state.change_source = change_source

    yield

    # Cleanup
    await change_source.stop()
    await broadcaster.close()
    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Room booking API with deterministic conflict checks and live updates",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    broadcaster = getattr(app.state, "broadcaster", None)
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": cache_stats,
        "sse_channels": broadcaster.channel_count if broadcaster else 0,
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
