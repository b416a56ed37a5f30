from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import uvicorn
import logging

from .config import get_settings
from .core.exceptions import StandupError
from .database import async_session, init_models
from .api.v1.errors import standup_error_handler
from .api.v1.router import api_router
from .integrations import build_publishers
from .integrations.slack_client import SlackClient, SlackConfig
from .services.session_cache import SessionCache
from .utils.logging import setup_logging
from .utils.time import utcnow
from .workers import CleanupWorker, DeliveryWorker, PeriodicWorker, Scheduler


settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup
    setup_logging(settings.log_level)
    logger = logging.getLogger(__name__)
    logger.info("Starting Standup Scribe")

    await init_models()

    slack = SlackClient(SlackConfig(
        bot_token=settings.slack_bot_token,
        signing_secret=settings.slack_signing_secret
    ))
    publishers = build_publishers(settings, slack)
    cache = SessionCache()

    app.state.settings = settings
    app.state.clock = utcnow
    app.state.session_cache = cache
    app.state.slack = slack
    app.state.messaging = slack
    app.state.publishers = publishers
    app.state.delivery_worker = DeliveryWorker(
        async_session,
        publishers,
        batch_size=settings.delivery_batch_size,
        max_attempts=settings.max_delivery_attempts,
        backoff_minutes=settings.delivery_backoff_minutes
    )
    logger.info(f"Delivery destinations available: {sorted(publishers)}")

    workers = []
    if settings.enable_scheduled_tasks:
        workers = [
            PeriodicWorker(
                "scheduler",
                settings.scheduler_interval_seconds,
                Scheduler(async_session, slack, cache=cache).tick
            ),
            PeriodicWorker(
                "delivery",
                settings.delivery_interval_seconds,
                app.state.delivery_worker.tick
            ),
            PeriodicWorker(
                "cleanup",
                settings.cleanup_interval_seconds,
                CleanupWorker(async_session, cleanup_hour=settings.cleanup_hour).tick
            ),
        ]
        for worker in workers:
            worker.start()

    yield

    # Shutdown
    for worker in workers:
        await worker.stop()
    for publisher in publishers.values():
        client = getattr(publisher, "client", None)
        if client is not None:
            await client.close()
    await slack.close()
    logger.info("Shutting down Standup Scribe")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Scheduled standup collection bot with multi-destination reports",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["*"],
)

app.add_exception_handler(StandupError, standup_error_handler)

# Include API routes
app.include_router(api_router, prefix="/api/v1")

# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "version": settings.app_version,
        "timestamp": utcnow().isoformat() + "Z"
    }


if __name__ == "__main__":
    uvicorn.run(
        "standup_scribe.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
