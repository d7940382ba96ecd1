"""
Ticket Queue API - Main Application Entry Point

Waiting-list allocation engine for ticketed events:
- FIFO waiting list with time-limited purchase offers
- Concurrency-safe admission and promotion with optimistic locking
- In-process offer expiry timers backed by a periodic cleanup sweep
- Structured logging with request correlation and Prometheus metrics
"""

import asyncio
from contextlib import asynccontextmanager, suppress

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ticketqueue.core.config import get_settings
from ticketqueue.core.logging import setup_logging, get_logger
from ticketqueue.core.metrics import metrics_endpoint
from ticketqueue.api.exception_handlers import register_exception_handlers
from ticketqueue.api.middleware import RequestLoggingMiddleware
from ticketqueue.api.router import api_router
from ticketqueue.db.session import dispose_engine, get_session_factory
from ticketqueue.infrastructure.redis_client import get_redis, close_redis
from ticketqueue.services.maintenance_service import MaintenanceWorker
from ticketqueue.services.interfaces.expiry_scheduler import ExpiryScheduler
from ticketqueue.services.strategy_factory import get_expiry_scheduler, reset_expiry_scheduler

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
        rate_limit_backend=settings.RATE_LIMIT_BACKEND,
    )

    if settings.RATE_LIMIT_BACKEND == "redis":
        redis_client = await get_redis()
        if redis_client:
            logger.info("redis_ready")
        else:
            logger.warning("redis_unavailable", message="Rate limiting falls back to the database")

    scheduler = get_expiry_scheduler()
    await scheduler.start()

    worker = None
    worker_task = None
    if settings.CLEANUP_ENABLED:
        worker = MaintenanceWorker(get_session_factory(), scheduler)
        worker_task = asyncio.create_task(worker.run_forever(), name="maintenance-worker")

    yield

    # Cleanup
    if worker is not None:
        worker.stop()
        worker_task.cancel()
        with suppress(asyncio.CancelledError):
            await worker_task
    await scheduler.shutdown()
    reset_expiry_scheduler()
    await close_redis()
    await dispose_engine()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Event ticket waiting list with time-limited purchase offers",
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

# Custom middleware
app.add_middleware(RequestLoggingMiddleware)

register_exception_handlers(app)

# Routes
app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check(scheduler: ExpiryScheduler = Depends(get_expiry_scheduler)):
    """Health check endpoint for Docker and load balancers."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "pending_expiry_jobs": getattr(scheduler, "pending", None),
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
