"""Main FastAPI application for the replay registry."""

from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app import __version__
from app.core import db_manager, get_global_settings
from app.core.logging import get_logger, setup_logging
from app.features.relay import RelayGateway, build_relay_queue
from app.features.replays.router import router as replays_router

settings = get_global_settings()
setup_logging(settings.log_level, json_logs=not settings.debug)
logger = get_logger(__name__)


async def _start_relay_queue(app: FastAPI) -> None:
    """Start the relay worker pool; the API keeps serving if this fails."""
    if not settings.relay_enabled:
        logger.info("relay_disabled")
        return
    try:
        gateway = RelayGateway(settings.relay_url)
        queue = build_relay_queue(gateway, db_manager.get_session, settings.relay_workers)
        queue.start()
        app.state.relay_gateway = gateway
        app.state.relay_queue = queue
    except Exception as e:
        logger.error(
            "relay_queue_start_failed",
            error=str(e),
            error_type=type(e).__name__,
        )


async def _stop_relay_queue(app: FastAPI) -> None:
    queue = getattr(app.state, "relay_queue", None)
    gateway = getattr(app.state, "relay_gateway", None)
    try:
        if queue is not None:
            await queue.stop()
        if gateway is not None:
            await gateway.close()
    except Exception as e:
        logger.error(
            "relay_queue_stop_failed",
            error=str(e),
            error_type=type(e).__name__,
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting up replay registry")
    await _start_relay_queue(app)
    yield
    logger.info("Shutting down replay registry")
    await _stop_relay_queue(app)
    await db_manager.close()


tags_metadata = [
    {
        "name": "replays",
        "description": "Replay upload, fingerprint checks and the replay catalog.",
    },
    {
        "name": "health",
        "description": "Health check endpoint.",
    },
]

app = FastAPI(
    title="Replay Registry",
    description="Stores uploaded game replays, deduplicated by fingerprint, and serves the replay catalog.",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    openapi_tags=tags_metadata,
    lifespan=lifespan,
    debug=settings.debug,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(replays_router, prefix="/api/v1")


@app.get("/health", tags=["health"])
async def health_check() -> Dict[str, Any]:
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}
