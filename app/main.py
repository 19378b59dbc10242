"""Video Downloader Backend - FastAPI application."""

import logging
import shlex
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.api.v1.router import api_router, ws_router
from app.api.v1 import downloads as downloads_api
from app.api.v1 import events as events_api
from app.api.v1 import health as health_api
from app.api.v1 import info as info_api
from app.jobs.broadcaster import EventBroadcaster
from app.jobs.orchestrator import DownloadOrchestrator
from app.jobs.store import JobStore
from app.media.ytdlp import check_ytdlp
from app.storage.artifacts import ArtifactStore

logger = logging.getLogger("app")


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def worker_command() -> list:
    return shlex.split(settings.ytdlp_binary)


def build_orchestrator() -> DownloadOrchestrator:
    store = JobStore()
    artifacts = ArtifactStore(
        settings.downloads_dir,
        store,
        grace_seconds=settings.cleanup_grace_seconds,
        ttl_hours=settings.stale_artifact_ttl_hours,
    )
    return DownloadOrchestrator(
        store=store,
        broadcaster=EventBroadcaster(max_pending=settings.observer_queue_size),
        artifacts=artifacts,
        command=worker_command(),
        default_format=settings.default_format,
    )


# Global orchestrator reference
_orchestrator = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    global _orchestrator

    logger.info("Starting Video Downloader Backend on port %s", settings.port)
    logger.info("Downloads dir: %s", settings.downloads_dir)

    _orchestrator = build_orchestrator()
    await _orchestrator.start()
    _orchestrator.artifacts.cleanup_expired()
    _orchestrator.artifacts.start_sweeper(settings.sweep_interval_seconds)

    command = worker_command()
    if await check_ytdlp(command):
        logger.info("yt-dlp is installed and ready")
    else:
        logger.warning(
            "yt-dlp is not installed (tried %r). Install it with `pip install yt-dlp` "
            "or see https://github.com/yt-dlp/yt-dlp#installation",
            settings.ytdlp_binary,
        )

    # Wire orchestrator and broadcaster into API endpoints
    downloads_api.set_dispatcher(_orchestrator)
    events_api.set_broadcaster(_orchestrator.broadcaster)
    health_api.set_worker_command(command)
    info_api.configure(command, timeout=settings.info_timeout_seconds)

    yield

    # Shutdown
    logger.info("Shutting down Video Downloader Backend")
    await _orchestrator.stop()
    _orchestrator.artifacts.cleanup_expired()
    downloads_api.set_dispatcher(None)
    events_api.set_broadcaster(None)


configure_logging()

app = FastAPI(
    title="Video Downloader Service",
    description="Runs yt-dlp downloads and streams their progress over a websocket",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(api_router)  # All /api/* endpoints
app.include_router(ws_router)  # Progress websocket at /ws and /
