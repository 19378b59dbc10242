"""Aggregate all API routers."""

from fastapi import APIRouter
from app.api.v1.health import router as health_router
from app.api.v1.info import router as info_router
from app.api.v1.downloads import router as downloads_router
from app.api.v1.events import router as events_router, progress_socket

api_router = APIRouter(prefix="/api")
api_router.include_router(health_router, tags=["health"])
api_router.include_router(info_router, tags=["info"])
api_router.include_router(downloads_router, tags=["downloads"])

# Progress websocket at /ws, plus the server root for clients that connect
# to ws://host:port directly
ws_router = APIRouter()
ws_router.include_router(events_router, tags=["events"])
ws_router.add_api_websocket_route("/", progress_socket)
