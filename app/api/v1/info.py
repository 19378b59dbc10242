"""Video metadata lookup endpoint."""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from app.errors import MetadataLookupError
from app.media.ytdlp import get_video_info

logger = logging.getLogger(__name__)

router = APIRouter()

# Set by main.py during lifespan (same pattern as health.py)
_worker_command = ("yt-dlp",)
_timeout: Optional[float] = 60.0


def configure(command, timeout: Optional[float] = None):
    global _worker_command, _timeout
    _worker_command = tuple(command)
    _timeout = timeout


class InfoRequest(BaseModel):
    url: Optional[str] = None


@router.post("/info")
async def video_info(request: InfoRequest):
    """Resolve a URL to title, thumbnail, duration and available formats."""
    url = (request.url or "").strip()
    if not url:
        raise HTTPException(status_code=400, detail="URL is required")

    try:
        info = await get_video_info(url, command=_worker_command, timeout=_timeout)
    except MetadataLookupError as e:
        logger.warning("Error getting video info for %s: %s", url, e)
        raise HTTPException(status_code=500, detail=str(e))
    return info.to_response()
