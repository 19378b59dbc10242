"""Health check endpoint."""

from fastapi import APIRouter

from app.media.ytdlp import check_ytdlp

router = APIRouter()

# Set by main.py during lifespan
_worker_command = ("yt-dlp",)


def set_worker_command(command):
    global _worker_command
    _worker_command = tuple(command)


@router.get("/health")
async def health_check():
    """Service status and whether the yt-dlp worker is usable."""
    installed = await check_ytdlp(_worker_command)
    return {
        "status": "ok",
        "ytdlpInstalled": installed,
        "message": (
            "Server is ready"
            if installed
            else "yt-dlp is not installed. Please install it: "
            "https://github.com/yt-dlp/yt-dlp#installation"
        ),
    }
