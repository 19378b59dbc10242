"""yt-dlp metadata lookup and availability check."""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from app.errors import MetadataLookupError
from app.jobs.models import FormatOption, VideoInfo

logger = logging.getLogger(__name__)

MAX_FORMAT_OPTIONS = 10

BEST_FORMAT = FormatOption(
    format_id="best",
    quality_label="Best Quality",
    extension="mp4",
    has_audio=True,
    has_video=True,
)


async def _run(command: Sequence[str], timeout: Optional[float] = None):
    proc = await asyncio.create_subprocess_exec(
        *command,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise
    return proc.returncode, stdout.decode("utf-8", errors="replace"), stderr.decode(
        "utf-8", errors="replace"
    )


async def check_ytdlp(command: Sequence[str] = ("yt-dlp",)) -> bool:
    """True if the worker binary runs and reports a version."""
    try:
        returncode, _, _ = await _run([*command, "--version"], timeout=30)
    except (OSError, asyncio.TimeoutError):
        return False
    return returncode == 0


async def get_video_info(
    url: str,
    command: Sequence[str] = ("yt-dlp",),
    timeout: Optional[float] = 60.0,
) -> VideoInfo:
    """Resolve a URL to title, thumbnail, duration and a short format list."""
    args = [*command, "--dump-json", "--no-download", "--no-warnings", "--", url]
    try:
        returncode, stdout, stderr = await _run(args, timeout=timeout)
    except OSError as e:
        raise MetadataLookupError(f"yt-dlp not found: {e}") from e
    except ValueError as e:
        raise MetadataLookupError(f"Invalid URL: {e}") from e
    except asyncio.TimeoutError:
        raise MetadataLookupError("Timed out getting video info")

    if returncode != 0:
        raise MetadataLookupError(stderr.strip() or "Failed to get video info")

    try:
        info = json.loads(stdout)
    except json.JSONDecodeError:
        raise MetadataLookupError("Failed to parse video info")
    if not isinstance(info, dict):
        raise MetadataLookupError("Failed to parse video info")

    return VideoInfo(
        id=info.get("id"),
        title=info.get("title"),
        thumbnail=info.get("thumbnail"),
        duration=info.get("duration"),
        uploader=info.get("uploader") or info.get("channel"),
        platform=info.get("extractor_key") or detect_platform(url),
        formats=extract_formats(info.get("formats") or []),
        original_url=url,
    )


def detect_platform(url: str) -> str:
    if "youtube.com" in url or "youtu.be" in url:
        return "YouTube"
    if "tiktok.com" in url:
        return "TikTok"
    return "Unknown"


def extract_formats(formats: List[Dict[str, Any]]) -> List[FormatOption]:
    """Reduce yt-dlp's raw format list to one option per height/container.

    Highest quality first, led by a synthetic "best" selector.
    """
    simplified = []
    seen = set()
    for f in formats:
        height = f.get("height")
        ext = f.get("ext")
        if not height or not ext:
            continue
        key = f"{height}p-{ext}"
        if key in seen:
            continue
        seen.add(key)
        size = f.get("filesize") or f.get("filesize_approx")
        simplified.append((
            int(height),
            FormatOption(
                format_id=str(f.get("format_id", "")),
                quality_label=f"{height}p",
                extension=ext,
                approx_size_bytes=int(size) if size else None,
                has_audio=f.get("acodec") != "none",
                has_video=f.get("vcodec") != "none",
            ),
        ))

    simplified.sort(key=lambda item: item[0], reverse=True)
    options = [BEST_FORMAT.model_copy()] + [option for _, option in simplified]
    return options[:MAX_FORMAT_OPTIONS]
