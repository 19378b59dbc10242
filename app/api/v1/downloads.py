"""Download API: start jobs, poll status, list jobs, fetch the finished file."""

from typing import Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask
from pydantic import BaseModel

from app.errors import ArtifactNotFound, ValidationError

router = APIRouter()

# Set by main.py during lifespan
_dispatcher = None


def set_dispatcher(dispatcher):
    global _dispatcher
    _dispatcher = dispatcher


def _require_dispatcher():
    if _dispatcher is None:
        raise HTTPException(status_code=503, detail="Download service not initialized")
    return _dispatcher


class DownloadRequest(BaseModel):
    url: Optional[str] = None
    format: Optional[str] = None


class DownloadResponse(BaseModel):
    downloadId: str
    status: str


@router.post("/download", response_model=DownloadResponse)
async def start_download(request: DownloadRequest):
    """Start a download. Returns immediately; progress arrives over the websocket."""
    dispatcher = _require_dispatcher()
    try:
        job = await dispatcher.submit(request.url or "", request.format)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return DownloadResponse(downloadId=job.id, status=job.status.value)


@router.get("/download/{job_id}/status")
async def get_download_status(job_id: str):
    dispatcher = _require_dispatcher()
    job = await dispatcher.get_status(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Download not found")
    return job.to_response()


@router.get("/downloads")
async def list_downloads():
    dispatcher = _require_dispatcher()
    return [job.to_response() for job in await dispatcher.list_jobs()]


@router.post("/download/{job_id}/cancel")
async def cancel_download(job_id: str):
    dispatcher = _require_dispatcher()
    if await dispatcher.get_status(job_id) is None:
        raise HTTPException(status_code=404, detail="Download not found")
    cancelled = await dispatcher.cancel(job_id)
    return {"downloadId": job_id, "cancelled": cancelled}


@router.get("/download/{job_id}/file")
async def download_file(job_id: str):
    """Stream the finished file. It is deleted shortly after the transfer ends."""
    dispatcher = _require_dispatcher()
    try:
        artifact = dispatcher.artifacts.open(job_id)
    except ArtifactNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

    headers = {
        "Content-Disposition": f'attachment; filename="{_ascii_filename(artifact.filename)}"',
        "Content-Length": str(artifact.size),
    }
    return StreamingResponse(
        artifact.iter_bytes(),
        media_type="application/octet-stream",
        headers=headers,
        background=BackgroundTask(artifact.aclose),
    )


def _ascii_filename(filename: str) -> str:
    return filename.encode("ascii", "replace").decode("ascii").replace('"', "'")
