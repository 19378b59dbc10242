"""Downloaded artifact storage: discovery, one-shot serving, deferred cleanup."""

import asyncio
import logging
import os
import time
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Callable, Dict, Optional

import aiofiles

from app.errors import ArtifactNotFound
from app.jobs.models import JobStatus
from app.jobs.store import JobStore

logger = logging.getLogger(__name__)

# yt-dlp leaves these behind while a download or merge is still running
_TEMP_SUFFIXES = (".part", ".ytdl", ".temp")

CHUNK_SIZE = 64 * 1024


class ArtifactStream:
    """An artifact opened for transfer.

    Iterating ``iter_bytes`` streams the file; when iteration ends, for any
    reason, ``on_done`` fires once.
    """

    def __init__(self, job_id: str, path: str, on_done: Callable[[], None]):
        self.job_id = job_id
        self.path = path
        self.filename = os.path.basename(path)
        try:
            self.size = os.path.getsize(path)
        except FileNotFoundError:
            raise ArtifactNotFound(f"File for download {job_id} not found on disk")
        self._on_done = on_done
        self._finished = False

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        try:
            async with aiofiles.open(self.path, "rb") as f:
                while True:
                    chunk = await f.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    yield chunk
        finally:
            self.finish()

    async def aclose(self) -> None:
        self.finish()

    def finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        self._on_done()


class ArtifactStore:
    """Owns the shared downloads directory.

    Every job writes files prefixed with ``<job_id>_``, which is what lets
    concurrent jobs share the directory without colliding.
    """

    def __init__(
        self,
        base_dir: str,
        store: JobStore,
        grace_seconds: float = 5.0,
        ttl_hours: int = 2,
    ):
        self._base_dir = os.path.abspath(base_dir)
        self._store = store
        self._grace_seconds = grace_seconds
        self._ttl_seconds = ttl_hours * 3600
        self._pending: Dict[str, asyncio.Task] = {}
        self._sweeper: Optional[asyncio.Task] = None

    @property
    def base_dir(self) -> str:
        return self._base_dir

    def ensure_dir(self) -> None:
        os.makedirs(self._base_dir, exist_ok=True)

    def output_template(self, job_id: str) -> str:
        """yt-dlp ``-o`` template for a job. Always embeds the job id."""
        return os.path.join(self._base_dir, f"{job_id}_%(title)s.%(ext)s")

    def locate(self, job_id: str) -> Optional[str]:
        """Find the file a job produced, or None."""
        if not os.path.isdir(self._base_dir):
            return None
        prefix = f"{job_id}_"
        for entry in sorted(os.listdir(self._base_dir)):
            if not entry.startswith(prefix) or entry.endswith(_TEMP_SUFFIXES):
                continue
            path = os.path.join(self._base_dir, entry)
            if os.path.isfile(path):
                return path
        return None

    def open(self, job_id: str) -> ArtifactStream:
        """Open a completed job's artifact for transfer.

        Raises ArtifactNotFound if the job is unknown, not complete, or its
        file is gone. Cleanup is scheduled once the transfer ends.
        """
        job = self._store.get(job_id)
        if job is None:
            raise ArtifactNotFound(f"Download {job_id} not found")
        if job.status != JobStatus.COMPLETE or not job.artifact_path:
            raise ArtifactNotFound(f"Download {job_id} is not complete")
        path = job.artifact_path
        if not os.path.isfile(path):
            raise ArtifactNotFound(f"File for download {job_id} not found on disk")
        return ArtifactStream(job_id, path, lambda: self.schedule_cleanup(job_id, path))

    def schedule_cleanup(self, job_id: str, path: str) -> Optional[asyncio.Task]:
        """Delete ``path`` and evict the job after the grace period.

        Scheduling twice for the same job keeps the first pending action.
        """
        existing = self._pending.get(job_id)
        if existing is not None and not existing.done():
            return existing
        task = asyncio.get_running_loop().create_task(self._cleanup_after(job_id, path))
        self._pending[job_id] = task
        return task

    async def _cleanup_after(self, job_id: str, path: str) -> None:
        try:
            await asyncio.sleep(self._grace_seconds)
            self.cleanup(job_id, path)
        finally:
            if self._pending.get(job_id) is asyncio.current_task():
                del self._pending[job_id]

    def cleanup(self, job_id: str, path: str) -> None:
        """Delete the artifact and evict the job. Missing pieces are fine."""
        if delete_file(path):
            logger.info("Deleted artifact for download %s: %s", job_id, path)
        self._store.remove(job_id)

    def pending_cleanups(self) -> int:
        return sum(1 for t in self._pending.values() if not t.done())

    def start_sweeper(self, interval_seconds: float) -> asyncio.Task:
        """Run ``cleanup_expired`` every ``interval_seconds`` until shutdown."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(
                self._sweep_loop(interval_seconds)
            )
        return self._sweeper

    async def _sweep_loop(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            self.cleanup_expired()

    async def shutdown(self) -> None:
        """Run every pending cleanup now instead of waiting out its grace period."""
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
        tasks = list(self._pending.items())
        for _, task in tasks:
            task.cancel()
        for job_id, task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            job = self._store.get(job_id)
            if job is not None and job.artifact_path:
                self.cleanup(job_id, job.artifact_path)
        self._pending.clear()

    def evict_expired_jobs(self) -> int:
        """Drop finished jobs older than the TTL that were never served.

        Returns count of evicted jobs.
        """
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=self._ttl_seconds)
        evicted = 0
        for job in self._store.list():
            if not job.is_terminal or job.completed_at is None or job.completed_at > cutoff:
                continue
            if job.id in self._pending:
                continue
            if job.artifact_path:
                delete_file(job.artifact_path)
            self._store.remove(job.id)
            evicted += 1
        if evicted:
            logger.info("Evicted %d expired download(s)", evicted)
        return evicted

    def cleanup_expired(self) -> int:
        """Evict expired jobs, then remove files older than the TTL.

        Returns count of removed files.
        """
        self.evict_expired_jobs()
        now = time.time()
        removed = 0
        if not os.path.exists(self._base_dir):
            return 0
        for entry in os.listdir(self._base_dir):
            path = os.path.join(self._base_dir, entry)
            if not os.path.isfile(path):
                continue
            try:
                mtime = os.path.getmtime(path)
            except FileNotFoundError:
                continue
            if now - mtime > self._ttl_seconds and delete_file(path):
                removed += 1
        if removed:
            logger.info("Removed %d stale file(s) from %s", removed, self._base_dir)
        return removed


def delete_file(path: str) -> bool:
    """Remove ``path``. Returns False if it was already gone."""
    try:
        os.remove(path)
    except FileNotFoundError:
        return False
    return True
