"""Download orchestrator: the entry point for starting and tracking jobs.

Each job gets its own worker process; nothing serializes jobs against each
other. Worker events are folded into the job store first and then
published, so a query made after an observer sees an event reflects it.
"""

import asyncio
import logging
import re
import uuid
from typing import Callable, Dict, List, Optional, Sequence

from app.errors import ValidationError, WorkerFailure, WorkerSpawnError
from app.jobs.broadcaster import EventBroadcaster
from app.jobs.dispatcher import JobDispatcher
from app.jobs.models import JobRecord, ProgressEvent
from app.jobs.runner import CANCELLED_MESSAGE, ProcessRunner, RunHandle
from app.jobs.store import JobStore
from app.storage.artifacts import ArtifactStore

logger = logging.getLogger(__name__)

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]")


def _new_job_id() -> str:
    return str(uuid.uuid4())


class DownloadOrchestrator(JobDispatcher):
    """Wires the job store, worker runner and broadcaster together."""

    def __init__(
        self,
        store: JobStore,
        broadcaster: EventBroadcaster,
        artifacts: ArtifactStore,
        command: Optional[Sequence[str]] = None,
        default_format: str = "best",
        id_factory: Callable[[], str] = _new_job_id,
    ):
        self.store = store
        self.broadcaster = broadcaster
        self.artifacts = artifacts
        self._runner = ProcessRunner(artifacts, on_event=self._handle_event, command=command)
        self._default_format = default_format
        self._id_factory = id_factory
        self._runs: Dict[str, RunHandle] = {}

    async def start(self) -> None:
        self.artifacts.ensure_dir()

    async def stop(self) -> None:
        handles = list(self._runs.values())
        for handle in handles:
            handle.cancel()
        for handle in handles:
            try:
                await handle.wait()
            except (asyncio.CancelledError, Exception):
                pass
        await self.artifacts.shutdown()
        self.broadcaster.close_all()

    async def submit(self, url: str, requested_format: Optional[str] = None) -> JobRecord:
        url = (url or "").strip()
        if not url:
            raise ValidationError("URL is required")
        if url.startswith("-"):
            raise ValidationError("URL must not start with '-'")
        if _CONTROL_CHARS_RE.search(url) or _CONTROL_CHARS_RE.search(requested_format or ""):
            raise ValidationError("URL and format must not contain control characters")
        requested_format = (requested_format or "").strip() or self._default_format

        job = self.store.create(self._id_factory(), url, requested_format)
        handle = self._runner.run(job)
        self._runs[job.id] = handle
        handle.add_done_callback(self._on_run_done)
        return job

    async def get_status(self, job_id: str) -> Optional[JobRecord]:
        return self.store.get(job_id)

    async def list_jobs(self) -> List[JobRecord]:
        return self.store.list()

    async def cancel(self, job_id: str) -> bool:
        handle = self._runs.get(job_id)
        if handle is None:
            return False
        return handle.cancel()

    async def wait(self, job_id: str) -> Optional[str]:
        """Wait for a job's worker to finish. Returns the artifact path or None."""
        handle = self._runs.get(job_id)
        if handle is None:
            job = self.store.get(job_id)
            return job.artifact_path if job else None
        try:
            return await handle.wait()
        except (asyncio.CancelledError, Exception):
            return None

    def active_count(self) -> int:
        return sum(1 for h in self._runs.values() if not h.done())

    def _handle_event(self, event: ProgressEvent) -> None:
        applied = self.store.update(event.job_id, lambda job: job.apply(event))
        if applied is False:
            logger.debug("Dropping %s event for finished download %s", event.kind.value, event.job_id)
            return
        self.broadcaster.publish(event)

    def _on_run_done(self, handle: RunHandle) -> None:
        self._runs.pop(handle.job_id, None)
        error = handle.exception()
        if isinstance(error, asyncio.CancelledError):
            # A run cancelled before it started never reported anything
            self._handle_event(ProgressEvent.error(handle.job_id, CANCELLED_MESSAGE))
        elif isinstance(error, (WorkerSpawnError, WorkerFailure)):
            # Already recorded on the job and broadcast; nothing to raise to.
            logger.debug("Run for download %s ended with %s", handle.job_id, error)
        elif error is not None:
            logger.error("Run for download %s crashed: %r", handle.job_id, error)
            self._handle_event(
                ProgressEvent.error(handle.job_id, f"{type(error).__name__}: {error}")
            )
