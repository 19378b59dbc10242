"""Runs one yt-dlp worker process per job and reports what it does."""

import asyncio
import logging
from typing import Callable, List, Optional, Sequence

from app.errors import WorkerFailure, WorkerSpawnError
from app.jobs.models import JobRecord, ProgressEvent
from app.jobs.parser import OutputParser
from app.storage.artifacts import ArtifactStore

logger = logging.getLogger(__name__)

EventSink = Callable[[ProgressEvent], None]

READ_SIZE = 4096
STDERR_TAIL_CHARS = 4000
TERMINATE_TIMEOUT = 5.0

CANCELLED_MESSAGE = "Download cancelled"


class RunHandle:
    """Handle to one in-flight worker run.

    The run ends exactly once: with the artifact path, or with
    WorkerSpawnError / WorkerFailure / CancelledError.
    """

    def __init__(self, job_id: str, task: asyncio.Task):
        self.job_id = job_id
        self._task = task

    def cancel(self) -> bool:
        """Terminate the worker. Returns False if the run already finished."""
        if self._task.done():
            return False
        return self._task.cancel()

    def done(self) -> bool:
        return self._task.done()

    async def wait(self) -> str:
        return await self._task

    def add_done_callback(self, fn: Callable[["RunHandle"], None]) -> None:
        self._task.add_done_callback(lambda _task: fn(self))

    def exception(self) -> Optional[BaseException]:
        if self._task.cancelled():
            return asyncio.CancelledError()
        return self._task.exception()


class ProcessRunner:
    """Spawns the worker, feeds its stdout through the parser and forwards
    every event to ``on_event`` in the order it was produced."""

    def __init__(
        self,
        artifacts: ArtifactStore,
        on_event: EventSink,
        command: Optional[Sequence[str]] = None,
    ):
        self._artifacts = artifacts
        self._on_event = on_event
        self._command = list(command) if command else ["yt-dlp"]

    def build_args(self, job: JobRecord) -> List[str]:
        return self._command + [
            "-f", job.requested_format,
            "-o", self._artifacts.output_template(job.id),
            "--newline",
            "--no-warnings",
            "--",
            job.source_url,
        ]

    def run(self, job: JobRecord) -> RunHandle:
        task = asyncio.get_running_loop().create_task(self._run(job))
        return RunHandle(job.id, task)

    async def _run(self, job: JobRecord) -> str:
        parser = OutputParser(job.id)
        args = self.build_args(job)
        logger.info("Starting worker for download %s: %s", job.id, job.source_url)

        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (OSError, ValueError) as e:
            message = f"Failed to start {args[0]}: {e}"
            logger.warning("Download %s: %s", job.id, message)
            self._on_event(ProgressEvent.error(job.id, message))
            raise WorkerSpawnError(message) from e
        except asyncio.CancelledError:
            logger.info("Download %s cancelled before the worker started", job.id)
            self._on_event(ProgressEvent.error(job.id, CANCELLED_MESSAGE))
            raise

        stderr_task = asyncio.ensure_future(_read_stderr(proc.stderr, job.id))
        try:
            while True:
                chunk = await proc.stdout.read(READ_SIZE)
                if not chunk:
                    break
                for event in parser.feed(chunk):
                    self._on_event(event)
            for event in parser.flush():
                self._on_event(event)
            returncode = await proc.wait()
            stderr_text = await stderr_task
        except asyncio.CancelledError:
            stderr_task.cancel()
            await _terminate(proc)
            logger.info("Download %s cancelled", job.id)
            self._on_event(ProgressEvent.error(job.id, CANCELLED_MESSAGE))
            raise

        if returncode != 0:
            message = stderr_text.strip() or f"Download failed (exit code {returncode})"
            logger.warning("Download %s failed with exit code %s", job.id, returncode)
            self._on_event(ProgressEvent.error(job.id, message))
            raise WorkerFailure(message)

        path = self._artifacts.locate(job.id)
        if path is None:
            message = (
                f"Worker exited successfully but no file starting with "
                f"'{job.id}_' was found in {self._artifacts.base_dir}"
            )
            if parser.output_path:
                message += f" (worker reported {parser.output_path})"
            logger.warning("Download %s: %s", job.id, message)
            self._on_event(ProgressEvent.error(job.id, message))
            raise WorkerFailure(message)

        if parser.output_path and parser.output_path != path:
            logger.debug(
                "Download %s: worker reported %s, using %s", job.id, parser.output_path, path
            )
        logger.info("Download %s complete: %s", job.id, path)
        self._on_event(ProgressEvent.complete(job.id, path))
        return path


async def _read_stderr(stream: asyncio.StreamReader, job_id: str) -> str:
    tail = ""
    while True:
        chunk = await stream.read(READ_SIZE)
        if not chunk:
            return tail
        text = chunk.decode("utf-8", errors="replace")
        logger.debug("yt-dlp stderr [%s]: %s", job_id, text.rstrip())
        tail = (tail + text)[-STDERR_TAIL_CHARS:]


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is not None:
        return
    try:
        proc.terminate()
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(proc.wait(), timeout=TERMINATE_TIMEOUT)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
