"""Concurrency-safe in-memory job table."""

import logging
import threading
from typing import Callable, Dict, List, Optional, TypeVar

from app.errors import DuplicateJobError
from app.jobs.models import JobRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")


class JobStore:
    """Sole owner of job state.

    Readers always get copies; writers go through ``update`` which runs the
    mutator under a per-job lock, so updates to one job serialize while
    updates to different jobs do not contend beyond the table lookup.
    """

    def __init__(self):
        self._jobs: Dict[str, JobRecord] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._table_lock = threading.Lock()

    def create(self, job_id: str, url: str, requested_format: str) -> JobRecord:
        record = JobRecord(id=job_id, source_url=url, requested_format=requested_format)
        with self._table_lock:
            if job_id in self._jobs:
                raise DuplicateJobError(f"Job {job_id} already exists")
            self._jobs[job_id] = record
            self._locks[job_id] = threading.Lock()
        return record.model_copy()

    def update(self, job_id: str, mutator: Callable[[JobRecord], T]) -> Optional[T]:
        """Apply ``mutator`` to the live record atomically.

        Returns the mutator's result, or None if the job is gone. A missing
        job is not an error: it may have been evicted while an update for it
        was still in flight.
        """
        with self._table_lock:
            record = self._jobs.get(job_id)
            lock = self._locks.get(job_id)
        if record is None or lock is None:
            logger.debug("Ignoring update for unknown job %s", job_id)
            return None
        with lock:
            return mutator(record)

    def get(self, job_id: str) -> Optional[JobRecord]:
        with self._table_lock:
            record = self._jobs.get(job_id)
            lock = self._locks.get(job_id)
        if record is None or lock is None:
            return None
        with lock:
            return record.model_copy()

    def list(self) -> List[JobRecord]:
        with self._table_lock:
            items = [(self._jobs[k], self._locks[k]) for k in self._jobs]
        snapshot = []
        for record, lock in items:
            with lock:
                snapshot.append(record.model_copy())
        return snapshot

    def remove(self, job_id: str) -> Optional[JobRecord]:
        with self._table_lock:
            self._locks.pop(job_id, None)
            return self._jobs.pop(job_id, None)

    def __contains__(self, job_id: str) -> bool:
        with self._table_lock:
            return job_id in self._jobs

    def __len__(self) -> int:
        with self._table_lock:
            return len(self._jobs)
