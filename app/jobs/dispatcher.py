"""Job dispatcher interface."""

from abc import ABC, abstractmethod
from typing import List, Optional

from app.jobs.models import JobRecord


class JobDispatcher(ABC):
    """Abstract interface for starting and tracking download jobs."""

    @abstractmethod
    async def submit(self, url: str, requested_format: str) -> JobRecord:
        """Start a job. Returns its initial record without waiting for the worker."""
        ...

    @abstractmethod
    async def get_status(self, job_id: str) -> Optional[JobRecord]:
        """Get current snapshot of a job."""
        ...

    @abstractmethod
    async def list_jobs(self) -> List[JobRecord]:
        """Snapshot of every known job."""
        ...

    @abstractmethod
    async def cancel(self, job_id: str) -> bool:
        """Stop a running job. Returns False if there was nothing to stop."""
        ...

    @abstractmethod
    async def start(self) -> None:
        """Start the dispatcher."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop the dispatcher gracefully."""
        ...
