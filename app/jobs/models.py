"""Job record and progress event data models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    STARTING = "starting"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    FAILED = "failed"


TERMINAL_STATUSES = (JobStatus.COMPLETE, JobStatus.FAILED)


class EventKind(str, Enum):
    PROGRESS = "progress"
    COMPLETE = "complete"
    ERROR = "error"


class ProgressEvent(BaseModel):
    """One structured update parsed from, or derived from, a worker run."""
    job_id: str
    kind: EventKind
    percent: Optional[float] = None
    artifact_path: Optional[str] = None
    error_message: Optional[str] = None

    @classmethod
    def progress(cls, job_id: str, percent: float) -> "ProgressEvent":
        return cls(job_id=job_id, kind=EventKind.PROGRESS, percent=percent)

    @classmethod
    def complete(cls, job_id: str, artifact_path: str) -> "ProgressEvent":
        return cls(
            job_id=job_id,
            kind=EventKind.COMPLETE,
            percent=100.0,
            artifact_path=artifact_path,
        )

    @classmethod
    def error(cls, job_id: str, message: str) -> "ProgressEvent":
        return cls(job_id=job_id, kind=EventKind.ERROR, error_message=message)

    @property
    def is_terminal(self) -> bool:
        return self.kind in (EventKind.COMPLETE, EventKind.ERROR)

    def to_message(self) -> Dict[str, Any]:
        """Wire form pushed to observers: {type, downloadId, ...fields}."""
        message: Dict[str, Any] = {"type": self.kind.value, "downloadId": self.job_id}
        if self.percent is not None:
            message["progress"] = self.percent
        if self.artifact_path is not None:
            message["file"] = self.artifact_path
        if self.error_message is not None:
            message["error"] = self.error_message
        return message


class JobRecord(BaseModel):
    """Tracks the lifecycle of one requested download.

    Transitions: starting -> in_progress -> {complete | failed}. A job may
    also go straight from starting to a terminal state. Nothing leaves a
    terminal state.
    """
    id: str
    source_url: str
    requested_format: str
    status: JobStatus = JobStatus.STARTING
    progress_percent: float = 0.0
    artifact_path: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def apply(self, event: ProgressEvent) -> bool:
        """Fold an event into this record. Returns False if it was ignored."""
        if self.is_terminal:
            return False

        if event.kind == EventKind.PROGRESS:
            self.status = JobStatus.IN_PROGRESS
            if event.percent is not None and event.percent > self.progress_percent:
                self.progress_percent = event.percent
            return True

        if event.kind == EventKind.COMPLETE:
            self.status = JobStatus.COMPLETE
            self.progress_percent = 100.0
            self.artifact_path = event.artifact_path
        else:
            self.status = JobStatus.FAILED
            self.failure_reason = event.error_message or "Download failed"
        self.completed_at = _utcnow()
        return True

    def to_response(self) -> Dict[str, Any]:
        response: Dict[str, Any] = {
            "id": self.id,
            "url": self.source_url,
            "format": self.requested_format,
            "status": self.status.value,
            "progress": self.progress_percent,
            "startedAt": self.created_at.isoformat(),
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
        }
        if self.status == JobStatus.COMPLETE:
            response["file"] = self.artifact_path
        if self.status == JobStatus.FAILED:
            response["error"] = self.failure_reason
        return response


class FormatOption(BaseModel):
    format_id: str
    quality_label: str
    extension: str
    approx_size_bytes: Optional[int] = None
    has_audio: bool = True
    has_video: bool = True

    def to_response(self) -> Dict[str, Any]:
        return {
            "formatId": self.format_id,
            "quality": self.quality_label,
            "ext": self.extension,
            "filesize": self.approx_size_bytes,
            "hasAudio": self.has_audio,
            "hasVideo": self.has_video,
        }


class VideoInfo(BaseModel):
    """Metadata resolved for a URL before a download is started."""
    id: Optional[str] = None
    title: Optional[str] = None
    thumbnail: Optional[str] = None
    duration: Optional[float] = None
    uploader: Optional[str] = None
    platform: str = "Unknown"
    formats: List[FormatOption] = Field(default_factory=list)
    original_url: str

    def to_response(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "thumbnail": self.thumbnail,
            "duration": self.duration,
            "uploader": self.uploader,
            "platform": self.platform,
            "formats": [f.to_response() for f in self.formats],
            "originalUrl": self.original_url,
        }
