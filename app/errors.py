"""Error taxonomy for the download service."""


class DownloaderError(Exception):
    """Base class for all service errors."""


class ValidationError(DownloaderError):
    """Missing or malformed request input. Raised before any job is created."""


class DuplicateJobError(DownloaderError):
    """A job with the same identifier already exists in the store."""


class WorkerSpawnError(DownloaderError):
    """The external worker process could not be launched."""


class WorkerFailure(DownloaderError):
    """The worker exited nonzero, or exited zero without producing an artifact."""


class ArtifactNotFound(DownloaderError):
    """Serve requested for a job that is absent, not complete, or cleaned up."""


class MetadataLookupError(DownloaderError):
    """The metadata lookup could not resolve a URL."""
