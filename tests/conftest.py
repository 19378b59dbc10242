"""Shared fixtures.

The real yt-dlp is replaced by ``fake_ytdlp.py``, run with the current
interpreter, so the subprocess code paths are exercised offline.
"""

import os
import sys
from pathlib import Path

import pytest

# Project root = parent directory of this tests/ folder
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from app.jobs.broadcaster import EventBroadcaster  # noqa: E402
from app.jobs.orchestrator import DownloadOrchestrator  # noqa: E402
from app.jobs.store import JobStore  # noqa: E402
from app.storage.artifacts import ArtifactStore  # noqa: E402

FAKE_WORKER = Path(__file__).parent / "fake_ytdlp.py"


@pytest.fixture
def worker_command():
    return [sys.executable, str(FAKE_WORKER)]


@pytest.fixture
def downloads_dir(tmp_path: Path) -> Path:
    path = tmp_path / "downloads"
    path.mkdir()
    return path


@pytest.fixture
def store() -> JobStore:
    return JobStore()


@pytest.fixture
def artifacts(downloads_dir: Path, store: JobStore) -> ArtifactStore:
    return ArtifactStore(str(downloads_dir), store, grace_seconds=0.05)


@pytest.fixture
def make_orchestrator(store, artifacts, worker_command):
    def _make(**kwargs) -> DownloadOrchestrator:
        return DownloadOrchestrator(
            store=store,
            broadcaster=kwargs.pop("broadcaster", EventBroadcaster()),
            artifacts=artifacts,
            command=kwargs.pop("command", worker_command),
            **kwargs,
        )

    return _make
