import threading

import pytest

from app.errors import DuplicateJobError
from app.jobs.models import ProgressEvent
from app.jobs.store import JobStore


def test_create_get_list_remove():
    store = JobStore()
    created = store.create("a", "https://x/1", "best")
    store.create("b", "https://x/2", "worst")

    assert store.get("a").source_url == "https://x/1"
    assert created.id == "a"
    assert sorted(j.id for j in store.list()) == ["a", "b"]

    assert store.remove("a").id == "a"
    assert store.get("a") is None
    assert store.remove("a") is None
    assert len(store) == 1


def test_duplicate_id_rejected():
    store = JobStore()
    store.create("a", "u", "best")
    with pytest.raises(DuplicateJobError):
        store.create("a", "u", "best")


def test_update_missing_job_is_a_noop():
    store = JobStore()
    calls = []
    assert store.update("ghost", lambda job: calls.append(job)) is None
    assert calls == []


def test_snapshots_are_copies():
    store = JobStore()
    store.create("a", "u", "best")
    snapshot = store.get("a")
    snapshot.progress_percent = 99.0
    assert store.get("a").progress_percent == 0.0


def test_concurrent_updates_on_one_job_serialize():
    store = JobStore()
    store.create("a", "u", "best")

    def bump(job):
        current = job.progress_percent
        # Widen the window a lost update would need
        for _ in range(100):
            pass
        job.progress_percent = current + 1

    def worker():
        for _ in range(200):
            store.update("a", bump)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert store.get("a").progress_percent == 1600


def test_update_returns_mutator_result():
    store = JobStore()
    store.create("a", "u", "best")
    applied = store.update("a", lambda job: job.apply(ProgressEvent.progress("a", 5.0)))
    assert applied is True
    assert store.get("a").progress_percent == 5.0
