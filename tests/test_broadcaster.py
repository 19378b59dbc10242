import asyncio

import pytest

from app.jobs.broadcaster import EventBroadcaster
from app.jobs.models import ProgressEvent


def _events(job_id, n):
    events = [ProgressEvent.progress(job_id, float(i)) for i in range(1, n)]
    events.append(ProgressEvent.complete(job_id, f"/d/{job_id}_v.mp4"))
    return events


def test_all_observers_receive_all_events_in_order():
    broadcaster = EventBroadcaster()
    observers = [broadcaster.subscribe() for _ in range(3)]
    events = _events("J", 10)

    for event in events:
        assert broadcaster.publish(event) == 3

    expected = [e.to_message() for e in events]
    for observer in observers:
        assert observer.pending() == expected


def test_disconnected_observer_gets_only_its_prefix():
    broadcaster = EventBroadcaster()
    stays = broadcaster.subscribe()
    leaves = broadcaster.subscribe()
    events = _events("J", 6)

    for i, event in enumerate(events):
        if i == 3:
            broadcaster.unsubscribe(leaves)
        broadcaster.publish(event)

    assert stays.pending() == [e.to_message() for e in events]
    assert leaves.pending() == [e.to_message() for e in events[:3]]
    assert len(broadcaster) == 1


def test_failed_delivery_drops_only_that_observer():
    broadcaster = EventBroadcaster(max_pending=2)
    slow = broadcaster.subscribe()
    fast = broadcaster.subscribe()

    delivered = []
    for event in _events("J", 5):
        delivered.append(broadcaster.publish(event))
        fast.pending()

    assert delivered == [2, 2, 1, 1, 1]
    assert slow.closed
    assert [o.id for o in broadcaster.observers()] == [fast.id]


def test_new_observer_sees_only_future_events():
    broadcaster = EventBroadcaster()
    broadcaster.publish(ProgressEvent.progress("J", 1.0))
    late = broadcaster.subscribe()
    broadcaster.publish(ProgressEvent.progress("J", 2.0))
    assert late.pending() == [ProgressEvent.progress("J", 2.0).to_message()]


def test_publish_without_observers():
    assert EventBroadcaster().publish(ProgressEvent.progress("J", 1.0)) == 0


@pytest.mark.asyncio
async def test_get_waits_for_events_and_ends_on_close():
    broadcaster = EventBroadcaster()
    observer = broadcaster.subscribe()

    async def consume():
        received = []
        while True:
            message = await observer.get()
            if message is None:
                return received
            received.append(message)

    consumer = asyncio.ensure_future(consume())
    await asyncio.sleep(0)
    broadcaster.publish(ProgressEvent.progress("A", 1.0))
    broadcaster.publish(ProgressEvent.progress("B", 7.0))
    await asyncio.sleep(0)
    broadcaster.unsubscribe(observer)

    received = await asyncio.wait_for(consumer, timeout=1)
    assert [m["downloadId"] for m in received] == ["A", "B"]
