import asyncio
from datetime import datetime, timedelta

import pytest

from medtrack.exceptions import AuthenticationRequired, StoreUnavailable
from medtrack.schemas.reminder import ReminderCounts, ReminderStatus
from medtrack.services.collection_store import patients_path
from medtrack.services.reminders import ReminderSync, SyncState, start_sync
PATH = patients_path("provider-1")


class _Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class _RecordingStore:
    """Store double that hands out the subscription callbacks."""

    def __init__(self) -> None:
        self.calls = []
        self.unsubscribed = 0

    async def subscribe(self, path, order_by, on_snapshot, on_error=None):
        self.calls.append((path, order_by))
        self.on_snapshot = on_snapshot
        self.on_error = on_error

        def unsubscribe():
            self.unsubscribed += 1

        return unsubscribe


@pytest.fixture()
def clock():
    return _Clock(datetime(2024, 5, 1, 10, 0))


@pytest.mark.asyncio
async def test_start_requires_identity(signed_out):
    recording = _RecordingStore()
    sync = ReminderSync(recording, signed_out)

    with pytest.raises(AuthenticationRequired):
        await sync.start(lambda _view: None)

    assert recording.calls == []
    assert sync.state is SyncState.idle


@pytest.mark.asyncio
async def test_subscribes_to_identity_collection_by_name(session, clock):
    recording = _RecordingStore()
    sync = ReminderSync(recording, session, clock=clock)

    await sync.start(lambda _view: None)

    assert recording.calls == [(PATH, "name")]
    assert sync.state is SyncState.subscribed


@pytest.mark.asyncio
async def test_initial_snapshot_and_every_change_publish_a_view(store, session, clock):
    await store.add(PATH, {"name": "John Doe", "time": "8:00 AM"})
    views = []
    sync = ReminderSync(store, session, clock=clock)

    await sync.start(views.append)
    record_id = await store.add(PATH, {"name": "Bob Lee", "time": "12:00 PM"})
    await store.update(PATH, record_id, {"status": "done"})
    await store.delete(PATH, record_id)

    assert [v.counts.total for v in views] == [1, 2, 2, 1]
    assert views[2].counts == ReminderCounts(total=2, upcoming=0, done=1, missed=1)
    assert sync.latest is views[-1]


@pytest.mark.asyncio
async def test_views_follow_store_name_order_with_done_last(store, session, clock):
    await store.add(PATH, {"name": "John Doe", "time": "8:00 AM"})
    await store.add(PATH, {"name": "Jane Smith", "time": "9:30 AM", "status": "done"})
    await store.add(PATH, {"name": "Bob Lee", "time": "12:00 PM"})
    views = []

    await start_sync(store, session, views.append, clock=clock)

    assert [r.patient for r in views[-1].reminders] == ["Bob Lee", "John Doe", "Jane Smith"]


@pytest.mark.asyncio
async def test_unsubscribe_stops_updates(store, session, clock):
    views = []
    unsubscribe = await start_sync(store, session, views.append, clock=clock)

    unsubscribe()
    unsubscribe()
    await store.add(PATH, {"name": "John Doe", "time": "8:00 AM"})

    assert len(views) == 1


@pytest.mark.asyncio
async def test_late_push_after_unsubscribe_is_ignored(session, clock):
    recording = _RecordingStore()
    views = []
    sync = ReminderSync(recording, session, clock=clock)
    unsubscribe = await sync.start(views.append)

    recording.on_snapshot(({"id": "1", "name": "John Doe", "time": "8:00 AM"},))
    unsubscribe()
    recording.on_snapshot(())

    assert len(views) == 1
    assert recording.unsubscribed == 1
    assert sync.state is SyncState.unsubscribed


@pytest.mark.asyncio
async def test_unsubscribe_during_initial_delivery(store, session, clock):
    sync = ReminderSync(store, session, clock=clock)
    views = []

    def on_update(view):
        views.append(view)
        sync.unsubscribe()

    await sync.start(on_update)
    await store.add(PATH, {"name": "John Doe"})

    assert len(views) == 1
    assert sync.state is SyncState.unsubscribed


@pytest.mark.asyncio
async def test_second_start_is_rejected(store, session, clock):
    sync = ReminderSync(store, session, clock=clock)
    await sync.start(lambda _view: None)

    with pytest.raises(RuntimeError):
        await sync.start(lambda _view: None)

    sync.unsubscribe()
    with pytest.raises(RuntimeError):
        await sync.start(lambda _view: None)


@pytest.mark.asyncio
async def test_store_failure_on_start_resets_state(store, session, clock):
    store.go_offline()
    sync = ReminderSync(store, session, clock=clock)

    with pytest.raises(StoreUnavailable):
        await sync.start(lambda _view: None)

    assert sync.state is SyncState.idle


@pytest.mark.asyncio
async def test_store_error_keeps_last_view(store, session, clock):
    await store.add(PATH, {"name": "John Doe", "time": "8:00 AM"})
    views, errors = [], []
    sync = ReminderSync(store, session, clock=clock)
    await sync.start(views.append, errors.append)

    store.go_offline(StoreUnavailable("connection lost"))

    assert len(views) == 1
    assert sync.latest is views[0]
    assert isinstance(sync.last_error, StoreUnavailable)
    assert [str(e) for e in errors] == ["connection lost"]

    store.go_online()

    assert len(views) == 2
    assert sync.last_error is None


@pytest.mark.asyncio
async def test_reevaluate_publishes_only_on_change(store, session, clock):
    await store.add(PATH, {"name": "Bob Lee", "time": "12:00 PM"})
    views = []
    sync = ReminderSync(store, session, clock=clock)
    await sync.start(views.append)
    assert views[-1].reminders[0].status is ReminderStatus.upcoming

    clock.now = datetime(2024, 5, 1, 11, 0)
    assert sync.reevaluate() is views[0]
    assert len(views) == 1

    clock.now = datetime(2024, 5, 1, 12, 1)
    view = sync.reevaluate()

    assert len(views) == 2
    assert view is views[-1]
    assert view.reminders[0].status is ReminderStatus.missed


@pytest.mark.asyncio
async def test_reevaluate_ticker_runs_until_unsubscribed(store, session, clock):
    await store.add(PATH, {"name": "Bob Lee", "time": "10:00 AM"})
    views = []
    sync = ReminderSync(store, session, clock=clock, reevaluate_seconds=0.01)
    unsubscribe = await sync.start(views.append)

    clock.now += timedelta(minutes=1)
    for _ in range(50):
        if len(views) > 1:
            break
        await asyncio.sleep(0.01)

    assert views[-1].reminders[0].status is ReminderStatus.missed
    unsubscribe()
    assert sync.state is SyncState.unsubscribed


@pytest.mark.asyncio
async def test_stream_yields_views_and_unsubscribes_on_close(store, session, clock):
    await store.add(PATH, {"name": "John Doe", "time": "8:00 AM"})
    sync = ReminderSync(store, session, clock=clock)
    views = sync.stream()

    first = await anext(views)
    await store.add(PATH, {"name": "Bob Lee", "time": "12:00 PM"})
    second = await anext(views)
    await views.aclose()

    assert first.counts.total == 1
    assert second.counts.total == 2
    assert sync.state is SyncState.unsubscribed


@pytest.mark.asyncio
async def test_record_beyond_calendar_does_not_block_other_reminders(store, session, clock):
    await store.add(PATH, {"name": "John Doe", "time": "8:00 AM"})
    views = []
    await start_sync(store, session, views.append, clock=clock)

    await store.add(PATH, {"name": "Jane Smith", "time": "99999999:00 AM"})

    assert len(views) == 2
    assert [(r.patient, r.status) for r in views[-1].reminders] == [
        ("Jane Smith", ReminderStatus.upcoming),
        ("John Doe", ReminderStatus.missed),
    ]


@pytest.mark.asyncio
async def test_stream_raises_store_error_after_last_good_view(store, session, clock):
    await store.add(PATH, {"name": "John Doe", "time": "8:00 AM"})
    sync = ReminderSync(store, session, clock=clock)
    views = sync.stream()
    first = await anext(views)

    store.go_offline(StoreUnavailable("connection lost"))

    with pytest.raises(StoreUnavailable, match="connection lost"):
        await asyncio.wait_for(anext(views), timeout=1)
    assert sync.latest is first
    assert sync.state is SyncState.unsubscribed


@pytest.mark.asyncio
async def test_non_positive_reevaluate_interval_starts_no_ticker(store, session, clock):
    for seconds in (0, -1):
        sync = ReminderSync(store, session, clock=clock, reevaluate_seconds=seconds)
        await sync.start(lambda _view: None)

        assert sync._ticker is None
        sync.unsubscribe()
