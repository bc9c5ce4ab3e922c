"""Live reminder view over a care provider's patient collection.

Every snapshot pushed by the collection store is projected, classified,
ordered and counted from scratch, then handed to the consumer as an immutable
:class:`ReminderListView`. Nothing is patched incrementally.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from datetime import datetime
from enum import StrEnum
from typing import Optional

from medtrack.schemas.reminder import ReminderListView
from medtrack.services.collection_store import (
    CollectionStore,
    OnError,
    Snapshot,
    Unsubscribe,
    patients_path,
)
from medtrack.services.reminders.clock import current_time
from medtrack.services.reminders.ordering import order_and_aggregate
from medtrack.services.reminders.projection import project
from medtrack.services.session import SessionContext, require_identity

logger = logging.getLogger("medtrack.sync")

OnUpdate = Callable[[ReminderListView], None]

ORDER_BY_FIELD = "name"


class SyncState(StrEnum):
    idle = "idle"
    subscribed = "subscribed"
    unsubscribed = "unsubscribed"


def build_view(records: Snapshot, now: datetime) -> ReminderListView:
    """Full recompute of the reminder view for one snapshot."""
    return order_and_aggregate(project(records, now), generated_at=now)


class ReminderSync:
    """Owns one subscription and publishes a fresh view for every snapshot.

    Snapshots are handled synchronously inside the store callback, one at a
    time and in delivery order. Read-path store failures leave ``latest`` in
    place and are reported through ``on_error``.

    Args:
        store: Collection store holding patient records.
        session: Supplies the identity that scopes the collection path.
        clock: Returns "now"; defaults to :func:`current_time`.
        reevaluate_seconds: When set, re-classify the last snapshot on this
            interval so reminders turn missed without a store change.
    """

    def __init__(
        self,
        store: CollectionStore,
        session: SessionContext,
        *,
        clock: Optional[Callable[[], datetime]] = None,
        reevaluate_seconds: Optional[float] = None,
    ) -> None:
        self._store = store
        self._session = session
        self._clock = clock or current_time
        self._reevaluate_seconds = reevaluate_seconds
        self._records: Snapshot = ()
        self._on_update: Optional[OnUpdate] = None
        self._on_error: Optional[OnError] = None
        self._store_unsubscribe: Optional[Unsubscribe] = None
        self._ticker: asyncio.Task[None] | None = None
        self.state = SyncState.idle
        self.latest: Optional[ReminderListView] = None
        self.last_error: Optional[Exception] = None

    async def start(
        self,
        on_update: OnUpdate,
        on_error: Optional[OnError] = None,
    ) -> Unsubscribe:
        """Subscribe to the caller's patients and return the unsubscribe handle.

        Raises:
            AuthenticationRequired: No identity; nothing is subscribed.
            RuntimeError: The controller was already started.
        """
        if self.state is not SyncState.idle:
            raise RuntimeError(f"Reminder sync cannot start from state {self.state}")
        identity = require_identity(self._session)
        path = patients_path(identity)

        self._on_update = on_update
        self._on_error = on_error
        self.state = SyncState.subscribed
        try:
            store_unsubscribe = await self._store.subscribe(
                path, ORDER_BY_FIELD, self._handle_snapshot, self._handle_error
            )
        except Exception:
            self.state = SyncState.idle
            self._on_update = None
            self._on_error = None
            raise

        if self.state is not SyncState.subscribed:
            # The consumer unsubscribed while the initial snapshot was delivered.
            store_unsubscribe()
            return self.unsubscribe

        self._store_unsubscribe = store_unsubscribe
        if self._reevaluate_seconds and self._reevaluate_seconds > 0:
            self._ticker = asyncio.create_task(
                self._reevaluate_loop(), name="reminder-reevaluate"
            )
        logger.info("Reminder sync subscribed path=%s", path)
        return self.unsubscribe

    def unsubscribe(self) -> None:
        """Stop the subscription. Safe to call more than once."""
        if self.state is SyncState.unsubscribed:
            return
        self.state = SyncState.unsubscribed
        self._on_update = None
        self._on_error = None
        if self._store_unsubscribe is not None:
            self._store_unsubscribe()
            self._store_unsubscribe = None
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None
        logger.info("Reminder sync unsubscribed")

    def reevaluate(self) -> Optional[ReminderListView]:
        """Re-classify the last snapshot against a fresh "now".

        Publishes only when a status or count changed.
        """
        if self.state is not SyncState.subscribed or self.latest is None:
            return self.latest
        view = build_view(self._records, self._clock())
        if view.same_state(self.latest):
            return self.latest
        logger.debug("Reminder statuses changed with time; publishing")
        self._publish(view)
        return view

    async def stream(self) -> AsyncIterator[ReminderListView]:
        """Yield every published view until the iteration is closed.

        Subscribes on first iteration and unsubscribes when the consumer stops.
        A store error reported after subscribing is raised from the iterator
        once the views queued before it have been yielded; ``latest`` keeps
        the last good view.
        """
        queue: asyncio.Queue[ReminderListView | Exception] = asyncio.Queue()
        await self.start(queue.put_nowait, queue.put_nowait)
        try:
            while True:
                item = await queue.get()
                if isinstance(item, Exception):
                    raise item
                yield item
        finally:
            self.unsubscribe()

    def _handle_snapshot(self, records: Snapshot) -> None:
        if self.state is not SyncState.subscribed:
            return
        self._records = tuple(records)
        self.last_error = None
        self._publish(build_view(self._records, self._clock()))

    def _handle_error(self, exc: Exception) -> None:
        if self.state is not SyncState.subscribed:
            return
        self.last_error = exc
        logger.warning("Collection store error; keeping last reminder view: %s", exc)
        if self._on_error is not None:
            self._on_error(exc)

    def _publish(self, view: ReminderListView) -> None:
        self.latest = view
        if self._on_update is not None:
            self._on_update(view)

    async def _reevaluate_loop(self) -> None:
        while self.state is SyncState.subscribed:
            await asyncio.sleep(self._reevaluate_seconds)
            try:
                self.reevaluate()
            except Exception:
                logger.exception("Reminder re-evaluation failed")


async def start_sync(
    store: CollectionStore,
    session: SessionContext,
    on_update: OnUpdate,
    on_error: Optional[OnError] = None,
    *,
    clock: Optional[Callable[[], datetime]] = None,
) -> Unsubscribe:
    """Start a :class:`ReminderSync` and return its unsubscribe handle."""
    sync = ReminderSync(store, session, clock=clock)
    return await sync.start(on_update, on_error)
