"""Collection store implementations for patient records.

A collection store keeps documents under slash-separated collection paths
(``users/{identity}/patients``) and pushes the full, ordered contents of a
collection to every subscriber whenever it changes. Subscribers never receive
deltas.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable, Mapping
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Any, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from medtrack.exceptions import RecordNotFound, StoreUnavailable
from medtrack.models import PatientRecord, model_to_dict

logger = logging.getLogger("medtrack.store")

Snapshot = tuple[Mapping[str, Any], ...]
OnSnapshot = Callable[[Snapshot], None]
OnError = Callable[[Exception], None]
Unsubscribe = Callable[[], None]
SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


def patients_path(identity: str) -> str:
    """Collection path holding the patients of one care provider."""
    return f"users/{identity}/patients"


class CollectionStore(Protocol):
    async def subscribe(
        self,
        path: str,
        order_by: str,
        on_snapshot: OnSnapshot,
        on_error: Optional[OnError] = None,
    ) -> Unsubscribe:
        ...

    async def add(self, path: str, data: Mapping[str, Any]) -> str:
        ...

    async def update(self, path: str, record_id: str, changes: Mapping[str, Any]) -> None:
        ...

    async def delete(self, path: str, record_id: str) -> None:
        ...


@dataclass(eq=False)
class _Subscription:
    path: str
    order_by: str
    on_snapshot: OnSnapshot
    on_error: Optional[OnError] = None
    active: bool = True


class _Fanout:
    """Tracks live subscriptions and delivers snapshots to them."""

    def __init__(self) -> None:
        self._subscriptions: list[_Subscription] = []

    def register(self, subscription: _Subscription) -> Unsubscribe:
        self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            if not subscription.active:
                return
            subscription.active = False
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

        return unsubscribe

    def for_path(self, path: str) -> list[_Subscription]:
        return [s for s in self._subscriptions if s.active and s.path == path]

    def all(self) -> list[_Subscription]:
        return [s for s in self._subscriptions if s.active]

    def keys(self) -> set[tuple[str, str]]:
        return {(s.path, s.order_by) for s in self.all()}

    def clear(self) -> None:
        for subscription in self._subscriptions:
            subscription.active = False
        self._subscriptions.clear()

    @staticmethod
    def deliver(subscription: _Subscription, snapshot: Snapshot) -> None:
        if not subscription.active:
            return
        try:
            subscription.on_snapshot(snapshot)
        except Exception:
            logger.exception("Snapshot listener failed for path=%s", subscription.path)

    @staticmethod
    def fail(subscription: _Subscription, exc: Exception) -> None:
        if not subscription.active or subscription.on_error is None:
            return
        try:
            subscription.on_error(exc)
        except Exception:
            logger.exception("Error listener failed for path=%s", subscription.path)


def _sort_key(value: Any) -> tuple[bool, str]:
    # Records without the field sort first.
    if value is None:
        return (False, "")
    return (True, value if isinstance(value, str) else str(value))


def _freeze(record: dict[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(record)


class InMemoryCollectionStore:
    """In-memory collection store for tests and local demos."""

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._fanout = _Fanout()
        self._outage: Optional[StoreUnavailable] = None

    async def subscribe(
        self,
        path: str,
        order_by: str,
        on_snapshot: OnSnapshot,
        on_error: Optional[OnError] = None,
    ) -> Unsubscribe:
        self._check_available()
        subscription = _Subscription(path, order_by, on_snapshot, on_error)
        unsubscribe = self._fanout.register(subscription)
        self._fanout.deliver(subscription, self._snapshot(path, order_by))
        return unsubscribe

    async def add(self, path: str, data: Mapping[str, Any]) -> str:
        self._check_available()
        record_id = uuid.uuid4().hex
        document = {key: value for key, value in data.items() if key != "id"}
        self._collections.setdefault(path, {})[record_id] = document
        self._publish(path)
        return record_id

    async def update(self, path: str, record_id: str, changes: Mapping[str, Any]) -> None:
        self._check_available()
        document = self._collections.get(path, {}).get(record_id)
        if document is None:
            raise RecordNotFound(f"{path}/{record_id}")
        document.update({key: value for key, value in changes.items() if key != "id"})
        self._publish(path)

    async def delete(self, path: str, record_id: str) -> None:
        self._check_available()
        collection = self._collections.get(path, {})
        if record_id not in collection:
            raise RecordNotFound(f"{path}/{record_id}")
        del collection[record_id]
        self._publish(path)

    def go_offline(self, error: Optional[StoreUnavailable] = None) -> None:
        """Simulate a lost connection: writes fail and subscribers are told."""
        self._outage = error or StoreUnavailable("collection store offline")
        for subscription in self._fanout.all():
            self._fanout.fail(subscription, self._outage)

    def go_online(self) -> None:
        """Restore the connection and resend every subscribed collection."""
        self._outage = None
        for path in {path for path, _ in self._fanout.keys()}:
            self._publish(path)

    def clear(self) -> None:
        self._collections.clear()
        self._fanout.clear()
        self._outage = None

    def _check_available(self) -> None:
        if self._outage is not None:
            raise self._outage

    def _snapshot(self, path: str, order_by: str) -> Snapshot:
        records = [
            {"id": record_id, **document}
            for record_id, document in self._collections.get(path, {}).items()
        ]
        records.sort(key=lambda r: _sort_key(r.get(order_by)))
        return tuple(_freeze(r) for r in records)

    def _publish(self, path: str) -> None:
        for subscription in self._fanout.for_path(path):
            self._fanout.deliver(subscription, self._snapshot(path, subscription.order_by))


_RECORD_COLUMNS = ("name", "medicine", "dosage", "time", "status", "urgent", "notes")


def _owner_for(path: str) -> str:
    parts = path.strip("/").split("/")
    if len(parts) != 3 or parts[0] != "users" or parts[2] != "patients" or not parts[1]:
        raise ValueError(f"Unsupported collection path: {path}")
    return parts[1]


def _order_column(order_by: str):
    if order_by not in _RECORD_COLUMNS and order_by != "created_at":
        raise ValueError(f"Cannot order patient records by {order_by!r}")
    return getattr(PatientRecord, order_by)


def _parse_created_at(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


def _split_fields(data: Mapping[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Separate mapped columns from free-form intake fields."""
    columns: dict[str, Any] = {}
    extra: dict[str, Any] = {}
    for key, value in data.items():
        if key == "id":
            continue
        if key in _RECORD_COLUMNS:
            columns[key] = value
            continue
        created_at = _parse_created_at(value) if key == "created_at" else None
        if created_at is not None:
            columns[key] = created_at
        else:
            extra[key] = value
    if "urgent" in columns:
        columns["urgent"] = bool(columns["urgent"])
    return columns, extra


def _row_to_record(row: PatientRecord) -> Mapping[str, Any]:
    values = model_to_dict(row)
    record: dict[str, Any] = dict(values.pop("extra") or {})
    values.pop("owner_id", None)
    values.pop("updated_at", None)
    created_at = values.pop("created_at", None)
    record.update(values)
    record["created_at"] = created_at.isoformat() if created_at else None
    return _freeze(record)


class SQLCollectionStore:
    """Collection store backed by SQLAlchemy.

    Writes made through this store are pushed to subscribers right away. Writes
    made by other processes are picked up by an optional polling loop that
    re-reads every subscribed collection and pushes it when it changed.
    """

    def __init__(
        self,
        session_factory: Optional[SessionFactory] = None,
        poll_interval_seconds: float = 0,
    ) -> None:
        if session_factory is None:
            from medtrack.database import get_db_context

            session_factory = get_db_context
        self._session_factory = session_factory
        self._poll_interval_seconds = poll_interval_seconds
        self._fanout = _Fanout()
        self._last_snapshots: dict[tuple[str, str], Snapshot] = {}
        self._task: asyncio.Task[None] | None = None
        self._draining: set[asyncio.Task[None]] = set()
        self._stop_event = asyncio.Event()

    async def subscribe(
        self,
        path: str,
        order_by: str,
        on_snapshot: OnSnapshot,
        on_error: Optional[OnError] = None,
    ) -> Unsubscribe:
        snapshot = await self._load(path, order_by)
        subscription = _Subscription(path, order_by, on_snapshot, on_error)
        release = self._fanout.register(subscription)
        self._last_snapshots[(path, order_by)] = snapshot
        self._fanout.deliver(subscription, snapshot)
        self._ensure_polling()

        def unsubscribe() -> None:
            release()
            if not self._fanout.all():
                self._stop_polling()

        return unsubscribe

    async def add(self, path: str, data: Mapping[str, Any]) -> str:
        owner_id = _owner_for(path)
        columns, extra = _split_fields(data)
        row = PatientRecord(owner_id=owner_id, extra=extra, **columns)
        try:
            async with self._session_factory() as db:
                db.add(row)
                await db.flush()
                record_id = row.id
        except (SQLAlchemyError, OSError) as exc:
            raise StoreUnavailable(str(exc)) from exc
        logger.info("Added patient record id=%s path=%s", record_id, path)
        await self._publish(path)
        return record_id

    async def update(self, path: str, record_id: str, changes: Mapping[str, Any]) -> None:
        owner_id = _owner_for(path)
        columns, extra = _split_fields(changes)
        try:
            async with self._session_factory() as db:
                row = await self._get_row(db, owner_id, record_id)
                for key, value in columns.items():
                    setattr(row, key, value)
                if extra:
                    row.extra = {**(row.extra or {}), **extra}
        except (SQLAlchemyError, OSError) as exc:
            raise StoreUnavailable(str(exc)) from exc
        await self._publish(path)

    async def delete(self, path: str, record_id: str) -> None:
        owner_id = _owner_for(path)
        try:
            async with self._session_factory() as db:
                row = await self._get_row(db, owner_id, record_id)
                await db.delete(row)
        except (SQLAlchemyError, OSError) as exc:
            raise StoreUnavailable(str(exc)) from exc
        await self._publish(path)

    async def refresh(self) -> int:
        """Re-read subscribed collections and push the ones that changed.

        Returns the number of collections pushed.
        """
        pushed = 0
        for path, order_by in sorted(self._fanout.keys()):
            subscribers = [
                s for s in self._fanout.for_path(path) if s.order_by == order_by
            ]
            try:
                snapshot = await self._load(path, order_by)
            except StoreUnavailable as exc:
                for subscription in subscribers:
                    self._fanout.fail(subscription, exc)
                continue
            if self._last_snapshots.get((path, order_by)) == snapshot:
                continue
            self._last_snapshots[(path, order_by)] = snapshot
            for subscription in subscribers:
                self._fanout.deliver(subscription, snapshot)
            pushed += 1
        return pushed

    async def close(self) -> None:
        """Stop polling and drop every subscription."""
        self._stop_event.set()
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            finally:
                self._task = None
        if self._draining:
            await asyncio.gather(*self._draining, return_exceptions=True)
        self._fanout.clear()
        self._last_snapshots.clear()

    async def _get_row(self, db: AsyncSession, owner_id: str, record_id: str) -> PatientRecord:
        result = await db.execute(
            select(PatientRecord).where(
                PatientRecord.id == record_id,
                PatientRecord.owner_id == owner_id,
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise RecordNotFound(f"users/{owner_id}/patients/{record_id}")
        return row

    async def _load(self, path: str, order_by: str) -> Snapshot:
        owner_id = _owner_for(path)
        column = _order_column(order_by)
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(PatientRecord)
                    .where(PatientRecord.owner_id == owner_id)
                    .order_by(column.asc().nullsfirst(), PatientRecord.created_at.asc())
                )
                rows = list(result.scalars().all())
        except (SQLAlchemyError, OSError) as exc:
            raise StoreUnavailable(str(exc)) from exc
        return tuple(_row_to_record(row) for row in rows)

    async def _publish(self, path: str) -> None:
        by_order: dict[str, list[_Subscription]] = {}
        for subscription in self._fanout.for_path(path):
            by_order.setdefault(subscription.order_by, []).append(subscription)
        for order_by, subscribers in by_order.items():
            try:
                snapshot = await self._load(path, order_by)
            except StoreUnavailable as exc:
                logger.warning("Could not reload %s after write: %s", path, exc)
                for subscription in subscribers:
                    self._fanout.fail(subscription, exc)
                continue
            self._last_snapshots[(path, order_by)] = snapshot
            for subscription in subscribers:
                self._fanout.deliver(subscription, snapshot)

    def _ensure_polling(self) -> None:
        if self._poll_interval_seconds <= 0:
            return
        if self._task and not self._task.done() and not self._stop_event.is_set():
            return
        if self._task is not None and not self._task.done():
            # A stopped loop may still be finishing its last refresh.
            self._draining.add(self._task)
            self._task.add_done_callback(self._draining.discard)
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(
            self._poll_loop(self._stop_event), name="collection-store-poll"
        )
        logger.info("Collection store polling started (interval=%ss)", self._poll_interval_seconds)

    def _stop_polling(self) -> None:
        self._last_snapshots.clear()
        if self._task is None or self._stop_event.is_set():
            return
        self._stop_event.set()
        logger.info("Collection store polling stopped; no subscribers left")

    async def _poll_loop(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                pushed = await self.refresh()
                if pushed:
                    logger.info("Collection store poll pushed %s collection(s)", pushed)
            except Exception:
                logger.exception("Collection store poll cycle failed")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._poll_interval_seconds)
            except TimeoutError:
                continue
