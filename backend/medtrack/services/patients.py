"""Write path and one-shot reads for the caller's patient collection."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from medtrack.schemas.reminder import ReminderStatus
from medtrack.services.collection_store import CollectionStore, Snapshot, patients_path
from medtrack.services.session import SessionContext, require_identity

logger = logging.getLogger("medtrack.patients")


async def add_patient(
    store: CollectionStore,
    session: SessionContext,
    data: Mapping[str, Any],
) -> str:
    """Append a patient record stamped with ``created_at``.

    Store failures propagate to the caller unchanged so it can keep its
    form state until the write is confirmed.

    Raises:
        AuthenticationRequired: No identity in ``session``.
    """
    identity = require_identity(session)
    payload = {**data, "created_at": datetime.now(UTC).isoformat()}
    record_id = await store.add(patients_path(identity), payload)
    logger.info("Patient record %s added", record_id)
    return record_id


async def set_status(
    store: CollectionStore,
    session: SessionContext,
    record_id: str,
    status: ReminderStatus,
) -> None:
    """Persist a reminder status, e.g. a caregiver marking a dose done."""
    identity = require_identity(session)
    await store.update(patients_path(identity), record_id, {"status": str(status)})
    logger.info("Patient record %s marked %s", record_id, status)


async def remove_patient(
    store: CollectionStore,
    session: SessionContext,
    record_id: str,
) -> None:
    identity = require_identity(session)
    await store.delete(patients_path(identity), record_id)


async def list_patients(store: CollectionStore, session: SessionContext) -> Snapshot:
    """Current snapshot of the caller's patients, ordered by name."""
    identity = require_identity(session)
    captured: list[Snapshot] = []
    unsubscribe = await store.subscribe(
        patients_path(identity), "name", captured.append
    )
    unsubscribe()
    return captured[-1] if captured else ()
