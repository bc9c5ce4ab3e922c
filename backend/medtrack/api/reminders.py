"""Reminder endpoints: one-shot view and a live Server-Sent Events stream."""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from medtrack.api.deps import get_session_context, get_store, translate_store_errors
from medtrack.config import settings
from medtrack.exceptions import StoreUnavailable
from medtrack.schemas.reminder import ReminderListView
from medtrack.services.collection_store import CollectionStore
from medtrack.services.reminders import ReminderSync
from medtrack.services.session import SessionContext

logger = logging.getLogger("medtrack.api.reminders")

router = APIRouter(prefix="/reminders", tags=["Reminders"])


def _sse(view: ReminderListView) -> str:
    return f"data: {view.model_dump_json()}\n\n"


def _sse_error(message: str, error_type: str) -> str:
    payload = json.dumps({"message": message, "type": error_type})
    return f"event: error\ndata: {payload}\n\n"


@router.get("/", response_model=ReminderListView)
async def get_reminders(
    store: CollectionStore = Depends(get_store),
    session: SessionContext = Depends(get_session_context),
):
    """Current reminder view for the caller's patients."""
    sync = ReminderSync(store, session)
    with translate_store_errors():
        unsubscribe = await sync.start(lambda _view: None)
    unsubscribe()
    return sync.latest or ReminderListView()


@router.get("/stream")
async def stream_reminders(
    max_events: Optional[int] = Query(
        None, ge=1, description="Close the stream after this many views"
    ),
    store: CollectionStore = Depends(get_store),
    session: SessionContext = Depends(get_session_context),
):
    """Push a fresh reminder view on every patient change."""
    sync = ReminderSync(
        store,
        session,
        reevaluate_seconds=settings.reminder_reevaluate_seconds,
    )
    views = sync.stream()
    with translate_store_errors():
        first = await anext(views)

    async def generate():
        sent = 0
        try:
            yield _sse(first)
            sent += 1
            if max_events is not None and sent >= max_events:
                return
            async for view in views:
                yield _sse(view)
                sent += 1
                if max_events is not None and sent >= max_events:
                    return
        except StoreUnavailable as exc:
            # The client keeps its last view and reconnects once the store is back.
            logger.warning("Reminder stream ended by store error: %s", exc)
            yield _sse_error("Patient store unavailable", "store_unavailable")
        finally:
            await views.aclose()
            logger.info("Reminder stream closed after %d view(s)", sent)

    return StreamingResponse(
        generate(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )
