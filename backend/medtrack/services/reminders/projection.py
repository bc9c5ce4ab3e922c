"""Map patient records onto reminders."""

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from medtrack.schemas.reminder import Reminder
from medtrack.services.reminders.classifier import classify
from medtrack.services.reminders.timeparse import parse_time_to_today


def _field(record: Any, key: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(key)
    return None


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def project_record(record: Mapping[str, Any], now: datetime) -> Reminder:
    """Build the reminder for one record. Missing fields fall back to defaults."""
    time_text = _text(_field(record, "time"))
    scheduled = parse_time_to_today(time_text, now=now)
    status = _field(record, "status")
    return Reminder(
        id=_text(_field(record, "id")),
        patient=_text(_field(record, "name")),
        medicine=_text(_field(record, "medicine")),
        dosage=_text(_field(record, "dosage")),
        time=time_text,
        status=classify(status if isinstance(status, str) else None, scheduled, now),
        urgent=bool(_field(record, "urgent") or False),
    )


def project(records: Iterable[Mapping[str, Any]], now: datetime) -> list[Reminder]:
    """One reminder per record, in input order."""
    return [project_record(record, now) for record in records]
