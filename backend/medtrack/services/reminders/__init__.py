"""Reminder state derived from the live patient collection."""

from medtrack.services.reminders.classifier import classify
from medtrack.services.reminders.ordering import (
    count_reminders,
    order_and_aggregate,
    order_reminders,
)
from medtrack.services.reminders.projection import project, project_record
from medtrack.services.reminders.sync import (
    ReminderSync,
    SyncState,
    build_view,
    start_sync,
)
from medtrack.services.reminders.timeparse import (
    is_valid_time_of_day,
    parse_time_to_today,
)

__all__ = [
    "classify",
    "count_reminders",
    "order_and_aggregate",
    "order_reminders",
    "project",
    "project_record",
    "ReminderSync",
    "SyncState",
    "build_view",
    "start_sync",
    "is_valid_time_of_day",
    "parse_time_to_today",
]
