from collections import Counter
from collections.abc import Iterable
from datetime import datetime
from typing import Optional

from medtrack.schemas.reminder import (
    Reminder,
    ReminderCounts,
    ReminderListView,
    ReminderStatus,
)


def order_reminders(reminders: Iterable[Reminder]) -> list[Reminder]:
    """Move done reminders after all others, keeping input order otherwise."""
    return sorted(reminders, key=lambda r: r.status == ReminderStatus.done)


def count_reminders(reminders: Iterable[Reminder]) -> ReminderCounts:
    tally = Counter(r.status for r in reminders)
    return ReminderCounts(
        total=sum(tally.values()),
        upcoming=tally[ReminderStatus.upcoming],
        done=tally[ReminderStatus.done],
        missed=tally[ReminderStatus.missed],
    )


def order_and_aggregate(
    reminders: Iterable[Reminder],
    generated_at: Optional[datetime] = None,
) -> ReminderListView:
    ordered = order_reminders(reminders)
    return ReminderListView(
        reminders=tuple(ordered),
        counts=count_reminders(ordered),
        generated_at=generated_at,
    )
