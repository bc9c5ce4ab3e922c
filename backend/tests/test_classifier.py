from datetime import datetime, timedelta

import pytest

from medtrack.schemas.reminder import ReminderStatus
from medtrack.services.reminders.classifier import classify

SCHEDULED = datetime(2024, 5, 1, 9, 0)
BEFORE = SCHEDULED - timedelta(minutes=1)
AFTER = SCHEDULED + timedelta(minutes=1)


@pytest.mark.parametrize("now", [BEFORE, SCHEDULED, AFTER])
def test_done_is_absorbing(now):
    assert classify("done", SCHEDULED, now) is ReminderStatus.done


@pytest.mark.parametrize("persisted", [None, "upcoming", "missed"])
def test_past_schedule_is_missed(persisted):
    assert classify(persisted, SCHEDULED, AFTER) is ReminderStatus.missed


@pytest.mark.parametrize("persisted", [None, "upcoming", "missed"])
def test_future_schedule_is_upcoming(persisted):
    assert classify(persisted, SCHEDULED, BEFORE) is ReminderStatus.upcoming


def test_exact_schedule_is_still_upcoming():
    assert classify(None, SCHEDULED, SCHEDULED) is ReminderStatus.upcoming


def test_unknown_status_is_time_driven():
    assert classify("skipped", SCHEDULED, BEFORE) is ReminderStatus.upcoming
    assert classify("skipped", SCHEDULED, AFTER) is ReminderStatus.missed


def test_status_never_reverts_as_time_advances():
    seen = [
        classify(None, SCHEDULED, SCHEDULED + timedelta(seconds=offset))
        for offset in range(-120, 121, 30)
    ]

    first_missed = seen.index(ReminderStatus.missed)
    assert all(s is ReminderStatus.upcoming for s in seen[:first_missed])
    assert all(s is ReminderStatus.missed for s in seen[first_missed:])
