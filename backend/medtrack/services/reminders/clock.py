"""Current time for reminder evaluation."""

from datetime import datetime
from zoneinfo import ZoneInfo

from medtrack.config import settings


def current_time() -> datetime:
    """Return "now" in the configured reminder timezone.

    Naive local time when ``reminder_timezone`` is not set.
    """
    if settings.reminder_timezone:
        return datetime.now(ZoneInfo(settings.reminder_timezone))
    return datetime.now()
