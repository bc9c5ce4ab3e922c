"""Parse clock times such as ``"8:00 AM"`` into instants anchored to today.

Parsing is permissive: hours and minutes are read like a leading-integer
parse and out-of-range values roll over the calendar, so ``"25:00 AM"`` lands
at 01:00 tomorrow. A schedule with no readable hour or minute, or one that
rolls past the last representable date, falls back to the current instant,
which the classifier treats as not yet missed.
"""

import logging
import re
from datetime import datetime, timedelta
from typing import Optional

from medtrack.services.reminders.clock import current_time

logger = logging.getLogger("medtrack.reminders")

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")
_TIME_OF_DAY = re.compile(r"(1[0-2]|0?[1-9]):([0-5][0-9]) (AM|PM)")


def _leading_int(text: Optional[str]) -> Optional[int]:
    if text is None:
        return None
    match = _LEADING_INT.match(text)
    if not match:
        return None
    return int(match.group(1))


def is_valid_time_of_day(text: Optional[str]) -> bool:
    """Strict check for ``H:MM AM|PM`` with a 1-12 hour and 00-59 minute."""
    if not text:
        return False
    return _TIME_OF_DAY.fullmatch(text) is not None


def parse_time_to_today(text: Optional[str], now: Optional[datetime] = None) -> datetime:
    """Convert ``text`` to today's date at the given clock time.

    Args:
        text: Time of day such as ``"9:30 AM"``. Empty or missing means
            "due now".
        now: Current instant. Anchors both "today" and the timezone of the
            result. Defaults to :func:`current_time`.

    Returns:
        The scheduled instant with seconds and microseconds zeroed, or ``now``
        itself when ``text`` is empty or unreadable.
    """
    if now is None:
        now = current_time()
    if not text:
        return now

    parts = text.split(" ")
    time_part = parts[0]
    modifier = parts[1] if len(parts) > 1 else None

    pieces = time_part.split(":")
    hours = _leading_int(pieces[0])
    minutes = _leading_int(pieces[1] if len(pieces) > 1 else None)
    if hours is None or minutes is None:
        logger.debug("Unreadable schedule %r; treating as due now", text)
        return now

    if modifier == "PM" and hours < 12:
        hours += 12
    if modifier == "AM" and hours == 12:
        hours = 0

    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    try:
        return midnight + timedelta(hours=hours, minutes=minutes)
    except OverflowError:
        logger.debug("Schedule %r falls outside the calendar; treating as due now", text)
        return now
