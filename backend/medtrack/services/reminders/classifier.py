from datetime import datetime
from typing import Optional

from medtrack.schemas.reminder import ReminderStatus


def classify(
    persisted_status: Optional[str],
    scheduled: datetime,
    now: datetime,
) -> ReminderStatus:
    """Effective status of a reminder at ``now``.

    ``done`` is absorbing. Anything else becomes ``missed`` once ``now`` is
    strictly past the scheduled instant and is ``upcoming`` until then,
    whatever the stored flag says.
    """
    if persisted_status == ReminderStatus.done:
        return ReminderStatus.done
    if now > scheduled:
        return ReminderStatus.missed
    return ReminderStatus.upcoming
