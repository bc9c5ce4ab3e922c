"""Schemas for derived reminder state."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class ReminderStatus(StrEnum):
    upcoming = "upcoming"
    done = "done"
    missed = "missed"


class Reminder(BaseModel):
    """One medication reminder derived from a patient record."""

    model_config = ConfigDict(frozen=True)

    id: str
    patient: str
    medicine: str = ""
    dosage: str = ""
    time: str = ""
    status: ReminderStatus
    urgent: bool = False


class ReminderCounts(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int = 0
    upcoming: int = 0
    done: int = 0
    missed: int = 0


class ReminderListView(BaseModel):
    """Ordered reminders plus summary counts for one snapshot."""

    model_config = ConfigDict(frozen=True)

    reminders: tuple[Reminder, ...] = ()
    counts: ReminderCounts = Field(default_factory=ReminderCounts)
    generated_at: datetime | None = None

    def same_state(self, other: "ReminderListView | None") -> bool:
        """Compare reminders and counts, ignoring when the view was built."""
        if other is None:
            return False
        return self.reminders == other.reminders and self.counts == other.counts
