from medtrack.schemas.reminder import (
    Reminder,
    ReminderCounts,
    ReminderListView,
    ReminderStatus,
)
from medtrack.schemas.patient import (
    MedicineEntry,
    PatientCreate,
    PatientCreated,
    PatientRecordResponse,
    PatientStatusUpdate,
)

__all__ = [
    # Reminders
    "Reminder",
    "ReminderCounts",
    "ReminderListView",
    "ReminderStatus",
    # Patients
    "MedicineEntry",
    "PatientCreate",
    "PatientCreated",
    "PatientRecordResponse",
    "PatientStatusUpdate",
]
