from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from medtrack.schemas.reminder import ReminderStatus
from medtrack.services.reminders.timeparse import is_valid_time_of_day


class MedicineEntry(BaseModel):
    """One prescription line captured on the intake form."""

    name: str = Field(..., min_length=1, max_length=200)
    total_pills_prescribed: Optional[str] = Field(None, max_length=20)
    pills_per_day: Optional[str] = Field(None, max_length=20)
    days_per_week: Optional[str] = Field(None, max_length=20)
    pill_schedule: Optional[str] = Field(None, max_length=100)
    refill: bool = False


class PatientCreate(BaseModel):
    """Schema for adding a patient to the caller's collection."""

    name: str = Field(..., min_length=1, max_length=200)
    patient_id: str = Field(..., min_length=1, max_length=100)
    dob: Optional[str] = Field(None, max_length=20)
    gender: Optional[str] = Field(None, max_length=20)
    phone: Optional[str] = Field(None, max_length=50)
    email: Optional[str] = Field(None, max_length=255)
    emergency_contact: Optional[str] = Field(None, max_length=200)
    height: Optional[str] = Field(None, max_length=20)
    weight: Optional[str] = Field(None, max_length=20)
    notes: Optional[str] = None
    medicines: list[MedicineEntry] = Field(default_factory=list)

    medicine: Optional[str] = Field(None, max_length=200)
    dosage: Optional[str] = Field(None, max_length=100)
    time: Optional[str] = Field(None, description="Time of day, e.g. '8:00 AM'")
    status: Optional[ReminderStatus] = None
    urgent: bool = False

    @field_validator("time")
    @classmethod
    def validate_time(cls, value: Optional[str]) -> Optional[str]:
        if value is None or value == "":
            return value
        if not is_valid_time_of_day(value):
            raise ValueError("time must look like 'H:MM AM' or 'H:MM PM'")
        return value


class PatientStatusUpdate(BaseModel):
    """Persisted reminder status change, e.g. a caregiver marking a dose done."""

    status: ReminderStatus


class PatientCreated(BaseModel):
    id: str


class PatientRecordResponse(BaseModel):
    """A patient record as delivered in a collection snapshot."""

    model_config = ConfigDict(extra="allow")

    id: str
    name: str = ""
    medicine: Optional[str] = None
    dosage: Optional[str] = None
    time: Optional[str] = None
    status: Optional[str] = None
    urgent: bool = False
    created_at: Optional[str] = None
