from medtrack.models.base import Base, TimestampMixin, model_to_dict
from medtrack.models.patient_record import PatientRecord

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "model_to_dict",
    # Core Models
    "PatientRecord",
]
