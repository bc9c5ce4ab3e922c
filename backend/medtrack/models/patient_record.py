import uuid
from typing import Any

from sqlalchemy import JSON, Boolean, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from medtrack.models.base import Base, TimestampMixin


class PatientRecord(Base, TimestampMixin):
    """A patient with one scheduled medicine, owned by a care provider account.

    Rows are the documents of the ``users/{owner_id}/patients`` collection.
    Intake fields that the reminder pipeline does not read are kept verbatim
    in ``extra``.
    """

    __tablename__ = "patient_records"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: uuid.uuid4().hex
    )
    owner_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        index=True,
        comment="Identity of the care provider owning this record",
    )

    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    medicine: Mapped[str | None] = mapped_column(String(200), nullable=True)
    dosage: Mapped[str | None] = mapped_column(String(100), nullable=True)
    time: Mapped[str | None] = mapped_column(
        String(32), nullable=True, comment="Time of day, e.g. '8:00 AM'"
    )
    status: Mapped[str | None] = mapped_column(
        String(20), nullable=True, comment="Persisted reminder status: upcoming, done, missed"
    )
    urgent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    extra: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)

    __table_args__ = (
        Index("ix_patient_records_owner_name", "owner_id", "name"),
    )

    def __repr__(self) -> str:
        return f"<PatientRecord(id={self.id}, name='{self.name}', time='{self.time}')>"
