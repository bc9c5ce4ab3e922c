from fastapi import APIRouter, Depends, Response

from medtrack.api.deps import get_session_context, get_store, translate_store_errors
from medtrack.schemas.patient import (
    PatientCreate,
    PatientCreated,
    PatientRecordResponse,
    PatientStatusUpdate,
)
from medtrack.services.collection_store import CollectionStore
from medtrack.services.patients import add_patient, list_patients, remove_patient, set_status
from medtrack.services.session import SessionContext

router = APIRouter(prefix="/patients", tags=["Patients"])


@router.get("/", response_model=list[PatientRecordResponse])
async def get_patients(
    store: CollectionStore = Depends(get_store),
    session: SessionContext = Depends(get_session_context),
):
    """List the caller's patients ordered by name."""
    with translate_store_errors():
        records = await list_patients(store, session)
    return [
        PatientRecordResponse.model_validate(
            {key: value for key, value in record.items() if value is not None}
        )
        for record in records
    ]


@router.post("/", response_model=PatientCreated, status_code=201)
async def create_patient(
    patient_data: PatientCreate,
    store: CollectionStore = Depends(get_store),
    session: SessionContext = Depends(get_session_context),
):
    """Add a patient to the caller's collection."""
    data = patient_data.model_dump(mode="json", exclude_none=True)
    with translate_store_errors():
        record_id = await add_patient(store, session, data)
    return PatientCreated(id=record_id)


@router.patch("/{record_id}/status", status_code=204)
async def update_patient_status(
    record_id: str,
    update: PatientStatusUpdate,
    store: CollectionStore = Depends(get_store),
    session: SessionContext = Depends(get_session_context),
):
    """Persist a reminder status for one patient."""
    with translate_store_errors():
        await set_status(store, session, record_id, update.status)
    return Response(status_code=204)


@router.delete("/{record_id}", status_code=204)
async def delete_patient(
    record_id: str,
    store: CollectionStore = Depends(get_store),
    session: SessionContext = Depends(get_session_context),
):
    """Delete a patient record."""
    with translate_store_errors():
        await remove_patient(store, session, record_id)
    return Response(status_code=204)
