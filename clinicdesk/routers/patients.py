# clinicdesk/routers/patients.py
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import crud, schemas, security
from ..audit import audit_trail
from ..database import get_db

router = APIRouter(
    tags=["Patients"],
    responses={404: {"description": "Not found"}},
)


@router.get("/patients", response_model=List[schemas.PatientResponse])
def read_patients(
    sort_by: Literal["created_at", "first_name", "last_name"] = "created_at",
    is_dispensary: Optional[bool] = None,
    search: Optional[str] = None,
    skip: int = 0,
    limit: int = 200,
    db: Session = Depends(get_db),
    ctx: security.RequestContext = Depends(security.require_staff),
):
    """Patients visible to the caller: shared ones plus those they own."""
    try:
        return crud.get_patients(db, ctx, sort_by=sort_by, is_dispensary=is_dispensary,
                                 search=search, skip=skip, limit=limit)
    except crud.CRUDError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/patients/{patient_id}", response_model=schemas.PatientResponse)
def read_patient(
    patient_id: int,
    db: Session = Depends(get_db),
    ctx: security.RequestContext = Depends(security.require_staff),
):
    try:
        return crud.get_patient(db, patient_id, ctx)
    except crud.CRUDError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/patients/{patient_id}/appointments", response_model=List[schemas.AppointmentResponse])
def read_patient_appointments(
    patient_id: int,
    db: Session = Depends(get_db),
    ctx: security.RequestContext = Depends(security.require_staff),
):
    try:
        return crud.get_patient_appointments(db, patient_id, ctx)
    except crud.CRUDError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/patients", response_model=schemas.PatientResponse, status_code=status.HTTP_201_CREATED)
def create_patient(
    patient: schemas.PatientCreate,
    db: Session = Depends(get_db),
    ctx: security.RequestContext = Depends(security.require_staff),
):
    try:
        db_patient = crud.create_patient(db, patient, ctx)
    except crud.CRUDError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    audit_trail.log_event(db, ctx.user, "CREATE", "PATIENT", resource_type="patient", resource_id=db_patient.id,
                          details=f"Created patient {db_patient.full_name}")
    return db_patient


@router.put("/patients/{patient_id}", response_model=schemas.PatientResponse)
def update_patient(
    patient_id: int,
    patient_update: schemas.PatientUpdate,
    db: Session = Depends(get_db),
    ctx: security.RequestContext = Depends(security.require_admin),
):
    try:
        db_patient = crud.update_patient(db, patient_id, patient_update, ctx)
    except crud.CRUDError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    audit_trail.log_event(db, ctx.user, "UPDATE", "PATIENT", resource_type="patient", resource_id=patient_id,
                          new_values=patient_update.model_dump(mode="json", exclude_unset=True))
    return db_patient


@router.delete("/patients/{patient_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_patient(
    patient_id: int,
    db: Session = Depends(get_db),
    ctx: security.RequestContext = Depends(security.require_admin),
):
    try:
        crud.delete_patient(db, patient_id, ctx)
    except crud.CRUDError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    audit_trail.log_event(db, ctx.user, "DELETE", "PATIENT", resource_type="patient", resource_id=patient_id)
