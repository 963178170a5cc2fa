# clinicdesk/routers/clinics.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import crud, schemas, security
from ..audit import audit_trail
from ..database import get_db

router = APIRouter(
    tags=["Clinics"],
    responses={404: {"description": "Not found"}},
)


@router.get("/clinics", response_model=List[schemas.ClinicResponse],
            dependencies=[Depends(security.require_staff)])
def read_clinics(db: Session = Depends(get_db)):
    return crud.get_clinics(db)


@router.get("/clinics/{clinic_id}", response_model=schemas.ClinicResponse,
            dependencies=[Depends(security.require_staff)])
def read_clinic(clinic_id: int, db: Session = Depends(get_db)):
    clinic = crud.get_clinic(db, clinic_id)
    if clinic is None:
        raise HTTPException(status_code=404, detail="Clinic not found")
    return clinic


@router.post("/clinics", response_model=schemas.ClinicResponse, status_code=status.HTTP_201_CREATED)
def create_clinic(
    clinic: schemas.ClinicCreate,
    db: Session = Depends(get_db),
    ctx: security.RequestContext = Depends(security.require_admin),
):
    try:
        db_clinic = crud.create_clinic(db, clinic)
    except crud.CRUDError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    audit_trail.log_event(db, ctx.user, "CREATE", "CLINIC", resource_type="clinic", resource_id=db_clinic.id,
                          details=f"Created clinic {db_clinic.name}", new_values=clinic.model_dump(mode="json"))
    return db_clinic


@router.put("/clinics/{clinic_id}", response_model=schemas.ClinicResponse)
def update_clinic(
    clinic_id: int,
    clinic_update: schemas.ClinicUpdate,
    db: Session = Depends(get_db),
    ctx: security.RequestContext = Depends(security.require_admin),
):
    try:
        db_clinic = crud.update_clinic(db, clinic_id, clinic_update)
    except crud.CRUDError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    audit_trail.log_event(db, ctx.user, "UPDATE", "CLINIC", resource_type="clinic", resource_id=clinic_id,
                          new_values=clinic_update.model_dump(mode="json", exclude_unset=True))
    return db_clinic


@router.delete("/clinics/{clinic_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_clinic(
    clinic_id: int,
    db: Session = Depends(get_db),
    ctx: security.RequestContext = Depends(security.require_admin),
):
    try:
        crud.delete_clinic(db, clinic_id)
    except crud.CRUDError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    audit_trail.log_event(db, ctx.user, "DELETE", "CLINIC", resource_type="clinic", resource_id=clinic_id)
