# clinicdesk/routers/appointment_templates.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import crud, schemas, security
from ..audit import audit_trail
from ..database import get_db

router = APIRouter(
    prefix="/appointment-templates",
    tags=["Appointment Templates"],
    responses={404: {"description": "Not found"}},
)


@router.get("", response_model=List[schemas.AppointmentTemplateResponse],
            dependencies=[Depends(security.require_staff)])
def read_templates(db: Session = Depends(get_db)):
    return crud.get_appointment_templates(db)


@router.get("/{template_id}", response_model=schemas.AppointmentTemplateResponse,
            dependencies=[Depends(security.require_staff)])
def read_template(template_id: int, db: Session = Depends(get_db)):
    try:
        return crud.get_appointment_template(db, template_id)
    except crud.CRUDError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("", response_model=schemas.AppointmentTemplateResponse, status_code=status.HTTP_201_CREATED)
def create_template(
    template: schemas.AppointmentTemplateCreate,
    db: Session = Depends(get_db),
    ctx: security.RequestContext = Depends(security.require_admin),
):
    try:
        db_template = crud.create_appointment_template(db, template, created_by=ctx.user_id)
    except crud.CRUDError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    audit_trail.log_event(db, ctx.user, "CREATE", "APPOINTMENT_TEMPLATE", resource_type="appointment_template",
                          resource_id=db_template.id, new_values=template.model_dump(mode="json"))
    return db_template


@router.put("/{template_id}", response_model=schemas.AppointmentTemplateResponse)
def update_template(
    template_id: int,
    template_update: schemas.AppointmentTemplateUpdate,
    db: Session = Depends(get_db),
    ctx: security.RequestContext = Depends(security.require_admin),
):
    try:
        db_template = crud.update_appointment_template(db, template_id, template_update)
    except crud.CRUDError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    audit_trail.log_event(db, ctx.user, "UPDATE", "APPOINTMENT_TEMPLATE", resource_type="appointment_template",
                          resource_id=template_id,
                          new_values=template_update.model_dump(mode="json", exclude_unset=True))
    return db_template


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_template(
    template_id: int,
    db: Session = Depends(get_db),
    ctx: security.RequestContext = Depends(security.require_admin),
):
    try:
        crud.delete_appointment_template(db, template_id)
    except crud.CRUDError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    audit_trail.log_event(db, ctx.user, "DELETE", "APPOINTMENT_TEMPLATE", resource_type="appointment_template",
                          resource_id=template_id)
