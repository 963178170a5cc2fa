# clinicdesk/routers/wa_templates.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import crud, schemas, security
from ..audit import audit_trail
from ..database import get_db
from ..services.notification_service import render_template

router = APIRouter(
    prefix="/wa-templates",
    tags=["WhatsApp Templates"],
    dependencies=[Depends(security.require_admin)],
    responses={404: {"description": "Not found"}},
)


@router.get("", response_model=List[schemas.WaTemplateResponse])
def read_wa_templates(db: Session = Depends(get_db)):
    """Templates, newest first."""
    return crud.get_wa_templates(db)


@router.get("/{template_id}", response_model=schemas.WaTemplateResponse)
def read_wa_template(template_id: int, db: Session = Depends(get_db)):
    try:
        return crud.get_wa_template(db, template_id)
    except crud.CRUDError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("", response_model=schemas.WaTemplateResponse, status_code=status.HTTP_201_CREATED)
def create_wa_template(
    template: schemas.WaTemplateCreate,
    db: Session = Depends(get_db),
    ctx: security.RequestContext = Depends(security.require_admin),
):
    try:
        db_template = crud.create_wa_template(db, template)
    except crud.CRUDError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    audit_trail.log_event(db, ctx.user, "CREATE", "WA_TEMPLATE", resource_type="wa_template",
                          resource_id=db_template.id, details=f"Created template {db_template.code}")
    return db_template


@router.put("/{template_id}", response_model=schemas.WaTemplateResponse)
def update_wa_template(
    template_id: int,
    template_update: schemas.WaTemplateUpdate,
    db: Session = Depends(get_db),
    ctx: security.RequestContext = Depends(security.require_admin),
):
    try:
        db_template = crud.update_wa_template(db, template_id, template_update)
    except crud.CRUDError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    audit_trail.log_event(db, ctx.user, "UPDATE", "WA_TEMPLATE", resource_type="wa_template",
                          resource_id=template_id)
    return db_template


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_wa_template(
    template_id: int,
    db: Session = Depends(get_db),
    ctx: security.RequestContext = Depends(security.require_admin),
):
    try:
        crud.delete_wa_template(db, template_id)
    except crud.CRUDError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    audit_trail.log_event(db, ctx.user, "DELETE", "WA_TEMPLATE", resource_type="wa_template",
                          resource_id=template_id)


@router.post("/{template_id}/preview", response_model=schemas.WaTemplatePreview)
def preview_wa_template(
    template_id: int,
    request: schemas.WaTemplatePreviewRequest,
    db: Session = Depends(get_db),
):
    """Render a template against an existing appointment without sending anything."""
    try:
        template = crud.get_wa_template(db, template_id)
        appointment = crud.get_appointment(db, request.appointment_id)
    except crud.CRUDError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    message = render_template(template, appointment)
    return schemas.WaTemplatePreview(
        template_code=template.code,
        language=message.language,
        phone=message.phone,
        body=message.body,
    )
