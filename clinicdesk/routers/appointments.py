# clinicdesk/routers/appointments.py
import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from .. import crud, schemas, security
from ..audit import audit_trail
from ..config import get_settings
from ..database import get_db
from ..limiter import limiter
from ..services import notification_service
from ..services.calendar_service import date_range_bounds

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["Appointments"],
    responses={404: {"description": "Not found"}},
)


def _default_clinic_id(db: Session) -> Optional[int]:
    clinic = crud.get_clinic_by_name(db, get_settings().default_clinic_name)
    return clinic.id if clinic else None


@router.get("/appointments", response_model=List[schemas.AppointmentResponse])
def read_appointments(
    start_date: date,
    end_date: date,
    clinic_id: Optional[int] = None,
    include_canceled: bool = False,
    db: Session = Depends(get_db),
    ctx: security.RequestContext = Depends(security.require_staff),
):
    """Appointments overlapping [start_date, end_date] in clinic time. Staff only see their own clinic."""
    if end_date < start_date:
        raise HTTPException(status_code=400, detail="end_date must not be before start_date.")
    if ctx.is_staff:
        clinic_id = ctx.clinic_id
    start, end = date_range_bounds(start_date, end_date)
    try:
        return crud.get_appointments_by_date_range(db, start, end, clinic_id=clinic_id,
                                                   include_canceled=include_canceled)
    except crud.CRUDError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/appointments/{appointment_id}", response_model=schemas.AppointmentResponse)
def read_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    ctx: security.RequestContext = Depends(security.require_staff),
):
    try:
        appointment = crud.get_appointment(db, appointment_id)
    except crud.CRUDError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    if ctx.is_staff and appointment.clinic_id != ctx.clinic_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN,
                            detail="This appointment belongs to another clinic.")
    return appointment


@router.post("/appointments", response_model=schemas.AppointmentResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(get_settings().appointment_rate_limit)
def create_new_appointment(
    appointment: schemas.AppointmentCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: security.RequestContext = Depends(security.require_staff),
):
    """Book an appointment or block time.

    Returns 409 when the range overlaps any live appointment or block in
    any clinic. A WhatsApp confirmation is queued when requested.
    """
    try:
        db_appointment = crud.create_appointment(db, appointment, ctx, default_clinic_id=_default_clinic_id(db))
    except crud.CRUDError as e:
        if isinstance(e, crud.PermissionDeniedError):
            audit_trail.log_event(db, ctx.user, "ACCESS_DENIED", "APPOINTMENT", details=str(e), severity="WARNING",
                                  ip_address=request.client.host if request.client else None)
        raise HTTPException(status_code=e.status_code, detail=str(e))

    audit_trail.log_event(
        db, ctx.user, "CREATE", "APPOINTMENT",
        resource_type="appointment", resource_id=db_appointment.id,
        details=f"{db_appointment.status.value} {db_appointment.start_ts.isoformat()} - {db_appointment.end_ts.isoformat()}",
        new_values=appointment.model_dump(mode="json", exclude_unset=True),
        ip_address=request.client.host if request.client else None,
    )

    message = notification_service.prepare_appointment_notification(db, db_appointment)
    if message is not None:
        background_tasks.add_task(notification_service.send_rendered, message)

    return db_appointment


@router.put("/appointments/{appointment_id}", response_model=schemas.AppointmentResponse)
def update_existing_appointment(
    appointment_id: int,
    appointment_update: schemas.AppointmentUpdate,
    db: Session = Depends(get_db),
    ctx: security.RequestContext = Depends(security.require_staff),
):
    try:
        db_appointment = crud.update_appointment(db, appointment_id, appointment_update, ctx)
    except crud.CRUDError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    audit_trail.log_event(db, ctx.user, "UPDATE", "APPOINTMENT", resource_type="appointment",
                          resource_id=appointment_id,
                          new_values=appointment_update.model_dump(mode="json", exclude_unset=True))
    return db_appointment


@router.patch("/appointments/{appointment_id}/status", response_model=schemas.AppointmentResponse)
def update_appointment_status(
    appointment_id: int,
    status_update: schemas.AppointmentStatusUpdate,
    db: Session = Depends(get_db),
    ctx: security.RequestContext = Depends(security.require_staff),
):
    try:
        db_appointment = crud.change_appointment_status(db, appointment_id, status_update.status, ctx)
    except crud.CRUDError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    audit_trail.log_event(db, ctx.user, "UPDATE", "APPOINTMENT", resource_type="appointment",
                          resource_id=appointment_id, details=f"Status set to {status_update.status.value}")
    return db_appointment


@router.delete("/appointments/{appointment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_existing_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    ctx: security.RequestContext = Depends(security.require_staff),
):
    try:
        crud.delete_appointment(db, appointment_id, ctx)
    except crud.CRUDError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    audit_trail.log_event(db, ctx.user, "DELETE", "APPOINTMENT", resource_type="appointment",
                          resource_id=appointment_id)
    logger.info(f"Appointment {appointment_id} deleted by user {ctx.user_id}")
