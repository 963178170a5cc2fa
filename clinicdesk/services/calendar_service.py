# clinicdesk/services/calendar_service.py
"""
Server side of the calendar: the flattened appointment projection and the
per-viewer anonymization applied to it before anything leaves the backend.
"""
import logging
from datetime import date, datetime, time, timedelta
from typing import List, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from .. import crud, models, schemas
from ..config import get_settings
from .event_projector import CalendarEvent, project_events

logger = logging.getLogger(__name__)

FOREIGN_CLINIC_FIELDS = (
    "clinic_name",
    "patient_id",
    "patient_first_name",
    "patient_last_name",
    "patient_phone",
    "patient_type",
    "procedure_id",
    "procedure_name",
    "procedure_color",
    "short_label",
    "cost",
    "tooth_num",
    "description",
)

PRIVATE_PATIENT_FIELDS = (
    "patient_id",
    "patient_first_name",
    "patient_last_name",
    "patient_phone",
    "patient_type",
    "short_label",
    "description",
    "tooth_num",
)


def clinic_timezone() -> ZoneInfo:
    return ZoneInfo(get_settings().clinic_timezone)


def date_range_bounds(start_date: date, end_date: date, tz=None) -> Tuple[datetime, datetime]:
    """[start of start_date, start of the day after end_date) in clinic time."""
    tz = tz or clinic_timezone()
    start = datetime.combine(start_date, time.min, tzinfo=tz)
    end = datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=tz)
    return start, end


def flatten(appointment: models.Appointment) -> schemas.CalendarRow:
    clinic, patient, procedure = appointment.clinic, appointment.patient, appointment.procedure
    return schemas.CalendarRow(
        id=appointment.id,
        clinic_id=appointment.clinic_id,
        clinic_name=clinic.name if clinic else None,
        clinic_color=clinic.color_hex if clinic else None,
        patient_id=appointment.patient_id,
        patient_first_name=patient.first_name if patient else None,
        patient_last_name=patient.last_name if patient else None,
        patient_phone=patient.phone if patient else None,
        patient_type=patient.patient_type if patient else None,
        procedure_id=appointment.procedure_id,
        procedure_name=procedure.name if procedure else None,
        procedure_color=procedure.color_hex if procedure else None,
        start_ts=appointment.start_ts,
        end_ts=appointment.end_ts,
        status=appointment.status,
        short_label=appointment.short_label,
        cost=appointment.cost,
        tooth_num=appointment.tooth_num,
        description=appointment.description,
        send_notifications=appointment.send_notifications,
    )


def anonymize_for(row: schemas.CalendarRow, owner_id, ctx) -> schemas.CalendarRow:
    """Strip what ``ctx`` may not see from one row."""
    if ctx.is_staff and row.clinic_id != ctx.clinic_id:
        hidden = FOREIGN_CLINIC_FIELDS
    elif owner_id is not None and owner_id != ctx.user_id:
        hidden = PRIVATE_PATIENT_FIELDS
    else:
        return row
    update = {field: None for field in hidden}
    update["is_anonymized"] = True
    return row.model_copy(update=update)


def get_calendar_appointments(db: Session, start_date: date, end_date: date, ctx) -> List[schemas.CalendarRow]:
    """Non-canceled appointments touching [start_date, end_date], flattened and anonymized for ``ctx``."""
    start, end = date_range_bounds(start_date, end_date)
    appointments = crud.get_appointments_by_date_range(db, start, end)
    rows = []
    for appointment in appointments:
        owner_id = appointment.patient.owner_id if appointment.patient else None
        rows.append(anonymize_for(flatten(appointment), owner_id, ctx))
    logger.debug(f"Calendar {start_date}..{end_date}: {len(rows)} rows for user {ctx.user_id}")
    return rows


def get_calendar_events(db: Session, start_date: date, end_date: date, ctx) -> List[CalendarEvent]:
    return project_events(get_calendar_appointments(db, start_date, end_date, ctx), ctx)
