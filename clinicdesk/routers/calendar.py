# clinicdesk/routers/calendar.py
from datetime import date
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .. import crud, schemas, security
from ..database import get_db
from ..services import calendar_service
from ..services.event_projector import CalendarEvent

router = APIRouter(
    prefix="/calendar",
    tags=["Calendar"],
)


def _check_range(start_date: date, end_date: date) -> None:
    if end_date < start_date:
        raise HTTPException(status_code=400, detail="end_date must not be before start_date.")


@router.get("/appointments", response_model=List[schemas.CalendarRow])
def read_calendar_appointments(
    start_date: date,
    end_date: date,
    db: Session = Depends(get_db),
    ctx: security.RequestContext = Depends(security.require_staff),
):
    """
    Every non-canceled appointment in every clinic touching the date range,
    with the fields the caller may not see already removed.
    """
    _check_range(start_date, end_date)
    try:
        return calendar_service.get_calendar_appointments(db, start_date, end_date, ctx)
    except crud.CRUDError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/events", response_model=List[CalendarEvent])
def read_calendar_events(
    start_date: date,
    end_date: date,
    db: Session = Depends(get_db),
    ctx: security.RequestContext = Depends(security.require_staff),
):
    _check_range(start_date, end_date)
    try:
        return calendar_service.get_calendar_events(db, start_date, end_date, ctx)
    except crud.CRUDError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
