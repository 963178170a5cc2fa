# clinicdesk/routers/booking.py
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import crud, schemas, security
from ..config import get_settings
from ..database import get_db, utcnow
from ..services import form_defaults
from ..services.calendar_service import clinic_timezone
from ..services.slot_validator import BusinessHours, to_local, validate_slot

router = APIRouter(
    prefix="/booking",
    tags=["Booking"],
)


@router.post("/validate-slot", response_model=schemas.SlotValidationResponse)
def validate_booking_slot(
    request: schemas.SlotValidationRequest,
    db: Session = Depends(get_db),
    ctx: security.RequestContext = Depends(security.require_staff),
):
    """
    Check a selected range before the booking dialog opens.

    Rejections carry the message to show and ask the calendar to drop its
    selection; an accepted slot comes back with a fresh booking draft.
    """
    tz = clinic_timezone()
    start, end = to_local(request.start_ts, tz), to_local(request.end_ts, tz)
    existing = []
    if end > start:
        try:
            existing = crud.get_appointments_by_date_range(db, start, end)
        except crud.CRUDError as e:
            raise HTTPException(status_code=e.status_code, detail=str(e))

    decision = validate_slot(
        start, end, existing, utcnow(),
        tz=tz,
        business_hours=BusinessHours.from_settings(get_settings()),
        clinic_id=ctx.clinic_id,
        exclude_id=request.exclude_appointment_id,
    )
    return schemas.SlotValidationResponse(
        accepted=decision.accepted,
        reason=decision.reason.value if decision.reason else None,
        message=decision.message,
        clear_selection=decision.clear_selection,
        conflicting_ids=list(decision.conflicting_ids),
        draft=decision.draft,
    )


@router.post("/draft", response_model=schemas.DraftActionResponse)
def apply_draft_action(
    request: schemas.DraftActionRequest,
    db: Session = Depends(get_db),
    ctx: security.RequestContext = Depends(security.require_staff),
):
    """Apply one booking-form action to a draft and return the new draft with its locked fields."""
    draft = request.draft
    try:
        if request.action == "select_procedure":
            if request.procedure_id is None:
                raise form_defaults.DraftError("procedure_id is required")
            draft = form_defaults.apply_procedure(draft, crud.get_procedure(db, request.procedure_id))
        elif request.action == "select_template":
            if request.template_id is None:
                raise form_defaults.DraftError("template_id is required")
            template = crud.get_appointment_template(db, request.template_id)
            draft = form_defaults.apply_template(draft, template, template.default_procedure)
        elif request.action == "set_duration":
            if request.minutes is None:
                raise form_defaults.DraftError("minutes is required")
            draft = form_defaults.apply_duration(draft, request.minutes)
        elif request.action == "move_start":
            if request.start_ts is None:
                raise form_defaults.DraftError("start_ts is required")
            draft = form_defaults.move_start(draft, request.start_ts)
        elif request.action in ("enter_block_mode", "toggle_all_day") and not ctx.is_admin:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN,
                                detail="Only administrators can block time.")
        elif request.action == "enter_block_mode":
            draft = form_defaults.enter_block_mode(draft)
        elif request.action == "leave_block_mode":
            draft = form_defaults.leave_block_mode(draft)
        elif request.action == "toggle_all_day":
            if request.all_day is None:
                raise form_defaults.DraftError("all_day is required")
            clinic = crud.get_clinic(db, draft.clinic_id) if draft.clinic_id else None
            settings = get_settings()
            draft = form_defaults.toggle_all_day(
                draft,
                request.all_day,
                opening_hour=clinic.opening_hour if clinic else settings.business_opening_hour,
                closing_hour=clinic.closing_hour if clinic else settings.business_closing_hour,
                tz=clinic_timezone(),
            )
    except form_defaults.DraftError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except crud.CRUDError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    return schemas.DraftActionResponse(
        draft=draft,
        locked_fields=list(form_defaults.locked_fields(draft.status)),
    )
