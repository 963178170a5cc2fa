# clinicdesk/services/form_defaults.py
"""
Booking form state and the rules that derive its defaults.

A ``BookingDraft`` is the in-progress content of the booking dialog. Every
operation here returns a new draft; nothing mutates its input. The same
functions back the ``/booking/draft`` endpoint and the server-side defaults
applied when an appointment is created without an explicit end or cost.
"""
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, field_validator

from ..config import get_settings
from ..models import AppointmentStatus

# Fields the admin form disables once an appointment is completed.
COMPLETED_LOCKED_FIELDS = (
    "patient_id",
    "procedure_id",
    "short_label",
    "tooth_num",
    "cost",
    "send_notifications",
    "start_ts",
    "end_ts",
    "clinic_id",
)

BLOCK_SUPPRESSED_FIELDS = ("patient_id", "procedure_id", "cost", "send_notifications")

DEFAULT_DURATION_MINUTES = 30


def clinic_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Naive timestamps are clinic wall-clock time; aware ones pass through."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=ZoneInfo(get_settings().clinic_timezone))


class BookingDraft(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    start_ts: datetime
    end_ts: datetime
    clinic_id: Optional[int] = None
    patient_id: Optional[int] = None
    procedure_id: Optional[int] = None
    template_id: Optional[int] = None
    status: AppointmentStatus = AppointmentStatus.scheduled
    short_label: Optional[str] = None
    cost: Optional[Decimal] = None
    tooth_num: Optional[str] = None
    description: Optional[str] = None
    send_notifications: bool = False
    all_day: bool = False
    # Range in effect before all-day pinning, restored when it is turned off.
    saved_range: Optional[Tuple[datetime, datetime]] = None

    @field_validator("start_ts", "end_ts")
    @classmethod
    def attach_clinic_timezone(cls, v):
        return clinic_aware(v)

    @property
    def duration(self) -> timedelta:
        return self.end_ts - self.start_ts

    @property
    def is_block(self) -> bool:
        return self.status == AppointmentStatus.blocked


class DraftError(ValueError):
    """Raised when a draft action does not apply to the draft's current state."""


def new_draft(start: datetime, end: datetime, clinic_id: Optional[int] = None) -> BookingDraft:
    return BookingDraft(start_ts=start, end_ts=end, clinic_id=clinic_id)


def apply_procedure(draft: BookingDraft, procedure) -> BookingDraft:
    """Select a procedure: its default duration moves the end, its default cost replaces the cost."""
    if draft.is_block:
        raise DraftError("Block time does not take a procedure")
    update = {"procedure_id": procedure.id}
    if procedure.default_duration_min:
        update["end_ts"] = draft.start_ts + timedelta(minutes=procedure.default_duration_min)
    if procedure.default_cost is not None:
        update["cost"] = Decimal(str(procedure.default_cost))
    return draft.model_copy(update=update)


def apply_template(draft: BookingDraft, template, procedure=None) -> BookingDraft:
    """Select an appointment template.

    The linked procedure (if any) propagates first; the template's own
    duration and cost then take precedence where set.
    """
    if draft.is_block:
        raise DraftError("Block time does not take a template")
    if procedure is not None:
        draft = apply_procedure(draft, procedure)
    update = {"template_id": template.id}
    if template.default_duration_min:
        update["end_ts"] = draft.start_ts + timedelta(minutes=template.default_duration_min)
    if template.default_cost is not None:
        update["cost"] = Decimal(str(template.default_cost))
    return draft.model_copy(update=update)


def apply_duration(draft: BookingDraft, minutes: int) -> BookingDraft:
    if minutes <= 0:
        raise DraftError("Duration must be positive")
    return draft.model_copy(update={"end_ts": draft.start_ts + timedelta(minutes=minutes)})


def move_start(draft: BookingDraft, new_start: datetime) -> BookingDraft:
    """Change the start date/time keeping the current duration."""
    return draft.model_copy(update={"start_ts": new_start, "end_ts": new_start + draft.duration})


def enter_block_mode(draft: BookingDraft) -> BookingDraft:
    return draft.model_copy(update={
        "status": AppointmentStatus.blocked,
        "patient_id": None,
        "procedure_id": None,
        "template_id": None,
        "cost": None,
        "send_notifications": False,
    })


def leave_block_mode(draft: BookingDraft) -> BookingDraft:
    if not draft.is_block:
        return draft
    if draft.all_day:
        draft = toggle_all_day(draft, False)
    return draft.model_copy(update={"status": AppointmentStatus.scheduled})


def toggle_all_day(draft: BookingDraft, on: bool, opening_hour: int = 8, closing_hour: int = 21,
                   tz=None) -> BookingDraft:
    """Pin a block to the clinic's opening and closing hour of the start date.

    Hours are wall-clock hours in ``tz`` when given. Turning it off restores
    the range saved when it was turned on; toggling to the current state is
    a no-op.
    """
    if on == draft.all_day:
        return draft
    if on:
        if not draft.is_block:
            raise DraftError("All-day applies to block time only")
        local_start = draft.start_ts.astimezone(tz) if tz is not None and draft.start_ts.tzinfo else draft.start_ts
        day = local_start.replace(hour=0, minute=0, second=0, microsecond=0)
        return draft.model_copy(update={
            "all_day": True,
            "saved_range": (draft.start_ts, draft.end_ts),
            "start_ts": day + timedelta(hours=opening_hour),
            "end_ts": day + timedelta(hours=closing_hour),
        })
    start, end = draft.saved_range or (draft.start_ts, draft.end_ts)
    return draft.model_copy(update={
        "all_day": False,
        "saved_range": None,
        "start_ts": start,
        "end_ts": end,
    })


def locked_fields(status: AppointmentStatus) -> Tuple[str, ...]:
    """Fields the form must render read-only for an appointment in ``status``."""
    if status == AppointmentStatus.completed:
        return COMPLETED_LOCKED_FIELDS
    if status == AppointmentStatus.blocked:
        return BLOCK_SUPPRESSED_FIELDS
    return ()


def resolve_defaults(start: datetime, end: Optional[datetime], cost, procedure=None, template=None):
    """End and cost for a create request, filling whatever the caller left out.

    Explicit values always win; otherwise template, then procedure, then a
    30 minute default duration.
    """
    draft = BookingDraft(start_ts=start, end_ts=end or start + timedelta(minutes=DEFAULT_DURATION_MINUTES))
    if template is not None:
        draft = apply_template(draft, template, procedure)
    elif procedure is not None:
        draft = apply_procedure(draft, procedure)
    return (end or draft.end_ts), (cost if cost is not None else draft.cost)
