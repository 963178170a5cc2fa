# clinicdesk/services/slot_validator.py
"""
Advisory checks for a proposed booking range.

Rules run in a fixed order and the first failing rule decides the outcome:

1. the range must end after it starts;
2. a range starting on a day before today (in the clinic timezone) is rejected;
   earlier hours of today are still accepted, the comparison is by date only;
3. the range must sit inside business hours on a business day;
4. the range must not overlap any loaded non-canceled appointment
   (``start < other.end and end > other.start``).

A rejection clears the calendar selection and carries a transient warning.
An accepted range comes back with a fresh booking draft. The authoritative
check happens at write time in ``crud``.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo
from enum import Enum
from typing import Iterable, Optional, Sequence

from ..models import AppointmentStatus
from .form_defaults import BookingDraft, new_draft


class RejectReason(str, Enum):
    invalid_range = "invalid_range"
    past_date = "past_date"
    outside_business_hours = "outside_business_hours"
    overlap = "overlap"


REJECT_MESSAGES = {
    RejectReason.invalid_range: "End time must be after start time.",
    RejectReason.past_date: "Cannot book appointments in the past.",
    RejectReason.outside_business_hours: "The selected time is outside clinic working hours.",
    RejectReason.overlap: "This time slot is already booked.",
}


@dataclass(frozen=True)
class BusinessHours:
    # Weekday numbers with Sunday = 0, as the calendar counts them.
    days: Sequence[int] = (0, 1, 2, 3, 4, 5)
    opening_hour: int = 8
    closing_hour: int = 21

    @classmethod
    def from_settings(cls, settings) -> "BusinessHours":
        return cls(
            days=tuple(settings.business_days),
            opening_hour=settings.business_opening_hour,
            closing_hour=settings.business_closing_hour,
        )

    @staticmethod
    def weekday(value: datetime) -> int:
        return (value.weekday() + 1) % 7

    def contains(self, start: datetime, end: datetime) -> bool:
        if self.weekday(start) not in self.days:
            return False
        day = start.replace(hour=0, minute=0, second=0, microsecond=0)
        opens = day + timedelta(hours=self.opening_hour)
        closes = day + timedelta(hours=self.closing_hour)
        return opens <= start and end <= closes


@dataclass(frozen=True)
class SlotDecision:
    accepted: bool
    reason: Optional[RejectReason] = None
    message: Optional[str] = None
    clear_selection: bool = False
    conflicting_ids: tuple = field(default_factory=tuple)
    draft: Optional[BookingDraft] = None

    @classmethod
    def reject(cls, reason: RejectReason, conflicting_ids=()) -> "SlotDecision":
        return cls(
            accepted=False,
            reason=reason,
            message=REJECT_MESSAGES[reason],
            clear_selection=True,
            conflicting_ids=tuple(conflicting_ids),
        )


def to_local(value: datetime, tz: tzinfo) -> datetime:
    """Naive values are taken as clinic wall-clock time."""
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def _status_of(row) -> AppointmentStatus:
    return AppointmentStatus(getattr(row, "status", AppointmentStatus.scheduled))


def overlaps(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    return start < other_end and end > other_start


def find_conflicts(start: datetime, end: datetime, existing: Iterable, exclude_id=None) -> list:
    """Loaded rows that are not canceled and overlap [start, end)."""
    conflicts = []
    for row in existing:
        if exclude_id is not None and getattr(row, "id", None) == exclude_id:
            continue
        if _status_of(row) == AppointmentStatus.canceled:
            continue
        if overlaps(start, end, row.start_ts, row.end_ts):
            conflicts.append(row)
    return conflicts


def validate_slot(
    start: datetime,
    end: datetime,
    existing: Iterable,
    now: datetime,
    *,
    tz: tzinfo,
    business_hours: Optional[BusinessHours] = None,
    clinic_id: Optional[int] = None,
    exclude_id=None,
) -> SlotDecision:
    """Decide whether [start, end) may be offered for booking.

    ``existing`` holds the appointments loaded for the visible range; rows
    only need ``start_ts``, ``end_ts`` and ``status`` (and ``id`` when
    ``exclude_id`` is used to re-validate an appointment being moved).
    """
    start_local = to_local(start, tz)
    end_local = to_local(end, tz)

    if end_local <= start_local:
        return SlotDecision.reject(RejectReason.invalid_range)

    if start_local.date() < to_local(now, tz).date():
        return SlotDecision.reject(RejectReason.past_date)

    if business_hours is not None and not business_hours.contains(start_local, end_local):
        return SlotDecision.reject(RejectReason.outside_business_hours)

    conflicts = find_conflicts(start_local, end_local, existing, exclude_id=exclude_id)
    if conflicts:
        return SlotDecision.reject(RejectReason.overlap, [getattr(c, "id", None) for c in conflicts])

    return SlotDecision(accepted=True, draft=new_draft(start_local, end_local, clinic_id=clinic_id))
