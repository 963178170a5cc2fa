# clinicdesk/services/event_projector.py
from datetime import datetime
from typing import Any, Dict, Iterable, List

from pydantic import BaseModel, ConfigDict, Field

from ..models import AppointmentStatus, UserRole

BUSY_TITLE = "Busy"
BLOCKED_TITLE = "Blocked"
DEFAULT_TITLE = "Appointment"

BUSY_COLORS = {"background": "#E0E0E0", "border": "#BDBDBD", "text": "#616161"}
BLOCK_COLORS = {"background": "#616161", "border": "#424242", "text": "#FFFFFF"}
DEFAULT_EVENT_COLOR = "#9E9E9E"
EVENT_TEXT_COLOR = "#FFFFFF"
COMPLETED_TEXT_COLOR = "#E0E0E0"


class CalendarEvent(BaseModel):
    """A calendar-widget event; serialized with the widget's camelCase keys."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    start: datetime
    end: datetime
    background_color: str = Field(alias="backgroundColor")
    border_color: str = Field(alias="borderColor")
    text_color: str = Field(alias="textColor")
    class_names: List[str] = Field(default_factory=list, alias="classNames")
    editable: bool = False
    interactive: bool = True
    extended_props: Dict[str, Any] = Field(default_factory=dict, alias="extendedProps")


def _is_foreign_for_staff(row, viewer) -> bool:
    return viewer.role == UserRole.clinic_staff and row.clinic_id != viewer.clinic_id


def _title(row) -> str:
    if row.short_label:
        return row.short_label
    first = getattr(row, "patient_first_name", None)
    last = getattr(row, "patient_last_name", None)
    if first or last:
        return " ".join(part for part in (first, last) if part)
    return getattr(row, "procedure_name", None) or DEFAULT_TITLE


def project_event(row, viewer) -> CalendarEvent:
    """Map one calendar row to a displayable event for ``viewer``.

    Order matters: cross-clinic privacy for staff comes before block
    styling, which comes before regular clinic/procedure colouring.
    """
    status = AppointmentStatus(row.status)
    base = {"id": str(row.id), "start": row.start_ts, "end": row.end_ts}

    if _is_foreign_for_staff(row, viewer):
        return CalendarEvent(
            **base,
            title=BUSY_TITLE,
            background_color=BUSY_COLORS["background"],
            border_color=BUSY_COLORS["border"],
            text_color=BUSY_COLORS["text"],
            class_names=["event-busy"],
            editable=False,
            interactive=False,
            extended_props={"kind": "busy"},
        )

    if status == AppointmentStatus.blocked:
        return CalendarEvent(
            **base,
            title=row.short_label or BLOCKED_TITLE,
            background_color=BLOCK_COLORS["background"],
            border_color=BLOCK_COLORS["border"],
            text_color=BLOCK_COLORS["text"],
            class_names=["event-blocked"],
            editable=viewer.role == UserRole.admin,
            interactive=viewer.role == UserRole.admin,
            extended_props={"kind": "blocked", "status": status.value, "clinic_id": row.clinic_id},
        )

    completed = status == AppointmentStatus.completed
    return CalendarEvent(
        **base,
        title=_title(row),
        background_color=getattr(row, "clinic_color", None) or DEFAULT_EVENT_COLOR,
        border_color=getattr(row, "procedure_color", None) or getattr(row, "clinic_color", None) or DEFAULT_EVENT_COLOR,
        text_color=COMPLETED_TEXT_COLOR if completed else EVENT_TEXT_COLOR,
        class_names=["event-completed"] if completed else [],
        editable=not completed and viewer.role in (UserRole.admin, UserRole.clinic_staff),
        interactive=True,
        extended_props={
            "kind": "appointment",
            "status": status.value,
            "clinic_id": row.clinic_id,
            "patient_id": getattr(row, "patient_id", None),
            "procedure_id": getattr(row, "procedure_id", None),
        },
    )


def project_events(rows: Iterable, viewer) -> List[CalendarEvent]:
    return [project_event(row, viewer) for row in rows]
