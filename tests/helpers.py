"""Plain helpers shared by the test modules."""
from datetime import date, datetime
from zoneinfo import ZoneInfo

from clinicdesk.security import create_session_token

CLINIC_TZ = ZoneInfo("Asia/Jerusalem")


def auth_headers_for(user) -> dict:
    return {"Authorization": f"Bearer {create_session_token(user)}"}


def at(day: date, hour: int, minute: int = 0) -> datetime:
    """Clinic-local aware datetime on ``day``."""
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=CLINIC_TZ)


def appointment_payload(patient, procedure, start, end=None, **extra) -> dict:
    payload = {
        "patient_id": patient.id,
        "procedure_id": procedure.id,
        "start_ts": start.isoformat(),
    }
    if end is not None:
        payload["end_ts"] = end.isoformat()
    payload.update(extra)
    return payload
