# clinicdesk/services/notification_service.py - WhatsApp notifications through Twilio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

from .. import crud, models
from ..config import get_settings

logger = logging.getLogger(__name__)


class _KeepMissing(dict):
    """format_map mapping that leaves unknown placeholders untouched."""

    def __missing__(self, key):
        return "{" + key + "}"


@dataclass(frozen=True)
class RenderedMessage:
    language: str
    phone: Optional[str]
    body: str
    appointment_id: Optional[int] = None


def placeholders_for(appointment: models.Appointment, tz: ZoneInfo) -> Dict[str, str]:
    local_start = appointment.start_ts.astimezone(tz)
    patient = appointment.patient
    return {
        "first_name": patient.first_name if patient else "",
        "last_name": patient.last_name if patient else "",
        "date": local_start.strftime("%d.%m.%Y"),
        "time": local_start.strftime("%H:%M"),
        "clinic": appointment.clinic.name if appointment.clinic else "",
        "procedure": appointment.procedure.name if appointment.procedure else "",
        "tooth": appointment.tooth_num or "",
    }


def render_template(template: models.WaTemplate, appointment: models.Appointment,
                    tz: Optional[ZoneInfo] = None) -> RenderedMessage:
    """Pick the body in the patient's notification language and fill its placeholders."""
    tz = tz or ZoneInfo(get_settings().clinic_timezone)
    patient = appointment.patient
    hebrew = bool(patient and patient.notification_language_is_hebrew)
    body = template.body_il if hebrew else template.body_ru
    try:
        text = body.format_map(_KeepMissing(placeholders_for(appointment, tz)))
    except (ValueError, IndexError):
        # Stray braces in a hand-written body; send it as written.
        text = body
    return RenderedMessage(language="he" if hebrew else "ru", phone=patient.phone if patient else None, body=text,
                          appointment_id=appointment.id)


class WhatsAppNotifier:
    """Twilio-based WhatsApp sender"""

    def __init__(self):
        settings = get_settings()
        self.from_number = settings.twilio_whatsapp_from
        self.enabled = settings.whatsapp_enabled

        if self.enabled:
            self.client = Client(settings.twilio_account_sid, settings.twilio_auth_token)
            logger.info("Twilio WhatsApp notifications enabled")
        else:
            logger.warning("Twilio WhatsApp not configured - notifications disabled")
            self.client = None

    @staticmethod
    def _whatsapp_address(number: str) -> str:
        return number if number.startswith("whatsapp:") else f"whatsapp:{number}"

    def send_message(self, phone_number: str, body: str) -> Dict[str, Any]:
        if not self.enabled:
            logger.info("[SIMULATED] WhatsApp message not sent: Twilio is not configured")
            return {"success": True, "message": "Message sent (simulated)", "message_id": None}

        to_number = self._whatsapp_address(phone_number)
        try:
            sent_message = self.client.messages.create(
                from_=self._whatsapp_address(self.from_number),
                to=to_number,
                body=body,
            )
            return {"success": True, "message": "Message sent successfully", "message_id": sent_message.sid}
        except TwilioRestException as e:
            logger.error(f"Twilio API Error: {e}")
            return {"success": False, "error": f"Twilio Error: {e.status} - {e.msg}"}


_notifier: Optional[WhatsAppNotifier] = None


def get_notifier() -> WhatsAppNotifier:
    global _notifier
    if _notifier is None:
        _notifier = WhatsAppNotifier()
    return _notifier


def prepare_appointment_notification(db, appointment: models.Appointment) -> Optional[RenderedMessage]:
    """The message to send for a freshly booked appointment, or None when nothing should go out."""
    if not appointment.send_notifications or appointment.status != models.AppointmentStatus.scheduled:
        return None

    template = crud.get_wa_template_by_code(db, get_settings().notification_template_code)
    if template is None:
        logger.warning(f"No WhatsApp template '{get_settings().notification_template_code}'; notification skipped")
        return None
    message = render_template(template, appointment)
    if not message.phone:
        logger.info(f"Patient of appointment {appointment.id} has no phone; notification skipped")
        return None
    return message


def send_rendered(message: RenderedMessage) -> None:
    """Background task body: failures are logged, never raised."""
    result = get_notifier().send_message(message.phone, message.body)
    label = f"appointment {message.appointment_id} ({message.language})"
    if not result.get("success"):
        logger.error(f"WhatsApp notification for {label} failed: {result.get('error')}")
    else:
        logger.info(f"WhatsApp notification for {label}: {result.get('message')}")
