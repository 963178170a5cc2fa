# clinicdesk/schemas.py
import re
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from .models import AppointmentStatus, AuditAction, PatientType, UserRole
from .services.form_defaults import BookingDraft, clinic_aware

HEX_COLOR_RE = re.compile(r"^#[0-9A-F]{6}$", re.IGNORECASE)


def _check_hex_color(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    if not HEX_COLOR_RE.match(v):
        raise ValueError("Invalid hex color.")
    return v.upper()


def _check_name(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.strip()
    if len(v) < 2:
        raise ValueError("Name must be at least 2 characters.")
    return v


# --- Base Schemas ---
class BaseSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# --- Users / session ---
class UserResponse(BaseSchema):
    id: int
    email: EmailStr
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    role: UserRole
    clinic_id: Optional[int] = None
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None


class UserUpdate(BaseSchema):
    full_name: Optional[str] = Field(None, max_length=255)
    role: Optional[UserRole] = None
    clinic_id: Optional[int] = None
    is_active: Optional[bool] = None


class NavItem(BaseModel):
    label: str
    path: str


class MeResponse(BaseModel):
    user: UserResponse
    role: UserRole
    clinic_id: Optional[int] = None
    navigation: List[NavItem]


# --- Clinics ---
class ClinicBase(BaseSchema):
    name: str = Field(..., max_length=255)
    color_hex: str
    opening_hour: int = Field(8, ge=0, le=23)
    closing_hour: int = Field(21, ge=1, le=24)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return _check_name(v)

    @field_validator("color_hex")
    @classmethod
    def validate_color(cls, v):
        return _check_hex_color(v)

    @model_validator(mode="after")
    def check_hours(self):
        if self.closing_hour <= self.opening_hour:
            raise ValueError("Closing hour must be after opening hour.")
        return self


class ClinicCreate(ClinicBase):
    pass


class ClinicUpdate(BaseSchema):
    name: Optional[str] = Field(None, max_length=255)
    color_hex: Optional[str] = None
    opening_hour: Optional[int] = Field(None, ge=0, le=23)
    closing_hour: Optional[int] = Field(None, ge=1, le=24)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return _check_name(v)

    @field_validator("color_hex")
    @classmethod
    def validate_color(cls, v):
        return _check_hex_color(v)


class ClinicResponse(ClinicBase):
    id: int
    created_at: Optional[datetime] = None


# --- Patients ---
class PatientBase(BaseSchema):
    first_name: str = Field(..., min_length=1, max_length=255)
    last_name: str = Field(..., min_length=1, max_length=255)
    phone: Optional[str] = Field(None, max_length=32)
    patient_type: PatientType = PatientType.adult
    notes: Optional[str] = None
    is_dispensary: bool = False
    notification_language_is_hebrew: bool = False


class PatientCreate(PatientBase):
    # Admin only: the patient becomes visible in full to the creating admin alone.
    private: bool = False


class PatientUpdate(BaseSchema):
    first_name: Optional[str] = Field(None, min_length=1, max_length=255)
    last_name: Optional[str] = Field(None, min_length=1, max_length=255)
    phone: Optional[str] = Field(None, max_length=32)
    patient_type: Optional[PatientType] = None
    notes: Optional[str] = None
    is_dispensary: Optional[bool] = None
    notification_language_is_hebrew: Optional[bool] = None
    private: Optional[bool] = None


class PatientResponse(PatientBase):
    id: int
    owner_id: Optional[int] = None
    created_at: Optional[datetime] = None


# --- Procedures ---
class ProcedureBase(BaseSchema):
    name: str = Field(..., max_length=255)
    color_hex: str
    default_duration_min: Optional[int] = Field(None, gt=0, le=24 * 60)
    default_cost: Optional[Decimal] = Field(None, ge=0)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return _check_name(v)

    @field_validator("color_hex")
    @classmethod
    def validate_color(cls, v):
        return _check_hex_color(v)


class ProcedureCreate(ProcedureBase):
    pass


class ProcedureUpdate(BaseSchema):
    name: Optional[str] = Field(None, max_length=255)
    color_hex: Optional[str] = None
    default_duration_min: Optional[int] = Field(None, gt=0, le=24 * 60)
    default_cost: Optional[Decimal] = Field(None, ge=0)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return _check_name(v)

    @field_validator("color_hex")
    @classmethod
    def validate_color(cls, v):
        return _check_hex_color(v)


class ProcedureResponse(ProcedureBase):
    id: int
    created_at: Optional[datetime] = None


# --- Appointment templates ---
class AppointmentTemplateBase(BaseSchema):
    name: str = Field(..., max_length=255)
    default_duration_min: int = Field(30, gt=0, le=24 * 60)
    default_procedure_id: Optional[int] = None
    default_cost: Optional[Decimal] = Field(None, ge=0)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return _check_name(v)


class AppointmentTemplateCreate(AppointmentTemplateBase):
    pass


class AppointmentTemplateUpdate(BaseSchema):
    name: Optional[str] = Field(None, max_length=255)
    default_duration_min: Optional[int] = Field(None, gt=0, le=24 * 60)
    default_procedure_id: Optional[int] = None
    default_cost: Optional[Decimal] = Field(None, ge=0)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return _check_name(v)


class AppointmentTemplateResponse(AppointmentTemplateBase):
    id: int
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None


# --- WhatsApp templates ---
class WaTemplateBase(BaseSchema):
    code: str = Field(..., min_length=1, max_length=100, pattern=r"^[A-Za-z0-9_.-]+$")
    body_ru: str = Field(..., min_length=1)
    body_il: str = Field(..., min_length=1)


class WaTemplateCreate(WaTemplateBase):
    pass


class WaTemplateUpdate(BaseSchema):
    code: Optional[str] = Field(None, min_length=1, max_length=100, pattern=r"^[A-Za-z0-9_.-]+$")
    body_ru: Optional[str] = Field(None, min_length=1)
    body_il: Optional[str] = Field(None, min_length=1)


class WaTemplateResponse(WaTemplateBase):
    id: int
    created_at: Optional[datetime] = None


class WaTemplatePreviewRequest(BaseModel):
    appointment_id: int


class WaTemplatePreview(BaseModel):
    template_code: str
    language: Literal["ru", "he"]
    phone: Optional[str] = None
    body: str


# --- Appointments ---
class AppointmentCreate(BaseSchema):
    clinic_id: Optional[int] = None
    patient_id: Optional[int] = None
    procedure_id: Optional[int] = None
    template_id: Optional[int] = None
    start_ts: datetime
    end_ts: Optional[datetime] = None
    status: AppointmentStatus = AppointmentStatus.scheduled
    short_label: Optional[str] = Field(None, max_length=100)
    cost: Optional[Decimal] = Field(None, ge=0)
    tooth_num: Optional[str] = Field(None, max_length=32)
    description: Optional[str] = None
    send_notifications: bool = False
    # Admin only: take private ownership of the patient in the same transaction.
    claim_patient: bool = False

    @field_validator("start_ts", "end_ts")
    @classmethod
    def attach_clinic_timezone(cls, v):
        return clinic_aware(v)

    @model_validator(mode="after")
    def check_booking(self):
        if self.status not in (AppointmentStatus.scheduled, AppointmentStatus.blocked):
            raise ValueError("New appointments must be scheduled or blocked.")
        if self.end_ts is not None and self.end_ts <= self.start_ts:
            raise ValueError("End time must be after start time.")
        if self.status != AppointmentStatus.blocked:
            if self.patient_id is None:
                raise ValueError("Patient is required.")
            if self.procedure_id is None and self.template_id is None:
                raise ValueError("Procedure is required.")
        return self


class AppointmentUpdate(BaseSchema):
    clinic_id: Optional[int] = None
    patient_id: Optional[int] = None
    procedure_id: Optional[int] = None
    start_ts: Optional[datetime] = None
    end_ts: Optional[datetime] = None
    status: Optional[AppointmentStatus] = None
    short_label: Optional[str] = Field(None, max_length=100)
    cost: Optional[Decimal] = Field(None, ge=0)
    tooth_num: Optional[str] = Field(None, max_length=32)
    description: Optional[str] = None
    send_notifications: Optional[bool] = None
    claim_patient: bool = False

    @field_validator("start_ts", "end_ts")
    @classmethod
    def attach_clinic_timezone(cls, v):
        return clinic_aware(v)

    @model_validator(mode="after")
    def check_range(self):
        if self.start_ts and self.end_ts and self.end_ts <= self.start_ts:
            raise ValueError("End time must be after start time.")
        return self


class AppointmentStatusUpdate(BaseModel):
    status: AppointmentStatus


class AppointmentResponse(BaseSchema):
    id: int
    clinic_id: int
    patient_id: Optional[int] = None
    procedure_id: Optional[int] = None
    start_ts: datetime
    end_ts: datetime
    status: AppointmentStatus
    short_label: Optional[str] = None
    cost: Optional[Decimal] = None
    tooth_num: Optional[str] = None
    description: Optional[str] = None
    send_notifications: bool
    created_by: Optional[int] = None
    updated_by: Optional[int] = None
    canceled_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None


class CalendarRow(BaseModel):
    """Flattened appointment joined with its clinic, patient and procedure."""
    id: int
    clinic_id: Optional[int] = None
    clinic_name: Optional[str] = None
    clinic_color: Optional[str] = None
    patient_id: Optional[int] = None
    patient_first_name: Optional[str] = None
    patient_last_name: Optional[str] = None
    patient_phone: Optional[str] = None
    patient_type: Optional[PatientType] = None
    procedure_id: Optional[int] = None
    procedure_name: Optional[str] = None
    procedure_color: Optional[str] = None
    start_ts: datetime
    end_ts: datetime
    status: AppointmentStatus
    short_label: Optional[str] = None
    cost: Optional[Decimal] = None
    tooth_num: Optional[str] = None
    description: Optional[str] = None
    send_notifications: bool = False
    is_anonymized: bool = False


# --- Booking ---
class SlotValidationRequest(BaseModel):
    start_ts: datetime
    end_ts: datetime
    exclude_appointment_id: Optional[int] = None

    @field_validator("start_ts", "end_ts")
    @classmethod
    def attach_clinic_timezone(cls, v):
        return clinic_aware(v)


class SlotValidationResponse(BaseModel):
    accepted: bool
    reason: Optional[str] = None
    message: Optional[str] = None
    clear_selection: bool = False
    conflicting_ids: List[Optional[int]] = Field(default_factory=list)
    draft: Optional[BookingDraft] = None


DraftActionName = Literal[
    "select_procedure",
    "select_template",
    "set_duration",
    "move_start",
    "enter_block_mode",
    "leave_block_mode",
    "toggle_all_day",
]


class DraftActionRequest(BaseModel):
    draft: BookingDraft
    action: DraftActionName
    procedure_id: Optional[int] = None
    template_id: Optional[int] = None
    minutes: Optional[int] = Field(None, gt=0)
    start_ts: Optional[datetime] = None
    all_day: Optional[bool] = None

    @field_validator("start_ts")
    @classmethod
    def attach_clinic_timezone(cls, v):
        return clinic_aware(v)


class DraftActionResponse(BaseModel):
    draft: BookingDraft
    locked_fields: List[str]


# --- Audit / health ---
class AuditLogResponse(BaseSchema):
    id: int
    user_id: Optional[int] = None
    username: Optional[str] = None
    action: AuditAction
    category: str
    severity: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[int] = None
    details: Optional[str] = None
    new_values: Optional[Dict[str, Any]] = None
    timestamp: datetime


class ConsistencyReport(BaseModel):
    checked_at: datetime
    overlapping_appointments: List[Dict[str, Any]]
    malformed_appointments: List[Dict[str, Any]]
