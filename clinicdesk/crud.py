# clinicdesk/crud.py
import logging
from datetime import datetime, timedelta, timezone, date
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, aliased, joinedload

from . import models, schemas
from .services import status_machine
from .services.form_defaults import resolve_defaults

logger = logging.getLogger(__name__)

# Name of the database exclusion constraint guarding against double booking.
SLOT_CONSTRAINT_NAME = "timeslot_is_already_booked"
SLOT_BOOKED_MESSAGE = "This time slot is already booked."

Status = models.AppointmentStatus


class CRUDError(Exception):
    status_code = 400


class NotFoundError(CRUDError):
    status_code = 404


class PermissionDeniedError(CRUDError):
    status_code = 403


class SlotConflictError(CRUDError):
    status_code = 409

    def __init__(self, message: str = SLOT_BOOKED_MESSAGE, conflicting_ids=()):
        super().__init__(message)
        self.conflicting_ids = list(conflicting_ids)


def _commit(db: Session, action: str) -> None:
    """Commit, translating database failures into CRUD errors."""
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        if SLOT_CONSTRAINT_NAME in str(e.orig):
            raise SlotConflictError()
        logger.error(f"Integrity error while trying to {action}: {e.orig}")
        raise CRUDError(f"Could not {action}: the data conflicts with existing records.")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error while trying to {action}: {e}")
        raise CRUDError(f"Could not {action}.")


def _get_or_404(db: Session, model, obj_id: int, label: str):
    obj = db.get(model, obj_id)
    if obj is None:
        raise NotFoundError(f"{label} not found")
    return obj


# ==================== USERS ====================

def get_user(db: Session, user_id: int) -> Optional[models.User]:
    try:
        return db.get(models.User, user_id)
    except SQLAlchemyError as e:
        logger.error(f"Error fetching user {user_id}: {e}")
        raise CRUDError("A database error occurred while fetching the user.")


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    return db.query(models.User).filter(func.lower(models.User.email) == email.lower()).first()


def get_users(db: Session, skip: int = 0, limit: int = 100, role: Optional[models.UserRole] = None) -> List[models.User]:
    query = db.query(models.User)
    if role is not None:
        query = query.filter(models.User.role == role)
    return query.order_by(models.User.email).offset(skip).limit(limit).all()


def upsert_oauth_user(db: Session, email: str, full_name: Optional[str], avatar_url: Optional[str],
                      admin_emails: List[str]) -> models.User:
    """Create or refresh the account behind a Google sign-in.

    New accounts start as guests unless their email is configured as an
    admin email; an existing role is never downgraded here.
    """
    user = get_user_by_email(db, email)
    now = datetime.now(timezone.utc)
    if user is None:
        user = models.User(email=email.lower(), role=models.UserRole.guest)
        db.add(user)
    if email.lower() in admin_emails:
        user.role = models.UserRole.admin
    user.full_name = full_name or user.full_name
    user.avatar_url = avatar_url or user.avatar_url
    user.last_login = now
    _commit(db, "save user")
    db.refresh(user)
    return user


def update_user(db: Session, user_id: int, user_update: schemas.UserUpdate) -> models.User:
    db_user = _get_or_404(db, models.User, user_id, "User")
    data = user_update.model_dump(exclude_unset=True)
    if data.get("clinic_id") is not None:
        _get_or_404(db, models.Clinic, data["clinic_id"], "Clinic")
    for key, value in data.items():
        setattr(db_user, key, value)
    if db_user.role == models.UserRole.clinic_staff and db_user.clinic_id is None:
        db.rollback()
        raise CRUDError("Clinic staff must be assigned to a clinic.")
    _commit(db, "update user")
    db.refresh(db_user)
    return db_user


# ==================== CLINICS ====================

def get_clinic(db: Session, clinic_id: int) -> Optional[models.Clinic]:
    return db.get(models.Clinic, clinic_id)


def get_clinic_by_name(db: Session, name: str) -> Optional[models.Clinic]:
    return db.query(models.Clinic).filter(models.Clinic.name == name).first()


def get_clinics(db: Session) -> List[models.Clinic]:
    return db.query(models.Clinic).order_by(models.Clinic.name).all()


def create_clinic(db: Session, clinic: schemas.ClinicCreate) -> models.Clinic:
    if get_clinic_by_name(db, clinic.name):
        raise CRUDError(f"A clinic named '{clinic.name}' already exists.")
    db_clinic = models.Clinic(**clinic.model_dump())
    db.add(db_clinic)
    _commit(db, "create clinic")
    db.refresh(db_clinic)
    return db_clinic


def update_clinic(db: Session, clinic_id: int, clinic_update: schemas.ClinicUpdate) -> models.Clinic:
    db_clinic = _get_or_404(db, models.Clinic, clinic_id, "Clinic")
    data = clinic_update.model_dump(exclude_unset=True)
    opening = data.get("opening_hour", db_clinic.opening_hour)
    closing = data.get("closing_hour", db_clinic.closing_hour)
    if closing <= opening:
        raise CRUDError("Closing hour must be after opening hour.")
    for key, value in data.items():
        setattr(db_clinic, key, value)
    _commit(db, "update clinic")
    db.refresh(db_clinic)
    return db_clinic


def delete_clinic(db: Session, clinic_id: int) -> None:
    db_clinic = _get_or_404(db, models.Clinic, clinic_id, "Clinic")
    in_use = db.query(models.Appointment.id).filter(models.Appointment.clinic_id == clinic_id).first()
    if in_use:
        raise CRUDError("Clinic has appointments and cannot be deleted.")
    db.delete(db_clinic)
    _commit(db, "delete clinic")


def get_or_create_default_clinic(db: Session, name: str, color_hex: str,
                                 opening_hour: int = 8, closing_hour: int = 21) -> models.Clinic:
    clinic = get_clinic_by_name(db, name)
    if clinic is None:
        clinic = models.Clinic(name=name, color_hex=color_hex, opening_hour=opening_hour, closing_hour=closing_hour)
        db.add(clinic)
        _commit(db, "create default clinic")
        db.refresh(clinic)
        logger.info(f"Default clinic '{name}' created.")
    return clinic


# ==================== PATIENTS ====================

PATIENT_SORTS = {
    "created_at": models.Patient.created_at.desc(),
    "first_name": models.Patient.first_name.asc(),
    "last_name": models.Patient.last_name.asc(),
}


def _visible_patients(db: Session, ctx):
    """Patients with no owner, plus those owned by the viewer."""
    query = db.query(models.Patient)
    return query.filter((models.Patient.owner_id.is_(None)) | (models.Patient.owner_id == ctx.user_id))


def get_patient(db: Session, patient_id: int, ctx) -> models.Patient:
    patient = _visible_patients(db, ctx).filter(models.Patient.id == patient_id).first()
    if patient is None:
        raise NotFoundError("Patient not found")
    return patient


def get_patients(db: Session, ctx, sort_by: str = "created_at", is_dispensary: Optional[bool] = None,
                 search: Optional[str] = None, skip: int = 0, limit: int = 200) -> List[models.Patient]:
    try:
        query = _visible_patients(db, ctx)
        if is_dispensary is not None:
            query = query.filter(models.Patient.is_dispensary == is_dispensary)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(
                models.Patient.first_name.ilike(pattern)
                | models.Patient.last_name.ilike(pattern)
                | models.Patient.phone.ilike(pattern)
            )
        order = PATIENT_SORTS.get(sort_by, PATIENT_SORTS["created_at"])
        return query.order_by(order, models.Patient.id).offset(skip).limit(limit).all()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching patients: {e}")
        raise CRUDError("A database error occurred while fetching patients.")


def create_patient(db: Session, patient: schemas.PatientCreate, ctx) -> models.Patient:
    data = patient.model_dump(exclude={"private"})
    if patient.private and not ctx.is_admin:
        raise PermissionDeniedError("Only administrators can create private patients.")
    db_patient = models.Patient(**data, owner_id=ctx.user_id if patient.private else None)
    db.add(db_patient)
    _commit(db, "create patient")
    db.refresh(db_patient)
    return db_patient


def update_patient(db: Session, patient_id: int, patient_update: schemas.PatientUpdate, ctx) -> models.Patient:
    db_patient = get_patient(db, patient_id, ctx)
    data = patient_update.model_dump(exclude_unset=True)
    private = data.pop("private", None)
    for key, value in data.items():
        if value is None and key in ("first_name", "last_name", "patient_type", "is_dispensary",
                                     "notification_language_is_hebrew"):
            continue
        setattr(db_patient, key, value)
    if private is not None:
        db_patient.owner_id = ctx.user_id if private else None
    _commit(db, "update patient")
    db.refresh(db_patient)
    return db_patient


def delete_patient(db: Session, patient_id: int, ctx) -> None:
    db_patient = get_patient(db, patient_id, ctx)
    completed = db.query(models.Appointment.id).filter(
        models.Appointment.patient_id == patient_id,
        models.Appointment.status == Status.completed,
    ).first()
    if completed:
        raise CRUDError("Patient has completed appointments and cannot be deleted.")
    db.delete(db_patient)
    _commit(db, "delete patient")


def get_patient_appointments(db: Session, patient_id: int, ctx) -> List[models.Appointment]:
    get_patient(db, patient_id, ctx)
    query = db.query(models.Appointment).filter(models.Appointment.patient_id == patient_id)
    if ctx.is_staff:
        query = query.filter(models.Appointment.clinic_id == ctx.clinic_id)
    return query.order_by(models.Appointment.start_ts.desc()).all()


# ==================== PROCEDURES ====================

def get_procedure(db: Session, procedure_id: int) -> models.Procedure:
    return _get_or_404(db, models.Procedure, procedure_id, "Procedure")


def get_procedures(db: Session) -> List[models.Procedure]:
    return db.query(models.Procedure).order_by(models.Procedure.name).all()


def create_procedure(db: Session, procedure: schemas.ProcedureCreate) -> models.Procedure:
    db_procedure = models.Procedure(**procedure.model_dump())
    db.add(db_procedure)
    _commit(db, "create procedure")
    db.refresh(db_procedure)
    return db_procedure


def update_procedure(db: Session, procedure_id: int, procedure_update: schemas.ProcedureUpdate) -> models.Procedure:
    db_procedure = get_procedure(db, procedure_id)
    for key, value in procedure_update.model_dump(exclude_unset=True).items():
        setattr(db_procedure, key, value)
    _commit(db, "update procedure")
    db.refresh(db_procedure)
    return db_procedure


def delete_procedure(db: Session, procedure_id: int) -> None:
    db_procedure = get_procedure(db, procedure_id)
    in_use = db.query(models.Appointment.id).filter(models.Appointment.procedure_id == procedure_id).first()
    if in_use:
        raise CRUDError("Procedure is used by existing appointments and cannot be deleted.")
    db.query(models.AppointmentTemplate).filter(
        models.AppointmentTemplate.default_procedure_id == procedure_id
    ).update({models.AppointmentTemplate.default_procedure_id: None}, synchronize_session=False)
    db.delete(db_procedure)
    _commit(db, "delete procedure")


# ==================== APPOINTMENT TEMPLATES ====================

def get_appointment_template(db: Session, template_id: int) -> models.AppointmentTemplate:
    return _get_or_404(db, models.AppointmentTemplate, template_id, "Appointment template")


def get_appointment_templates(db: Session) -> List[models.AppointmentTemplate]:
    return db.query(models.AppointmentTemplate).order_by(models.AppointmentTemplate.name).all()


def create_appointment_template(db: Session, template: schemas.AppointmentTemplateCreate,
                                created_by: int) -> models.AppointmentTemplate:
    if template.default_procedure_id is not None:
        get_procedure(db, template.default_procedure_id)
    db_template = models.AppointmentTemplate(**template.model_dump(), created_by=created_by)
    db.add(db_template)
    _commit(db, "create appointment template")
    db.refresh(db_template)
    return db_template


def update_appointment_template(db: Session, template_id: int,
                                template_update: schemas.AppointmentTemplateUpdate) -> models.AppointmentTemplate:
    db_template = get_appointment_template(db, template_id)
    data = template_update.model_dump(exclude_unset=True)
    if data.get("default_procedure_id") is not None:
        get_procedure(db, data["default_procedure_id"])
    for key, value in data.items():
        setattr(db_template, key, value)
    _commit(db, "update appointment template")
    db.refresh(db_template)
    return db_template


def delete_appointment_template(db: Session, template_id: int) -> None:
    db.delete(get_appointment_template(db, template_id))
    _commit(db, "delete appointment template")


# ==================== WHATSAPP TEMPLATES ====================

def get_wa_template(db: Session, template_id: int) -> models.WaTemplate:
    return _get_or_404(db, models.WaTemplate, template_id, "WhatsApp template")


def get_wa_template_by_code(db: Session, code: str) -> Optional[models.WaTemplate]:
    return db.query(models.WaTemplate).filter(models.WaTemplate.code == code).first()


def get_wa_templates(db: Session) -> List[models.WaTemplate]:
    return db.query(models.WaTemplate).order_by(models.WaTemplate.created_at.desc(), models.WaTemplate.id.desc()).all()


def create_wa_template(db: Session, template: schemas.WaTemplateCreate) -> models.WaTemplate:
    if get_wa_template_by_code(db, template.code):
        raise CRUDError(f"A template with code '{template.code}' already exists.")
    db_template = models.WaTemplate(**template.model_dump())
    db.add(db_template)
    _commit(db, "create WhatsApp template")
    db.refresh(db_template)
    return db_template


def update_wa_template(db: Session, template_id: int, template_update: schemas.WaTemplateUpdate) -> models.WaTemplate:
    db_template = get_wa_template(db, template_id)
    data = template_update.model_dump(exclude_unset=True)
    if data.get("code") and data["code"] != db_template.code and get_wa_template_by_code(db, data["code"]):
        raise CRUDError(f"A template with code '{data['code']}' already exists.")
    for key, value in data.items():
        if value is not None:
            setattr(db_template, key, value)
    _commit(db, "update WhatsApp template")
    db.refresh(db_template)
    return db_template


def delete_wa_template(db: Session, template_id: int) -> None:
    db.delete(get_wa_template(db, template_id))
    _commit(db, "delete WhatsApp template")


# ==================== APPOINTMENTS ====================

def get_appointment(db: Session, appointment_id: int) -> models.Appointment:
    appointment = db.query(models.Appointment).options(
        joinedload(models.Appointment.clinic),
        joinedload(models.Appointment.patient),
        joinedload(models.Appointment.procedure),
    ).filter(models.Appointment.id == appointment_id).first()
    if appointment is None:
        raise NotFoundError("Appointment not found")
    return appointment


def get_appointments_by_date_range(db: Session, start: datetime, end: datetime, clinic_id: Optional[int] = None,
                                   include_canceled: bool = False) -> List[models.Appointment]:
    try:
        query = db.query(models.Appointment).options(
            joinedload(models.Appointment.clinic),
            joinedload(models.Appointment.patient),
            joinedload(models.Appointment.procedure),
        ).filter(
            # Overlap: (StartA < EndB) AND (EndA > StartB)
            models.Appointment.start_ts < end,
            models.Appointment.end_ts > start,
        )
        if not include_canceled:
            query = query.filter(models.Appointment.status != Status.canceled)
        if clinic_id is not None:
            query = query.filter(models.Appointment.clinic_id == clinic_id)
        return query.order_by(models.Appointment.start_ts.asc(), models.Appointment.id.asc()).all()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching appointments by range: {e}")
        raise CRUDError("A database error occurred while fetching appointments.")


def find_conflicting_appointments(db: Session, start: datetime, end: datetime,
                                  exclude_id: Optional[int] = None) -> List[models.Appointment]:
    """Non-canceled appointments in any clinic overlapping [start, end), blocked time included."""
    query = db.query(models.Appointment).filter(
        models.Appointment.start_ts < end,
        models.Appointment.end_ts > start,
        models.Appointment.status != Status.canceled,
    )
    if exclude_id is not None:
        query = query.filter(models.Appointment.id != exclude_id)
    return query.with_for_update().all()


def _ensure_free(db: Session, start: datetime, end: datetime, exclude_id: Optional[int] = None) -> None:
    conflicts = find_conflicting_appointments(db, start, end, exclude_id=exclude_id)
    if conflicts:
        raise SlotConflictError(conflicting_ids=[c.id for c in conflicts])


def _resolve_clinic_id(db: Session, requested: Optional[int], ctx, default_clinic_id: Optional[int]) -> int:
    if ctx.is_staff:
        if requested is not None and requested != ctx.clinic_id:
            raise PermissionDeniedError("Clinic staff can only book for their own clinic.")
        return ctx.clinic_id
    clinic_id = requested or ctx.clinic_id or default_clinic_id
    if clinic_id is None:
        raise CRUDError("Clinic is required.")
    _get_or_404(db, models.Clinic, clinic_id, "Clinic")
    return clinic_id


def _check_scope(appointment: models.Appointment, ctx) -> None:
    if ctx.is_staff and appointment.clinic_id != ctx.clinic_id:
        raise PermissionDeniedError("This appointment belongs to another clinic.")
    if appointment.status == Status.blocked and not ctx.is_admin:
        raise PermissionDeniedError("Only administrators can change block time.")


def _claim_patient(patient: models.Patient, ctx) -> None:
    if not ctx.is_admin:
        raise PermissionDeniedError("Only administrators can take ownership of a patient.")
    patient.owner_id = ctx.user_id


def create_appointment(db: Session, payload: schemas.AppointmentCreate, ctx,
                       default_clinic_id: Optional[int] = None) -> models.Appointment:
    """Insert an appointment or block time.

    Omitted end time and cost are derived from the template and procedure.
    Patient ownership (``claim_patient``) and the insert are committed together.
    """
    clinic_id = _resolve_clinic_id(db, payload.clinic_id, ctx, default_clinic_id)
    start = payload.start_ts

    if payload.status == Status.blocked:
        if not ctx.is_admin:
            raise PermissionDeniedError("Only administrators can block time.")
        end, _ = resolve_defaults(start, payload.end_ts, None)
        appointment = models.Appointment(
            clinic_id=clinic_id,
            start_ts=start,
            end_ts=end,
            status=Status.blocked,
            short_label=payload.short_label,
            description=payload.description,
            send_notifications=False,
        )
    else:
        patient = get_patient(db, payload.patient_id, ctx)
        template = get_appointment_template(db, payload.template_id) if payload.template_id else None
        procedure_id = payload.procedure_id or (template.default_procedure_id if template else None)
        if procedure_id is None:
            raise CRUDError("Procedure is required.")
        procedure = get_procedure(db, procedure_id)
        end, cost = resolve_defaults(start, payload.end_ts, payload.cost, procedure=procedure, template=template)
        if payload.claim_patient:
            _claim_patient(patient, ctx)
        appointment = models.Appointment(
            clinic_id=clinic_id,
            patient_id=patient.id,
            procedure_id=procedure.id,
            start_ts=start,
            end_ts=end,
            status=Status.scheduled,
            short_label=payload.short_label,
            cost=cost,
            tooth_num=payload.tooth_num,
            description=payload.description,
            send_notifications=payload.send_notifications,
        )

    if appointment.end_ts <= appointment.start_ts:
        db.rollback()
        raise CRUDError("End time must be after start time.")
    try:
        _ensure_free(db, appointment.start_ts, appointment.end_ts)
    except SlotConflictError:
        db.rollback()
        raise
    appointment.created_by = ctx.user_id
    db.add(appointment)
    _commit(db, "save appointment")
    db.refresh(appointment)
    logger.info(f"Appointment {appointment.id} created in clinic {clinic_id} by user {ctx.user_id}")
    return appointment


COMPLETED_EDITABLE = {"description"}


def update_appointment(db: Session, appointment_id: int, update: schemas.AppointmentUpdate, ctx) -> models.Appointment:
    appointment = get_appointment(db, appointment_id)
    _check_scope(appointment, ctx)
    data = update.model_dump(exclude_unset=True)
    claim = data.pop("claim_patient", False)
    new_status = data.pop("status", None)
    if claim and not ctx.is_admin:
        raise PermissionDeniedError("Only administrators can take ownership of a patient.")

    if appointment.status == Status.completed:
        locked = set(data) - COMPLETED_EDITABLE
        if locked or claim or (new_status and new_status != Status.completed):
            raise CRUDError("Completed appointments can only have their description edited.")

    if new_status is not None and new_status != appointment.status:
        _apply_status(appointment, new_status, ctx)

    if appointment.status == Status.blocked:
        for key in ("patient_id", "procedure_id", "cost"):
            if data.get(key) is not None:
                raise CRUDError("Block time cannot have a patient, procedure or cost.")
        data.pop("send_notifications", None)

    if "clinic_id" in data:
        data["clinic_id"] = _resolve_clinic_id(db, data["clinic_id"], ctx, appointment.clinic_id)
    patient = appointment.patient
    if data.get("patient_id") is not None:
        patient = get_patient(db, data["patient_id"], ctx)
    if data.get("procedure_id") is not None:
        get_procedure(db, data["procedure_id"])

    # Moving the start keeps the duration unless a new end is given.
    if "start_ts" in data and "end_ts" not in data:
        data["end_ts"] = data["start_ts"] + (appointment.end_ts - appointment.start_ts)

    times_changed = any(
        key in data and data[key] != getattr(appointment, key) for key in ("start_ts", "end_ts")
    )
    for key, value in data.items():
        setattr(appointment, key, value)

    if appointment.status != Status.blocked and (appointment.patient_id is None or appointment.procedure_id is None):
        db.rollback()
        raise CRUDError("Patient and procedure are required.")
    if appointment.end_ts <= appointment.start_ts:
        db.rollback()
        raise CRUDError("End time must be after start time.")
    if appointment.status != Status.canceled and (times_changed or new_status == Status.scheduled):
        try:
            _ensure_free(db, appointment.start_ts, appointment.end_ts, exclude_id=appointment.id)
        except SlotConflictError:
            db.rollback()
            raise

    if claim and patient is not None:
        _claim_patient(patient, ctx)
    appointment.updated_by = ctx.user_id
    _commit(db, "update appointment")
    db.refresh(appointment)
    return appointment


def _apply_status(appointment: models.Appointment, new_status: models.AppointmentStatus, ctx) -> None:
    try:
        status_machine.transition(appointment.status, new_status)
    except status_machine.InvalidTransition as e:
        raise CRUDError(str(e))
    if new_status == Status.canceled:
        appointment.canceled_by = ctx.user_id
        appointment.canceled_at = datetime.now(timezone.utc)
    elif appointment.status == Status.canceled:
        appointment.canceled_by = None
        appointment.canceled_at = None
    appointment.status = new_status


def change_appointment_status(db: Session, appointment_id: int, new_status: models.AppointmentStatus,
                              ctx) -> models.Appointment:
    appointment = get_appointment(db, appointment_id)
    _check_scope(appointment, ctx)
    if new_status == appointment.status:
        return appointment
    reopening = appointment.status == Status.canceled
    _apply_status(appointment, new_status, ctx)
    if reopening:
        try:
            _ensure_free(db, appointment.start_ts, appointment.end_ts, exclude_id=appointment.id)
        except SlotConflictError:
            db.rollback()
            raise
    appointment.updated_by = ctx.user_id
    _commit(db, "change appointment status")
    db.refresh(appointment)
    return appointment


def delete_appointment(db: Session, appointment_id: int, ctx) -> None:
    appointment = get_appointment(db, appointment_id)
    _check_scope(appointment, ctx)
    if not status_machine.can_delete(appointment.status):
        raise CRUDError("Completed appointments cannot be deleted.")
    db.delete(appointment)
    _commit(db, "delete appointment")


# ==================== AUDIT LOGS ====================

def get_audit_logs(
    db: Session,
    skip: int = 0,
    limit: int = 100,
    user_id: Optional[int] = None,
    category: Optional[str] = None,
    severity: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> List[models.AuditLog]:
    """Retrieve audit logs with filtering."""
    try:
        query = db.query(models.AuditLog)
        if user_id:
            query = query.filter(models.AuditLog.user_id == user_id)
        if category:
            query = query.filter(models.AuditLog.category == category)
        if severity:
            query = query.filter(models.AuditLog.severity == severity)
        if start_date:
            query = query.filter(models.AuditLog.timestamp >= datetime.combine(start_date, datetime.min.time(), timezone.utc))
        if end_date:
            # Add one day to end_date to include the entire day
            query = query.filter(models.AuditLog.timestamp < datetime.combine(end_date + timedelta(days=1), datetime.min.time(), timezone.utc))
        return query.order_by(models.AuditLog.timestamp.desc(), models.AuditLog.id.desc()).offset(skip).limit(limit).all()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching audit logs: {e}")
        raise CRUDError("A database error occurred while fetching audit logs.")


# ==================== CONSISTENCY CHECKS ====================

def run_consistency_checks(db: Session) -> Dict[str, Any]:
    """Report overlapping live appointments and rows breaking the booking invariants."""
    report = {
        "checked_at": datetime.now(timezone.utc),
        "overlapping_appointments": [],
        "malformed_appointments": [],
    }

    first = aliased(models.Appointment)
    second = aliased(models.Appointment)
    pairs = db.query(first, second).filter(
        first.id < second.id,
        first.start_ts < second.end_ts,
        first.end_ts > second.start_ts,
        first.status != Status.canceled,
        second.status != Status.canceled,
    ).all()
    for a, b in pairs:
        report["overlapping_appointments"].append({
            "appointment_id": a.id,
            "other_appointment_id": b.id,
            "clinic_ids": [a.clinic_id, b.clinic_id],
            "start_ts": max(a.start_ts, b.start_ts),
            "end_ts": min(a.end_ts, b.end_ts),
            "issue": "Live appointments overlap.",
        })

    for appointment in db.query(models.Appointment).all():
        issue = None
        if appointment.end_ts <= appointment.start_ts:
            issue = "End time is not after start time."
        elif appointment.status == Status.blocked and (appointment.patient_id or appointment.procedure_id):
            issue = "Block time carries a patient or procedure."
        elif appointment.status != Status.blocked and (appointment.patient_id is None or appointment.procedure_id is None):
            issue = "Appointment is missing its patient or procedure."
        if issue:
            report["malformed_appointments"].append({
                "appointment_id": appointment.id,
                "status": appointment.status.value,
                "issue": issue,
            })

    return report
