# clinicdesk/models.py
import enum

from sqlalchemy import (
    Column, Integer, String, ForeignKey, Text, Boolean, Numeric, Index, JSON,
    CheckConstraint, Enum as SQLAlchemyEnum,
)
from sqlalchemy.orm import relationship

from .database import Base, UTCDateTime, utcnow


class UserRole(str, enum.Enum):
    admin = "admin"
    clinic_staff = "clinic_staff"
    guest = "guest"


class AppointmentStatus(str, enum.Enum):
    scheduled = "scheduled"
    completed = "completed"
    canceled = "canceled"
    blocked = "blocked"


class PatientType(str, enum.Enum):
    adult = "Взрослый"
    child = "Ребёнок"


class AuditAction(str, enum.Enum):
    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    ACCESS_DENIED = "ACCESS_DENIED"


class User(Base):
    """Authenticated account plus its profile (role and clinic assignment)."""
    __tablename__ = "users"
    __table_args__ = (
        Index('idx_users_role_active', 'role', 'is_active'),
    )

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    avatar_url = Column(String(512), nullable=True)
    role = Column(SQLAlchemyEnum(UserRole, name='user_role'), default=UserRole.guest, nullable=False)
    clinic_id = Column(Integer, ForeignKey("clinics.id", ondelete="SET NULL"), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    last_login = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, onupdate=utcnow)

    clinic = relationship("Clinic", back_populates="staff")
    owned_patients = relationship("Patient", back_populates="owner")
    audit_logs = relationship("AuditLog", back_populates="user")


class Clinic(Base):
    __tablename__ = "clinics"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, nullable=False)
    color_hex = Column(String(7), nullable=False)
    opening_hour = Column(Integer, nullable=False, default=8)
    closing_hour = Column(Integer, nullable=False, default=21)
    created_at = Column(UTCDateTime, default=utcnow)

    staff = relationship("User", back_populates="clinic")
    appointments = relationship("Appointment", back_populates="clinic")


class Patient(Base):
    __tablename__ = "patients"
    __table_args__ = (
        Index('idx_patients_owner', 'owner_id'),
        Index('idx_patients_name', 'last_name', 'first_name'),
    )

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False)
    phone = Column(String(32), nullable=True)
    patient_type = Column(SQLAlchemyEnum(PatientType, name='patient_type', values_callable=lambda e: [m.value for m in e]),
                          default=PatientType.adult, nullable=False)
    notes = Column(Text, nullable=True)
    is_dispensary = Column(Boolean, default=False, nullable=False)
    notification_language_is_hebrew = Column(Boolean, default=False, nullable=False)
    # Admin who privately manages this patient; NULL means shared.
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)

    owner = relationship("User", back_populates="owned_patients")
    appointments = relationship("Appointment", back_populates="patient", cascade="all, delete-orphan")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Procedure(Base):
    __tablename__ = "procedures_catalog"
    __table_args__ = (
        CheckConstraint('default_duration_min IS NULL OR default_duration_min > 0', name='ck_procedure_duration_positive'),
        CheckConstraint('default_cost IS NULL OR default_cost >= 0', name='ck_procedure_cost_non_negative'),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, nullable=False)
    color_hex = Column(String(7), nullable=False)
    default_duration_min = Column(Integer, nullable=True)
    default_cost = Column(Numeric(10, 2), nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)

    appointments = relationship("Appointment", back_populates="procedure")


class AppointmentTemplate(Base):
    __tablename__ = "appointment_templates"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    default_duration_min = Column(Integer, nullable=False, default=30)
    default_procedure_id = Column(Integer, ForeignKey("procedures_catalog.id", ondelete="SET NULL"), nullable=True)
    default_cost = Column(Numeric(10, 2), nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)

    default_procedure = relationship("Procedure")


class Appointment(Base):
    """A booking, or a block of unavailable time when status is blocked."""
    __tablename__ = "appointments"
    __table_args__ = (
        Index('idx_appointments_clinic_date', 'clinic_id', 'start_ts'),
        Index('idx_appointments_patient_date', 'patient_id', 'start_ts'),
        Index('idx_appointments_date_range', 'start_ts', 'end_ts'),
        CheckConstraint('end_ts > start_ts', name='ck_appointment_end_after_start'),
    )

    id = Column(Integer, primary_key=True, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False)
    patient_id = Column(Integer, ForeignKey("patients.id", ondelete="CASCADE"), nullable=True)
    procedure_id = Column(Integer, ForeignKey("procedures_catalog.id", ondelete="SET NULL"), nullable=True)

    start_ts = Column(UTCDateTime, nullable=False, index=True)
    end_ts = Column(UTCDateTime, nullable=False, index=True)
    status = Column(SQLAlchemyEnum(AppointmentStatus, name='appointment_status'),
                    default=AppointmentStatus.scheduled, nullable=False, index=True)

    short_label = Column(String(100), nullable=True)
    cost = Column(Numeric(10, 2), nullable=True)
    tooth_num = Column(String(32), nullable=True)
    description = Column(Text, nullable=True)
    send_notifications = Column(Boolean, default=False, nullable=False)

    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    canceled_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, onupdate=utcnow)
    canceled_at = Column(UTCDateTime, nullable=True)

    clinic = relationship("Clinic", back_populates="appointments")
    patient = relationship("Patient", back_populates="appointments")
    procedure = relationship("Procedure", back_populates="appointments")

    @property
    def duration_minutes(self) -> int:
        return int((self.end_ts - self.start_ts).total_seconds() // 60)


class WaTemplate(Base):
    """Localized WhatsApp message bodies keyed by code."""
    __tablename__ = "wa_templates"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(100), unique=True, nullable=False)
    body_ru = Column(Text, nullable=False)
    body_il = Column(Text, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow)


class AuditLog(Base):
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index('idx_audit_user_date', 'user_id', 'timestamp'),
        Index('idx_audit_resource', 'resource_type', 'resource_id'),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    username = Column(String(255), nullable=True)  # Denormalized for audit integrity
    action = Column(SQLAlchemyEnum(AuditAction, name='audit_action'), nullable=False)
    category = Column(String(50), nullable=False, default="GENERAL", index=True)
    severity = Column(String(20), default="INFO", index=True)
    resource_type = Column(String(50), nullable=True)
    resource_id = Column(Integer, nullable=True)
    details = Column(Text, nullable=True)
    new_values = Column(JSON, nullable=True)
    ip_address = Column(String(45), nullable=True)
    timestamp = Column(UTCDateTime, default=utcnow, index=True)

    user = relationship("User", back_populates="audit_logs")
