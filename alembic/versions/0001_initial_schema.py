"""Initial clinic scheduler schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role = sa.Enum('admin', 'clinic_staff', 'guest', name='user_role')
patient_type = sa.Enum('Взрослый', 'Ребёнок', name='patient_type')
appointment_status = sa.Enum('scheduled', 'completed', 'canceled', 'blocked', name='appointment_status')
audit_action = sa.Enum('CREATE', 'READ', 'UPDATE', 'DELETE', 'LOGIN', 'LOGOUT', 'ACCESS_DENIED',
                       name='audit_action')


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'clinics',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False, unique=True),
        sa.Column('color_hex', sa.String(7), nullable=False),
        sa.Column('opening_hour', sa.Integer(), nullable=False, server_default='8'),
        sa.Column('closing_hour', sa.Integer(), nullable=False, server_default='21'),
        sa.Column('created_at', sa.DateTime(timezone=True)),
    )

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255)),
        sa.Column('avatar_url', sa.String(512)),
        sa.Column('role', user_role, nullable=False, server_default='guest'),
        sa.Column('clinic_id', sa.Integer(), sa.ForeignKey('clinics.id', ondelete='SET NULL')),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_login', sa.DateTime(timezone=True)),
        sa.Column('created_at', sa.DateTime(timezone=True)),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('idx_users_role_active', 'users', ['role', 'is_active'])

    op.create_table(
        'patients',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('first_name', sa.String(255), nullable=False),
        sa.Column('last_name', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(32)),
        sa.Column('patient_type', patient_type, nullable=False, server_default='Взрослый'),
        sa.Column('notes', sa.Text()),
        sa.Column('is_dispensary', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('notification_language_is_hebrew', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('owner_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('created_at', sa.DateTime(timezone=True)),
    )
    op.create_index('idx_patients_owner', 'patients', ['owner_id'])
    op.create_index('idx_patients_name', 'patients', ['last_name', 'first_name'])

    op.create_table(
        'procedures_catalog',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False, unique=True),
        sa.Column('color_hex', sa.String(7), nullable=False),
        sa.Column('default_duration_min', sa.Integer()),
        sa.Column('default_cost', sa.Numeric(10, 2)),
        sa.Column('created_at', sa.DateTime(timezone=True)),
        sa.CheckConstraint('default_duration_min IS NULL OR default_duration_min > 0',
                           name='ck_procedure_duration_positive'),
        sa.CheckConstraint('default_cost IS NULL OR default_cost >= 0', name='ck_procedure_cost_non_negative'),
    )

    op.create_table(
        'appointment_templates',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('default_duration_min', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('default_procedure_id', sa.Integer(),
                  sa.ForeignKey('procedures_catalog.id', ondelete='SET NULL')),
        sa.Column('default_cost', sa.Numeric(10, 2)),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('created_at', sa.DateTime(timezone=True)),
    )

    op.create_table(
        'appointments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('clinic_id', sa.Integer(), sa.ForeignKey('clinics.id'), nullable=False),
        sa.Column('patient_id', sa.Integer(), sa.ForeignKey('patients.id', ondelete='CASCADE')),
        sa.Column('procedure_id', sa.Integer(), sa.ForeignKey('procedures_catalog.id', ondelete='SET NULL')),
        sa.Column('start_ts', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_ts', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', appointment_status, nullable=False, server_default='scheduled'),
        sa.Column('short_label', sa.String(100)),
        sa.Column('cost', sa.Numeric(10, 2)),
        sa.Column('tooth_num', sa.String(32)),
        sa.Column('description', sa.Text()),
        sa.Column('send_notifications', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('updated_by', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('canceled_by', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('created_at', sa.DateTime(timezone=True)),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
        sa.Column('canceled_at', sa.DateTime(timezone=True)),
        sa.CheckConstraint('end_ts > start_ts', name='ck_appointment_end_after_start'),
    )
    op.create_index('ix_appointments_start_ts', 'appointments', ['start_ts'])
    op.create_index('ix_appointments_end_ts', 'appointments', ['end_ts'])
    op.create_index('ix_appointments_status', 'appointments', ['status'])
    op.create_index('idx_appointments_clinic_date', 'appointments', ['clinic_id', 'start_ts'])
    op.create_index('idx_appointments_patient_date', 'appointments', ['patient_id', 'start_ts'])
    op.create_index('idx_appointments_date_range', 'appointments', ['start_ts', 'end_ts'])

    op.create_table(
        'wa_templates',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(100), nullable=False, unique=True),
        sa.Column('body_ru', sa.Text(), nullable=False),
        sa.Column('body_il', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True)),
    )

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('username', sa.String(255)),
        sa.Column('action', audit_action, nullable=False),
        sa.Column('category', sa.String(50), nullable=False, server_default='GENERAL'),
        sa.Column('severity', sa.String(20), server_default='INFO'),
        sa.Column('resource_type', sa.String(50)),
        sa.Column('resource_id', sa.Integer()),
        sa.Column('details', sa.Text()),
        sa.Column('new_values', sa.JSON()),
        sa.Column('ip_address', sa.String(45)),
        sa.Column('timestamp', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_audit_logs_category', 'audit_logs', ['category'])
    op.create_index('ix_audit_logs_severity', 'audit_logs', ['severity'])
    op.create_index('ix_audit_logs_timestamp', 'audit_logs', ['timestamp'])
    op.create_index('idx_audit_user_date', 'audit_logs', ['user_id', 'timestamp'])
    op.create_index('idx_audit_resource', 'audit_logs', ['resource_type', 'resource_id'])

    # One practitioner works all clinics: no two live rows may overlap anywhere.
    if op.get_bind().dialect.name == 'postgresql':
        op.execute('CREATE EXTENSION IF NOT EXISTS btree_gist')
        op.execute(
            "ALTER TABLE appointments ADD CONSTRAINT timeslot_is_already_booked "
            "EXCLUDE USING gist (tstzrange(start_ts, end_ts, '[)') WITH &&) "
            "WHERE (status <> 'canceled')"
        )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('audit_logs')
    op.drop_table('wa_templates')
    op.drop_table('appointments')
    op.drop_table('appointment_templates')
    op.drop_table('procedures_catalog')
    op.drop_table('patients')
    op.drop_table('users')
    op.drop_table('clinics')
    bind = op.get_bind()
    for enum in (audit_action, appointment_status, patient_type, user_role):
        enum.drop(bind, checkfirst=True)
