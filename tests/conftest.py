"""
Pytest configuration and shared fixtures for the clinic scheduler tests.

This module provides:
- Test database setup (SQLite in-memory)
- FastAPI TestClient configuration
- Users for every role, clinics and catalog rows
- Helpers for building future business-day timestamps
"""

import os
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Generator

import pytest

# =============================================================================
# CONFIGURE THE APP BEFORE ANY IMPORTS
# =============================================================================
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-that-is-long-enough-for-jwt-signing"
os.environ["ENVIRONMENT"] = "testing"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["CLINIC_TIMEZONE"] = "Asia/Jerusalem"

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from clinicdesk import models
from clinicdesk.database import Base
from clinicdesk.security import RequestContext

from helpers import CLINIC_TZ, auth_headers_for


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture(scope="function")
def test_engine():
    """Create a test database engine using SQLite in-memory."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def test_db(test_engine) -> Generator[Session, None, None]:
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture(scope="function")
def override_get_db(test_db):
    """Override the get_db dependency to use test database."""
    def _override_get_db():
        try:
            yield test_db
        finally:
            pass
    return _override_get_db


# =============================================================================
# APPLICATION FIXTURES
# =============================================================================

@pytest.fixture(scope="session")
def app_instance():
    from clinicdesk.main import app as fastapi_app
    return fastapi_app


@pytest.fixture(scope="function")
def app(app_instance, override_get_db):
    from clinicdesk.database import get_db

    app_instance.dependency_overrides[get_db] = override_get_db
    yield app_instance
    app_instance.dependency_overrides.clear()


@pytest.fixture(scope="function")
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


# =============================================================================
# CLINICS AND CATALOG
# =============================================================================

@pytest.fixture
def clinic_a(test_db) -> models.Clinic:
    clinic = models.Clinic(name="North Clinic", color_hex="#2196F3")
    test_db.add(clinic)
    test_db.commit()
    test_db.refresh(clinic)
    return clinic


@pytest.fixture
def clinic_b(test_db) -> models.Clinic:
    clinic = models.Clinic(name="South Clinic", color_hex="#4CAF50")
    test_db.add(clinic)
    test_db.commit()
    test_db.refresh(clinic)
    return clinic


@pytest.fixture
def procedure(test_db) -> models.Procedure:
    proc = models.Procedure(name="Cleaning", color_hex="#FF9800", default_duration_min=45,
                            default_cost=Decimal("250.00"))
    test_db.add(proc)
    test_db.commit()
    test_db.refresh(proc)
    return proc


@pytest.fixture
def patient(test_db) -> models.Patient:
    db_patient = models.Patient(first_name="Anna", last_name="Levi", phone="+972500000001")
    test_db.add(db_patient)
    test_db.commit()
    test_db.refresh(db_patient)
    return db_patient


# =============================================================================
# USER FIXTURES
# =============================================================================

def _make_user(db, email, role, clinic=None) -> models.User:
    user = models.User(
        email=email,
        full_name=email.split("@")[0].title(),
        role=role,
        clinic_id=clinic.id if clinic else None,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def admin_user(test_db) -> models.User:
    return _make_user(test_db, "admin@example.com", models.UserRole.admin)


@pytest.fixture
def staff_user(test_db, clinic_a) -> models.User:
    return _make_user(test_db, "staff@example.com", models.UserRole.clinic_staff, clinic_a)


@pytest.fixture
def other_staff_user(test_db, clinic_b) -> models.User:
    return _make_user(test_db, "south@example.com", models.UserRole.clinic_staff, clinic_b)


@pytest.fixture
def guest_user(test_db) -> models.User:
    return _make_user(test_db, "guest@example.com", models.UserRole.guest)


@pytest.fixture
def admin_headers(admin_user) -> dict:
    return auth_headers_for(admin_user)


@pytest.fixture
def staff_headers(staff_user) -> dict:
    return auth_headers_for(staff_user)


@pytest.fixture
def other_staff_headers(other_staff_user) -> dict:
    return auth_headers_for(other_staff_user)


@pytest.fixture
def guest_headers(guest_user) -> dict:
    return auth_headers_for(guest_user)


@pytest.fixture
def admin_ctx(admin_user) -> RequestContext:
    return RequestContext.for_user(admin_user)


@pytest.fixture
def staff_ctx(staff_user) -> RequestContext:
    return RequestContext.for_user(staff_user)


# =============================================================================
# TIME HELPERS
# =============================================================================

@pytest.fixture
def business_day() -> date:
    """A Monday at least a week ahead: open, and never in the past."""
    today = datetime.now(CLINIC_TZ).date()
    return today + timedelta(days=7 + (0 - today.weekday()) % 7)
