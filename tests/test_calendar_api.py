"""
API tests for the shared calendar, slot validation, draft actions and health checks.
"""

import logging
from datetime import timedelta

import pytest
from httpx import ASGITransport, AsyncClient

from clinicdesk import models

from helpers import at


@pytest.fixture
def two_clinic_day(test_db, clinic_a, clinic_b, patient, procedure, business_day):
    """One booking in each clinic plus a canceled one."""
    rows = [
        models.Appointment(clinic_id=clinic_a.id, patient_id=patient.id, procedure_id=procedure.id,
                           start_ts=at(business_day, 9), end_ts=at(business_day, 10), short_label="North visit",
                           description="north notes"),
        models.Appointment(clinic_id=clinic_b.id, patient_id=patient.id, procedure_id=procedure.id,
                           start_ts=at(business_day, 11), end_ts=at(business_day, 12), short_label="South visit",
                           description="south notes"),
        models.Appointment(clinic_id=clinic_a.id, patient_id=patient.id, procedure_id=procedure.id,
                           start_ts=at(business_day, 13), end_ts=at(business_day, 14),
                           status=models.AppointmentStatus.canceled),
    ]
    test_db.add_all(rows)
    test_db.commit()
    return rows


def day_params(day):
    return {"start_date": day.isoformat(), "end_date": day.isoformat()}


class TestCalendarRows:

    def test_admin_sees_everything_but_canceled(self, client, admin_headers, two_clinic_day, business_day):
        rows = client.get("/api/v1/calendar/appointments", params=day_params(business_day),
                          headers=admin_headers).json()

        assert [r["short_label"] for r in rows] == ["North visit", "South visit"]
        assert not any(r["is_anonymized"] for r in rows)
        assert rows[0]["patient_first_name"] == "Anna"
        assert rows[0]["clinic_name"] == "North Clinic"

    def test_staff_sees_other_clinic_anonymized(self, client, staff_headers, two_clinic_day, business_day,
                                                clinic_b):
        rows = client.get("/api/v1/calendar/appointments", params=day_params(business_day),
                          headers=staff_headers).json()
        south = next(r for r in rows if r["clinic_id"] == clinic_b.id)
        north = next(r for r in rows if r["clinic_id"] != clinic_b.id)

        assert south["is_anonymized"]
        for field in ("patient_first_name", "patient_phone", "short_label", "description", "cost", "clinic_name"):
            assert south[field] is None
        assert south["start_ts"] and south["end_ts"]
        assert north["patient_first_name"] == "Anna"

    def test_private_patient_details_hidden_in_own_clinic(self, client, test_db, staff_headers, admin_user,
                                                          patient, two_clinic_day, business_day):
        patient.owner_id = admin_user.id
        test_db.commit()

        rows = client.get("/api/v1/calendar/appointments", params=day_params(business_day),
                          headers=staff_headers).json()
        north = rows[0]

        assert north["is_anonymized"]
        assert north["patient_first_name"] is None
        assert north["procedure_name"] == "Cleaning"

    def test_owner_sees_private_patient(self, client, test_db, admin_headers, admin_user, patient,
                                        two_clinic_day, business_day):
        patient.owner_id = admin_user.id
        test_db.commit()

        rows = client.get("/api/v1/calendar/appointments", params=day_params(business_day),
                          headers=admin_headers).json()
        assert rows[0]["patient_first_name"] == "Anna"

    def test_end_date_is_inclusive(self, client, admin_headers, two_clinic_day, business_day):
        params = {"start_date": (business_day - timedelta(days=3)).isoformat(), "end_date": business_day.isoformat()}
        rows = client.get("/api/v1/calendar/appointments", params=params, headers=admin_headers).json()
        assert len(rows) == 2

    def test_inverted_range(self, client, admin_headers, business_day):
        params = {"start_date": business_day.isoformat(), "end_date": (business_day - timedelta(days=1)).isoformat()}
        assert client.get("/api/v1/calendar/appointments", params=params, headers=admin_headers).status_code == 400


class TestCalendarEvents:

    def test_staff_events(self, client, staff_headers, two_clinic_day, business_day):
        events = client.get("/api/v1/calendar/events", params=day_params(business_day),
                            headers=staff_headers).json()

        assert [e["title"] for e in events] == ["North visit", "Busy"]
        assert events[0]["backgroundColor"] == "#2196F3"
        assert events[0]["borderColor"] == "#FF9800"
        assert events[1]["interactive"] is False


class TestValidateSlot:
    URL = "/api/v1/booking/validate-slot"

    def test_free_slot_returns_draft(self, client, staff_headers, clinic_a, business_day):
        response = client.post(self.URL, json={
            "start_ts": at(business_day, 15).isoformat(), "end_ts": at(business_day, 15, 30).isoformat(),
        }, headers=staff_headers)

        data = response.json()
        assert data["accepted"] is True
        assert data["draft"]["clinic_id"] == clinic_a.id
        assert data["draft"]["status"] == "scheduled"

    def test_overlap_from_another_clinic(self, client, staff_headers, two_clinic_day, business_day):
        data = client.post(self.URL, json={
            "start_ts": at(business_day, 11, 30).isoformat(), "end_ts": at(business_day, 12, 30).isoformat(),
        }, headers=staff_headers).json()

        assert data["accepted"] is False
        assert data["reason"] == "overlap"
        assert data["clear_selection"] is True
        assert data["conflicting_ids"] == [two_clinic_day[1].id]

    def test_canceled_slot_is_free(self, client, staff_headers, two_clinic_day, business_day):
        data = client.post(self.URL, json={
            "start_ts": at(business_day, 13).isoformat(), "end_ts": at(business_day, 14).isoformat(),
        }, headers=staff_headers).json()
        assert data["accepted"] is True

    def test_past_and_closed_days(self, client, staff_headers, business_day):
        yesterday = business_day - timedelta(days=30)
        saturday = business_day + timedelta(days=5)
        past = client.post(self.URL, json={
            "start_ts": at(yesterday, 10).isoformat(), "end_ts": at(yesterday, 11).isoformat(),
        }, headers=staff_headers).json()
        closed = client.post(self.URL, json={
            "start_ts": at(saturday, 10).isoformat(), "end_ts": at(saturday, 11).isoformat(),
        }, headers=staff_headers).json()

        assert past["reason"] == "past_date"
        assert past["message"] == "Cannot book appointments in the past."
        assert closed["reason"] == "outside_business_hours"


class TestDraftActions:
    URL = "/api/v1/booking/draft"

    def draft(self, business_day, **extra):
        data = {"start_ts": at(business_day, 10).isoformat(), "end_ts": at(business_day, 10, 30).isoformat()}
        data.update(extra)
        return data

    def test_select_procedure(self, client, staff_headers, procedure, business_day):
        data = client.post(self.URL, json={
            "draft": self.draft(business_day), "action": "select_procedure", "procedure_id": procedure.id,
        }, headers=staff_headers).json()

        assert data["draft"]["procedure_id"] == procedure.id
        assert data["locked_fields"] == []

    def test_block_mode_is_admin_only(self, client, staff_headers, admin_headers, business_day):
        body = {"draft": self.draft(business_day, patient_id=3), "action": "enter_block_mode"}

        assert client.post(self.URL, json=body, headers=staff_headers).status_code == 403
        data = client.post(self.URL, json=body, headers=admin_headers).json()
        assert data["draft"]["status"] == "blocked"
        assert data["draft"]["patient_id"] is None
        assert "patient_id" in data["locked_fields"]

    def test_all_day_uses_clinic_hours(self, client, admin_headers, test_db, clinic_a, business_day):
        clinic_a.opening_hour, clinic_a.closing_hour = 9, 17
        test_db.commit()

        data = client.post(self.URL, json={
            "draft": self.draft(business_day, status="blocked", clinic_id=clinic_a.id),
            "action": "toggle_all_day", "all_day": True,
        }, headers=admin_headers).json()

        assert data["draft"]["all_day"] is True
        assert data["draft"]["start_ts"].startswith(f"{business_day.isoformat()}T09:00")

    def test_missing_argument(self, client, staff_headers, business_day):
        response = client.post(self.URL, json={"draft": self.draft(business_day), "action": "set_duration"},
                               headers=staff_headers)
        assert response.status_code == 400


class TestHealth:

    def test_liveness_is_public(self, client):
        data = client.get("/api/v1/health").json()
        assert data["status"] == "ok"
        assert data["database"] == "ok"

    def test_consistency_check_finds_overlaps(self, client, admin_headers, test_db, clinic_a, clinic_b,
                                              business_day):
        test_db.add_all([
            models.Appointment(clinic_id=clinic_a.id, start_ts=at(business_day, 9), end_ts=at(business_day, 10),
                               status=models.AppointmentStatus.blocked),
            models.Appointment(clinic_id=clinic_b.id, start_ts=at(business_day, 9, 30),
                               end_ts=at(business_day, 10, 30), status=models.AppointmentStatus.blocked),
        ])
        test_db.commit()

        report = client.get("/api/v1/health/consistency-check", headers=admin_headers).json()
        assert len(report["overlapping_appointments"]) == 1
        assert report["malformed_appointments"] == []

    def test_consistency_check_is_admin_only(self, client, staff_headers):
        assert client.get("/api/v1/health/consistency-check", headers=staff_headers).status_code == 403

    def test_app_logs_through_structlog(self):
        from clinicdesk import main

        assert not isinstance(main.logger, logging.Logger)
        assert callable(main.logger.bind)


@pytest.mark.asyncio
async def test_calendar_over_asgi(app, admin_headers, two_clinic_day, business_day):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        response = await ac.get("/api/v1/calendar/events", params=day_params(business_day), headers=admin_headers)

    assert response.status_code == 200
    assert len(response.json()) == 2
