"""
API tests for booking, editing and cancelling appointments and block time.
"""

import inspect
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from clinicdesk import models
from clinicdesk.routers import appointments as appointments_router
from clinicdesk.services import notification_service

from helpers import appointment_payload, at

URL = "/api/v1/appointments"


@pytest.fixture
def booked(client, admin_headers, clinic_a, patient, procedure, business_day):
    """A 10:00-10:45 cleaning in the north clinic."""
    response = client.post(URL, json=appointment_payload(patient, procedure, at(business_day, 10),
                                                         clinic_id=clinic_a.id), headers=admin_headers)
    assert response.status_code == 201
    return response.json()


class TestCreate:

    def test_procedure_defaults_fill_end_and_cost(self, booked, business_day, admin_user):
        assert booked["status"] == "scheduled"
        assert booked["created_by"] == admin_user.id
        assert Decimal(booked["cost"]) == Decimal("250.00")
        end = booked["end_ts"]
        assert datetime.fromisoformat(end) == at(business_day, 10, 45)

    def test_explicit_end_and_cost_win(self, client, admin_headers, clinic_a, patient, procedure, business_day):
        payload = appointment_payload(patient, procedure, at(business_day, 12), at(business_day, 12, 20),
                                      clinic_id=clinic_a.id, cost="99")
        data = client.post(URL, json=payload, headers=admin_headers).json()

        assert Decimal(data["cost"]) == Decimal("99")

    def test_template_supplies_procedure_and_duration(self, client, admin_headers, test_db, clinic_a, patient,
                                                      procedure, business_day):
        template = models.AppointmentTemplate(name="Long cleaning", default_duration_min=90,
                                              default_procedure_id=procedure.id)
        test_db.add(template)
        test_db.commit()

        response = client.post(URL, json={
            "patient_id": patient.id, "template_id": template.id, "clinic_id": clinic_a.id,
            "start_ts": at(business_day, 13).isoformat(),
        }, headers=admin_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["procedure_id"] == procedure.id
        assert datetime.fromisoformat(data["end_ts"]) == at(business_day, 14, 30)

    def test_patient_and_procedure_required(self, client, admin_headers, clinic_a, business_day):
        response = client.post(URL, json={"clinic_id": clinic_a.id, "start_ts": at(business_day, 9).isoformat()},
                               headers=admin_headers)
        assert response.status_code == 422

    def test_end_before_start_rejected(self, client, admin_headers, clinic_a, patient, procedure, business_day):
        payload = appointment_payload(patient, procedure, at(business_day, 12), at(business_day, 11),
                                      clinic_id=clinic_a.id)
        assert client.post(URL, json=payload, headers=admin_headers).status_code == 422

    def test_staff_books_in_own_clinic_only(self, client, staff_headers, clinic_a, clinic_b, patient, procedure,
                                            business_day):
        own = client.post(URL, json=appointment_payload(patient, procedure, at(business_day, 9)),
                          headers=staff_headers)
        other = client.post(URL, json=appointment_payload(patient, procedure, at(business_day, 15),
                                                          clinic_id=clinic_b.id), headers=staff_headers)

        assert own.status_code == 201
        assert own.json()["clinic_id"] == clinic_a.id
        assert other.status_code == 403

    def test_create_endpoint_runs_in_threadpool(self):
        assert not inspect.iscoroutinefunction(appointments_router.create_new_appointment)

    def test_creation_is_audited(self, booked, test_db):
        entry = test_db.query(models.AuditLog).filter_by(category="APPOINTMENT").one()
        assert entry.action == models.AuditAction.CREATE
        assert entry.resource_id == booked["id"]


class TestDoubleBooking:
    """One practitioner: no two live bookings may overlap, in any clinic."""

    def test_overlap_in_same_clinic(self, client, admin_headers, booked, clinic_a, patient, procedure,
                                    business_day):
        payload = appointment_payload(patient, procedure, at(business_day, 10, 30), clinic_id=clinic_a.id)
        response = client.post(URL, json=payload, headers=admin_headers)

        assert response.status_code == 409
        assert response.json()["detail"] == "This time slot is already booked."

    def test_overlap_across_clinics(self, client, other_staff_headers, booked, patient, procedure, business_day):
        payload = appointment_payload(patient, procedure, at(business_day, 10, 15))
        assert client.post(URL, json=payload, headers=other_staff_headers).status_code == 409

    def test_back_to_back_is_fine(self, client, admin_headers, booked, clinic_a, patient, procedure, business_day):
        payload = appointment_payload(patient, procedure, at(business_day, 10, 45), clinic_id=clinic_a.id)
        assert client.post(URL, json=payload, headers=admin_headers).status_code == 201

    def test_canceled_slot_can_be_rebooked(self, client, admin_headers, booked, clinic_a, patient, procedure,
                                           business_day):
        client.patch(f"{URL}/{booked['id']}/status", json={"status": "canceled"}, headers=admin_headers)
        payload = appointment_payload(patient, procedure, at(business_day, 10), clinic_id=clinic_a.id)
        assert client.post(URL, json=payload, headers=admin_headers).status_code == 201

    def test_reopening_into_taken_slot_conflicts(self, client, admin_headers, booked, clinic_a, patient,
                                                 procedure, business_day):
        client.patch(f"{URL}/{booked['id']}/status", json={"status": "canceled"}, headers=admin_headers)
        client.post(URL, json=appointment_payload(patient, procedure, at(business_day, 10), clinic_id=clinic_a.id),
                    headers=admin_headers)

        response = client.patch(f"{URL}/{booked['id']}/status", json={"status": "scheduled"},
                                headers=admin_headers)
        assert response.status_code == 409

    def test_moving_onto_another_booking_conflicts(self, client, admin_headers, booked, clinic_a, patient,
                                                   procedure, business_day):
        second = client.post(URL, json=appointment_payload(patient, procedure, at(business_day, 14),
                                                           clinic_id=clinic_a.id), headers=admin_headers).json()

        response = client.put(f"{URL}/{second['id']}", json={"start_ts": at(business_day, 10, 30).isoformat()},
                              headers=admin_headers)
        assert response.status_code == 409

    def test_block_time_prevents_booking(self, client, admin_headers, clinic_a, patient, procedure, business_day):
        block = client.post(URL, json={
            "status": "blocked", "clinic_id": clinic_a.id,
            "start_ts": at(business_day, 8).isoformat(), "end_ts": at(business_day, 21).isoformat(),
        }, headers=admin_headers)
        assert block.status_code == 201
        assert block.json()["patient_id"] is None

        payload = appointment_payload(patient, procedure, at(business_day, 12), clinic_id=clinic_a.id)
        assert client.post(URL, json=payload, headers=admin_headers).status_code == 409


class TestClaimPatient:
    """Taking ownership of a patient commits together with the booking."""

    def test_admin_claims_on_booking(self, client, admin_headers, test_db, admin_user, clinic_a, patient,
                                     procedure, business_day):
        payload = appointment_payload(patient, procedure, at(business_day, 9), clinic_id=clinic_a.id,
                                      claim_patient=True)
        assert client.post(URL, json=payload, headers=admin_headers).status_code == 201

        test_db.refresh(patient)
        assert patient.owner_id == admin_user.id

    def test_claim_rolls_back_with_failed_booking(self, client, admin_headers, test_db, booked, clinic_a,
                                                  patient, procedure, business_day):
        payload = appointment_payload(patient, procedure, at(business_day, 10), clinic_id=clinic_a.id,
                                      claim_patient=True)
        assert client.post(URL, json=payload, headers=admin_headers).status_code == 409

        test_db.refresh(patient)
        assert patient.owner_id is None

    def test_staff_cannot_claim(self, client, staff_headers, patient, procedure, business_day):
        payload = appointment_payload(patient, procedure, at(business_day, 9), claim_patient=True)
        assert client.post(URL, json=payload, headers=staff_headers).status_code == 403

    def test_claim_on_edit_takes_the_new_patient(self, client, admin_headers, test_db, admin_user, booked,
                                                  patient):
        boris = models.Patient(first_name="Boris", last_name="Katz", phone="+972500000002")
        test_db.add(boris)
        test_db.commit()

        response = client.put(f"{URL}/{booked['id']}", json={"patient_id": boris.id, "claim_patient": True},
                              headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["patient_id"] == boris.id
        test_db.refresh(boris)
        test_db.refresh(patient)
        assert boris.owner_id == admin_user.id
        assert patient.owner_id is None

    def test_staff_cannot_claim_on_edit(self, client, staff_headers, test_db, booked, patient):
        response = client.put(f"{URL}/{booked['id']}", json={"description": "x", "claim_patient": True},
                              headers=staff_headers)

        assert response.status_code == 403
        test_db.refresh(patient)
        assert patient.owner_id is None


class TestStatusAndLocks:

    def test_cancel_records_who_and_when(self, client, admin_headers, booked, admin_user):
        data = client.patch(f"{URL}/{booked['id']}/status", json={"status": "canceled"},
                            headers=admin_headers).json()

        assert data["status"] == "canceled"
        assert data["canceled_by"] == admin_user.id
        assert data["canceled_at"] is not None

    def test_completed_only_allows_description(self, client, admin_headers, booked):
        client.patch(f"{URL}/{booked['id']}/status", json={"status": "completed"}, headers=admin_headers)

        locked = client.put(f"{URL}/{booked['id']}", json={"cost": "1"}, headers=admin_headers)
        note = client.put(f"{URL}/{booked['id']}", json={"description": "Went well"}, headers=admin_headers)
        reopen = client.patch(f"{URL}/{booked['id']}/status", json={"status": "scheduled"}, headers=admin_headers)

        assert locked.status_code == 400
        assert note.status_code == 200
        assert note.json()["description"] == "Went well"
        assert reopen.status_code == 400

    def test_completed_cannot_be_deleted(self, client, admin_headers, booked):
        client.patch(f"{URL}/{booked['id']}/status", json={"status": "completed"}, headers=admin_headers)
        assert client.delete(f"{URL}/{booked['id']}", headers=admin_headers).status_code == 400

    def test_move_keeps_duration(self, client, admin_headers, booked, business_day):
        data = client.put(f"{URL}/{booked['id']}", json={"start_ts": at(business_day, 15).isoformat()},
                          headers=admin_headers).json()
        assert datetime.fromisoformat(data["end_ts"]) - datetime.fromisoformat(data["start_ts"]) == timedelta(minutes=45)

    def test_staff_cannot_touch_other_clinic(self, client, other_staff_headers, booked):
        assert client.get(f"{URL}/{booked['id']}", headers=other_staff_headers).status_code == 403
        assert client.put(f"{URL}/{booked['id']}", json={"description": "x"},
                          headers=other_staff_headers).status_code == 403
        assert client.delete(f"{URL}/{booked['id']}", headers=other_staff_headers).status_code == 403

    def test_staff_cannot_block_time(self, client, staff_headers, business_day):
        response = client.post(URL, json={
            "status": "blocked", "start_ts": at(business_day, 8).isoformat(),
            "end_ts": at(business_day, 9).isoformat(),
        }, headers=staff_headers)
        assert response.status_code == 403

    def test_delete(self, client, admin_headers, booked):
        assert client.delete(f"{URL}/{booked['id']}", headers=admin_headers).status_code == 204
        assert client.get(f"{URL}/{booked['id']}", headers=admin_headers).status_code == 404


class TestClinicLocalTimes:
    """Timestamps without an offset are read as clinic wall-clock time everywhere."""

    @staticmethod
    def naive(day, hour, minute=0):
        return at(day, hour, minute).replace(tzinfo=None).isoformat()

    def test_naive_booking_is_clinic_time(self, client, admin_headers, clinic_a, patient, procedure,
                                          business_day):
        payload = {"patient_id": patient.id, "procedure_id": procedure.id, "clinic_id": clinic_a.id,
                   "start_ts": self.naive(business_day, 9)}
        data = client.post(URL, json=payload, headers=admin_headers).json()

        assert datetime.fromisoformat(data["start_ts"]) == at(business_day, 9)
        assert datetime.fromisoformat(data["end_ts"]) == at(business_day, 9, 45)

    def test_edit_with_naive_end(self, client, admin_headers, booked, business_day):
        response = client.put(f"{URL}/{booked['id']}", json={"end_ts": self.naive(business_day, 11)},
                              headers=admin_headers)

        assert response.status_code == 200
        assert datetime.fromisoformat(response.json()["end_ts"]) == at(business_day, 11)

    def test_edit_with_naive_start_keeps_duration(self, client, admin_headers, booked, business_day):
        response = client.put(f"{URL}/{booked['id']}", json={"start_ts": self.naive(business_day, 15)},
                              headers=admin_headers)

        assert response.status_code == 200
        assert datetime.fromisoformat(response.json()["end_ts"]) == at(business_day, 15, 45)

    def test_mixed_offsets_are_compared_not_crashed(self, client, admin_headers, clinic_a, patient, procedure,
                                                    business_day):
        backwards = {"patient_id": patient.id, "procedure_id": procedure.id, "clinic_id": clinic_a.id,
                     "start_ts": self.naive(business_day, 11), "end_ts": at(business_day, 10).isoformat()}
        forwards = dict(backwards, start_ts=self.naive(business_day, 10), end_ts=at(business_day, 11).isoformat())

        assert client.post(URL, json=backwards, headers=admin_headers).status_code == 422
        assert client.post(URL, json=forwards, headers=admin_headers).status_code == 201

    def test_validated_slot_is_the_slot_that_gets_booked(self, client, admin_headers, clinic_a, patient,
                                                         procedure, business_day):
        slot = {"start_ts": self.naive(business_day, 12), "end_ts": self.naive(business_day, 12, 30)}
        check = client.post("/api/v1/booking/validate-slot", json=slot, headers=admin_headers).json()
        assert check["accepted"] is True
        assert datetime.fromisoformat(check["draft"]["start_ts"]) == at(business_day, 12)

        payload = dict(slot, patient_id=patient.id, procedure_id=procedure.id, clinic_id=clinic_a.id)
        booked = client.post(URL, json=payload, headers=admin_headers).json()
        assert datetime.fromisoformat(booked["start_ts"]) == at(business_day, 12)

        again = client.post("/api/v1/booking/validate-slot", json=slot, headers=admin_headers).json()
        assert again["reason"] == "overlap"
        assert again["conflicting_ids"] == [booked["id"]]


class TestListing:

    def test_range_excludes_canceled_by_default(self, client, admin_headers, booked, business_day):
        client.patch(f"{URL}/{booked['id']}/status", json={"status": "canceled"}, headers=admin_headers)
        params = {"start_date": business_day.isoformat(), "end_date": business_day.isoformat()}

        assert client.get(URL, params=params, headers=admin_headers).json() == []
        with_canceled = client.get(URL, params={**params, "include_canceled": True}, headers=admin_headers).json()
        assert [a["id"] for a in with_canceled] == [booked["id"]]

    def test_staff_listing_is_scoped(self, client, other_staff_headers, booked, business_day):
        params = {"start_date": business_day.isoformat(), "end_date": business_day.isoformat()}
        assert client.get(URL, params=params, headers=other_staff_headers).json() == []


class TestNotifications:

    def test_confirmation_is_queued(self, client, admin_headers, test_db, clinic_a, patient, procedure,
                                    business_day, monkeypatch):
        test_db.add(models.WaTemplate(code="appointment_created", body_ru="{first_name} {time}", body_il="-"))
        test_db.commit()
        sent = []
        monkeypatch.setattr(notification_service, "send_rendered", sent.append)

        payload = appointment_payload(patient, procedure, at(business_day, 16), clinic_id=clinic_a.id,
                                      send_notifications=True)
        assert client.post(URL, json=payload, headers=admin_headers).status_code == 201

        assert len(sent) == 1
        assert sent[0].phone == patient.phone
        assert sent[0].body == "Anna 16:00"

    def test_nothing_sent_when_not_requested(self, client, admin_headers, test_db, clinic_a, patient, procedure,
                                             business_day, monkeypatch):
        test_db.add(models.WaTemplate(code="appointment_created", body_ru="{first_name}", body_il="-"))
        test_db.commit()
        sent = []
        monkeypatch.setattr(notification_service, "send_rendered", sent.append)

        payload = appointment_payload(patient, procedure, at(business_day, 16), clinic_id=clinic_a.id)
        assert client.post(URL, json=payload, headers=admin_headers).status_code == 201
        assert sent == []
