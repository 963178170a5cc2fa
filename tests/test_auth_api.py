"""
API tests for sign-in, the session and role-based navigation.
"""

from datetime import timedelta

from clinicdesk import models
from clinicdesk.routers.auth import OAUTH_STATE_COOKIE
from clinicdesk.security import create_access_token, verify_token
from clinicdesk.services import google_auth


class TestCurrentUser:

    def test_requires_a_session(self, client):
        response = client.get("/api/v1/auth/me")
        assert response.status_code == 401

    def test_rejects_garbage_token(self, client):
        response = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401

    def test_admin_navigation(self, client, admin_headers):
        response = client.get("/api/v1/auth/me", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["role"] == "admin"
        assert [item["label"] for item in data["navigation"]] == [
            "Calendar", "Clinics", "Procedures", "Patients", "Appointment Templates", "WA Templates",
        ]

    def test_staff_navigation_and_clinic(self, client, staff_headers, clinic_a):
        data = client.get("/api/v1/auth/me", headers=staff_headers).json()

        assert data["role"] == "clinic_staff"
        assert data["clinic_id"] == clinic_a.id
        assert [item["label"] for item in data["navigation"]] == ["Calendar"]

    def test_guest_has_no_navigation(self, client, guest_headers):
        data = client.get("/api/v1/auth/me", headers=guest_headers).json()
        assert data["navigation"] == []

    def test_session_cookie_is_accepted(self, client, admin_user):
        from clinicdesk.config import get_settings
        from clinicdesk.security import create_session_token

        client.cookies.set(get_settings().session_cookie_name, create_session_token(admin_user))
        assert client.get("/api/v1/auth/me").status_code == 200

    def test_inactive_user_is_forbidden(self, client, test_db, staff_user, staff_headers):
        staff_user.is_active = False
        test_db.commit()
        assert client.get("/api/v1/auth/me", headers=staff_headers).status_code == 403


class TestRoleGuards:

    def test_guest_cannot_open_calendar(self, client, guest_headers, business_day):
        response = client.get(
            "/api/v1/calendar/appointments",
            params={"start_date": business_day.isoformat(), "end_date": business_day.isoformat()},
            headers=guest_headers,
        )
        assert response.status_code == 403

    def test_staff_cannot_manage_clinics(self, client, staff_headers):
        response = client.post("/api/v1/clinics", json={"name": "Rogue", "color_hex": "#000000"},
                               headers=staff_headers)
        assert response.status_code == 403

    def test_staff_without_clinic_is_refused(self, client, test_db):
        from helpers import auth_headers_for

        user = models.User(email="nowhere@example.com", role=models.UserRole.clinic_staff)
        test_db.add(user)
        test_db.commit()
        response = client.get("/api/v1/procedures", headers=auth_headers_for(user))
        assert response.status_code == 403


class TestGoogleCallback:

    def _state_cookie(self, client, state="abc"):
        token = create_access_token({"state": state, "code_verifier": "verifier"},
                                    expires_delta=timedelta(minutes=10), token_type="oauth_state")
        client.cookies.set(OAUTH_STATE_COOKIE, token)

    def test_error_page(self, client):
        response = client.get("/api/v1/auth/auth-code-error")
        assert response.status_code == 401
        assert "Sign-in" in response.json()["detail"]

    def test_state_mismatch_redirects_to_error(self, client):
        self._state_cookie(client, state="expected")
        response = client.get("/api/v1/auth/callback", params={"code": "c", "state": "other"},
                              follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"].endswith("/api/v1/auth/auth-code-error")

    def test_successful_sign_in_creates_guest_and_session(self, client, test_db, monkeypatch):
        identity = google_auth.GoogleIdentity(email="New.User@Example.com", full_name="New User", avatar_url=None)
        monkeypatch.setattr(google_auth, "exchange_code", lambda code, state, verifier: identity)
        self._state_cookie(client)

        response = client.get("/api/v1/auth/callback", params={"code": "c", "state": "abc"},
                              follow_redirects=False)

        assert response.status_code == 302
        user = test_db.query(models.User).filter_by(email="new.user@example.com").one()
        assert user.role == models.UserRole.guest
        assert user.last_login is not None

        from clinicdesk.config import get_settings
        prefix = f"{get_settings().session_cookie_name}="
        cookie = next(h for h in response.headers.get_list("set-cookie") if h.startswith(prefix))
        session = cookie[len(prefix):].split(";", 1)[0]
        assert verify_token(session)["sub"] == str(user.id)

        login = test_db.query(models.AuditLog).filter_by(action=models.AuditAction.LOGIN).one()
        assert login.user_id == user.id

    def test_failed_exchange_redirects_to_error(self, client, monkeypatch):
        def fail(code, state, verifier):
            raise google_auth.GoogleAuthError("bad code")

        monkeypatch.setattr(google_auth, "exchange_code", fail)
        self._state_cookie(client)

        response = client.get("/api/v1/auth/callback", params={"code": "c", "state": "abc"},
                              follow_redirects=False)
        assert response.headers["location"].endswith("/auth-code-error")

    def test_logout_clears_session(self, client, admin_headers):
        response = client.post("/api/v1/auth/logout", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["detail"] == "Signed out"
