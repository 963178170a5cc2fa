# clinicdesk/routers/auth.py
import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session

from .. import crud, models, schemas, security
from ..audit import audit_trail
from ..config import get_settings
from ..database import get_db
from ..services import google_auth

logger = logging.getLogger(__name__)

OAUTH_STATE_COOKIE = "clinicdesk_oauth_state"

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"]
)


def _set_session_cookie(response, token: str) -> None:
    settings = get_settings()
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.access_token_expire_minutes * 60,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


@router.get("/login")
def login_with_google():
    """Redirect the browser to Google's consent screen."""
    try:
        url, state, code_verifier = google_auth.get_authorization_url()
    except google_auth.GoogleAuthError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    state_token = security.create_access_token(
        {"state": state, "code_verifier": code_verifier},
        expires_delta=timedelta(minutes=10),
        token_type="oauth_state",
    )
    response = RedirectResponse(url=url, status_code=status.HTTP_302_FOUND)
    response.set_cookie(OAUTH_STATE_COOKIE, state_token, max_age=600, httponly=True,
                        secure=get_settings().is_production, samesite="lax")
    return response


@router.get("/callback")
def oauth_callback(request: Request, code: str = "", state: str = "", db: Session = Depends(get_db)):
    """Finish the Google redirect: upsert the account and start a session."""
    error_url = request.url_for("auth_code_error")
    saved = security.verify_token(request.cookies.get(OAUTH_STATE_COOKIE, ""), "oauth_state")
    if not code or not saved or saved.get("state") != state:
        logger.warning("OAuth callback rejected: missing code or state mismatch")
        return RedirectResponse(url=str(error_url), status_code=status.HTTP_302_FOUND)

    try:
        identity = google_auth.exchange_code(code, state, saved.get("code_verifier"))
        user = crud.upsert_oauth_user(
            db,
            email=identity.email,
            full_name=identity.full_name,
            avatar_url=identity.avatar_url,
            admin_emails=get_settings().admin_emails,
        )
    except (google_auth.GoogleAuthError, crud.CRUDError) as e:
        logger.warning(f"OAuth callback failed: {e}")
        return RedirectResponse(url=str(error_url), status_code=status.HTTP_302_FOUND)

    if not user.is_active:
        return RedirectResponse(url=str(error_url), status_code=status.HTTP_302_FOUND)

    audit_trail.log_event(db, user, "LOGIN", "AUTHENTICATION",
                          details=f"User {user.email} signed in with Google",
                          ip_address=request.client.host if request.client else None)
    logger.info(f"User '{user.email}' successfully authenticated.")

    response = RedirectResponse(url=get_settings().frontend_url, status_code=status.HTTP_302_FOUND)
    _set_session_cookie(response, security.create_session_token(user))
    response.delete_cookie(OAUTH_STATE_COOKIE)
    return response


@router.get("/auth-code-error", name="auth_code_error")
def auth_code_error():
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"detail": "Sign-in could not be completed. Please try again."},
    )


@router.get("/me", response_model=schemas.MeResponse)
def read_me(ctx: security.RequestContext = Depends(security.get_request_context)):
    """The signed-in user, their profile and the navigation their role allows."""
    return schemas.MeResponse(
        user=schemas.UserResponse.model_validate(ctx.user),
        role=ctx.role,
        clinic_id=ctx.clinic_id,
        navigation=security.navigation_for(ctx.role),
    )


@router.post("/logout")
def logout(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.get_current_user),
):
    audit_trail.log_event(db, current_user, "LOGOUT", "AUTHENTICATION",
                          details=f"User {current_user.email} signed out")
    response = JSONResponse(content={"detail": "Signed out"})
    response.delete_cookie(get_settings().session_cookie_name)
    return response
