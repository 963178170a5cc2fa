# clinicdesk/security.py
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from . import crud, models
from .config import get_settings
from .database import get_db

security_logger = logging.getLogger("clinicdesk.security")

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class RequestContext:
    """Who is asking: the authenticated user and the profile that scopes them.

    Built once per request and handed explicitly to crud and services.
    """
    user: models.User
    role: models.UserRole
    clinic_id: Optional[int]

    @classmethod
    def for_user(cls, user: models.User) -> "RequestContext":
        return cls(user=user, role=models.UserRole(user.role), clinic_id=user.clinic_id)

    @property
    def user_id(self) -> int:
        return self.user.id

    @property
    def is_admin(self) -> bool:
        return self.role == models.UserRole.admin

    @property
    def is_staff(self) -> bool:
        return self.role == models.UserRole.clinic_staff


# JWT utilities
def create_access_token(data: dict, expires_delta: Optional[timedelta] = None, token_type: str = "access") -> str:
    """Create a signed session token"""
    settings = get_settings()
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode.update({
        "exp": expire,
        "type": token_type,
        "iat": now,
        "jti": secrets.token_urlsafe(16),
    })
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def create_session_token(user: models.User) -> str:
    return create_access_token({"sub": str(user.id), "email": user.email})


def verify_token(token: str, token_type: str = "access") -> Optional[Dict[str, Any]]:
    """Verify and decode a token, None when invalid, expired or of another type"""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
    if payload.get("type") != token_type:
        return None
    return payload


def _token_from_request(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials and credentials.scheme.lower() == "bearer":
        return credentials.credentials
    return request.cookies.get(get_settings().session_cookie_name)


# Dependencies for FastAPI
async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> models.User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    token = _token_from_request(request, credentials)
    if not token:
        raise credentials_exception

    payload = verify_token(token, "access")
    if not payload or not payload.get("sub"):
        raise credentials_exception

    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise credentials_exception

    user = crud.get_user(db, user_id=user_id)
    if not user:
        raise credentials_exception

    if not user.is_active:
        security_logger.warning(f"Inactive user {user.email} attempted access to {request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive",
        )
    return user


def get_request_context(current_user: models.User = Depends(get_current_user)) -> RequestContext:
    return RequestContext.for_user(current_user)


def require_role(*allowed_roles: str):
    """Dependency factory for role-based access control"""
    def role_dependency(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:
        if ctx.role.value not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {', '.join(allowed_roles)}",
            )
        if ctx.is_staff and ctx.clinic_id is None:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Your account is not assigned to a clinic yet.",
            )
        return ctx

    return role_dependency


# Specific role dependencies
require_admin = require_role("admin")
require_staff = require_role("admin", "clinic_staff")


NAVIGATION = {
    models.UserRole.admin: [
        ("Calendar", "/"),
        ("Clinics", "/clinics"),
        ("Procedures", "/procedures"),
        ("Patients", "/patients"),
        ("Appointment Templates", "/appointment-templates"),
        ("WA Templates", "/wa-templates"),
    ],
    models.UserRole.clinic_staff: [
        ("Calendar", "/"),
    ],
    models.UserRole.guest: [],
}


def navigation_for(role: models.UserRole):
    return [{"label": label, "path": path} for label, path in NAVIGATION[role]]
