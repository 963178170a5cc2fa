# clinicdesk/services/google_auth.py
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from google.auth.transport import requests as google_requests
from google.oauth2 import id_token
from google_auth_oauthlib.flow import Flow

from ..config import get_settings

logger = logging.getLogger(__name__)

SCOPES = [
    "openid",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
]


class GoogleAuthError(Exception):
    pass


@dataclass(frozen=True)
class GoogleIdentity:
    email: str
    full_name: Optional[str]
    avatar_url: Optional[str]


def _client_config(settings) -> dict:
    return {
        "web": {
            "client_id": settings.google_client_id,
            "client_secret": settings.google_client_secret,
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": "https://oauth2.googleapis.com/token",
            "redirect_uris": [settings.oauth_redirect_url],
        }
    }


def build_flow(state: Optional[str] = None, code_verifier: Optional[str] = None) -> Flow:
    settings = get_settings()
    if not settings.oauth_enabled:
        raise GoogleAuthError("Google sign-in is not configured")
    return Flow.from_client_config(
        _client_config(settings),
        scopes=SCOPES,
        state=state,
        code_verifier=code_verifier,
        redirect_uri=settings.oauth_redirect_url,
    )


def get_authorization_url() -> Tuple[str, str, Optional[str]]:
    """Authorization URL plus the state and PKCE verifier the callback must present."""
    flow = build_flow()
    url, state = flow.authorization_url(access_type="online", prompt="select_account")
    return url, state, flow.code_verifier


def exchange_code(code: str, state: str, code_verifier: Optional[str]) -> GoogleIdentity:
    settings = get_settings()
    flow = build_flow(state=state, code_verifier=code_verifier)
    try:
        flow.fetch_token(code=code)
        claims = id_token.verify_oauth2_token(
            flow.credentials.id_token,
            google_requests.Request(),
            settings.google_client_id,
        )
    except Exception as e:
        logger.error(f"Google code exchange failed: {e}")
        raise GoogleAuthError("Could not complete Google sign-in") from e

    if not claims.get("email") or not claims.get("email_verified", False):
        raise GoogleAuthError("Google account has no verified email")
    return GoogleIdentity(
        email=claims["email"].lower(),
        full_name=claims.get("name"),
        avatar_url=claims.get("picture"),
    )
