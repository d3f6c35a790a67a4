"""Google OAuth — authorize URL, code exchange, refresh, userinfo.

Invariants:
    - access_type=offline + prompt=consent on every authorize URL so Google
      always returns a refresh token
    - Every non-2xx response raises ExternalServiceError("google", ...)
    - Token responses are returned as GoogleTokens with an absolute expires_at
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from urllib.parse import urlencode

import httpx

from tutorassist.config import get_settings
from tutorassist.core.clock import utcnow
from tutorassist.core.errors import ExternalServiceError

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
]

_TIMEOUT = httpx.Timeout(10.0)


@dataclass
class GoogleTokens:
    access_token: str
    refresh_token: str | None
    expires_at: datetime | None
    scope: str | None


def build_authorize_url(state: str) -> str:
    settings = get_settings()
    params = {
        "client_id": settings.google_client_id,
        "redirect_uri": settings.google_redirect_uri,
        "response_type": "code",
        "scope": " ".join(SCOPES),
        "access_type": "offline",
        "prompt": "consent",
        "state": state,
    }
    return f"{AUTHORIZE_URL}?{urlencode(params)}"


def _parse_tokens(data: dict) -> GoogleTokens:
    if not data.get("access_token"):
        raise ExternalServiceError("google", "Token response missing access_token")
    expires_in = data.get("expires_in")
    return GoogleTokens(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token"),
        expires_at=utcnow() + timedelta(seconds=int(expires_in)) if expires_in else None,
        scope=data.get("scope"),
    )


async def _post_token(form: dict) -> dict:
    try:
        async with httpx.AsyncClient(timeout=_TIMEOUT) as client:
            response = await client.post(TOKEN_URL, data=form)
    except httpx.HTTPError as e:
        raise ExternalServiceError("google", f"Token request failed: {e}")
    if response.status_code != 200:
        logger.warning(f"Google token endpoint returned {response.status_code}")
        raise ExternalServiceError("google", f"Token request returned {response.status_code}")
    return response.json()


async def exchange_code(code: str) -> GoogleTokens:
    settings = get_settings()
    data = await _post_token({
        "code": code,
        "client_id": settings.google_client_id,
        "client_secret": settings.google_client_secret,
        "redirect_uri": settings.google_redirect_uri,
        "grant_type": "authorization_code",
    })
    return _parse_tokens(data)


async def refresh_access_token(refresh_token: str) -> GoogleTokens:
    settings = get_settings()
    data = await _post_token({
        "refresh_token": refresh_token,
        "client_id": settings.google_client_id,
        "client_secret": settings.google_client_secret,
        "grant_type": "refresh_token",
    })
    return _parse_tokens(data)


async def fetch_userinfo(access_token: str) -> dict:
    try:
        async with httpx.AsyncClient(timeout=_TIMEOUT) as client:
            response = await client.get(
                USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"},
            )
    except httpx.HTTPError as e:
        raise ExternalServiceError("google", f"Userinfo request failed: {e}")
    if response.status_code != 200:
        raise ExternalServiceError("google", "Failed to get user info")
    return response.json()
