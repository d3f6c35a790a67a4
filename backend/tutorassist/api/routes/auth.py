"""Auth Routes — local accounts (signup/login/status/signout) and the Google OAuth handshake.

Invariants:
    - Emails are stored lowercased; passwords must be >= MIN_PASSWORD_LENGTH
    - /auth/status never returns 401 (signed-out callers get authenticated=false)
    - The OAuth callback ALWAYS redirects to {app_url}{return_to} with exactly one
      of error=... or success=google_connected, and clears the oauth_* cookies
    - return_to is only ever a same-site path ("/..."), never an absolute URL

Design Decisions:
    - Stateless JWT sessions: signout is acknowledged, the client drops the token
    - The browser redirect to Google cannot carry a bearer header, so the initiating
      user is carried in a short-lived httponly oauth_session cookie (a fresh access
      token), next to the oauth_state CSRF cookie
"""

import logging
import secrets
from urllib.parse import urlencode
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.api.dependencies import (
    UserContext, get_optional_user, load_user_context, require_tutor,
)
from tutorassist.config import get_settings
from tutorassist.core.clock import iso
from tutorassist.core.errors import (
    AuthenticationError, ConflictError, ExternalServiceError, ValidationFailedError,
)
from tutorassist.infrastructure import google_oauth
from tutorassist.infrastructure.database import get_db
from tutorassist.infrastructure.security import (
    MIN_PASSWORD_LENGTH, create_access_token, decode_access_token,
    hash_password, verify_password,
)
from tutorassist.models.user import User
from tutorassist.schemas.auth import LoginRequest, SignupRequest
from tutorassist.services import google_connection

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/auth", tags=["auth"])

OAUTH_COOKIE_MAX_AGE = 600
DEFAULT_RETURN_TO = "/tutor/settings"
_OAUTH_COOKIES = ("oauth_state", "oauth_return_to", "oauth_session")


def serialize_user(user: User) -> dict:
    return {
        "id": str(user.id),
        "email": user.email,
        "full_name": user.full_name,
        "created_at": iso(user.created_at),
    }


def check_password_length(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailedError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters", "password",
        )


def _token_response(user: User) -> dict:
    return {
        "access_token": create_access_token(user.id, user.email),
        "token_type": "bearer",
        "user": serialize_user(user),
    }


async def find_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


# ─── Local accounts ──────────────────────────────────────────────

@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(body: SignupRequest, db: AsyncSession = Depends(get_db)):
    check_password_length(body.password)
    if await find_user_by_email(db, body.email):
        raise ConflictError("An account with this email already exists")

    user = User(
        email=body.email,
        password_hash=hash_password(body.password),
        full_name=body.full_name,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info("User signed up", extra={"user_id": str(user.id)})
    return _token_response(user)


@router.post("/login")
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    user = await find_user_by_email(db, body.email)
    if not user or not verify_password(body.password, user.password_hash):
        raise AuthenticationError("Invalid email or password")
    return _token_response(user)


@router.get("/status")
async def auth_status(
    user: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    if user is None:
        return {"authenticated": False, "google_connected": False}
    ctx = await load_user_context(db, user)
    connection = await google_connection.get_connection(db, user.id)
    return {
        "authenticated": True,
        "user": serialize_user(user),
        "role": ctx.role,
        "workspace_id": str(ctx.workspace_id) if ctx.workspace_id else None,
        "is_platform_owner": ctx.is_platform_owner,
        "google_connected": connection is not None,
    }


@router.post("/signout")
async def signout():
    return {"success": True}


# ─── Google OAuth ────────────────────────────────────────────────

def _safe_return_to(value: str | None) -> str:
    if value and value.startswith("/") and not value.startswith("//"):
        return value
    return DEFAULT_RETURN_TO


@router.get("/google", status_code=status.HTTP_307_TEMPORARY_REDIRECT)
async def google_authorize(
    return_to: str = Query(DEFAULT_RETURN_TO),
    ctx: UserContext = Depends(require_tutor),
):
    state = secrets.token_urlsafe(32)
    response = RedirectResponse(
        google_oauth.build_authorize_url(state),
        status_code=status.HTTP_307_TEMPORARY_REDIRECT,
    )
    cookie = {
        "max_age": OAUTH_COOKIE_MAX_AGE,
        "httponly": True,
        "samesite": "lax",
        "secure": get_settings().app_url.startswith("https://"),
    }
    response.set_cookie("oauth_state", state, **cookie)
    response.set_cookie("oauth_return_to", _safe_return_to(return_to), **cookie)
    response.set_cookie(
        "oauth_session", create_access_token(ctx.user_id, ctx.user.email), **cookie,
    )
    return response


@router.get("/google/callback")
async def google_callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    return_to = _safe_return_to(request.cookies.get("oauth_return_to"))

    def finish(**params: str) -> RedirectResponse:
        url = f"{get_settings().app_url.rstrip('/')}{return_to}?{urlencode(params)}"
        response = RedirectResponse(url, status_code=status.HTTP_302_FOUND)
        for name in _OAUTH_COOKIES:
            response.delete_cookie(name)
        return response

    if error:
        logger.warning(f"Google OAuth error: {error}")
        return finish(error="google_auth_failed")
    if not code or not state:
        return finish(error="missing_params")
    stored_state = request.cookies.get("oauth_state")
    if not stored_state or not secrets.compare_digest(stored_state, state):
        return finish(error="invalid_state")

    try:
        user_id = UUID(decode_access_token(request.cookies.get("oauth_session") or "")["sub"])
    except (AuthenticationError, ValueError):
        return finish(error="not_authenticated")

    try:
        tokens = await google_oauth.exchange_code(code)
        info = await google_oauth.fetch_userinfo(tokens.access_token)
    except ExternalServiceError as e:
        logger.error(f"Google token exchange failed: {e.message}", extra={"user_id": str(user_id)})
        return finish(error="token_exchange_failed")

    user = await db.get(User, user_id)
    if user is None:
        return finish(error="not_authenticated")
    await google_connection.save_connection(db, user.id, tokens, info.get("email"))
    logger.info("Google account connected", extra={"user_id": str(user.id)})
    return finish(success="google_connected")

