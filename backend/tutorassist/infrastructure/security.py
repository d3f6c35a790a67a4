"""Security — bcrypt password hashing and HS256 JWT access tokens.

Invariants:
    - Plain passwords are never stored or logged
    - Tokens carry sub (user id), email, type="access", jti, iat, exp
    - decode_access_token raises AuthenticationError for expired, malformed,
      or non-access tokens; it never returns a partial payload
"""

import uuid
from datetime import timedelta

import bcrypt
import jwt

from tutorassist.config import get_settings
from tutorassist.core.clock import utcnow
from tutorassist.core.errors import AuthenticationError

MIN_PASSWORD_LENGTH = 8


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(user_id: uuid.UUID, email: str) -> str:
    settings = get_settings()
    now = utcnow()
    payload = {
        "sub": str(user_id),
        "email": email,
        "type": "access",
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": now + timedelta(minutes=settings.access_token_expire_minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm],
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token has expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token")

    if payload.get("type") != "access" or not payload.get("sub"):
        raise AuthenticationError("Invalid token type")
    return payload
