"""Workspace Rules — slugs, default settings, invite expiry.

Invariants:
    - slugify output matches ^[a-z0-9-]*$ and is at most 50 characters
    - Workspace slugs carry an 8-hex random suffix, so two workspaces with the
      same name never collide
    - merge_settings never drops stored keys the patch does not mention
"""

import re
import secrets
from datetime import datetime, timedelta
from typing import Any

SLUG_MAX_LENGTH = 50
PROFILE_INVITE_DAYS = 7
OPEN_INVITE_DAYS = 30

DEFAULT_WORKSPACE_SETTINGS: dict[str, Any] = {
    "allowStudentPractice": True,
    "practiceRateLimit": 20,
    "defaultDifficulty": 3,
    "enableSpacedRepetition": True,
    "questionGenerationEnabled": True,
    "revealAnswersAfterAttempt": False,
}


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9\s-]", "", name.lower())
    slug = re.sub(r"\s+", "-", slug.strip())
    return slug[:SLUG_MAX_LENGTH]


def workspace_slug(name: str) -> str:
    return f"{slugify(name)}-{secrets.token_hex(4)}"


def default_settings() -> dict[str, Any]:
    return dict(DEFAULT_WORKSPACE_SETTINGS)


def merge_settings(current: dict | None, patch: dict | None) -> dict[str, Any]:
    merged = dict(current or {})
    merged.update(patch or {})
    return merged


def setting_enabled(settings: dict | None, key: str) -> bool:
    """A flag is on unless explicitly set to False (missing keys use defaults)."""
    value = (settings or {}).get(key, DEFAULT_WORKSPACE_SETTINGS.get(key, True))
    return value is not False


def generate_invite_token() -> str:
    return secrets.token_urlsafe(24)


def invite_expiry(now: datetime, for_profile: bool, days: int | None = None) -> datetime:
    if days is None:
        days = PROFILE_INVITE_DAYS if for_profile else OPEN_INVITE_DAYS
    return now + timedelta(days=days)


def invite_url(app_url: str, token: str) -> str:
    return f"{app_url.rstrip('/')}/invite/{token}"
