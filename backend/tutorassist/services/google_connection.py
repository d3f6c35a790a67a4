"""Google Connection — stored OAuth tokens and refresh-before-use for calendar calls.

Invariants:
    - One oauth_connections row per (user, "google"); saving again overwrites it
    - Tokens are Fernet ciphertext at rest; plaintext only lives in memory
    - An access token expiring within REFRESH_MARGIN is refreshed (and re-saved)
      before it is handed to a calendar client
    - A refresh that returns no new refresh_token keeps the stored one
"""

import logging
from datetime import timedelta
from uuid import UUID

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.core.clock import as_utc, utcnow
from tutorassist.infrastructure import google_oauth
from tutorassist.infrastructure.google_calendar import GoogleCalendarClient
from tutorassist.infrastructure.google_oauth import GoogleTokens
from tutorassist.infrastructure.token_cipher import decrypt_token, encrypt_token
from tutorassist.models.oauth_connection import OAuthConnection

logger = logging.getLogger(__name__)

PROVIDER = "google"
REFRESH_MARGIN = timedelta(seconds=60)


async def get_connection(db: AsyncSession, user_id: UUID) -> OAuthConnection | None:
    return (await db.execute(
        select(OAuthConnection).where(
            OAuthConnection.user_id == user_id, OAuthConnection.provider == PROVIDER,
        )
    )).scalar_one_or_none()


async def save_connection(
    db: AsyncSession, user_id: UUID, tokens: GoogleTokens, provider_email: str | None,
) -> OAuthConnection:
    """Insert or overwrite the user's Google connection and commit."""
    connection = await get_connection(db, user_id)
    if connection is None:
        connection = OAuthConnection(user_id=user_id, provider=PROVIDER)
        db.add(connection)
    connection.provider_email = provider_email
    connection.access_token = encrypt_token(tokens.access_token)
    if tokens.refresh_token:
        connection.refresh_token = encrypt_token(tokens.refresh_token)
    connection.expires_at = tokens.expires_at
    connection.scopes = tokens.scope
    connection.updated_at = utcnow()
    await db.commit()
    return connection


async def remove_connection(db: AsyncSession, user_id: UUID) -> None:
    await db.execute(
        delete(OAuthConnection).where(
            OAuthConnection.user_id == user_id, OAuthConnection.provider == PROVIDER,
        )
    )
    await db.commit()


async def get_valid_access_token(db: AsyncSession, user_id: UUID) -> str | None:
    """Plaintext access token, refreshed first when close to expiry. None if not connected."""
    connection = await get_connection(db, user_id)
    if connection is None:
        return None

    expires_at = as_utc(connection.expires_at)
    if expires_at is None or expires_at - utcnow() > REFRESH_MARGIN:
        return decrypt_token(connection.access_token)

    if not connection.refresh_token:
        logger.warning("Google token expired and no refresh token stored", extra={"user_id": str(user_id)})
        return decrypt_token(connection.access_token)

    tokens = await google_oauth.refresh_access_token(decrypt_token(connection.refresh_token))
    connection.access_token = encrypt_token(tokens.access_token)
    if tokens.refresh_token:
        connection.refresh_token = encrypt_token(tokens.refresh_token)
    connection.expires_at = tokens.expires_at
    connection.updated_at = utcnow()
    await db.commit()
    logger.info("Refreshed Google access token", extra={"user_id": str(user_id)})
    return tokens.access_token


async def calendar_client_for(db: AsyncSession, user_id: UUID) -> GoogleCalendarClient | None:
    token = await get_valid_access_token(db, user_id)
    return GoogleCalendarClient(token) if token else None
