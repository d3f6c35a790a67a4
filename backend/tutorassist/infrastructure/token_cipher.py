"""Token Cipher — Fernet encryption for OAuth tokens at rest.

The Fernet key is derived from TOKEN_ENCRYPTION_KEY with SHA-256, so any
secret string works as configuration.
"""

import base64
import hashlib
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken

from tutorassist.config import get_settings
from tutorassist.core.errors import ExternalServiceError


@lru_cache
def _fernet(secret: str) -> Fernet:
    key = base64.urlsafe_b64encode(hashlib.sha256(secret.encode("utf-8")).digest())
    return Fernet(key)


def encrypt_token(plain: str) -> str:
    return _fernet(get_settings().token_encryption_key).encrypt(plain.encode("utf-8")).decode("utf-8")


def decrypt_token(cipher_text: str) -> str:
    try:
        return _fernet(get_settings().token_encryption_key).decrypt(
            cipher_text.encode("utf-8"),
        ).decode("utf-8")
    except InvalidToken:
        raise ExternalServiceError("google", "Stored token could not be decrypted")
