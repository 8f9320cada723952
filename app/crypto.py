"""
Encryption of provider tokens at rest using Fernet (symmetric, from cryptography).

Tokens are encrypted before being stored on the StorageLink and decrypted only
when a Google call needs them. TOKEN_ENCRYPTION_KEY may hold several
comma-separated keys: the first encrypts, all of them decrypt, so keys can be
rotated without forcing every user to re-link.
"""
import os

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

from services.errors import AuthRequiresRelink

_RAW_KEYS = os.environ.get("TOKEN_ENCRYPTION_KEY")
if not _RAW_KEYS:
    raise RuntimeError("TOKEN_ENCRYPTION_KEY environment variable is required")

fernet = MultiFernet(
    [Fernet(key.strip().encode()) for key in _RAW_KEYS.split(",") if key.strip()]
)


def encrypt(value: str) -> str:
    """Encrypt a token (access or refresh) for storage."""
    return fernet.encrypt(value.encode()).decode()


def decrypt(value: str | None) -> str | None:
    """
    Decrypt a stored token. Returns None if value is None (no refresh token).
    A token no configured key can read is unusable; the user has to re-link.
    """
    if value is None:
        return None
    try:
        return fernet.decrypt(value.encode()).decode()
    except InvalidToken as e:
        raise AuthRequiresRelink("Stored Drive credentials cannot be decrypted") from e
