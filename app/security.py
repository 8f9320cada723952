"""
JWT verification for the session identity.

The external auth layer signs a short-lived JWT whose `sub` is the user id
with the shared JWT_SECRET; this service only verifies it. Algorithm: HS256.
"""
from jose import jwt

from config import JWT_ALGORITHM, JWT_SECRET


def decode_jwt(token: str) -> dict:
    """Decode and verify JWT; raises JWTError if invalid or expired."""
    return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
