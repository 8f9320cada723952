"""
Current-user dependency and the Drive token lifecycle.

- get_current_user reads the session JWT (cookie or Authorization: Bearer)
  issued by the external auth layer and returns the User.
- load_link(db, user_id) returns the user's StorageLink or raises NotLinked.
- get_valid_access_token(link, db) returns a usable Google access token,
  refreshing and persisting it when the cached one has expired.
- /auth/me returns the current user with its Drive connection flag.
"""
import logging
from datetime import datetime, timedelta, UTC

from fastapi import APIRouter, Depends, HTTPException, Request
from jose import JWTError
from sqlalchemy.orm import Session

from config import JWT_COOKIE_NAME
from crypto import decrypt, encrypt
from database import get_db
from models import StorageLink, User
from security import decode_jwt
from services import oauth_service
from services.errors import AuthRequiresRelink, NotLinked

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth")


def _session_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[len("Bearer "):].strip() or None
    return request.cookies.get(JWT_COOKIE_NAME)


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
) -> User:
    """
    FastAPI dependency: read JWT from bearer header or session cookie, decode it,
    load User. Raises 401 if missing, invalid/expired, or user not found.
    """
    token = _session_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = decode_jwt(token)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid session")
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def load_link(db: Session, user_id: str) -> StorageLink:
    link = db.get(StorageLink, user_id)
    if link is None:
        raise NotLinked()
    return link


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def get_valid_access_token(link: StorageLink, db: Session) -> str:
    """
    Return the cached access token while now < token_expiry; otherwise run the
    refresh-token grant, persist (access_token, token_expiry) and return the
    new token. A dead refresh token raises AuthRequiresRelink and is not retried.
    """
    now = datetime.now(UTC)
    if link.token_expiry and now < _as_utc(link.token_expiry):
        return decrypt(link.encrypted_access_token)

    refresh_token = decrypt(link.encrypted_refresh_token)
    if not refresh_token:
        raise AuthRequiresRelink(
            "Drive session expired and no refresh token is stored; please reconnect Google Drive"
        )
    grant = oauth_service.refresh_access_token(refresh_token)

    link.encrypted_access_token = encrypt(grant.access_token)
    link.token_expiry = now + timedelta(seconds=grant.expires_in)
    if grant.refresh_token:
        link.encrypted_refresh_token = encrypt(grant.refresh_token)
    db.commit()
    logger.info("Refreshed Drive access token for user %s", link.user_id)
    return grant.access_token


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    """Return current user profile and Drive connection flag."""
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "drive_connected": bool(user.drive_connected),
        "storage_preference": user.storage_preference,
    }
