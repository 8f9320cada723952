"""
Link lifecycle: exchange (OAuth code -> StorageLink), status, disconnect,
plus the identity/quota gate and root-folder repair shared with uploads.

Per-user state: UNLINKED -> LINKING -> LINKED -> UNLINKED. A LINKING attempt
ends LINKED or in one of the failure states, all of which leave no
StorageLink behind and revoke whatever token Google just issued.
"""
import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, UTC

from sqlalchemy.orm import Session

from config import DRIVE_ROOT_FOLDER_NAME, MIN_STORAGE_BYTES
from crypto import decrypt, encrypt
from models import StorageLink, User
from services import drive_service, oauth_service
from services.errors import (
    AuthRequiresRelink,
    IdentityMismatch,
    InsufficientQuota,
)

logger = logging.getLogger(__name__)


class LinkState(str, enum.Enum):
    UNLINKED = "unlinked"
    LINKING = "linking"
    LINKED = "linked"
    IDENTITY_MISMATCH = "identity_mismatch"
    INSUFFICIENT_QUOTA = "insufficient_quota"
    ERROR = "error"


@dataclass
class LinkResult:
    external_identity: str
    root_folder_id: str
    available_bytes: int | None  # None: no storage limit on the account


@dataclass
class LinkCheck:
    """Outcome of a passed identity/quota gate."""
    identity: str
    quota: drive_service.StorageQuota


@dataclass
class LinkStatus:
    connected: bool
    external_identity: str | None
    root_folder_id: str | None

    @property
    def state(self) -> LinkState:
        return LinkState.LINKED if self.connected else LinkState.UNLINKED


def validate_link(access_token: str, expected_identity: str) -> LinkCheck:
    """
    Identity then quota. On either failure the freshly issued access token is
    revoked before raising, so it is never left dangling.
    """
    actual = oauth_service.fetch_identity(access_token)
    if (actual or "").strip().lower() != (expected_identity or "").strip().lower():
        oauth_service.revoke_token(access_token)
        raise IdentityMismatch(expected=expected_identity, actual=actual)

    quota = drive_service.get_storage_quota(access_token)
    available = quota.available
    if available is not None and available < MIN_STORAGE_BYTES:
        oauth_service.revoke_token(access_token)
        raise InsufficientQuota(available_bytes=available, required_bytes=MIN_STORAGE_BYTES)
    return LinkCheck(identity=actual, quota=quota)


def _failure_state(exc: Exception) -> LinkState:
    if isinstance(exc, IdentityMismatch):
        return LinkState.IDENTITY_MISMATCH
    if isinstance(exc, InsufficientQuota):
        return LinkState.INSUFFICIENT_QUOTA
    return LinkState.ERROR


def exchange(db: Session, user: User, auth_code: str, redirect_uri: str) -> LinkResult:
    """
    Trade the code, gate on identity and quota, resolve the root folder and
    upsert the StorageLink. Any failure after tokens were issued rolls back
    and revokes them.
    """
    logger.info("Drive link %s for user %s", LinkState.LINKING.value, user.id)
    grant = oauth_service.exchange_code(auth_code, redirect_uri)

    try:
        check = validate_link(grant.access_token, user.email)
        root_folder_id = drive_service.resolve_folder(
            grant.access_token, DRIVE_ROOT_FOLDER_NAME, drive_service.DRIVE_ROOT_ALIAS
        )
        identity = check.identity
        expiry = datetime.now(UTC) + timedelta(seconds=grant.expires_in)

        link = db.get(StorageLink, user.id)
        if link is None:
            link = StorageLink(user_id=user.id)
            db.add(link)
        link.encrypted_access_token = encrypt(grant.access_token)
        if grant.refresh_token:
            link.encrypted_refresh_token = encrypt(grant.refresh_token)
        link.token_expiry = expiry
        link.external_account_identity = identity
        link.root_folder_id = root_folder_id

        user.drive_connected = True
        user.drive_folder_id = root_folder_id
        user.storage_preference = "google_drive"
        db.commit()
    except Exception as e:
        db.rollback()
        if not isinstance(e, (IdentityMismatch, InsufficientQuota)):
            oauth_service.revoke_token(grant.access_token)
        oauth_service.revoke_token(grant.refresh_token)
        logger.warning(
            "Drive link for user %s ended %s: %s", user.id, _failure_state(e).value, e
        )
        raise

    logger.info("Drive link %s for user %s", LinkState.LINKED.value, user.id)
    return LinkResult(
        external_identity=identity,
        root_folder_id=root_folder_id,
        available_bytes=check.quota.available,
    )


def get_status(db: Session, user_id: str) -> LinkStatus:
    """Local read only; no call to Google."""
    link = db.get(StorageLink, user_id)
    if link is None:
        return LinkStatus(connected=False, external_identity=None, root_folder_id=None)
    return LinkStatus(
        connected=True,
        external_identity=link.external_account_identity,
        root_folder_id=link.root_folder_id,
    )


def disconnect(db: Session, user_id: str) -> bool:
    """
    Revoke both tokens (best effort), delete the StorageLink and clear the
    profile flags. Files already in Drive stay where they are. Returns whether
    a link existed.
    """
    link = db.get(StorageLink, user_id)
    if link is not None:
        try:
            tokens = [decrypt(link.encrypted_access_token), decrypt(link.encrypted_refresh_token)]
        except AuthRequiresRelink:
            logger.warning("Skipping revocation for user %s: stored tokens unreadable", user_id)
            tokens = []
        for token in tokens:
            oauth_service.revoke_token(token)
        db.delete(link)

    user = db.get(User, user_id)
    if user is not None:
        user.drive_connected = False
        user.drive_folder_id = None
    db.commit()
    if link is not None:
        logger.info("Drive link %s for user %s", LinkState.UNLINKED.value, user_id)
    return link is not None


def ensure_root_folder(db: Session, link: StorageLink, access_token: str) -> str:
    """
    Verify the cached root folder and re-resolve it when absent, deleted or
    trashed, writing the new id back to the StorageLink and the profile.
    """
    cached = link.root_folder_id
    if cached and drive_service.folder_exists(access_token, cached):
        return cached
    if cached:
        logger.warning("Cached root folder %s for user %s is gone; re-resolving", cached, link.user_id)

    root_folder_id = drive_service.resolve_folder(
        access_token, DRIVE_ROOT_FOLDER_NAME, drive_service.DRIVE_ROOT_ALIAS
    )
    link.root_folder_id = root_folder_id
    user = db.get(User, link.user_id)
    if user is not None:
        user.drive_folder_id = root_folder_id
    db.commit()
    return root_folder_id
