"""
Data models for the drive vault backend.

"""
import uuid
from datetime import datetime, UTC

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String

from database import Base

DRIVE_PATH_PREFIX = "gdrive://"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _uuid() -> str:
    return str(uuid.uuid4())


class User(Base):
    """
    Application account as seen by the storage federation.

    - id: subject id issued by the external auth layer (string), primary key.
    - email: registered identity; a linked Drive account must match it.
    - drive_connected / drive_folder_id: profile flags shown by the frontend;
      set on exchange and cleared on disconnect.
    - storage_preference: "saas", "google_drive" or null until chosen.
    """
    __tablename__ = "users"

    id = Column(String(255), primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False)
    name = Column(String(255))

    drive_connected = Column(Boolean, nullable=False, default=False)
    drive_folder_id = Column(String(255), nullable=True)
    storage_preference = Column(String(32), nullable=True)


class StorageLink(Base):
    """
    One row per user binding the account to a Google Drive account.

    - encrypted_access_token / encrypted_refresh_token: Fernet-encrypted;
      decrypted only when calling Google APIs.
    - token_expiry: UTC time when the access token expires; any use must
      check it first and refresh when it has passed.
    - external_account_identity: Google e-mail captured at link time.
    - root_folder_id: cached top-level folder; null until resolved and may
      go stale if the folder is deleted or trashed in Drive.
    """
    __tablename__ = "storage_links"

    user_id = Column(
        String(255),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    encrypted_access_token = Column(String(2048), nullable=False)
    encrypted_refresh_token = Column(String(2048), nullable=True)
    token_expiry = Column(DateTime(timezone=True), nullable=False)
    external_account_identity = Column(String(255), nullable=False)
    root_folder_id = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )


class Document(Base):
    """
    A user document. file_path is either an internal storage key or
    gdrive://<fileId> when the bytes live in the user's Drive.
    """
    __tablename__ = "documents"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(
        String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    file_name = Column(String(512))
    file_path = Column(String(1024))
    file_type = Column(String(255))
    country = Column(String(255))
    tax_year = Column(String(64))
    category = Column(String(255))

    share_enabled = Column(Boolean, nullable=False, default=False)
    share_permission_id = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    @property
    def drive_file_id(self) -> str | None:
        return extract_drive_file_id(self.file_path)


def drive_path(file_id: str) -> str:
    """Binding stored in Document.file_path for a Drive-hosted file."""
    return f"{DRIVE_PATH_PREFIX}{file_id}"


def is_drive_file(file_path: str | None) -> bool:
    return bool(file_path) and file_path.startswith(DRIVE_PATH_PREFIX)


def extract_drive_file_id(file_path: str | None) -> str | None:
    """Drive file id from a gdrive:// path, or None for internal storage keys."""
    if not is_drive_file(file_path):
        return None
    return file_path[len(DRIVE_PATH_PREFIX):] or None
