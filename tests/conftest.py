"""Pytest configuration and fixtures."""

import os
from datetime import UTC, datetime, timedelta

from cryptography.fernet import Fernet

# Set config BEFORE importing app modules (config/crypto validate at import)
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id.apps.googleusercontent.com")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("TOKEN_ENCRYPTION_KEY", Fernet.generate_key().decode())
os.environ["ENV"] = "test"
os.environ["SKIP_DB_INIT"] = "true"
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from jose import jwt

import models  # noqa: F401  registers tables
from config import JWT_ALGORITHM, JWT_SECRET
from crypto import encrypt
from database import Base, enable_sqlite_foreign_keys, get_db
from main import app
from models import StorageLink, User
from services import drive_service, oauth_service
from services.drive_service import FOLDER_MIME, StorageQuota
from services.oauth_service import TokenGrant


def as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=UTC)


def session_token(user_id: str, max_age: int = 3600) -> str:
    """JWT as the external auth layer would issue it."""
    payload = {"sub": user_id, "exp": datetime.now(UTC) + timedelta(seconds=max_age)}
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


class FakeDrive:
    """In-memory Drive standing in for the drive_service HTTP primitives."""

    def __init__(self):
        self.items: dict[str, dict] = {}
        self._seq = 0
        self.created_folders: list[tuple[str, str]] = []
        self.uploads: list[dict] = []
        self.patch_calls: list[dict] = []
        self.tokens_seen: list[str] = []
        self.quota = StorageQuota(limit=None, usage=0)
        self.fail_uploads_with = None
        self.fail_patches_with = None

    def _new_id(self, prefix: str) -> str:
        self._seq += 1
        return f"{prefix}{self._seq}"

    # -- test helpers --

    def add_folder(self, name: str, parent: str, folder_id: str | None = None) -> str:
        folder_id = folder_id or self._new_id("folder-")
        self.items[folder_id] = {
            "id": folder_id,
            "name": name,
            "mimeType": FOLDER_MIME,
            "parents": [parent],
            "trashed": False,
        }
        return folder_id

    def add_file(self, name: str, parent: str, file_id: str | None = None) -> str:
        file_id = file_id or self._new_id("file-")
        self.items[file_id] = {
            "id": file_id,
            "name": name,
            "mimeType": "application/pdf",
            "parents": [parent],
            "trashed": False,
        }
        return file_id

    def trash(self, item_id: str) -> None:
        self.items[item_id]["trashed"] = True

    def children(self, parent: str, folders: bool | None = None) -> list[dict]:
        return [
            item for item in self.items.values()
            if parent in item["parents"]
            and not item["trashed"]
            and (folders is None or (item["mimeType"] == FOLDER_MIME) == folders)
        ]

    def child_named(self, parent: str, name: str, folders: bool | None = None) -> dict | None:
        return next((c for c in self.children(parent, folders) if c["name"] == name), None)

    # -- patched primitives --

    def find_folder(self, access_token, name, parent_id):
        self.tokens_seen.append(access_token)
        match = self.child_named(parent_id, name, folders=True)
        return match["id"] if match else None

    def create_folder(self, access_token, name, parent_id):
        self.tokens_seen.append(access_token)
        folder_id = self.add_folder(name, parent_id)
        self.created_folders.append((name, parent_id))
        return folder_id

    def find_file(self, access_token, name, parent_id):
        self.tokens_seen.append(access_token)
        match = self.child_named(parent_id, name, folders=False)
        return {"id": match["id"], "name": match["name"]} if match else None

    def get_file_metadata(self, access_token, file_id):
        self.tokens_seen.append(access_token)
        item = self.items.get(file_id)
        if item is None:
            return None
        return {**item, "parents": list(item["parents"])}

    def upload_file(self, access_token, name, parent_id, content, mime_type):
        self.tokens_seen.append(access_token)
        if self.fail_uploads_with is not None:
            raise self.fail_uploads_with
        file_id = self.add_file(name, parent_id)
        self.items[file_id]["mimeType"] = mime_type
        self.uploads.append({"id": file_id, "name": name, "parent": parent_id, "content": content})
        return {"id": file_id, "name": name, "webViewLink": f"https://drive.example/{file_id}"}

    def update_parents(self, access_token, file_id, add_parent, remove_parents):
        self.tokens_seen.append(access_token)
        self.patch_calls.append(
            {"file_id": file_id, "add": add_parent, "remove": list(remove_parents)}
        )
        if self.fail_patches_with is not None:
            raise self.fail_patches_with
        item = self.items[file_id]
        item["parents"] = [p for p in item["parents"] if p not in remove_parents] + [add_parent]
        return {"id": file_id, "parents": item["parents"]}

    def get_storage_quota(self, access_token):
        self.tokens_seen.append(access_token)
        return self.quota


class FakeOAuth:
    """Token endpoint, userinfo and revocation stand-in."""

    def __init__(self):
        self.identity = "alice@x.com"
        self.grant = TokenGrant(access_token="issued-access", refresh_token="issued-refresh", expires_in=3600)
        self.refreshed = TokenGrant(access_token="refreshed-access", refresh_token=None, expires_in=3600)
        self.exchange_error = None
        self.refresh_error = None
        self.exchanged: list[tuple[str, str]] = []
        self.refresh_calls: list[str] = []
        self.revoked: list[str] = []

    def exchange_code(self, code, redirect_uri):
        self.exchanged.append((code, redirect_uri))
        if self.exchange_error is not None:
            raise self.exchange_error
        return self.grant

    def refresh_access_token(self, refresh_token):
        self.refresh_calls.append(refresh_token)
        if self.refresh_error is not None:
            raise self.refresh_error
        return self.refreshed

    def fetch_identity(self, access_token):
        return self.identity

    def revoke_token(self, token):
        if not token:
            return False
        self.revoked.append(token)
        return True


@pytest.fixture
def engine():
    """In-memory SQLite shared across threads (TestClient runs endpoints in a pool)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, expire_on_commit=False)()
    yield session
    session.close()


@pytest.fixture
def client(db):
    """Test client using the test database session."""

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def fake_drive(monkeypatch) -> FakeDrive:
    fake = FakeDrive()
    for name in (
        "find_folder",
        "create_folder",
        "find_file",
        "get_file_metadata",
        "upload_file",
        "update_parents",
        "get_storage_quota",
    ):
        monkeypatch.setattr(drive_service, name, getattr(fake, name))
    return fake


@pytest.fixture
def fake_oauth(monkeypatch) -> FakeOAuth:
    fake = FakeOAuth()
    for name in ("exchange_code", "refresh_access_token", "fetch_identity", "revoke_token"):
        monkeypatch.setattr(oauth_service, name, getattr(fake, name))
    return fake


@pytest.fixture
def user(db) -> User:
    user = User(id="user-1", email="alice@x.com", name="Alice")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def root_folder(fake_drive) -> str:
    return fake_drive.add_folder("TAXBEBO", "root", folder_id="R")


@pytest.fixture
def linked_user(db, user, root_folder) -> User:
    """User with a valid (unexpired) StorageLink whose root folder is R."""
    db.add(
        StorageLink(
            user_id=user.id,
            encrypted_access_token=encrypt("cached-access"),
            encrypted_refresh_token=encrypt("stored-refresh"),
            token_expiry=datetime.now(UTC) + timedelta(hours=1),
            external_account_identity="alice@x.com",
            root_folder_id=root_folder,
        )
    )
    user.drive_connected = True
    user.drive_folder_id = root_folder
    db.commit()
    return user


@pytest.fixture
def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {session_token(user.id)}"}
