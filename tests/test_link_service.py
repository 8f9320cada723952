"""Tests for link_service - identity/quota gate, exchange, status, disconnect, root repair."""

import pytest

from crypto import decrypt, encrypt
from models import StorageLink, User
from services import link_service
from services.drive_service import StorageQuota
from services.errors import (
    IdentityMismatch,
    InsufficientQuota,
    OAuthExchangeFailed,
    RemoteUnavailable,
)
from services.link_service import LinkState

MIB = 1024 * 1024


class TestValidateLink:

    def test_identity_and_quota_ok(self, fake_drive, fake_oauth):
        fake_drive.quota = StorageQuota(limit=15_000 * MIB, usage=1_000 * MIB)

        check = link_service.validate_link("tok", "alice@x.com")

        assert check.identity == "alice@x.com"
        assert check.quota.available == 14_000 * MIB
        assert fake_oauth.revoked == []

    def test_identity_compared_case_insensitively(self, fake_drive, fake_oauth):
        fake_oauth.identity = "Alice@X.com"

        check = link_service.validate_link("tok", "alice@x.com")

        assert check.identity == "Alice@X.com"

    def test_identity_mismatch_revokes_token(self, fake_drive, fake_oauth):
        fake_oauth.identity = "mallory@x.com"

        with pytest.raises(IdentityMismatch) as exc_info:
            link_service.validate_link("tok", "alice@x.com")

        assert exc_info.value.expected == "alice@x.com"
        assert exc_info.value.actual == "mallory@x.com"
        assert fake_oauth.revoked == ["tok"]

    def test_quota_below_minimum_revokes_token(self, fake_drive, fake_oauth):
        fake_drive.quota = StorageQuota(limit=10_000_000_000, usage=9_999_000_000)

        with pytest.raises(InsufficientQuota) as exc_info:
            link_service.validate_link("tok", "alice@x.com")

        assert exc_info.value.available_bytes == 1_000_000
        assert fake_oauth.revoked == ["tok"]

    def test_quota_exactly_at_minimum_passes(self, fake_drive, fake_oauth):
        fake_drive.quota = StorageQuota(limit=1_000 * MIB, usage=500 * MIB)

        link_service.validate_link("tok", "alice@x.com")

    def test_missing_limit_is_unbounded(self, fake_drive, fake_oauth):
        fake_drive.quota = StorageQuota(limit=None, usage=10**15)

        check = link_service.validate_link("tok", "alice@x.com")

        assert check.quota.available is None


class TestExchange:

    def test_successful_link_persists_everything(self, db, user, fake_drive, fake_oauth):
        result = link_service.exchange(db, user, "abc", "https://app.example/vault")

        root = fake_drive.child_named("root", "TAXBEBO", folders=True)
        assert result.root_folder_id == root["id"]
        assert result.external_identity == "alice@x.com"
        assert fake_oauth.exchanged == [("abc", "https://app.example/vault")]

        db.expire_all()
        link = db.get(StorageLink, user.id)
        assert decrypt(link.encrypted_access_token) == "issued-access"
        assert decrypt(link.encrypted_refresh_token) == "issued-refresh"
        assert link.external_account_identity == "alice@x.com"
        assert link.root_folder_id == root["id"]
        stored_user = db.get(User, user.id)
        assert stored_user.drive_connected is True
        assert stored_user.drive_folder_id == root["id"]
        assert stored_user.storage_preference == "google_drive"
        assert fake_oauth.revoked == []

    def test_existing_root_folder_is_reused(self, db, user, fake_drive, fake_oauth):
        existing = fake_drive.add_folder("TAXBEBO", "root")

        result = link_service.exchange(db, user, "abc", "https://app.example/vault")

        assert result.root_folder_id == existing
        assert fake_drive.created_folders == []

    def test_insufficient_quota_leaves_no_residue(self, db, user, fake_drive, fake_oauth):
        """Scenario: alice@x.com, 10_000_000_000 limit, 9_999_000_000 used."""
        fake_drive.quota = StorageQuota(limit=10_000_000_000, usage=9_999_000_000)

        with pytest.raises(InsufficientQuota) as exc_info:
            link_service.exchange(db, user, "abc", "https://app.example/vault")

        assert exc_info.value.available_bytes == 1_000_000
        assert db.get(StorageLink, user.id) is None
        assert "issued-access" in fake_oauth.revoked
        assert "issued-refresh" in fake_oauth.revoked
        assert fake_drive.created_folders == []
        assert db.get(User, user.id).drive_connected is False

    def test_identity_mismatch_leaves_no_residue(self, db, user, fake_drive, fake_oauth):
        fake_oauth.identity = "bob@y.com"

        with pytest.raises(IdentityMismatch):
            link_service.exchange(db, user, "abc", "https://app.example/vault")

        assert db.get(StorageLink, user.id) is None
        assert "issued-access" in fake_oauth.revoked

    def test_root_folder_failure_revokes_and_rolls_back(self, db, user, fake_drive, fake_oauth, monkeypatch):
        def broken_create(*args):
            raise RemoteUnavailable("Google Drive POST failed with status 500", provider_status=500)

        monkeypatch.setattr(link_service.drive_service, "create_folder", broken_create)

        with pytest.raises(RemoteUnavailable):
            link_service.exchange(db, user, "abc", "https://app.example/vault")

        assert db.get(StorageLink, user.id) is None
        assert fake_oauth.revoked == ["issued-access", "issued-refresh"]

    def test_rejected_code_issues_nothing(self, db, user, fake_drive, fake_oauth):
        fake_oauth.exchange_error = OAuthExchangeFailed("OAuth failed: invalid_grant")

        with pytest.raises(OAuthExchangeFailed):
            link_service.exchange(db, user, "bad", "https://app.example/vault")

        assert fake_oauth.revoked == []
        assert db.get(StorageLink, user.id) is None

    def test_relink_keeps_refresh_token_when_none_returned(self, db, linked_user, fake_drive, fake_oauth):
        fake_oauth.grant = fake_oauth.grant.__class__(access_token="second-access", refresh_token=None, expires_in=3600)

        link_service.exchange(db, linked_user, "abc", "https://app.example/vault")

        db.expire_all()
        link = db.get(StorageLink, linked_user.id)
        assert decrypt(link.encrypted_access_token) == "second-access"
        assert decrypt(link.encrypted_refresh_token) == "stored-refresh"
        assert db.query(StorageLink).count() == 1


class TestStatus:

    def test_unlinked(self, db, user):
        status = link_service.get_status(db, user.id)

        assert status.connected is False
        assert status.external_identity is None
        assert status.state is LinkState.UNLINKED

    def test_linked(self, db, linked_user, fake_oauth):
        status = link_service.get_status(db, linked_user.id)

        assert status.connected is True
        assert status.external_identity == "alice@x.com"
        assert status.root_folder_id == "R"
        assert status.state is LinkState.LINKED
        assert fake_oauth.refresh_calls == []


class TestDisconnect:

    def test_revokes_both_tokens_and_deletes_link(self, db, linked_user, fake_oauth):
        assert link_service.disconnect(db, linked_user.id) is True

        assert sorted(fake_oauth.revoked) == ["cached-access", "stored-refresh"]
        assert db.get(StorageLink, linked_user.id) is None
        stored_user = db.get(User, linked_user.id)
        assert stored_user.drive_connected is False
        assert stored_user.drive_folder_id is None

    def test_revocation_failure_does_not_block_teardown(self, db, linked_user, monkeypatch):
        import requests

        from services import oauth_service

        def unreachable(*args, **kwargs):
            raise requests.exceptions.ConnectionError("google unreachable")

        monkeypatch.setattr(oauth_service.requests, "post", unreachable)

        assert link_service.disconnect(db, linked_user.id) is True
        assert db.get(StorageLink, linked_user.id) is None

    def test_unreadable_tokens_still_tear_down(self, db, linked_user, fake_oauth):
        link = db.get(StorageLink, linked_user.id)
        link.encrypted_access_token = "garbage"
        db.commit()

        assert link_service.disconnect(db, linked_user.id) is True
        assert fake_oauth.revoked == []
        assert db.get(StorageLink, linked_user.id) is None

    def test_without_link(self, db, user, fake_oauth):
        assert link_service.disconnect(db, user.id) is False
        assert fake_oauth.revoked == []


class TestEnsureRootFolder:

    def test_live_root_is_kept(self, db, linked_user, fake_drive):
        link = db.get(StorageLink, linked_user.id)

        assert link_service.ensure_root_folder(db, link, "tok") == "R"
        assert fake_drive.created_folders == []

    def test_trashed_root_is_recreated_and_persisted(self, db, linked_user, fake_drive):
        fake_drive.trash("R")
        link = db.get(StorageLink, linked_user.id)

        new_root = link_service.ensure_root_folder(db, link, "tok")

        assert new_root != "R"
        assert fake_drive.created_folders == [("TAXBEBO", "root")]
        db.expire_all()
        assert db.get(StorageLink, linked_user.id).root_folder_id == new_root
        assert db.get(User, linked_user.id).drive_folder_id == new_root

    def test_deleted_root_is_recreated(self, db, linked_user, fake_drive):
        del fake_drive.items["R"]
        link = db.get(StorageLink, linked_user.id)

        new_root = link_service.ensure_root_folder(db, link, "tok")

        assert new_root in fake_drive.items
        # Second call trusts the repaired id
        assert link_service.ensure_root_folder(db, db.get(StorageLink, linked_user.id), "tok") == new_root
        assert len(fake_drive.created_folders) == 1

    def test_missing_root_is_resolved(self, db, linked_user, fake_drive):
        link = db.get(StorageLink, linked_user.id)
        link.root_folder_id = None
        db.commit()

        # R still exists under the Drive root, so it is found, not created
        assert link_service.ensure_root_folder(db, link, "tok") == "R"
        assert fake_drive.created_folders == []


def test_encrypt_is_not_plaintext():
    assert encrypt("secret-token") != "secret-token"
