"""
Typed failures of the storage federation.

Each carries the HTTP status the router should answer with and a stable
error code; main registers one handler that renders detail() as JSON.
"""


class DriveVaultError(Exception):
    """Base class; never raised directly."""

    status_code = 500
    error_code = "drive_error"

    def __init__(self, msg: str):
        self.msg = msg
        super().__init__(msg)

    def detail(self) -> dict:
        return {"error": self.error_code, "message": self.msg}


class NotLinked(DriveVaultError):
    """Operation needs a StorageLink and the user has none."""

    status_code = 409
    error_code = "not_linked"

    def __init__(self, msg: str = "Google Drive not connected. Please connect in your profile settings."):
        super().__init__(msg)


class AuthRequiresRelink(DriveVaultError):
    """Refresh token missing, revoked or rejected; retrying cannot help."""

    status_code = 401
    error_code = "relink_required"


class OAuthExchangeFailed(DriveVaultError):
    """Authorization code rejected by the token endpoint."""

    status_code = 400
    error_code = "oauth_failed"


class IdentityMismatch(DriveVaultError):
    status_code = 400
    error_code = "email_mismatch"

    def __init__(self, expected: str, actual: str | None):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Google account email ({actual}) does not match your signup email "
            f"({expected}). Please use the same Google account."
        )

    def detail(self) -> dict:
        return {**super().detail(), "expected": self.expected, "actual": self.actual}


class InsufficientQuota(DriveVaultError):
    status_code = 400
    error_code = "insufficient_storage"

    def __init__(self, available_bytes: int, required_bytes: int):
        self.available_bytes = available_bytes
        self.required_bytes = required_bytes
        super().__init__(
            f"Insufficient Google Drive storage. Available: "
            f"{round(available_bytes / 1024 / 1024)} MB. Minimum required: "
            f"{round(required_bytes / 1024 / 1024)} MB."
        )

    def detail(self) -> dict:
        return {
            **super().detail(),
            "available_bytes": self.available_bytes,
            "available_mb": round(self.available_bytes / 1024 / 1024),
            "required_bytes": self.required_bytes,
        }


class RemoteUnavailable(DriveVaultError):
    """Network failure or unexpected provider response; safe to retry the operation."""

    status_code = 502
    error_code = "drive_unavailable"

    def __init__(self, msg: str, provider_status: int | None = None, provider_detail: str | None = None):
        self.provider_status = provider_status
        self.provider_detail = provider_detail
        super().__init__(msg)

    def detail(self) -> dict:
        return {**super().detail(), "provider_status": self.provider_status, "retryable": True}


class RemoteWriteFailed(DriveVaultError):
    """Provider rejected an upload, move or permission change."""

    status_code = 502
    error_code = "drive_write_failed"

    def __init__(self, msg: str, provider_detail: str | None = None):
        self.provider_detail = provider_detail
        super().__init__(msg)

    def detail(self) -> dict:
        return {**super().detail(), "details": self.provider_detail}


class RemoteFileMissing(DriveVaultError):
    """Bound Drive file no longer exists; the local binding is stale."""

    status_code = 404
    error_code = "drive_file_missing"

    def __init__(self, file_id: str):
        self.file_id = file_id
        super().__init__(f"File {file_id} was not found in Google Drive")

    def detail(self) -> dict:
        return {**super().detail(), "file_id": self.file_id}
