"""
Sharing: anyone-with-link reader permissions on Drive-hosted documents.
"""
import logging
from dataclasses import dataclass

from config import DRIVE_FILES_URL
from services.drive_service import _drive_request
from services.errors import RemoteFileMissing, RemoteUnavailable, RemoteWriteFailed

logger = logging.getLogger(__name__)

SHAREABLE_ROLES = ("reader", "writer")


@dataclass
class ShareInfo:
    permission_id: str
    web_view_link: str | None


def list_permissions(access_token: str, file_id: str) -> list[dict]:
    try:
        data = _drive_request(
            "GET",
            f"{DRIVE_FILES_URL}/{file_id}/permissions",
            access_token,
            params={"fields": "permissions(id, type, role, emailAddress)"},
        )
    except RemoteUnavailable as e:
        if e.provider_status == 404:
            raise RemoteFileMissing(file_id) from e
        raise
    return (data or {}).get("permissions") or []


def get_web_view_link(access_token: str, file_id: str) -> str | None:
    try:
        data = _drive_request(
            "GET",
            f"{DRIVE_FILES_URL}/{file_id}",
            access_token,
            params={"fields": "webViewLink, webContentLink, name"},
        )
    except RemoteUnavailable as e:
        if e.provider_status == 404:
            raise RemoteFileMissing(file_id) from e
        raise
    data = data or {}
    return data.get("webViewLink") or data.get("webContentLink")


def share_file(access_token: str, file_id: str) -> ShareInfo:
    """Reuse an existing anyone-permission or add an anyone/reader one."""
    existing = next(
        (
            p for p in list_permissions(access_token, file_id)
            if p.get("type") == "anyone" and p.get("role") in SHAREABLE_ROLES
        ),
        None,
    )
    if existing:
        permission_id = existing["id"]
    else:
        try:
            data = _drive_request(
                "POST",
                f"{DRIVE_FILES_URL}/{file_id}/permissions",
                access_token,
                params={"fields": "id"},
                json={"type": "anyone", "role": "reader"},
            )
        except RemoteUnavailable as e:
            raise RemoteWriteFailed(
                f"Failed to share file {file_id}", provider_detail=e.provider_detail or e.msg
            ) from e
        permission_id = (data or {}).get("id")
        if not permission_id:
            raise RemoteWriteFailed(f"Google Drive returned no permission id for {file_id}")
        logger.info("Added reader permission %s to file %s", permission_id, file_id)
    return ShareInfo(permission_id=permission_id, web_view_link=get_web_view_link(access_token, file_id))


def unshare_file(access_token: str, file_id: str, permission_id: str) -> bool:
    """Delete the permission; a 404 means it is already gone."""
    try:
        _drive_request(
            "DELETE",
            f"{DRIVE_FILES_URL}/{file_id}/permissions/{permission_id}",
            access_token,
        )
    except RemoteUnavailable as e:
        if e.provider_status == 404:
            logger.info("Permission %s already removed from file %s", permission_id, file_id)
            return True
        raise RemoteWriteFailed(
            f"Failed to remove permission {permission_id}", provider_detail=e.provider_detail or e.msg
        ) from e
    logger.info("Removed permission %s from file %s", permission_id, file_id)
    return True


def permission_active(access_token: str, file_id: str, permission_id: str) -> bool:
    try:
        data = _drive_request(
            "GET",
            f"{DRIVE_FILES_URL}/{file_id}/permissions/{permission_id}",
            access_token,
            params={"fields": "id, role, type"},
        )
    except RemoteUnavailable as e:
        if e.provider_status == 404:
            return False
        raise
    return bool(data and data.get("id"))
