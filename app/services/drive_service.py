"""
Drive service: Google Drive API primitives, folder resolution, multipart upload, move.

Business logic separated from HTTP layer. All Drive API calls use timeouts
from config. The remote folder tree is the source of truth: country and year
folders are looked up on every call and only the user's root folder id is
cached (by the caller), always checked with folder_exists before reuse.
"""
import json
import logging
import os
import time
import uuid
from dataclasses import dataclass
from typing import Any

import requests

from config import (
    DRIVE_ABOUT_URL,
    DRIVE_FILES_URL,
    DRIVE_REQUEST_TIMEOUT,
    DRIVE_UPLOAD_TIMEOUT,
    DRIVE_UPLOAD_URL,
    MAX_NAME_PROBES,
)
from services.errors import (
    AuthRequiresRelink,
    RemoteFileMissing,
    RemoteUnavailable,
    RemoteWriteFailed,
)

logger = logging.getLogger(__name__)

FOLDER_MIME = "application/vnd.google-apps.folder"

# Alias Drive accepts as the parent id for "My Drive"
DRIVE_ROOT_ALIAS = "root"


def _drive_request(
    method: str,
    url: str,
    access_token: str,
    **kwargs: Any,
) -> dict | None:
    """
    Call Drive API with timeout; returns JSON. A 401 (token revoked outside the
    app) raises AuthRequiresRelink; any other network error or non-2xx status
    is raised as RemoteUnavailable carrying the provider status and body.
    """
    headers = {"Authorization": f"Bearer {access_token}"}
    if "headers" in kwargs:
        headers.update(kwargs.pop("headers"))
    kwargs.setdefault("timeout", DRIVE_REQUEST_TIMEOUT)
    try:
        resp = requests.request(method, url, headers=headers, **kwargs)
        resp.raise_for_status()
    except requests.exceptions.HTTPError as e:
        if e.response.status_code == 401:
            raise AuthRequiresRelink(
                "Google Drive rejected the access token; please reconnect Google Drive"
            ) from e
        raise RemoteUnavailable(
            f"Google Drive {method} failed with status {e.response.status_code}",
            provider_status=e.response.status_code,
            provider_detail=e.response.text,
        ) from e
    except requests.exceptions.RequestException as e:
        raise RemoteUnavailable(f"Google Drive unreachable: {e}") from e
    if resp.content:
        return resp.json()
    return None


def _escape_query_value(value: str) -> str:
    """Quote-escape a literal for the Drive query language."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def _query_first(access_token: str, query: str) -> dict | None:
    data = _drive_request(
        "GET",
        DRIVE_FILES_URL,
        access_token,
        params={
            "q": query,
            "fields": "files(id, name)",
            "pageSize": 10,
            "spaces": "drive",
        },
    )
    files = (data or {}).get("files") or []
    return files[0] if files else None


# --- Folder resolver ---


def find_folder(access_token: str, name: str, parent_id: str) -> str | None:
    """Id of a non-trashed folder named exactly `name` directly under parent_id, if any."""
    query = (
        f"name = '{_escape_query_value(name)}'"
        f" and mimeType = '{FOLDER_MIME}'"
        f" and '{_escape_query_value(parent_id)}' in parents"
        " and trashed = false"
    )
    match = _query_first(access_token, query)
    return match.get("id") if match else None


def create_folder(access_token: str, name: str, parent_id: str) -> str:
    data = _drive_request(
        "POST",
        DRIVE_FILES_URL,
        access_token,
        params={"fields": "id"},
        json={"name": name, "mimeType": FOLDER_MIME, "parents": [parent_id]},
    )
    folder_id = (data or {}).get("id")
    if not folder_id:
        raise RemoteUnavailable(f"Google Drive did not return an id for folder {name!r}")
    return folder_id


def resolve_folder(access_token: str, name: str, parent_id: str) -> str:
    """
    Find-else-create a folder by name under parent_id. First match wins;
    duplicates created out-of-band are not merged. Not atomic: two concurrent
    callers can both miss and both create.
    """
    folder_id = find_folder(access_token, name, parent_id)
    if folder_id:
        return folder_id
    folder_id = create_folder(access_token, name, parent_id)
    logger.info("Created Drive folder %r under %s (%s)", name, parent_id, folder_id)
    return folder_id


def get_file_metadata(access_token: str, file_id: str) -> dict | None:
    """Return {id, name, mimeType, trashed, parents} or None when Drive answers 404."""
    try:
        return _drive_request(
            "GET",
            f"{DRIVE_FILES_URL}/{file_id}",
            access_token,
            params={"fields": "id, name, mimeType, trashed, parents"},
        )
    except RemoteUnavailable as e:
        if e.provider_status == 404:
            return None
        raise


def folder_exists(access_token: str, folder_id: str) -> bool:
    """
    True if folder_id is a live folder. Not found, trashed or not a folder
    all count as missing; other API errors propagate.
    """
    data = get_file_metadata(access_token, folder_id)
    if not data:
        return False
    if data.get("trashed"):
        return False
    return data.get("mimeType") == FOLDER_MIME


# --- Hierarchy builder ---


def ensure_path(
    access_token: str,
    root_id: str,
    country_name: str,
    fiscal_year_label: str,
) -> str:
    """Resolve root/country/year and return the year folder id. Names are used verbatim."""
    country_id = resolve_folder(access_token, country_name, root_id)
    return resolve_folder(access_token, fiscal_year_label, country_id)


def folder_path(root_name: str, country_name: str, fiscal_year_label: str) -> str:
    return f"{root_name}/{country_name}/{fiscal_year_label}"


# --- Files ---


def find_file(access_token: str, name: str, parent_id: str) -> dict | None:
    """Non-trashed, non-folder item named exactly `name` directly under parent_id."""
    query = (
        f"name = '{_escape_query_value(name)}'"
        f" and mimeType != '{FOLDER_MIME}'"
        f" and '{_escape_query_value(parent_id)}' in parents"
        " and trashed = false"
    )
    return _query_first(access_token, query)


def clean_display_name(name: str) -> str:
    """Drop any client-side directory part (e.g. C:\\fakepath\\x.pdf) from an upload name."""
    base = os.path.basename(name.replace("\\", "/")).strip()
    if len(base) > 200:
        root, ext = os.path.splitext(base)
        base = root[: 200 - len(ext)] + ext
    return base or "unnamed"


def resolve_unique_name(
    access_token: str,
    desired_name: str,
    parent_id: str,
    max_probes: int = MAX_NAME_PROBES,
) -> str:
    """
    Return desired_name if unused in parent_id, else the first free
    <base>_<n><ext> for n in 1..max_probes; past the cap append a nanosecond
    timestamp so the loop stays bounded.
    """
    if not find_file(access_token, desired_name, parent_id):
        return desired_name
    base, ext = os.path.splitext(desired_name)
    for i in range(1, max_probes + 1):
        candidate = f"{base}_{i}{ext}"
        if not find_file(access_token, candidate, parent_id):
            return candidate
    candidate = f"{base}_{time.time_ns()}{ext}"
    logger.warning(
        "Name probes exhausted for %r in %s; using %r", desired_name, parent_id, candidate
    )
    return candidate


def build_multipart_body(metadata: dict, content: bytes, mime_type: str) -> tuple[bytes, str]:
    """multipart/related body (JSON metadata part, then media part) and its boundary."""
    boundary = f"drive_vault_{uuid.uuid4().hex}"
    head = (
        f"--{boundary}\r\n"
        "Content-Type: application/json; charset=UTF-8\r\n\r\n"
        f"{json.dumps(metadata)}\r\n"
        f"--{boundary}\r\n"
        f"Content-Type: {mime_type}\r\n\r\n"
    ).encode()
    tail = f"\r\n--{boundary}--".encode()
    return head + content + tail, boundary


def upload_file(
    access_token: str,
    name: str,
    parent_id: str,
    content: bytes,
    mime_type: str,
) -> dict:
    """
    Single multipart create (metadata + bytes) into parent_id.
    Returns {id, name, webViewLink}; rejection raises RemoteWriteFailed.
    """
    body, boundary = build_multipart_body(
        {"name": name, "parents": [parent_id]},
        content,
        mime_type or "application/octet-stream",
    )
    try:
        data = _drive_request(
            "POST",
            DRIVE_UPLOAD_URL,
            access_token,
            params={"uploadType": "multipart", "fields": "id, name, webViewLink"},
            headers={"Content-Type": f"multipart/related; boundary={boundary}"},
            data=body,
            timeout=DRIVE_UPLOAD_TIMEOUT,
        )
    except RemoteUnavailable as e:
        raise RemoteWriteFailed(
            "Failed to upload to Google Drive", provider_detail=e.provider_detail or e.msg
        ) from e
    if not data or not data.get("id"):
        raise RemoteWriteFailed("Google Drive upload returned no file id")
    return data


def get_file_parents(access_token: str, file_id: str) -> list[str]:
    data = get_file_metadata(access_token, file_id)
    if data is None:
        raise RemoteFileMissing(file_id)
    return list(data.get("parents") or [])


def update_parents(
    access_token: str,
    file_id: str,
    add_parent: str,
    remove_parents: list[str],
) -> dict:
    """
    Repoint a file in one PATCH (addParents + removeParents together) so it is
    never left with two parents or none.
    """
    params = {"addParents": add_parent, "fields": "id, parents"}
    if remove_parents:
        params["removeParents"] = ",".join(remove_parents)
    try:
        data = _drive_request(
            "PATCH",
            f"{DRIVE_FILES_URL}/{file_id}",
            access_token,
            params=params,
            json={},
        )
    except RemoteUnavailable as e:
        if e.provider_status == 404:
            raise RemoteFileMissing(file_id) from e
        raise RemoteWriteFailed(
            "Failed to move file on Google Drive", provider_detail=e.provider_detail or e.msg
        ) from e
    return data or {}


# --- Quota ---


@dataclass
class StorageQuota:
    """Drive storageQuota in bytes; limit None means unlimited."""
    limit: int | None
    usage: int

    @property
    def available(self) -> int | None:
        if self.limit is None:
            return None
        return self.limit - self.usage


def _parse_bytes(raw) -> int | None:
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except (ValueError, TypeError):
        return None


def get_storage_quota(access_token: str) -> StorageQuota:
    data = _drive_request(
        "GET",
        DRIVE_ABOUT_URL,
        access_token,
        params={"fields": "storageQuota"},
    )
    quota = (data or {}).get("storageQuota") or {}
    return StorageQuota(
        limit=_parse_bytes(quota.get("limit")),
        usage=_parse_bytes(quota.get("usage")) or 0,
    )
