"""
Vault service: upload and reclassify (move) documents in the user's Drive.

Both run the same preamble in order: load StorageLink, fresh token, root
repair, then resolve root/country/year. Nothing is recorded locally here; the
router binds the document only after Drive confirmed the write.
"""
import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from auth import get_valid_access_token, load_link
from config import DRIVE_ROOT_FOLDER_NAME
from services import drive_service
from services.link_service import ensure_root_folder

logger = logging.getLogger(__name__)


@dataclass
class UploadResult:
    remote_file_id: str
    display_name: str
    path: str
    web_view_link: str | None = None


@dataclass
class MoveResult:
    new_path: str
    folder_id: str
    moved: bool


def _prepare(db: Session, user_id: str) -> tuple[str, str]:
    """Return (access_token, root_folder_id) for a linked user."""
    link = load_link(db, user_id)
    access_token = get_valid_access_token(link, db)
    root_folder_id = ensure_root_folder(db, link, access_token)
    return access_token, root_folder_id


def desired_file_name(category: str, original_filename: str) -> str:
    return f"{category}-{drive_service.clean_display_name(original_filename)}"


def upload_document(
    db: Session,
    user_id: str,
    file_bytes: bytes,
    mime_type: str,
    country: str,
    fiscal_year_label: str,
    category: str,
    original_filename: str,
) -> UploadResult:
    """
    Place a file at <root>/<country>/<year>/<category>-<original name>, with a
    _N suffix (or timestamp past the probe cap) when that name is taken.
    """
    access_token, root_folder_id = _prepare(db, user_id)
    folder_id = drive_service.ensure_path(access_token, root_folder_id, country, fiscal_year_label)

    name = drive_service.resolve_unique_name(
        access_token, desired_file_name(category, original_filename), folder_id
    )
    created = drive_service.upload_file(access_token, name, folder_id, file_bytes, mime_type)

    path = drive_service.folder_path(DRIVE_ROOT_FOLDER_NAME, country, fiscal_year_label)
    logger.info("Uploaded %r to %s for user %s (%s)", name, path, user_id, created["id"])
    return UploadResult(
        remote_file_id=created["id"],
        display_name=created.get("name") or name,
        path=path,
        web_view_link=created.get("webViewLink"),
    )


def move_document(
    db: Session,
    user_id: str,
    remote_file_id: str,
    new_country: str,
    new_fiscal_year_label: str,
) -> MoveResult:
    """
    Repoint remote_file_id under the folder for the new classification in a
    single PATCH that adds the new parent and removes every current one.
    """
    access_token, root_folder_id = _prepare(db, user_id)
    folder_id = drive_service.ensure_path(
        access_token, root_folder_id, new_country, new_fiscal_year_label
    )
    new_path = drive_service.folder_path(DRIVE_ROOT_FOLDER_NAME, new_country, new_fiscal_year_label)

    parents = drive_service.get_file_parents(access_token, remote_file_id)
    if parents == [folder_id]:
        return MoveResult(new_path=new_path, folder_id=folder_id, moved=False)

    drive_service.update_parents(
        access_token,
        remote_file_id,
        add_parent=folder_id,
        remove_parents=[p for p in parents if p != folder_id],
    )
    logger.info("Moved %s to %s for user %s", remote_file_id, new_path, user_id)
    return MoveResult(new_path=new_path, folder_id=folder_id, moved=True)
