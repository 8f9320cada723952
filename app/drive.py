"""
Drive router: HTTP endpoints for linking Google Drive and storing documents in it.

Delegates to services.link_service (exchange/status/disconnect),
services.vault_service (upload/move) and services.sharing_service. Typed
failures (services.errors) propagate to the handler registered in main.
Endpoints that call Google with the user's tokens run under the per-user lock.
"""
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from auth import get_current_user, get_valid_access_token, load_link
from config import DRIVE_SCOPES, GOOGLE_CLIENT_ID, MAX_UPLOAD_BYTES
from database import get_db
from fiscal_year import fiscal_year_options
from models import Document, User, drive_path, is_drive_file
from services import link_service, sharing_service, vault_service
from services.user_locks import user_lock

router = APIRouter(prefix="/drive")


# --- Request models ---


class ExchangeBody(BaseModel):
    """Authorization code from the consent redirect and the redirect URI it was issued for."""
    code: str = Field(..., min_length=1)
    redirect_uri: str = Field(..., min_length=1, max_length=2048)


class MoveBody(BaseModel):
    """New classification for a Drive-hosted document."""
    country: str = Field(..., min_length=1, max_length=255)
    year: str = Field(..., min_length=1, max_length=64)


def _drive_document(db: Session, user: User, document_id: str) -> Document:
    doc = db.get(Document, document_id)
    if doc is None or doc.user_id != user.id:
        raise HTTPException(status_code=404, detail="Document not found")
    if not is_drive_file(doc.file_path):
        raise HTTPException(status_code=400, detail="Document is not stored in Google Drive")
    if not doc.drive_file_id:
        raise HTTPException(status_code=400, detail="Document has no Google Drive file id")
    return doc


# --- Endpoints ---


@router.get("/config")
def drive_config():
    """Public OAuth client id and scopes the frontend needs to start consent."""
    return {"client_id": GOOGLE_CLIENT_ID, "scopes": DRIVE_SCOPES}


@router.post("/exchange")
def exchange(
    body: ExchangeBody,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Link the user's Google Drive: exchange the code, check the Google e-mail
    matches and at least the minimum free space exists, create the root folder.
    """
    with user_lock(user.id):
        result = link_service.exchange(db, user, body.code, body.redirect_uri)
    available = result.available_bytes
    return {
        "connected": True,
        "google_email": result.external_identity,
        "root_folder_id": result.root_folder_id,
        "available_storage_bytes": available,
        "available_storage_mb": round(available / 1024 / 1024) if available is not None else None,
    }


@router.get("/status")
def status(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Whether a Drive link exists; local data only."""
    result = link_service.get_status(db, user.id)
    return {
        "connected": result.connected,
        "state": result.state.value,
        "external_identity": result.external_identity,
        "root_folder_id": result.root_folder_id,
    }


@router.post("/disconnect")
def disconnect(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Revoke tokens (best effort) and forget the link. Files in Drive are kept."""
    with user_lock(user.id):
        link_service.disconnect(db, user.id)
    return {"ok": True, "message": "Google Drive disconnected. Existing files are preserved."}


@router.post("/documents")
def upload_document(
    file: UploadFile = File(...),
    country: str = Form(..., min_length=1, max_length=255),
    year: str = Form(..., min_length=1, max_length=64),
    category: str = Form(..., min_length=1, max_length=255),
    original_filename: str | None = Form(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Upload a file into <root>/<country>/<year> and record the document with a
    gdrive:// binding once Drive confirmed the write.
    """
    content = file.file.read(MAX_UPLOAD_BYTES + 1)
    if len(content) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail=f"File exceeds max size ({MAX_UPLOAD_BYTES} bytes)")
    name = original_filename or file.filename
    if not name:
        raise HTTPException(status_code=400, detail="Missing original_filename")
    mime_type = file.content_type or "application/octet-stream"

    with user_lock(user.id):
        result = vault_service.upload_document(
            db, user.id, content, mime_type, country, year, category, name
        )

    doc = Document(
        user_id=user.id,
        file_name=result.display_name,
        file_path=drive_path(result.remote_file_id),
        file_type=mime_type,
        country=country,
        tax_year=year,
        category=category,
    )
    db.add(doc)
    db.commit()
    return {
        "document_id": doc.id,
        "remote_file_id": result.remote_file_id,
        "display_name": result.display_name,
        "path": result.path,
        "web_view_link": result.web_view_link,
    }


@router.post("/documents/{document_id}/move")
def move_document(
    document_id: str,
    body: MoveBody,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Reclassify a Drive-hosted document and move its file to the matching folder."""
    doc = _drive_document(db, user, document_id)
    with user_lock(user.id):
        result = vault_service.move_document(
            db, user.id, doc.drive_file_id, body.country, body.year
        )
    doc.country = body.country
    doc.tax_year = body.year
    db.commit()
    return {"new_path": result.new_path}


@router.post("/documents/{document_id}/share")
def share_document(
    document_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Make the Drive file readable by anyone with the link."""
    doc = _drive_document(db, user, document_id)
    with user_lock(user.id):
        access_token = get_valid_access_token(load_link(db, user.id), db)
        info = sharing_service.share_file(access_token, doc.drive_file_id)
    doc.share_enabled = True
    doc.share_permission_id = info.permission_id
    db.commit()
    return {"permission_id": info.permission_id, "web_view_link": info.web_view_link}


@router.delete("/documents/{document_id}/share")
def unshare_document(
    document_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Remove the link permission recorded on the document, if any."""
    doc = _drive_document(db, user, document_id)
    if doc.share_permission_id:
        with user_lock(user.id):
            access_token = get_valid_access_token(load_link(db, user.id), db)
            sharing_service.unshare_file(access_token, doc.drive_file_id, doc.share_permission_id)
    doc.share_enabled = False
    doc.share_permission_id = None
    db.commit()
    return {"ok": True}


@router.get("/documents/{document_id}/share")
def share_status(
    document_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Whether the recorded link permission still exists in Drive. A permission
    removed outside the app clears the document's share fields.
    """
    doc = _drive_document(db, user, document_id)
    if not doc.share_permission_id:
        return {"shared": False, "permission_id": None}
    with user_lock(user.id):
        access_token = get_valid_access_token(load_link(db, user.id), db)
        active = sharing_service.permission_active(
            access_token, doc.drive_file_id, doc.share_permission_id
        )
    if not active:
        doc.share_enabled = False
        doc.share_permission_id = None
        db.commit()
        return {"shared": False, "permission_id": None}
    return {"shared": True, "permission_id": doc.share_permission_id}


@router.get("/fiscal-years")
def fiscal_years(
    country: str = Query(..., min_length=1),
    count: int = Query(10, ge=1, le=50),
    user: User = Depends(get_current_user),
):
    """Year folder names offered for a country, newest first."""
    return {"options": fiscal_year_options(country, count)}
