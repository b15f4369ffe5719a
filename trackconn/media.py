"""Media routes for the TrackConnections API.

Uploads go to the blob store first; the media row then records the
URL and storage key. Media may be uploaded before its log entry exists
and is claimed later, either when the entry is created or through
``PUT /media/{id}/assign``.
"""

from typing import List

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import blobs, crud, schemas
from .auth import get_current_user
from .core import get_settings
from .database import get_db
from .models import Media, User

router = APIRouter(prefix="/media", tags=["media"])


def get_owned_media(db: Session, media_id: int, user: User) -> Media:
    """Load a media item of the user or answer 404."""
    item = crud.get_media(db, media_id, user.id)
    if not item:
        raise HTTPException(status_code=404, detail="Media not found")
    return item


@router.post("/", response_model=List[schemas.MediaOut], status_code=201)
def upload_media(
    files: List[UploadFile] = File(...),
    log_entry_id: int | None = Form(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Upload images, optionally attaching them to a log entry.

    Args:
        files (list[UploadFile]): Image files.
        log_entry_id (int | None): Log entry to attach the media to.
        db (Session): Database session.
        current_user (User): Authenticated user.

    Raises:
        HTTPException: If storage is not configured, a file is rejected,
            the log entry is not found or the upload fails.

    Returns:
        list[MediaOut]: Stored media items.
    """
    settings = get_settings()
    if not blobs.is_configured():
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Media storage is not configured",
        )
    if len(files) > settings.MEDIA_MAX_FILES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Too many files, the limit is {settings.MEDIA_MAX_FILES}",
        )
    if log_entry_id is not None and not crud.get_log_entry(
        db, log_entry_id, current_user.id
    ):
        raise HTTPException(status_code=404, detail="Log entry not found")

    payloads = []
    for upload in files:
        if not blobs.is_type_allowed(upload.content_type):
            raise HTTPException(
                status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
                detail=f"File type {upload.content_type} is not allowed",
            )
        content = upload.file.read()
        if len(content) > settings.MEDIA_MAX_BYTES:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail="File too large",
            )
        payloads.append((upload, content))

    # rows are written only once every blob is stored
    items = []
    for upload, content in payloads:
        key = blobs.generate_key(current_user.id, upload.filename)
        try:
            blob = blobs.upload_blob(content, key)
        except blobs.BlobStoreError:
            blobs.discard_blobs([item["storage_key"] for item in items])
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Failed to upload media",
            )
        items.append(
            {
                "url": blob.url,
                "storage_key": blob.key,
                "file_type": upload.content_type,
                "file_size": blob.size or len(content),
            }
        )

    try:
        return crud.create_media_items(db, current_user.id, items, log_entry_id)
    except SQLAlchemyError:
        db.rollback()
        blobs.discard_blobs([item["storage_key"] for item in items])
        raise


@router.get("/unassigned", response_model=List[schemas.MediaOut])
def list_unassigned_media(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """List uploaded media not yet attached to a log entry."""
    return crud.get_unassigned_media(db, current_user.id)


@router.put("/{media_id}/assign", response_model=schemas.MediaOut)
def assign_media(
    media_id: int,
    payload: schemas.MediaAssign,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Attach a media item to one of the user's log entries.

    Raises:
        HTTPException: If the media or the log entry is not found.
    """
    item = get_owned_media(db, media_id, current_user)
    if not crud.get_log_entry(db, payload.log_entry_id, current_user.id):
        raise HTTPException(status_code=404, detail="Log entry not found")
    return crud.assign_media(db, item, payload.log_entry_id)


@router.delete("/{media_id}")
def delete_media(
    media_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Delete a media item and its blob.

    The row is removed even when the blob store cannot delete the blob.

    Returns:
        dict: Deletion status.
    """
    item = get_owned_media(db, media_id, current_user)
    blobs.discard_blobs([item.storage_key])
    crud.delete_media(db, item)
    return {"ok": True}
